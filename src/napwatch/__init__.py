"""Napwatch: active nap session tracking for caregivers."""

__version__ = "0.1.0"

__all__ = ["__version__"]

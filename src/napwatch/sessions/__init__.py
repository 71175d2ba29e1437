"""Active and finalized nap session types."""

from .models import ActiveSession, FinalizedNap, elapsed_between
from .policy import PrimaryPolicy, select_primary

__all__ = [
    "ActiveSession",
    "FinalizedNap",
    "PrimaryPolicy",
    "elapsed_between",
    "select_primary",
]

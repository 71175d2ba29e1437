"""Tracked subject models and roster loader exports."""

from .loader import SubjectLoadError, SubjectLoader, load_subjects
from .models import SubjectCategory, TrackedSubject

__all__ = [
    "SubjectCategory",
    "SubjectLoadError",
    "SubjectLoader",
    "TrackedSubject",
    "load_subjects",
]

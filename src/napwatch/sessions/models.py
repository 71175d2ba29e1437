"""Data models for in-progress and finalized naps."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..subjects.models import SubjectCategory, TrackedSubject


def elapsed_between(start: datetime, end: datetime) -> int:
    """Whole seconds from ``start`` to ``end``, floored and never negative."""

    seconds = (end - start) // timedelta(seconds=1)
    return max(0, seconds)


class ActiveSession(BaseModel):
    """A running nap for one subject.

    The subject fields are a snapshot taken when the nap started so the
    session survives roster changes. Elapsed time is always derived from
    ``start_time``.
    """

    model_config = ConfigDict(frozen=True)

    subject_id: str
    subject_name: str
    subject_category: SubjectCategory = SubjectCategory.BOY
    start_time: datetime
    notes: str = Field(default="")

    @field_validator("subject_id")
    @classmethod
    def _normalize_subject_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Session subject id must not be empty")
        return normalized

    @field_validator("start_time")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def begin(cls, subject: TrackedSubject, start_time: datetime) -> "ActiveSession":
        return cls(
            subject_id=subject.id,
            subject_name=subject.name,
            subject_category=subject.category,
            start_time=start_time,
        )

    def elapsed_seconds(self, now: datetime) -> int:
        return elapsed_between(self.start_time, now)

    def with_notes(self, notes: str) -> "ActiveSession":
        return self.model_copy(update={"notes": notes})


@dataclass(slots=True, frozen=True)
class FinalizedNap:
    """Immutable record handed to the caller when a nap ends."""

    subject_id: str
    subject_name: str
    start_time: datetime
    end_time: datetime
    elapsed_seconds: int
    notes: str

    def to_payload(self) -> dict[str, object]:
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "elapsed_seconds": self.elapsed_seconds,
            "notes": self.notes,
        }


__all__ = ["ActiveSession", "FinalizedNap", "elapsed_between"]

"""Data models for recorded nap history."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class NapRecord:
    id: str
    subject_id: str
    subject_name: str
    start_time: datetime
    end_time: datetime
    duration_seconds: int
    notes: str | None
    recorded_by: str | None
    recorded_at: datetime
    metadata: dict[str, Any]


__all__ = ["NapRecord"]

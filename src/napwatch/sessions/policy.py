"""Selection of the primary session surfaced by the notification."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from .models import ActiveSession


class PrimaryPolicy(str, Enum):
    EARLIEST_STARTED = "earliest_started"
    INSERTION_ORDER = "insertion_order"
    SUBJECT_ID = "subject_id"


def select_primary(
    sessions: Iterable[ActiveSession],
    policy: PrimaryPolicy = PrimaryPolicy.EARLIEST_STARTED,
) -> ActiveSession | None:
    """Pick the single session the notification represents.

    ``sessions`` must be in insertion order; ties on start time fall back to it.
    """

    ordered = list(sessions)
    if not ordered:
        return None
    if policy is PrimaryPolicy.INSERTION_ORDER:
        return ordered[0]
    if policy is PrimaryPolicy.SUBJECT_ID:
        return min(ordered, key=lambda session: session.subject_id)
    # min() keeps the first of equal keys, which preserves insertion order on ties.
    return min(ordered, key=lambda session: session.start_time)


__all__ = ["PrimaryPolicy", "select_primary"]

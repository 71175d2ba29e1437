from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from napwatch.sessions import ActiveSession, PrimaryPolicy, elapsed_between, select_primary
from napwatch.subjects import TrackedSubject


T0 = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def _session(subject_id: str, offset: int) -> ActiveSession:
    subject = TrackedSubject(id=subject_id, name=subject_id)
    return ActiveSession.begin(subject, T0 + timedelta(seconds=offset))


def test_elapsed_between_floors_partial_seconds() -> None:
    assert elapsed_between(T0, T0 + timedelta(milliseconds=125_999)) == 125
    assert elapsed_between(T0, T0 - timedelta(seconds=3)) == 0


def test_session_snapshot_is_immutable() -> None:
    session = _session("baby1", 0)

    with pytest.raises(ValidationError):
        session.notes = "changed"  # type: ignore[misc]

    updated = session.with_notes("changed")
    assert updated.notes == "changed"
    assert session.notes == ""
    assert updated.start_time == session.start_time


def test_select_primary_policies() -> None:
    later_low_id = _session("a-baby", 20)
    earlier = _session("m-baby", 5)
    first_inserted = _session("z-baby", 10)
    sessions = [first_inserted, earlier, later_low_id]

    assert select_primary(sessions) is earlier
    assert select_primary(sessions, PrimaryPolicy.INSERTION_ORDER) is first_inserted
    assert select_primary(sessions, PrimaryPolicy.SUBJECT_ID) is later_low_id
    assert select_primary([]) is None


def test_earliest_started_ties_keep_insertion_order() -> None:
    first = _session("z-baby", 0)
    second = _session("a-baby", 0)

    assert select_primary([first, second]) is first

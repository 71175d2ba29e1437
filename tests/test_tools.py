from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from napwatch.clock import FakeClock
from napwatch.config import NapwatchSettings
from napwatch.manager import ActiveNapSessionManager
from napwatch.notifications import STOP_NAP_ACTION, InMemoryNotificationSink
from napwatch.sessions import FinalizedNap
from napwatch.storage import MemorySessionStore, NapRecord
from napwatch.subjects import SubjectLoadError, TrackedSubject
from napwatch.tools import register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubSubjectLoader:
    def __init__(self, *subjects: TrackedSubject) -> None:
        self._subjects = {subject.id: subject for subject in subjects}

    def load_all(self) -> dict[str, TrackedSubject]:
        return dict(self._subjects)

    def get(self, subject_id: str) -> TrackedSubject:
        try:
            return self._subjects[subject_id]
        except KeyError as exc:
            raise SubjectLoadError(subject_id) from exc


class StubHistory:
    def __init__(self, *, fail: bool = False) -> None:
        self.naps: list[tuple[FinalizedNap, str | None]] = []
        self.records: list[NapRecord] = []
        self._fail = fail

    def record_nap(self, nap: FinalizedNap, *, recorded_by: str | None = None) -> NapRecord | None:
        if self._fail:
            raise RuntimeError("history offline")
        if nap.elapsed_seconds <= 0:
            return None
        self.naps.append((nap, recorded_by))
        record = NapRecord(
            id=f"nap-{len(self.naps)}",
            subject_id=nap.subject_id,
            subject_name=nap.subject_name,
            start_time=nap.start_time,
            end_time=nap.end_time,
            duration_seconds=nap.elapsed_seconds,
            notes=nap.notes or None,
            recorded_by=recorded_by,
            recorded_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
            metadata={},
        )
        self.records.append(record)
        return record

    def list_naps(self, subject_id: str | None = None, *, limit: int | None = None) -> list[NapRecord]:
        records = [
            record for record in self.records if subject_id is None or record.subject_id == subject_id
        ]
        return records[:limit] if limit else records


ANA = TrackedSubject(id="baby1", name="Ana", category="girl")
BEN = TrackedSubject(id="baby2", name="Ben")


def _setup(history: Any = None, *, with_history: bool = True):
    clock = FakeClock()
    store = MemorySessionStore()
    sink = InMemoryNotificationSink()
    manager = ActiveNapSessionManager(store, sink, clock=clock, tick_interval=3600)
    server = StubServer()
    handles = register_tools(
        server,
        subjects=StubSubjectLoader(ANA, BEN),
        settings=NapwatchSettings(),
        manager=manager,
        history=(history or StubHistory()) if with_history else None,
        notification_sink=sink,
    )
    return server, handles, clock, store, sink


def test_registers_all_tools() -> None:
    server, *_ = _setup()

    assert sorted(server._tools) == [
        "list_subjects",
        "nap_history",
        "nap_status",
        "notification_action",
        "start_nap",
        "stop_nap",
        "stop_primary_nap",
        "update_nap_notes",
    ]


def test_start_update_and_stop_records_history() -> None:
    history = StubHistory()
    _, handles, clock, store, sink = _setup(history)

    async def scenario():
        started = await handles.start_nap.fn("baby1")
        again = await handles.start_nap.fn("baby1")
        await handles.update_nap_notes.fn("baby1", "rolled over")
        clock.advance(125)
        status = await handles.nap_status.fn()
        stopped = await handles.stop_nap.fn("baby1", recorded_by="caregiver-1")
        await handles.manager.close()
        return started, again, status, stopped

    started, again, status, stopped = asyncio.run(scenario())

    assert started["started"] is True
    assert again["started"] is False
    assert status["active"][0]["elapsed_display"] == "02:05"
    assert status["active"][0]["notes"] == "rolled over"
    assert status["notification"]["title"].endswith("Ana is sleeping")
    assert stopped["stopped"] is True
    assert stopped["elapsed_seconds"] == 125
    assert stopped["recorded"] is True
    assert history.naps[0][1] == "caregiver-1"
    assert store.raw is None
    assert sink.snapshot() is None


def test_stop_unknown_nap_reports_not_stopped() -> None:
    _, handles, *_ = _setup()

    async def scenario():
        result = await handles.stop_nap.fn("baby1")
        await handles.manager.close()
        return result

    assert asyncio.run(scenario()) == {"stopped": False, "subject_id": "baby1"}


def test_start_unknown_subject_raises() -> None:
    _, handles, *_ = _setup()

    with pytest.raises(ValueError):
        asyncio.run(handles.start_nap.fn("baby9"))


def test_notification_action_stops_primary() -> None:
    history = StubHistory()
    _, handles, clock, *_ = _setup(history)

    async def scenario():
        await handles.start_nap.fn("baby1")
        clock.advance(60)
        await handles.start_nap.fn("baby2")
        clock.advance(60)
        ignored = await handles.notification_action.fn("OPEN")
        stopped = await handles.notification_action.fn(STOP_NAP_ACTION)
        status = await handles.nap_status.fn()
        await handles.manager.close()
        return ignored, stopped, status

    ignored, stopped, status = asyncio.run(scenario())

    assert ignored == {"handled": False, "action_id": "OPEN"}
    assert stopped["handled"] is True
    assert stopped["subject_id"] == "baby1"
    assert stopped["elapsed_seconds"] == 120
    assert status["primary_subject_id"] == "baby2"
    assert status["notification"]["title"].endswith("Ben is sleeping")
    assert [nap.subject_id for nap, _ in history.naps] == ["baby1"]


def test_history_failure_still_returns_finalized_nap() -> None:
    _, handles, clock, *_ = _setup(StubHistory(fail=True))

    async def scenario():
        await handles.start_nap.fn("baby1")
        clock.advance(10)
        result = await handles.stop_primary_nap.fn()
        await handles.manager.close()
        return result

    result = asyncio.run(scenario())

    assert result["stopped"] is True
    assert result["recorded"] is False
    assert result["history_error"] == "history offline"


def test_list_subjects_reports_nap_state() -> None:
    _, handles, clock, *_ = _setup()

    async def scenario():
        await handles.start_nap.fn("baby2")
        clock.advance(5)
        catalog = handles.list_subjects.fn()
        await handles.manager.close()
        return catalog

    catalog = {entry["id"]: entry for entry in asyncio.run(scenario())}

    assert catalog["baby2"]["napping"] is True
    assert catalog["baby2"]["elapsed_seconds"] == 5
    assert catalog["baby1"]["napping"] is False


def test_nap_history_requires_history_store() -> None:
    _, handles, *_ = _setup(with_history=False)

    with pytest.raises(RuntimeError):
        handles.nap_history.fn()


def test_nap_history_lists_records() -> None:
    _, handles, clock, *_ = _setup()

    async def scenario():
        await handles.start_nap.fn("baby1")
        clock.advance(90)
        await handles.stop_nap.fn("baby1")
        await handles.manager.close()

    asyncio.run(scenario())

    records = handles.nap_history.fn(subject_id="baby1")
    assert records[0]["duration_seconds"] == 90
    assert handles.nap_history.fn(subject_id="baby2") == []


def test_nap_history_rejects_non_positive_limit() -> None:
    _, handles, *_ = _setup()

    with pytest.raises(ValueError):
        handles.nap_history.fn(limit=0)

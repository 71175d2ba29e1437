from __future__ import annotations

import asyncio
import json
import textwrap
from pathlib import Path

import pytest

from napwatch.clock import FakeClock
from napwatch.config import NapwatchSettings
from napwatch.server import create_server, manager_lifespan
from napwatch.sessions import ActiveSession
from napwatch.storage import HistoryUnavailableError, MemorySessionStore
from napwatch.subjects import TrackedSubject


class StubHistoryStore:
    collection_name = "napwatch_naps"

    def __init__(self, *, available: bool = True) -> None:
        self._available = available
        self.recorded: list[object] = []

    def ping(self) -> bool:
        if not self._available:
            raise HistoryUnavailableError("chromadb missing")
        return True

    def record_nap(self, nap, *, recorded_by=None):
        self.recorded.append(nap)
        return None

    def list_naps(self, subject_id=None, *, limit=None):
        return []


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> NapwatchSettings:
    monkeypatch.chdir(tmp_path)
    roster = tmp_path / "subjects"
    roster.mkdir()
    (roster / "family.yaml").write_text(
        textwrap.dedent(
            """
            subjects:
              - id: baby1
                name: Ana
                category: girl
            """
        ),
        encoding="utf-8",
    )
    return NapwatchSettings(
        NAPWATCH_SUBJECT_PATHS=str(roster),
        NAPWATCH_SESSION_STORE=str(tmp_path / "active_naps.json"),
        CHROMA_PERSIST_PATH=str(tmp_path / "chroma"),
    )


def test_status_reports_subjects_and_history(settings: NapwatchSettings) -> None:
    server = create_server(settings, session_store=MemorySessionStore(), history_store=StubHistoryStore())

    payload = json.loads(server.status_payload())

    assert payload["subjects"]["ids"] == ["baby1"]
    assert payload["storage"]["history"]["available"] is True
    assert payload["naps"]["sessions"] == []
    assert payload["notification"] is None


def test_history_unavailable_is_reported(settings: NapwatchSettings) -> None:
    server = create_server(
        settings,
        session_store=MemorySessionStore(),
        history_store=StubHistoryStore(available=False),
    )

    assert getattr(server, "history_store") is None
    metadata = getattr(server, "history_metadata")
    assert metadata["available"] is False
    assert "chromadb missing" in metadata["error"]


def test_restored_naps_surface_after_first_tool_call(settings: NapwatchSettings) -> None:
    clock = FakeClock()
    store = MemorySessionStore()
    subject = TrackedSubject(id="baby1", name="Ana", category="girl")
    store.save({"baby1": ActiveSession.begin(subject, clock.now())})
    clock.advance(minutes=90)

    server = create_server(
        settings,
        session_store=store,
        history_store=StubHistoryStore(),
        clock=clock,
    )
    handles = getattr(server, "tool_handles")

    async def scenario():
        status = await handles.nap_status.fn()
        await handles.manager.close()
        return status

    status = asyncio.run(scenario())

    assert status["active"][0]["elapsed_seconds"] == 90 * 60
    assert status["notification"]["body"] == "Duration: 1h 30min"
    payload = json.loads(server.status_payload())
    assert payload["naps"]["primary_subject_id"] == "baby1"


def _server_with_restored_nap(settings: NapwatchSettings):
    clock = FakeClock()
    store = MemorySessionStore()
    subject = TrackedSubject(id="baby1", name="Ana", category="girl")
    store.save({"baby1": ActiveSession.begin(subject, clock.now())})
    clock.advance(minutes=90)
    server = create_server(
        settings,
        session_store=store,
        history_store=StubHistoryStore(),
        clock=clock,
    )
    return server, clock


def test_restored_naps_visible_before_any_async_tool(settings: NapwatchSettings) -> None:
    server, clock = _server_with_restored_nap(settings)
    handles = getattr(server, "tool_handles")

    catalog = {entry["id"]: entry for entry in handles.list_subjects.fn()}
    payload = json.loads(server.status_payload())

    assert catalog["baby1"]["napping"] is True
    assert catalog["baby1"]["elapsed_seconds"] == 90 * 60
    assert payload["timestamp"] == clock.now().isoformat()
    assert [row["subject_id"] for row in payload["naps"]["sessions"]] == ["baby1"]
    assert payload["naps"]["sessions"][0]["elapsed_seconds"] == 90 * 60
    assert not handles.manager.running


def test_lifespan_opens_and_closes_manager(settings: NapwatchSettings) -> None:
    server, clock = _server_with_restored_nap(settings)
    manager = getattr(server, "nap_manager")
    sink = getattr(server, "notification_sink")

    async def scenario():
        async with manager_lifespan(manager)(server) as state:
            running = (manager.running, manager.ticker.running, state["nap_manager"] is manager)
            notification = sink.snapshot()
        return running, notification

    running, notification = asyncio.run(scenario())

    assert running == (True, True, True)
    assert notification["body"] == "Duration: 1h 30min"
    assert notification["updated_at"] == clock.now().isoformat()
    assert not manager.running
    assert not manager.ticker.running
    assert manager.status()["sessions"][0]["subject_id"] == "baby1"

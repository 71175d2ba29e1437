"""Active nap session manager.

Tracks which subjects currently have a running nap, mirrors that set to a
durable store after every mutation, and keeps a single notification in sync
with the primary nap. All mutations run one at a time on the manager's command
queue so a stop requested from the notification can never interleave with a
stop issued by the UI.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from contextlib import suppress
from datetime import datetime
from typing import Any, Awaitable, Callable

from .clock import Clock, SystemClock
from .config import NapwatchSettings
from .notifications import NotificationResponse, NotificationSink, is_stop_action
from .sessions import ActiveSession, FinalizedNap, PrimaryPolicy, select_primary
from .storage import SessionStore, SessionStoreError
from .subjects import TrackedSubject

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], None]


class ManagerNotRunningError(RuntimeError):
    """Raised when a command is submitted to a manager that is not open."""


class Ticker:
    """Recurring timer owned by one manager; runs only while naps are active."""

    def __init__(self, interval: float, on_tick: Callable[[], None]) -> None:
        self._interval = interval
        self._on_tick = on_tick
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="napwatch-ticker")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def aclose(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._on_tick()


class ActiveNapSessionManager:
    """Owns the set of active naps, their persistence and the nap notification."""

    def __init__(
        self,
        store: SessionStore,
        sink: NotificationSink | None = None,
        *,
        clock: Clock | None = None,
        tick_interval: float = 1.0,
        notification_throttle: float = 30.0,
        notification_timeout: float = 5.0,
        primary_policy: PrimaryPolicy = PrimaryPolicy.EARLIEST_STARTED,
        persist_attempts: int = 2,
    ) -> None:
        self._store = store
        self._sink = sink
        self._clock = clock or SystemClock()
        self._notification_throttle = notification_throttle
        self._notification_timeout = notification_timeout
        self._primary_policy = PrimaryPolicy(primary_policy)
        self._persist_attempts = max(1, persist_attempts)

        self._sessions: dict[str, ActiveSession] = {}
        self._tick = 0
        self._last_notification_push_at: datetime | None = None
        self._displayed_subject_id: str | None = None
        self._notification_shown = False
        self._refresh_pending = False
        self._subscribers: list[TickCallback] = []
        self._ticker = Ticker(tick_interval, self._on_tick)

        self._restored = False
        self._running = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[tuple[Callable[..., Awaitable[Any]], tuple[Any, ...], asyncio.Future[Any]]] | None = None
        self._worker: asyncio.Task[None] | None = None

        self._persist_failures = 0
        self._notification_failures = 0

    @classmethod
    def from_settings(
        cls,
        settings: NapwatchSettings,
        store: SessionStore,
        sink: NotificationSink | None = None,
        *,
        clock: Clock | None = None,
    ) -> "ActiveNapSessionManager":
        return cls(
            store,
            sink,
            clock=clock,
            tick_interval=settings.tick_interval,
            notification_throttle=settings.notification_throttle,
            notification_timeout=settings.notification_timeout,
            primary_policy=settings.primary_policy,
            persist_attempts=settings.persist_attempts,
        )

    # -- lifecycle ---------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def restore(self) -> int:
        """Load persisted naps once; unreadable state counts as no active naps."""

        if self._restored:
            return len(self._sessions)

        try:
            loaded = self._store.load()
        except (SessionStoreError, OSError, ValueError) as exc:
            logger.warning(
                "Discarding unreadable persisted naps",
                extra={"error": str(exc)},
            )
            loaded = {}

        self._sessions = dict(loaded)
        self._restored = True
        if self._sessions:
            logger.info(
                "Restored active naps",
                extra={"count": len(self._sessions), "subject_ids": list(self._sessions)},
            )
        return len(self._sessions)

    async def open(self) -> None:
        """Restore state and start accepting commands on the running loop."""

        if self._running:
            return

        self.restore()
        self._refresh_pending = False
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._running = True
        self._worker = self._loop.create_task(self._process_commands(), name="napwatch-commands")

        if self._sessions:
            self._ticker.start()
            await self._submit(self._do_refresh_notification)

    async def close(self) -> None:
        """Stop the ticker and the command worker; active naps stay persisted."""

        if not self._running:
            return

        self._running = False

        if self._queue is not None:
            # Commands that never started are failed; the one in flight runs to completion.
            while not self._queue.empty():
                _, _, future = self._queue.get_nowait()
                if not future.done():
                    future.set_exception(ManagerNotRunningError("Nap session manager closed"))
                self._queue.task_done()
            await self._queue.join()
        await self._ticker.aclose()

        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            with suppress(asyncio.CancelledError):
                await worker
        logger.debug("Nap session manager closed")

    async def __aenter__(self) -> "ActiveNapSessionManager":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- commands ----------------------------------------------------------

    async def start(self, subject: TrackedSubject) -> ActiveSession:
        """Start a nap for ``subject``; returns the existing nap if one is running."""

        return await self._submit(self._do_start, subject)

    async def stop(self, subject_id: str) -> FinalizedNap | None:
        """Stop the nap for ``subject_id``; ``None`` when no nap is running."""

        return await self._submit(self._do_stop, subject_id)

    async def stop_primary(self) -> FinalizedNap | None:
        """Stop whichever nap the notification currently represents."""

        return await self._submit(self._do_stop_primary)

    async def update_notes(self, subject_id: str, text: str) -> bool:
        return await self._submit(self._do_update_notes, subject_id, text)

    def submit_notification_response(
        self, response: NotificationResponse
    ) -> concurrent.futures.Future[FinalizedNap | None] | None:
        """Queue a stop requested from the notification.

        Safe to call from any thread. Returns ``None`` for responses that are
        not the stop action.
        """

        if not is_stop_action(response):
            logger.debug(
                "Ignoring notification response",
                extra={"action_id": response.action_id, "notification_id": response.notification_id},
            )
            return None
        if not self._running or self._loop is None:
            raise ManagerNotRunningError("Nap session manager is not running")

        logger.info("Stop requested from notification")
        return asyncio.run_coroutine_threadsafe(self.stop_primary(), self._loop)

    # -- reads -------------------------------------------------------------

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def primary_policy(self) -> PrimaryPolicy:
        return self._primary_policy

    @property
    def ticker(self) -> Ticker:
        return self._ticker

    def get_elapsed_seconds(self, subject_id: str) -> int:
        session = self._sessions.get(subject_id)
        if session is None:
            return 0
        return session.elapsed_seconds(self._clock.now())

    def is_active(self, subject_id: str) -> bool:
        return subject_id in self._sessions

    def has_any_active(self) -> bool:
        return bool(self._sessions)

    def get_session(self, subject_id: str) -> ActiveSession | None:
        return self._sessions.get(subject_id)

    def sessions(self) -> tuple[ActiveSession, ...]:
        return tuple(self._sessions.values())

    def primary(self) -> ActiveSession | None:
        return select_primary(self._sessions.values(), self._primary_policy)

    def subscribe(self, callback: TickCallback) -> Callable[[], None]:
        """Register a tick listener; returns a callable that removes it."""

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._subscribers.remove(callback)

        return unsubscribe

    def status(self) -> dict[str, Any]:
        now = self._clock.now()
        primary = self.primary()
        return {
            "running": self._running,
            "tick": self._tick,
            "ticker_running": self._ticker.running,
            "primary_policy": self._primary_policy.value,
            "primary_subject_id": primary.subject_id if primary else None,
            "last_notification_push_at": (
                self._last_notification_push_at.isoformat()
                if self._last_notification_push_at
                else None
            ),
            "persist_failures": self._persist_failures,
            "notification_failures": self._notification_failures,
            "sessions": [
                {
                    "subject_id": session.subject_id,
                    "subject_name": session.subject_name,
                    "subject_category": session.subject_category.value,
                    "start_time": session.start_time.isoformat(),
                    "elapsed_seconds": session.elapsed_seconds(now),
                    "notes": session.notes,
                }
                for session in self._sessions.values()
            ],
        }

    # -- command handlers --------------------------------------------------

    async def _do_start(self, subject: TrackedSubject) -> ActiveSession:
        existing = self._sessions.get(subject.id)
        if existing is not None:
            logger.debug("Nap already active", extra={"subject_id": subject.id})
            return existing

        session = ActiveSession.begin(subject, self._clock.now())
        self._sessions[session.subject_id] = session
        self._persist()
        logger.info(
            "Nap started",
            extra={"subject_id": session.subject_id, "start_time": session.start_time.isoformat()},
        )

        self._ticker.start()
        await self._sync_notification()
        return session

    async def _do_stop(self, subject_id: str) -> FinalizedNap | None:
        session = self._sessions.pop(subject_id, None)
        if session is None:
            logger.debug("No active nap to stop", extra={"subject_id": subject_id})
            return None

        end_time = self._clock.now()
        nap = FinalizedNap(
            subject_id=session.subject_id,
            subject_name=session.subject_name,
            start_time=session.start_time,
            end_time=end_time,
            elapsed_seconds=session.elapsed_seconds(end_time),
            notes=session.notes,
        )
        self._persist()
        logger.info(
            "Nap stopped",
            extra={"subject_id": nap.subject_id, "elapsed_seconds": nap.elapsed_seconds},
        )

        if not self._sessions:
            self._ticker.cancel()
        await self._sync_notification()
        return nap

    async def _do_stop_primary(self) -> FinalizedNap | None:
        primary = self.primary()
        if primary is None:
            return None
        return await self._do_stop(primary.subject_id)

    async def _do_update_notes(self, subject_id: str, text: str) -> bool:
        session = self._sessions.get(subject_id)
        if session is None:
            return False
        self._sessions[subject_id] = session.with_notes(text)
        self._persist()
        return True

    async def _do_refresh_notification(self) -> None:
        self._refresh_pending = False
        await self._sync_notification(force=self.primary() is not None)

    # -- internals ---------------------------------------------------------

    async def _submit(self, handler: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        if not self._running or self._queue is None or self._loop is None:
            raise ManagerNotRunningError("Nap session manager is not running; call open() first")
        future: asyncio.Future[Any] = self._loop.create_future()
        self._queue.put_nowait((handler, args, future))
        return await future

    def _enqueue(self, handler: Callable[..., Awaitable[Any]], *args: Any) -> None:
        if not self._running or self._queue is None or self._loop is None:
            return
        future: asyncio.Future[Any] = self._loop.create_future()
        future.add_done_callback(_log_background_failure)
        self._queue.put_nowait((handler, args, future))

    async def _process_commands(self) -> None:
        assert self._queue is not None
        while True:
            handler, args, future = await self._queue.get()
            try:
                if future.cancelled():
                    continue
                result = await handler(*args)
            except asyncio.CancelledError:
                if not future.done():
                    future.set_exception(ManagerNotRunningError("Nap session manager closed"))
                raise
            except Exception as exc:
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    def _persist(self) -> bool:
        snapshot = dict(self._sessions)
        for attempt in range(1, self._persist_attempts + 1):
            try:
                if snapshot:
                    self._store.save(snapshot)
                else:
                    self._store.clear()
                return True
            except Exception as exc:
                logger.warning(
                    "Persisting active naps failed",
                    extra={"attempt": attempt, "max_attempts": self._persist_attempts, "error": str(exc)},
                )

        self._persist_failures += 1
        logger.error(
            "Active naps not persisted; in-memory state remains authoritative",
            extra={"count": len(snapshot), "persist_failures": self._persist_failures},
        )
        return False

    def _on_tick(self) -> None:
        self._tick += 1
        for callback in list(self._subscribers):
            try:
                callback(self._tick)
            except Exception:
                logger.exception("Tick subscriber failed")

        if not self._refresh_pending and self._notification_refresh_due():
            self._refresh_pending = True
            self._enqueue(self._do_refresh_notification)

    def _notification_refresh_due(self) -> bool:
        primary = self.primary()
        if primary is None or self._sink is None:
            return False
        if self._displayed_subject_id != primary.subject_id or self._last_notification_push_at is None:
            return True
        since_push = (self._clock.now() - self._last_notification_push_at).total_seconds()
        return since_push >= self._notification_throttle

    async def _sync_notification(self, *, force: bool = False) -> None:
        if self._sink is None:
            return

        primary = self.primary()
        if primary is None:
            if not self._notification_shown and not force:
                return
            if await self._notify("dismiss", self._sink.dismiss):
                self._notification_shown = False
            self._displayed_subject_id = None
            self._last_notification_push_at = None
            return

        if not force and self._displayed_subject_id == primary.subject_id:
            return

        now = self._clock.now()
        sink = self._sink
        self._notification_shown = True
        shown = await self._notify(
            "show",
            lambda: sink.show(
                primary.subject_name,
                primary.subject_category,
                primary.elapsed_seconds(now),
            ),
        )
        if shown:
            self._displayed_subject_id = primary.subject_id
            self._last_notification_push_at = now

    async def _notify(self, action: str, call: Callable[[], Awaitable[None]]) -> bool:
        try:
            await asyncio.wait_for(call(), timeout=self._notification_timeout)
        except asyncio.TimeoutError:
            self._notification_failures += 1
            logger.warning(
                "Notification %s timed out",
                action,
                extra={"timeout": self._notification_timeout},
            )
            return False
        except Exception as exc:
            self._notification_failures += 1
            logger.warning(
                "Notification %s failed",
                action,
                extra={"error": str(exc)},
            )
            return False
        return True


def _log_background_failure(future: asyncio.Future[Any]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None and not isinstance(exc, ManagerNotRunningError):
        logger.error("Background nap command failed", exc_info=exc)


__all__ = ["ActiveNapSessionManager", "ManagerNotRunningError", "Ticker"]

"""FastMCP server bootstrap for Napwatch."""

import json
import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

from fastmcp import FastMCP

from . import __version__
from .clock import Clock, SystemClock
from .config import NapwatchSettings, get_settings
from .manager import ActiveNapSessionManager
from .notifications import InMemoryNotificationSink
from .storage import FileSessionStore, HistoryUnavailableError, NapHistoryStore, SessionStore
from .subjects import SubjectLoadError, SubjectLoader
from .tools import register_tools


logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the Napwatch server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def manager_lifespan(
    manager: ActiveNapSessionManager,
) -> Callable[[Any], AbstractAsyncContextManager[dict[str, Any]]]:
    """Build a FastMCP lifespan that runs the nap manager for the server's lifetime."""

    @asynccontextmanager
    async def lifespan(_server: Any) -> AsyncIterator[dict[str, Any]]:
        await manager.open()
        logger.info(
            "Nap session manager started",
            extra={"active_naps": len(manager.sessions())},
        )
        try:
            yield {"nap_manager": manager}
        finally:
            await manager.close()
            logger.info("Nap session manager stopped")

    return lifespan


def create_server(
    settings: Optional[NapwatchSettings] = None,
    *,
    session_store: SessionStore | None = None,
    history_store: NapHistoryStore | None = None,
    clock: Clock | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the nap session manager wired in."""

    settings = settings or get_settings()

    subject_loader = SubjectLoader(settings.subject_paths)
    clock = clock or SystemClock()
    store = session_store or FileSessionStore(settings.session_store_path)
    notification_sink = InMemoryNotificationSink(clock)
    manager = ActiveNapSessionManager.from_settings(settings, store, notification_sink, clock=clock)
    manager.restore()

    history_metadata = {
        "available": False,
        "path": str(settings.chroma_persist_path),
        "collection": None,
        "error": None,
    }

    history: NapHistoryStore | None = history_store
    try:
        history = history or NapHistoryStore(settings.chroma_persist_path)
        history.ping()
        history_metadata["available"] = True
        history_metadata["collection"] = history.collection_name
    except HistoryUnavailableError as exc:
        history_metadata["error"] = str(exc)
        history = None

    server = FastMCP(
        name="Napwatch",
        version=__version__,
        instructions=(
            "Napwatch times infant naps. Start and stop naps per child, attach notes, "
            "and review recorded history. Stopping from the nap notification stops the "
            "nap it shows."
        ),
        lifespan=manager_lifespan(manager),
    )

    handles = register_tools(
        server,
        subjects=subject_loader,
        settings=settings,
        manager=manager,
        history=history,
        notification_sink=notification_sink,
    )

    def status_payload() -> str:
        """Return a JSON string summarizing runtime state."""

        try:
            subject_ids = sorted(subject_loader.load_all().keys())
            subject_error: str | None = None
        except SubjectLoadError as exc:
            subject_ids = []
            subject_error = str(exc)

        payload = {
            "timestamp": clock.now().isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "subjects": {
                "count": len(subject_ids),
                "ids": subject_ids,
                "error": subject_error,
            },
            "storage": {
                "session_store": str(getattr(store, "path", "")) or None,
                "history": history_metadata,
            },
            "naps": manager.status(),
            "notification": notification_sink.snapshot(),
        }
        return json.dumps(payload)

    server.resource(
        "resource://napwatch/status",
        name="napwatch_status",
        description="Provides the current runtime status for the Napwatch server.",
        mime_type="application/json",
        tags={"status", "health"},
    )(status_payload)

    setattr(server, "status_payload", status_payload)
    setattr(server, "subject_loader", subject_loader)
    setattr(server, "nap_manager", manager)
    setattr(server, "notification_sink", notification_sink)
    setattr(server, "history_store", history)
    setattr(server, "history_metadata", history_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the Napwatch server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logger.info(
        "Launching Napwatch server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "history_available": getattr(server, "history_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()

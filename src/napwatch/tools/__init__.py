"""Tool registration for the Napwatch MCP server."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..config import NapwatchSettings
from ..manager import ActiveNapSessionManager
from ..notifications import (
    NAP_NOTIFICATION_ID,
    InMemoryNotificationSink,
    NotificationResponse,
    format_clock,
)
from ..sessions import ActiveSession, FinalizedNap
from ..storage import NapHistoryStore
from ..subjects import SubjectLoadError, SubjectLoader

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    list_subjects: Any
    start_nap: Any
    stop_nap: Any
    stop_primary_nap: Any
    update_nap_notes: Any
    nap_status: Any
    notification_action: Any
    nap_history: Any
    manager: ActiveNapSessionManager


def _session_payload(manager: ActiveNapSessionManager, session: ActiveSession) -> dict[str, Any]:
    elapsed = manager.get_elapsed_seconds(session.subject_id)
    return {
        "subject_id": session.subject_id,
        "subject_name": session.subject_name,
        "subject_category": session.subject_category.value,
        "start_time": session.start_time.isoformat(),
        "elapsed_seconds": elapsed,
        "elapsed_display": format_clock(elapsed),
        "notes": session.notes,
    }


def register_tools(
    server: FastMCP,
    *,
    subjects: SubjectLoader,
    settings: NapwatchSettings,
    manager: ActiveNapSessionManager,
    history: NapHistoryStore | None,
    notification_sink: InMemoryNotificationSink | None = None,
) -> ToolHandles:
    """Register Napwatch's MCP tools on the server."""

    open_lock = asyncio.Lock()

    async def _ensure_manager() -> ActiveNapSessionManager:
        if not manager.running:
            async with open_lock:
                if not manager.running:
                    await manager.open()
                    logger.info(
                        "Nap session manager opened",
                        extra={"store": str(settings.session_store_path)},
                    )
        return manager

    def _finalize(
        nap: FinalizedNap,
        *,
        recorded_by: str | None,
        context: Context | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"stopped": True, **nap.to_payload(), "recorded": False}

        if history is None:
            payload["history_error"] = "Nap history is unavailable"
            _emit_log(context, "warning", "Nap not recorded; history unavailable", extra={"subject_id": nap.subject_id})
            return payload

        try:
            record = history.record_nap(nap, recorded_by=recorded_by)
        except Exception as exc:
            payload["history_error"] = str(exc)
            _emit_log(
                context,
                "error",
                "Recording nap history failed",
                extra={"subject_id": nap.subject_id, "error": str(exc)},
            )
            return payload

        if record is not None:
            payload["recorded"] = True
            payload["record_id"] = record.id
        return payload

    def _list_subjects(context: Context | None = None) -> list[dict[str, Any]]:
        """List tracked subjects with their current nap state."""

        roster = subjects.load_all()
        catalog = [
            {
                "id": subject.id,
                "name": subject.name,
                "category": subject.category.value,
                "birth_date": subject.birth_date.isoformat() if subject.birth_date else None,
                "napping": manager.is_active(subject.id),
                "elapsed_seconds": manager.get_elapsed_seconds(subject.id),
            }
            for subject in roster.values()
        ]

        _emit_log(context, "debug", "Listing tracked subjects", extra={"count": len(catalog)})
        return catalog

    async def _start_nap(subject_id: str, context: Context | None = None) -> dict[str, Any]:
        """Start a nap for a subject from the roster."""

        try:
            subject = subjects.get(subject_id)
        except SubjectLoadError as exc:
            raise ValueError(f"Unknown subject '{subject_id}'") from exc

        active = await _ensure_manager()
        already_active = active.is_active(subject.id)
        session = await active.start(subject)

        _emit_log(
            context,
            "info",
            "Nap start requested",
            extra={"subject_id": subject.id, "already_active": already_active},
        )
        return {"started": not already_active, **_session_payload(active, session)}

    async def _stop_nap(
        subject_id: str,
        recorded_by: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Stop a subject's nap and record it in the history."""

        active = await _ensure_manager()
        nap = await active.stop(subject_id)
        if nap is None:
            return {"stopped": False, "subject_id": subject_id}
        return _finalize(nap, recorded_by=recorded_by, context=context)

    async def _stop_primary_nap(
        recorded_by: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Stop the nap currently shown in the notification."""

        active = await _ensure_manager()
        nap = await active.stop_primary()
        if nap is None:
            return {"stopped": False}
        return _finalize(nap, recorded_by=recorded_by, context=context)

    async def _update_nap_notes(
        subject_id: str,
        notes: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Replace the notes attached to a running nap."""

        active = await _ensure_manager()
        updated = await active.update_notes(subject_id, notes)
        return {"subject_id": subject_id, "updated": updated}

    async def _nap_status(context: Context | None = None) -> dict[str, Any]:
        """Summarize active naps and the current notification."""

        active = await _ensure_manager()
        primary = active.primary()
        return {
            "active": [_session_payload(active, session) for session in active.sessions()],
            "primary_subject_id": primary.subject_id if primary else None,
            "tick": active.tick,
            "notification": notification_sink.snapshot() if notification_sink else None,
        }

    async def _notification_action(
        action_id: str,
        notification_id: str = NAP_NOTIFICATION_ID,
        recorded_by: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Deliver an action pressed on the nap notification."""

        active = await _ensure_manager()
        response = NotificationResponse(action_id=action_id, notification_id=notification_id)
        future = active.submit_notification_response(response)
        if future is None:
            return {"handled": False, "action_id": action_id}

        nap = await asyncio.wrap_future(future)
        if nap is None:
            return {"handled": True, "stopped": False}
        return {"handled": True, **_finalize(nap, recorded_by=recorded_by, context=context)}

    def _nap_history(
        subject_id: str | None = None,
        limit: int = 20,
        context: Context | None = None,
    ) -> list[dict[str, Any]]:
        """List recorded naps, newest first."""

        if history is None:
            raise RuntimeError("Nap history is unavailable; enable persistence before using this tool")
        if limit <= 0:
            raise ValueError("limit must be a positive integer")

        records = history.list_naps(subject_id, limit=limit)
        return [
            {
                "id": record.id,
                "subject_id": record.subject_id,
                "subject_name": record.subject_name,
                "start_time": record.start_time.isoformat(),
                "end_time": record.end_time.isoformat(),
                "duration_seconds": record.duration_seconds,
                "notes": record.notes,
                "recorded_by": record.recorded_by,
            }
            for record in records
        ]

    tool_list = server.tool(
        name="list_subjects",
        description="List tracked subjects and whether each one is napping right now.",
    )(_list_subjects)

    tool_start = server.tool(
        name="start_nap",
        description="Start timing a nap for a subject. Starting twice keeps the original start time.",
    )(_start_nap)

    tool_stop = server.tool(
        name="stop_nap",
        description="Stop a subject's nap, returning its duration and recording it in the history.",
    )(_stop_nap)

    tool_stop_primary = server.tool(
        name="stop_primary_nap",
        description="Stop the nap represented by the active nap notification.",
    )(_stop_primary_nap)

    tool_notes = server.tool(
        name="update_nap_notes",
        description="Replace the free-text notes of a running nap.",
    )(_update_nap_notes)

    tool_status = server.tool(
        name="nap_status",
        description="Show active naps with elapsed time and the current notification.",
    )(_nap_status)

    tool_action = server.tool(
        name="notification_action",
        description="Deliver a notification action such as STOP_NAP to the session manager.",
    )(_notification_action)

    tool_history = server.tool(
        name="nap_history",
        description="List recorded naps, optionally filtered by subject.",
    )(_nap_history)

    return ToolHandles(
        list_subjects=tool_list,
        start_nap=tool_start,
        stop_nap=tool_stop,
        stop_primary_nap=tool_stop_primary,
        update_nap_notes=tool_notes,
        nap_status=tool_status,
        notification_action=tool_action,
        nap_history=tool_history,
        manager=manager,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log through the module logger, tagging the MCP request when one is known."""

    payload = dict(extra or {})
    request_id = None
    if context is not None:
        try:
            request_id = getattr(context, "request_id", None)
        except (RuntimeError, ValueError):  # outside of an active request
            request_id = None
    if request_id is not None:
        payload.setdefault("request_id", request_id)

    log_method = getattr(logger, level, logger.info)
    log_method(message, extra=payload)


__all__ = ["register_tools", "ToolHandles"]

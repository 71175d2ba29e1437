"""Notification sinks that surface the primary active nap."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from ..clock import Clock, SystemClock
from ..subjects.models import SubjectCategory
from .render import NAP_NOTIFICATION_ID, STOP_NAP_ACTION, NotificationContent, render_notification

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Displays, updates and dismisses the single fixed-identity nap notification."""

    async def show(self, subject_name: str, category: SubjectCategory, elapsed_seconds: int) -> None:
        ...

    async def dismiss(self) -> None:
        ...


@dataclass(slots=True, frozen=True)
class NotificationResponse:
    """Inbound interaction with the nap notification."""

    action_id: str
    notification_id: str = NAP_NOTIFICATION_ID


def is_stop_action(response: NotificationResponse) -> bool:
    return (
        response.notification_id == NAP_NOTIFICATION_ID
        and response.action_id == STOP_NAP_ACTION
    )


class LoggingNotificationSink:
    """Sink that writes the rendered notification to the log."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger

    async def show(self, subject_name: str, category: SubjectCategory, elapsed_seconds: int) -> None:
        content = render_notification(subject_name, category, elapsed_seconds)
        self._logger.info(
            "%s | %s",
            content.title,
            content.body,
            extra={"notification_id": content.identifier, "elapsed_seconds": elapsed_seconds},
        )

    async def dismiss(self) -> None:
        self._logger.info("Nap notification dismissed", extra={"notification_id": NAP_NOTIFICATION_ID})


class InMemoryNotificationSink:
    """Keeps the current notification so it can be served to remote clients."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self.current: NotificationContent | None = None
        self.updated_at: datetime | None = None
        self.pushes = 0

    async def show(self, subject_name: str, category: SubjectCategory, elapsed_seconds: int) -> None:
        self.current = render_notification(subject_name, category, elapsed_seconds)
        self.updated_at = self._clock.now()
        self.pushes += 1

    async def dismiss(self) -> None:
        self.current = None
        self.updated_at = self._clock.now()

    def snapshot(self) -> dict[str, object] | None:
        if self.current is None:
            return None
        payload = self.current.to_payload()
        payload["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return payload


__all__ = [
    "InMemoryNotificationSink",
    "LoggingNotificationSink",
    "NotificationResponse",
    "NotificationSink",
    "is_stop_action",
]

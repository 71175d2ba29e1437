"""Notification rendering and sinks for the active nap."""

from .render import (
    NAP_NOTIFICATION_ID,
    STOP_NAP_ACTION,
    NotificationContent,
    format_clock,
    format_duration,
    render_notification,
)
from .sink import (
    InMemoryNotificationSink,
    LoggingNotificationSink,
    NotificationResponse,
    NotificationSink,
    is_stop_action,
)

__all__ = [
    "NAP_NOTIFICATION_ID",
    "STOP_NAP_ACTION",
    "InMemoryNotificationSink",
    "LoggingNotificationSink",
    "NotificationContent",
    "NotificationResponse",
    "NotificationSink",
    "format_clock",
    "format_duration",
    "is_stop_action",
    "render_notification",
]

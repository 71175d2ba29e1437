"""Formatting of the active nap notification."""

from __future__ import annotations

from dataclasses import dataclass

from ..subjects.models import SubjectCategory

NAP_NOTIFICATION_ID = "active-nap"
NAP_CHANNEL_ID = "nap-timer"
STOP_NAP_ACTION = "STOP_NAP"

_CATEGORY_ICONS = {
    SubjectCategory.BOY: "👦",
    SubjectCategory.GIRL: "👧",
}
_SLEEP_ICON = "😴"


@dataclass(slots=True, frozen=True)
class NotificationContent:
    identifier: str
    channel: str
    title: str
    body: str
    icon: str
    sticky: bool
    actions: tuple[str, ...]

    def to_payload(self) -> dict[str, object]:
        return {
            "identifier": self.identifier,
            "channel": self.channel,
            "title": self.title,
            "body": self.body,
            "icon": self.icon,
            "sticky": self.sticky,
            "actions": list(self.actions),
        }


def format_duration(seconds: int) -> str:
    """Human duration used in the notification body: ``1h 05min`` or ``4min 09s``."""

    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes:02d}min"
    return f"{minutes}min {secs:02d}s"


def format_clock(seconds: int) -> str:
    """Timer display: ``HH:MM:SS`` past the hour, ``MM:SS`` otherwise."""

    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def render_notification(
    subject_name: str,
    category: SubjectCategory,
    elapsed_seconds: int,
) -> NotificationContent:
    return NotificationContent(
        identifier=NAP_NOTIFICATION_ID,
        channel=NAP_CHANNEL_ID,
        title=f"{_SLEEP_ICON} {subject_name} is sleeping",
        body=f"Duration: {format_duration(elapsed_seconds)}",
        icon=_CATEGORY_ICONS.get(SubjectCategory(category), _SLEEP_ICON),
        sticky=True,
        actions=(STOP_NAP_ACTION,),
    )


__all__ = [
    "NAP_CHANNEL_ID",
    "NAP_NOTIFICATION_ID",
    "STOP_NAP_ACTION",
    "NotificationContent",
    "format_clock",
    "format_duration",
    "render_notification",
]

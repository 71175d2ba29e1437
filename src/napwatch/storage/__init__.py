"""Storage abstractions for Napwatch."""

from .history import HistoryUnavailableError, NapHistoryStore
from .models import NapRecord
from .sessions import (
    FileSessionStore,
    MemorySessionStore,
    SessionStore,
    SessionStoreError,
)

__all__ = [
    "FileSessionStore",
    "HistoryUnavailableError",
    "MemorySessionStore",
    "NapHistoryStore",
    "NapRecord",
    "SessionStore",
    "SessionStoreError",
]

"""Durable local persistence for active naps."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Protocol

from pydantic import ValidationError

from ..sessions.models import ActiveSession

FORMAT_VERSION = 1


class SessionStoreError(RuntimeError):
    """Raised when persisted sessions cannot be read or written."""


class SessionStore(Protocol):
    """Minimal crash-safe key-value API the session manager relies on."""

    def load(self) -> dict[str, ActiveSession]:
        ...

    def save(self, sessions: Mapping[str, ActiveSession]) -> None:
        ...

    def clear(self) -> None:
        ...


def encode_sessions(sessions: Mapping[str, ActiveSession]) -> str:
    """Serialize sessions, preserving insertion order."""

    payload = {
        "version": FORMAT_VERSION,
        "sessions": [session.model_dump(mode="json") for session in sessions.values()],
    }
    return json.dumps(payload)


def decode_sessions(raw: str) -> dict[str, ActiveSession]:
    try:
        document: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SessionStoreError(f"Persisted sessions are not valid JSON: {exc}") from exc

    if not isinstance(document, dict) or not isinstance(document.get("sessions"), list):
        raise SessionStoreError("Persisted sessions payload is missing the 'sessions' list")
    if document.get("version") != FORMAT_VERSION:
        raise SessionStoreError(f"Unsupported session payload version: {document.get('version')!r}")

    sessions: dict[str, ActiveSession] = {}
    for entry in document["sessions"]:
        try:
            session = ActiveSession.model_validate(entry)
        except ValidationError as exc:
            raise SessionStoreError(f"Persisted session failed validation: {exc}") from exc
        sessions.setdefault(session.subject_id, session)
    return sessions


class FileSessionStore:
    """Store active naps as a JSON document replaced atomically on every write."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, ActiveSession]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SessionStoreError(f"Unable to read {self._path}: {exc}") from exc
        return decode_sessions(raw)

    def save(self, sessions: Mapping[str, ActiveSession]) -> None:
        data = encode_sessions(sessions)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=str(self._path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise SessionStoreError(f"Unable to write {self._path}: {exc}") from exc

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise SessionStoreError(f"Unable to remove {self._path}: {exc}") from exc


class MemorySessionStore:
    """In-process store that keeps the serialized payload, mirroring the file format."""

    def __init__(self, raw: str | None = None) -> None:
        self.raw = raw
        self.saves = 0
        self.clears = 0

    def load(self) -> dict[str, ActiveSession]:
        if self.raw is None:
            return {}
        return decode_sessions(self.raw)

    def save(self, sessions: Mapping[str, ActiveSession]) -> None:
        self.raw = encode_sessions(sessions)
        self.saves += 1

    def clear(self) -> None:
        self.raw = None
        self.clears += 1


__all__ = [
    "FileSessionStore",
    "MemorySessionStore",
    "SessionStore",
    "SessionStoreError",
    "decode_sessions",
    "encode_sessions",
]

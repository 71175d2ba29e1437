"""Chroma-based nap history persistence."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from ..sessions.models import FinalizedNap
from .models import NapRecord

logger = logging.getLogger(__name__)


class HistoryUnavailableError(RuntimeError):
    """Raised when the Chroma client cannot be constructed."""


class CollectionProtocol(Protocol):
    """Protocol for the minimal Chroma collection API used by Napwatch."""

    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    """Protocol for the minimal Chroma client API used by Napwatch."""

    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


class NapHistoryStore:
    """Record finalized naps for long-term history via ChromaDB."""

    def __init__(
        self,
        path: Path,
        *,
        collection_name: str = "napwatch_naps",
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._collection_name = collection_name
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._client: ClientProtocol | None = None
        self._collection: CollectionProtocol | None = None

    @property
    def collection_name(self) -> str:
        return self._collection_name

    def _default_client_factory(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise HistoryUnavailableError(
                "chromadb package is not installed; nap history is unavailable"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _ensure_collection(self) -> CollectionProtocol:
        if self._collection is None:
            client = self._client or self._client_factory()
            self._client = client
            self._collection = client.get_or_create_collection(self._collection_name)
        return self._collection

    def ping(self) -> bool:
        """Verify that the underlying collection can be obtained."""

        self._ensure_collection()
        return True

    def record_nap(self, nap: FinalizedNap, *, recorded_by: str | None = None) -> NapRecord | None:
        """Persist a finalized nap.

        Zero-length naps are skipped and ``None`` is returned. Empty notes are
        stored as null.
        """

        if nap.elapsed_seconds <= 0:
            logger.info(
                "Skipping zero-length nap",
                extra={"subject_id": nap.subject_id},
            )
            return None

        collection = self._ensure_collection()
        record_id = f"nap::{nap.subject_id}:{uuid.uuid4().hex}"
        recorded_at = self._clock()
        notes = nap.notes.strip() or None

        document = json.dumps(
            {
                "subject_id": nap.subject_id,
                "subject_name": nap.subject_name,
                "start_time": nap.start_time.isoformat(),
                "end_time": nap.end_time.isoformat(),
                "duration_seconds": nap.elapsed_seconds,
                "notes": notes,
                "recorded_by": recorded_by,
            }
        )
        # Chroma metadata values must be scalars and non-null.
        metadata: dict[str, Any] = {
            "event_type": "nap",
            "subject_id": nap.subject_id,
            "start_time": nap.start_time.isoformat(),
            "duration_seconds": nap.elapsed_seconds,
            "recorded_at": recorded_at.isoformat(),
        }
        if recorded_by:
            metadata["recorded_by"] = recorded_by

        collection.add(documents=[document], metadatas=[metadata], ids=[record_id])
        logger.info(
            "Recorded nap",
            extra={
                "subject_id": nap.subject_id,
                "duration_seconds": nap.elapsed_seconds,
                "record_id": record_id,
            },
        )

        return NapRecord(
            id=record_id,
            subject_id=nap.subject_id,
            subject_name=nap.subject_name,
            start_time=nap.start_time,
            end_time=nap.end_time,
            duration_seconds=nap.elapsed_seconds,
            notes=notes,
            recorded_by=recorded_by,
            recorded_at=recorded_at,
            metadata=metadata,
        )

    def list_naps(self, subject_id: str | None = None, *, limit: int | None = None) -> list[NapRecord]:
        """Return recorded naps, most recent start first."""

        if limit is not None and limit <= 0:
            raise ValueError("limit must be a positive integer")

        collection = self._ensure_collection()
        where: dict[str, Any]
        if subject_id:
            where = {"$and": [{"event_type": "nap"}, {"subject_id": subject_id}]}
        else:
            where = {"event_type": "nap"}
        result = collection.get(where=where)

        records: list[NapRecord] = []
        ids = result.get("ids", [])
        documents = result.get("documents", [])
        metadatas = result.get("metadatas", [])
        for record_id, document, metadata in zip(ids, documents, metadatas):
            doc = json.loads(document)
            recorded_raw = metadata.get("recorded_at")
            records.append(
                NapRecord(
                    id=record_id,
                    subject_id=doc["subject_id"],
                    subject_name=doc.get("subject_name", ""),
                    start_time=datetime.fromisoformat(doc["start_time"]),
                    end_time=datetime.fromisoformat(doc["end_time"]),
                    duration_seconds=int(doc.get("duration_seconds", 0)),
                    notes=doc.get("notes"),
                    recorded_by=doc.get("recorded_by"),
                    recorded_at=(
                        datetime.fromisoformat(recorded_raw)
                        if isinstance(recorded_raw, str)
                        else self._clock()
                    ),
                    metadata=dict(metadata),
                )
            )

        records.sort(key=lambda record: record.start_time, reverse=True)
        return records if limit is None else records[:limit]


__all__ = ["HistoryUnavailableError", "NapHistoryStore"]

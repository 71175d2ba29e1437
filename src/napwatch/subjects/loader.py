"""Subject roster loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from .models import TrackedSubject


class SubjectLoadError(RuntimeError):
    """Raised when one or more roster files cannot be parsed."""


class SubjectLoader:
    """Loads tracked subjects from YAML files on disk."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def load_all(self) -> dict[str, TrackedSubject]:
        """Load subjects from all configured search paths.

        A file holds either a single subject mapping or a ``subjects`` list.
        Later search paths override earlier ones when subject ids collide.
        """

        if not self._search_paths:
            return {}

        subjects: dict[str, TrackedSubject] = {}
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                for entry in _entries(document):
                    try:
                        subject = TrackedSubject.model_validate(entry)
                    except ValidationError as exc:
                        errors.append(f"Subject validation error in {path}: {exc}")
                        continue
                    subjects[subject.id] = subject

        if errors:
            raise SubjectLoadError("; ".join(errors))

        return subjects

    def get(self, subject_id: str) -> TrackedSubject:
        """Return a single subject by id."""

        subjects = self.load_all()
        try:
            return subjects[subject_id]
        except KeyError as exc:
            raise SubjectLoadError(f"Subject '{subject_id}' not found in search paths") from exc


def _entries(document: Any) -> list[Any]:
    if isinstance(document, dict) and "subjects" in document:
        entries = document["subjects"] or []
        return list(entries) if isinstance(entries, (list, tuple)) else [entries]
    if isinstance(document, list):
        return document
    return [document]


def load_subjects(search_paths: Iterable[Path] | None = None) -> dict[str, TrackedSubject]:
    """Convenience wrapper for loading subjects from the provided paths."""

    loader = SubjectLoader(search_paths)
    return loader.load_all()


__all__ = ["SubjectLoadError", "SubjectLoader", "TrackedSubject", "load_subjects"]

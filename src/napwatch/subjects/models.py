"""Models describing the children whose naps are tracked."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class SubjectCategory(str, Enum):
    """Two-valued attribute used for notification phrasing and iconography."""

    BOY = "boy"
    GIRL = "girl"


class TrackedSubject(BaseModel):
    """A child that can have an active nap."""

    id: str = Field(..., description="Stable identifier for the subject.")
    name: str = Field(..., description="Display name shown in notifications.")
    category: SubjectCategory = Field(
        default=SubjectCategory.BOY,
        description="Category used to pick notification wording and icon.",
    )
    birth_date: date | None = Field(default=None, description="Optional birth date.")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Arbitrary roster metadata; ignored by the session manager.",
    )

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Subject id must not be empty")
        return normalized

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Subject name must not be empty")
        return normalized

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any):
        if isinstance(value, str):
            return value.strip().lower()
        return value


__all__ = ["SubjectCategory", "TrackedSubject"]

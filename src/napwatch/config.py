"""Configuration management for Napwatch."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .sessions.policy import PrimaryPolicy


class NapwatchSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    session_store_path: Path = Field(
        default=Path("./storage/active_naps.json"), validation_alias="NAPWATCH_SESSION_STORE"
    )
    chroma_persist_path: Path = Field(
        default=Path("./storage/chroma"), validation_alias="CHROMA_PERSIST_PATH"
    )
    subject_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("subjects"),), validation_alias="NAPWATCH_SUBJECT_PATHS"
    )
    log_level: str = Field(default="INFO", validation_alias="NAPWATCH_LOG_LEVEL")
    tick_interval: float = Field(default=1.0, validation_alias="NAPWATCH_TICK_INTERVAL")
    notification_throttle: float = Field(
        default=30.0, validation_alias="NAPWATCH_NOTIFICATION_THROTTLE"
    )
    notification_timeout: float = Field(
        default=5.0, validation_alias="NAPWATCH_NOTIFICATION_TIMEOUT"
    )
    primary_policy: PrimaryPolicy = Field(
        default=PrimaryPolicy.EARLIEST_STARTED, validation_alias="NAPWATCH_PRIMARY_POLICY"
    )
    persist_attempts: int = Field(default=2, validation_alias="NAPWATCH_PERSIST_ATTEMPTS")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "NAPWATCH_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("subject_paths", mode="before")
    @classmethod
    def _parse_subject_paths(cls, value):
        if value is None or value == "":
            return (Path("subjects"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("subjects"),)
        raise TypeError("NAPWATCH_SUBJECT_PATHS must be a list of paths or a path-separated string")

    @field_validator("primary_policy", mode="before")
    @classmethod
    def _normalize_primary_policy(cls, value):
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value

    @field_validator("tick_interval", "notification_timeout")
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("NAPWATCH_TICK_INTERVAL and NAPWATCH_NOTIFICATION_TIMEOUT must be > 0")
        return value

    @field_validator("notification_throttle")
    @classmethod
    def _validate_throttle(cls, value: float) -> float:
        if value < 0:
            raise ValueError("NAPWATCH_NOTIFICATION_THROTTLE must be >= 0")
        return value

    @field_validator("persist_attempts")
    @classmethod
    def _validate_persist_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("NAPWATCH_PERSIST_ATTEMPTS must be >= 1")
        return value


@lru_cache(maxsize=1)
def get_settings() -> NapwatchSettings:
    """Return cached settings instance."""

    settings = NapwatchSettings()
    settings.session_store_path = settings.session_store_path.expanduser().resolve()
    settings.chroma_persist_path = settings.chroma_persist_path.expanduser().resolve()
    settings.subject_paths = tuple(path.expanduser().resolve() for path in settings.subject_paths)
    return settings


__all__ = ["NapwatchSettings", "get_settings"]

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ferry.models.platforms import ContentType, OverflowStrategy

ENV_PREFIX = "FERRY_"


class EventsConfig(BaseModel):
    queue_size: int = Field(default=256, ge=1)
    """Events beyond this backlog are dropped, never awaited."""
    flush_timeout_s: float = Field(default=5.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()


class MigrationDefaults(BaseModel):
    overflow_strategy: OverflowStrategy | None = None
    """None uses the target platform's own strategy for instructions."""
    include: list[ContentType] | None = None
    exclude: list[ContentType] | None = None
    max_items: int | None = Field(default=None, ge=1)


class FerrySettings(BaseSettings):
    work_root: Path = Path("./migrations")
    events: EventsConfig = Field(default_factory=EventsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    migration: MigrationDefaults = Field(default_factory=MigrationDefaults)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        extra="ignore",
    )


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = key[len(ENV_PREFIX) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_config(path: str | Path = "config/ferry.yaml") -> FerrySettings:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError("config file must contain a top-level mapping")

    raw = loaded.get("ferry", loaded)
    if not isinstance(raw, dict):
        raise ValueError("ferry config section must be a mapping")

    return FerrySettings.model_validate(_apply_env_overrides(raw))


__all__ = [
    "EventsConfig",
    "FerrySettings",
    "LoggingConfig",
    "MigrationDefaults",
    "load_config",
]

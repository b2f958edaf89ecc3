"""Orchestrator state, plugin call options, load results, and events."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from ferry.models.bundle import utc_now
from ferry.models.platforms import ContentType, OverflowStrategy, Platform

ProgressCallback = Callable[[float, str], None]
"""Receives a fraction in [0, 1] and a human-readable message."""


class MigrationPhase(StrEnum):
    pending = "pending"
    extracting = "extracting"
    transforming = "transforming"
    loading = "loading"
    complete = "complete"
    failed = "failed"


_TERMINAL_PHASES = frozenset({MigrationPhase.complete, MigrationPhase.failed})
_RESUMABLE_PHASES = frozenset(
    {MigrationPhase.extracting, MigrationPhase.transforming, MigrationPhase.loading}
)


class MigrationOptions(BaseModel):
    include: list[ContentType] | None = None
    exclude: list[ContentType] | None = None
    dry_run: bool = False
    overflow_strategy: OverflowStrategy | None = None
    """None defers to the configured default."""
    project_name: str | None = None
    max_items: int | None = Field(default=None, ge=1)


class Checkpoint(BaseModel):
    phase: MigrationPhase
    timestamp: datetime = Field(default_factory=utc_now)
    snapshot_path: str
    """Relative to the migration work dir."""
    checksum: str


class MigrationState(BaseModel):
    id: str
    phase: MigrationPhase = MigrationPhase.pending
    source: Platform
    target: Platform
    started_at: datetime = Field(default_factory=utc_now)
    phase_started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    checkpoints: list[Checkpoint] = Field(default_factory=list)
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    options: MigrationOptions = Field(default_factory=MigrationOptions)
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in _TERMINAL_PHASES

    @property
    def is_resumable(self) -> bool:
        return self.phase in _RESUMABLE_PHASES

    @property
    def last_checkpoint(self) -> Checkpoint | None:
        return self.checkpoints[-1] if self.checkpoints else None


class LoadedCounts(BaseModel):
    instructions: bool = False
    memories: int = 0
    files: int = 0
    custom_bots: int = 0

    def any(self) -> bool:
        return self.instructions or self.memories > 0 or self.files > 0 or self.custom_bots > 0


class CreatedResources(BaseModel):
    project_id: str | None = None
    project_url: str | None = None


class ContentFailure(BaseModel):
    """One content type a loader could not write."""

    content_type: ContentType
    message: str

    def describe(self) -> str:
        return f"Failed to load {self.content_type.value}: {self.message}"


class LoadResult(BaseModel):
    success: bool
    loaded: LoadedCounts = Field(default_factory=LoadedCounts)
    created: CreatedResources | None = None
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    manual_steps: list[str] = Field(default_factory=list)
    failures: list[ContentFailure] = Field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return bool(self.failures)


@dataclass(frozen=True, slots=True)
class ExtractOptions:
    work_dir: Path
    include: list[ContentType] | None = None
    max_items: int | None = None
    on_progress: ProgressCallback | None = None


@dataclass(frozen=True, slots=True)
class TransformOptions:
    overflow_strategy: OverflowStrategy = OverflowStrategy.summarize
    on_progress: ProgressCallback | None = None


@dataclass(frozen=True, slots=True)
class LoadOptions:
    dry_run: bool = False
    project_name: str | None = None
    on_progress: ProgressCallback | None = None


class MigrationEventType(StrEnum):
    phase_start = "phase:start"
    phase_complete = "phase:complete"
    phase_error = "phase:error"
    progress = "progress"
    checkpoint = "checkpoint"
    complete = "complete"
    error = "error"


@dataclass(frozen=True, slots=True)
class MigrationEvent:
    type: MigrationEventType
    migration_id: str
    phase: MigrationPhase | None = None
    progress: float | None = None
    message: str | None = None
    error: BaseException | None = None
    data: Any = None
    timestamp: datetime = field(default_factory=utc_now)


__all__ = [
    "Checkpoint",
    "ContentFailure",
    "CreatedResources",
    "ExtractOptions",
    "LoadOptions",
    "LoadResult",
    "LoadedCounts",
    "MigrationEvent",
    "MigrationEventType",
    "MigrationOptions",
    "MigrationPhase",
    "MigrationState",
    "ProgressCallback",
    "TransformOptions",
]

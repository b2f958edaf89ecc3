"""Migration bundle: the versioned container for everything in flight.

Extractors produce a bundle, transformers reshape it for the target, and
loaders consume it. Container counts are derived from their contents so the
metadata can never drift from what the bundle actually carries.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from ferry.models.platforms import ContentType, Platform

BUNDLE_VERSION = "1.0"


def utc_now() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime | None) -> datetime | None:
    # Export formats are inconsistent about offsets; naive stamps are read as UTC.
    if value is None:
        return value
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=UTC)
    return value


class InstructionSection(BaseModel):
    title: str
    content: str
    priority: Literal["high", "medium", "low"] = "medium"


class InstructionData(BaseModel):
    content: str
    sections: list[InstructionSection] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def length(self) -> int:
        return len(self.content)


class MemoryEntry(BaseModel):
    id: str
    content: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime | None = None
    category: str | None = None
    source: str | None = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def last_touched(self) -> datetime:
        return self.updated_at or self.created_at


class MemoryData(BaseModel):
    entries: list[MemoryEntry] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        return len(self.entries)


class ConversationSummary(BaseModel):
    id: str
    title: str
    message_count: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    key_points: list[str] = Field(default_factory=list)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class ConversationData(BaseModel):
    """Conversation bodies stay on disk under ``path``; only summaries travel."""

    path: str
    count: int = Field(default=0, ge=0)
    message_count: int = Field(default=0, ge=0)
    summaries: list[ConversationSummary] = Field(default_factory=list)


class FileEntry(BaseModel):
    id: str
    filename: str
    mime_type: str = "application/octet-stream"
    size: int = Field(ge=0)
    path: str
    uploaded_at: datetime | None = None

    @field_validator("uploaded_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class FileData(BaseModel):
    files: list[FileEntry] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        return len(self.files)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)


class CustomBotEntry(BaseModel):
    id: str
    name: str
    description: str | None = None
    instructions: str = ""
    knowledge_files: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class CustomBotData(BaseModel):
    bots: list[CustomBotEntry] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        return len(self.bots)


class Contents(BaseModel):
    instructions: InstructionData | None = None
    memories: MemoryData | None = None
    conversations: ConversationData | None = None
    files: FileData | None = None
    custom_bots: CustomBotData | None = None
    extras: dict[str, Any] = Field(default_factory=dict)
    """Transformer-specific artifacts (knowledge documents, overflow text)."""

    def without(self, excluded: list[ContentType]) -> Contents:
        update = {ct.value: None for ct in excluded}
        return self.model_copy(update=update, deep=True)


class ItemCounts(BaseModel):
    instructions: int = 0
    memories: int = 0
    conversations: int = 0
    files: int = 0
    custom_bots: int = 0

    @classmethod
    def from_contents(cls, contents: Contents) -> ItemCounts:
        return cls(
            instructions=1 if contents.instructions is not None else 0,
            memories=contents.memories.count if contents.memories else 0,
            conversations=contents.conversations.count if contents.conversations else 0,
            files=contents.files.count if contents.files else 0,
            custom_bots=contents.custom_bots.count if contents.custom_bots else 0,
        )

    def total(self) -> int:
        return self.instructions + self.memories + self.conversations + self.files + self.custom_bots


class BundleMetadata(BaseModel):
    total_items: int = 0
    item_counts: ItemCounts = Field(default_factory=ItemCounts)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class BundleSource(BaseModel):
    platform: Platform
    extracted_at: datetime = Field(default_factory=utc_now)
    extractor_version: str
    account_id: str | None = None
    bundle_path: str | None = None

    @field_validator("extracted_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class BundleTarget(BaseModel):
    platform: Platform
    transformed_at: datetime = Field(default_factory=utc_now)
    transformer_version: str


class MigrationBundle(BaseModel):
    version: Literal["1.0"] = BUNDLE_VERSION
    id: str
    source: BundleSource
    target: BundleTarget | None = None
    contents: Contents = Field(default_factory=Contents)
    metadata: BundleMetadata = Field(default_factory=BundleMetadata)

    @model_validator(mode="after")
    def _sync_item_counts(self) -> MigrationBundle:
        self.recount()
        return self

    def recount(self) -> None:
        counts = ItemCounts.from_contents(self.contents)
        self.metadata.item_counts = counts
        self.metadata.total_items = counts.total()

    def is_empty(self) -> bool:
        return ItemCounts.from_contents(self.contents).total() == 0


__all__ = [
    "BUNDLE_VERSION",
    "BundleMetadata",
    "BundleSource",
    "BundleTarget",
    "Contents",
    "ConversationData",
    "ConversationSummary",
    "CustomBotData",
    "CustomBotEntry",
    "FileData",
    "FileEntry",
    "InstructionData",
    "InstructionSection",
    "ItemCounts",
    "MemoryData",
    "MemoryEntry",
    "MigrationBundle",
    "utc_now",
]

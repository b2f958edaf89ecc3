from __future__ import annotations

from ferry.models.bundle import (
    BUNDLE_VERSION,
    BundleMetadata,
    BundleSource,
    BundleTarget,
    Contents,
    ConversationData,
    ConversationSummary,
    CustomBotData,
    CustomBotEntry,
    FileData,
    FileEntry,
    InstructionData,
    InstructionSection,
    ItemCounts,
    MemoryData,
    MemoryEntry,
    MigrationBundle,
    utc_now,
)
from ferry.models.compatibility import (
    CompatibilityItem,
    CompatibilityItemType,
    CompatibilityReport,
    CompatibilityStatus,
    CompatibilitySummary,
    Feasibility,
)
from ferry.models.migration import (
    Checkpoint,
    ContentFailure,
    CreatedResources,
    ExtractOptions,
    LoadedCounts,
    LoadOptions,
    LoadResult,
    MigrationEvent,
    MigrationEventType,
    MigrationOptions,
    MigrationPhase,
    MigrationState,
    ProgressCallback,
    TransformOptions,
)
from ferry.models.platforms import (
    CharacterLimit,
    ContentType,
    OverflowStrategy,
    Platform,
    PlatformCapabilities,
)

__all__ = [
    "BUNDLE_VERSION",
    "BundleMetadata",
    "BundleSource",
    "BundleTarget",
    "CharacterLimit",
    "Checkpoint",
    "CompatibilityItem",
    "CompatibilityItemType",
    "CompatibilityReport",
    "CompatibilityStatus",
    "CompatibilitySummary",
    "ContentFailure",
    "ContentType",
    "Contents",
    "ConversationData",
    "ConversationSummary",
    "CreatedResources",
    "CustomBotData",
    "CustomBotEntry",
    "ExtractOptions",
    "Feasibility",
    "FileData",
    "FileEntry",
    "InstructionData",
    "InstructionSection",
    "ItemCounts",
    "LoadOptions",
    "LoadResult",
    "LoadedCounts",
    "MemoryData",
    "MemoryEntry",
    "MigrationBundle",
    "MigrationEvent",
    "MigrationEventType",
    "MigrationOptions",
    "MigrationPhase",
    "MigrationState",
    "OverflowStrategy",
    "Platform",
    "PlatformCapabilities",
    "ProgressCallback",
    "TransformOptions",
    "utc_now",
]

"""Platform capability table and per-target character limits."""

from __future__ import annotations

from types import MappingProxyType

from ferry.models.platforms import (
    CharacterLimit,
    ContentType,
    OverflowStrategy,
    Platform,
    PlatformCapabilities,
)

_MB = 1024 * 1024

PLATFORM_CAPABILITIES: MappingProxyType[Platform, PlatformCapabilities] = MappingProxyType(
    {
        Platform.chatgpt: PlatformCapabilities(
            id=Platform.chatgpt,
            name="ChatGPT",
            instruction_limit=1500,
            has_memory=True,
            memory_limit=100,
            has_files=True,
            file_size_limit=512 * _MB,
            has_projects=False,
            has_conversations=True,
            has_custom_bots=True,
        ),
        Platform.claude: PlatformCapabilities(
            id=Platform.claude,
            name="Claude",
            instruction_limit=8000,
            # Project knowledge replaces a discrete memory list.
            has_memory=False,
            memory_limit=None,
            has_files=True,
            file_size_limit=32 * _MB,
            has_projects=True,
            has_conversations=True,
            has_custom_bots=False,
        ),
        Platform.gemini: PlatformCapabilities(
            id=Platform.gemini,
            name="Gemini",
            instruction_limit=4000,
            has_memory=True,
            memory_limit=50,
            has_files=True,
            file_size_limit=20 * _MB,
            has_projects=False,
            has_conversations=True,
            has_custom_bots=False,
        ),
        Platform.copilot: PlatformCapabilities(
            id=Platform.copilot,
            name="Microsoft Copilot",
            instruction_limit=2000,
            has_memory=True,
            memory_limit=None,
            has_files=True,
            file_size_limit=10 * _MB,
            has_projects=False,
            has_conversations=True,
            has_custom_bots=False,
        ),
    }
)

# (instructions soft limit, instructions strategy, per-memory hard, per-memory soft)
_TARGET_LIMIT_TABLE: dict[Platform, tuple[int, OverflowStrategy, int | None, int | None]] = {
    Platform.claude: (7200, OverflowStrategy.summarize, None, None),
    Platform.chatgpt: (1200, OverflowStrategy.truncate, 500, 400),
    Platform.gemini: (3500, OverflowStrategy.truncate, 300, 250),
    Platform.copilot: (1800, OverflowStrategy.truncate, 300, 250),
}

_SUPPORTED_MIGRATIONS: tuple[tuple[Platform, Platform], ...] = (
    (Platform.chatgpt, Platform.claude),
    (Platform.claude, Platform.chatgpt),
)


def get_platform_capabilities(platform: Platform | str) -> PlatformCapabilities:
    return PLATFORM_CAPABILITIES[Platform(platform)]


def platform_name(platform: Platform | str) -> str:
    return get_platform_capabilities(platform).name


def get_target_limits(target: Platform | str) -> dict[ContentType, CharacterLimit | None]:
    """Return hard/soft limits per content type for a target platform.

    ``None`` means the content type has no character limit on the target
    (it is converted or stored as context instead).
    """
    caps = get_platform_capabilities(target)
    soft, strategy, memory_hard, memory_soft = _TARGET_LIMIT_TABLE[caps.id]

    memories: CharacterLimit | None = None
    if memory_hard is not None:
        memories = CharacterLimit(
            hard=memory_hard, soft=memory_soft, overflow_strategy=OverflowStrategy.split
        )

    files: CharacterLimit | None = None
    if caps.file_size_limit is not None:
        files = CharacterLimit(hard=caps.file_size_limit, overflow_strategy=OverflowStrategy.error)

    return {
        ContentType.instructions: CharacterLimit(
            hard=caps.instruction_limit, soft=soft, overflow_strategy=strategy
        ),
        ContentType.memories: memories,
        ContentType.conversations: None,
        ContentType.files: files,
        ContentType.custom_bots: None,
    }


def is_migration_supported(source: Platform | str, target: Platform | str) -> bool:
    return (Platform(source), Platform(target)) in _SUPPORTED_MIGRATIONS


def get_supported_migrations() -> list[tuple[Platform, Platform]]:
    return list(_SUPPORTED_MIGRATIONS)


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < _MB:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * _MB:
        return f"{size / _MB:.1f} MB"
    return f"{size / (1024 * _MB):.1f} GB"


__all__ = [
    "PLATFORM_CAPABILITIES",
    "format_bytes",
    "get_platform_capabilities",
    "get_supported_migrations",
    "get_target_limits",
    "is_migration_supported",
    "platform_name",
]

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class Platform(StrEnum):
    chatgpt = "chatgpt"
    claude = "claude"
    gemini = "gemini"
    copilot = "copilot"


class ContentType(StrEnum):
    instructions = "instructions"
    memories = "memories"
    conversations = "conversations"
    files = "files"
    custom_bots = "custom_bots"


class OverflowStrategy(StrEnum):
    """What happens when content still exceeds a target's hard limit."""

    truncate = "truncate"
    split = "split"
    summarize = "summarize"
    error = "error"


class PlatformCapabilities(BaseModel):
    """Static limits and feature flags for one hosting platform."""

    model_config = ConfigDict(frozen=True)

    id: Platform
    name: str
    instruction_limit: int
    has_memory: bool
    memory_limit: int | None = None
    """None means the platform has no discrete memory list."""
    has_files: bool
    file_size_limit: int | None = None
    has_projects: bool
    has_conversations: bool
    has_custom_bots: bool


class CharacterLimit(BaseModel):
    model_config = ConfigDict(frozen=True)

    hard: int
    soft: int | None = None
    overflow_strategy: OverflowStrategy


__all__ = [
    "CharacterLimit",
    "ContentType",
    "OverflowStrategy",
    "Platform",
    "PlatformCapabilities",
]

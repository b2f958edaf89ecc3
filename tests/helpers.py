"""Shared test helpers."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from ferry.models.bundle import (
    BundleSource,
    Contents,
    ConversationData,
    ConversationSummary,
    CustomBotData,
    CustomBotEntry,
    FileData,
    FileEntry,
    InstructionData,
    MemoryData,
    MemoryEntry,
    MigrationBundle,
)
from ferry.models.platforms import Platform

MB = 1024 * 1024
BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


async def wait_until(
    predicate: Callable[[], bool] | Callable[[], Awaitable[bool]],
    timeout: float = 3.0,
    interval: float = 0.01,
) -> None:
    """Poll a condition until it passes or timeout is reached.

    Supports both sync and async predicates.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        result = predicate()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return
        await asyncio.sleep(interval)
    raise TimeoutError("Condition not met within timeout")


def memory_entries(count: int, *, prefix: str = "mem", category: str | None = None) -> list[MemoryEntry]:
    """Entries whose creation time increases with their index."""
    return [
        MemoryEntry(
            id=f"{prefix}-{i}",
            content=f"Memory number {i}",
            created_at=BASE_TIME + timedelta(minutes=i),
            category=category,
        )
        for i in range(count)
    ]


def make_bundle(
    platform: Platform = Platform.chatgpt,
    *,
    bundle_id: str = "bundle-1",
    instructions: str | None = "## About Me\nI write Python.\n\n## How ChatGPT Should Respond\nBe brief.",
    memories: int = 3,
    conversations: int = 0,
    files: list[tuple[str, int]] | None = None,
    bots: list[CustomBotEntry] | None = None,
) -> MigrationBundle:
    contents = Contents(
        instructions=InstructionData(content=instructions) if instructions is not None else None,
        memories=MemoryData(entries=memory_entries(memories)) if memories else None,
        conversations=(
            ConversationData(
                path="conversations",
                count=conversations,
                message_count=conversations * 10,
                summaries=[
                    ConversationSummary(
                        id=f"conv-{i}",
                        title=f"Conversation {i}",
                        message_count=10,
                        key_points=[f"Decision {i}", "Prefers type hints"],
                    )
                    for i in range(conversations)
                ],
            )
            if conversations
            else None
        ),
        files=(
            FileData(
                files=[
                    FileEntry(id=f"file-{i}", filename=name, size=size, path=f"files/{name}")
                    for i, (name, size) in enumerate(files)
                ]
            )
            if files is not None
            else None
        ),
        custom_bots=CustomBotData(bots=bots) if bots is not None else None,
    )
    return MigrationBundle(
        id=bundle_id,
        source=BundleSource(platform=platform, extractor_version="test-1.0"),
        contents=contents,
    )


def empty_bundle(platform: Platform = Platform.chatgpt, bundle_id: str = "empty") -> MigrationBundle:
    return MigrationBundle(
        id=bundle_id,
        source=BundleSource(platform=platform, extractor_version="test-1.0"),
    )

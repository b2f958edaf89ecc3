"""Shared transformation pipeline for every (source, target) pair.

``BaseTransformer.transform`` walks the content types in a fixed order and
applies the target's limits to each. Subclasses only describe what differs
per pair: how instructions are reshaped, how memories and bots map onto the
target's concepts, and any extra recommendations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ferry.capabilities import (
    format_bytes,
    get_platform_capabilities,
    get_target_limits,
    platform_name,
)
from ferry.compatibility import CompatibilityAnalyzer
from ferry.errors import BundleValidationError, ContentOverflowError
from ferry.models.bundle import (
    BundleTarget,
    Contents,
    ConversationData,
    CustomBotData,
    FileData,
    InstructionData,
    MemoryData,
    MemoryEntry,
    MigrationBundle,
)
from ferry.models.compatibility import CompatibilityReport
from ferry.models.migration import ProgressCallback, TransformOptions
from ferry.models.platforms import ContentType, OverflowStrategy, Platform
from ferry.transform.rules import (
    dropped_paragraphs,
    extract_context_from_conversations,
    intelligent_truncate,
    split_content,
    validate_bundle_for_target,
)

logger = logging.getLogger(__name__)

INSTRUCTION_CONTEXT_CATEGORY = "Instruction Context"
SPLIT_HEADROOM = 50

EXTRA_INSTRUCTION_OVERFLOW = "instruction_overflow"
EXTRA_CONVERSATION_INSIGHTS = "conversation_insights"


@dataclass(slots=True)
class ReshapedInstructions:
    content: str
    overflow: str | None = None
    warnings: list[str] = field(default_factory=list)


class _Progress:
    """Monotonic fraction reporter; callback failures never reach the pipeline."""

    def __init__(self, callback: ProgressCallback | None) -> None:
        self._callback = callback
        self.value = 0.0

    def report(self, fraction: float, message: str) -> None:
        self.value = min(max(self.value, fraction), 1.0)
        if self._callback is None:
            return
        try:
            self._callback(self.value, message)
        except Exception:
            logger.exception("Progress callback failed")


class BaseTransformer:
    source: Platform
    target: Platform
    version = "1.0.0"

    def __init__(self) -> None:
        self.capabilities = get_platform_capabilities(self.target)
        self.limits = get_target_limits(self.target)
        self.target_name = platform_name(self.target)
        self._analyzer = CompatibilityAnalyzer(self.source, self.target)

    # -- Analysis -----------------------------------------------------------

    async def analyze(self, bundle: MigrationBundle) -> CompatibilityReport:
        report = self._analyzer.analyze_sync(bundle)
        extra = self.pair_recommendations(bundle)
        if not extra:
            return report
        merged = list(dict.fromkeys([*report.recommendations, *extra]))
        return report.model_copy(update={"recommendations": merged})

    def pair_recommendations(self, bundle: MigrationBundle) -> list[str]:
        return []

    # -- Pair hooks ---------------------------------------------------------

    def reshape_instructions(self, instructions: InstructionData) -> ReshapedInstructions:
        return ReshapedInstructions(content=instructions.content)

    def knowledge_memories(self, contents: Contents) -> list[MemoryEntry]:
        """Memories derived from other artifacts (e.g. knowledge documents)."""
        return []

    def transform_memories_without_list(
        self, memories: MemoryData, contents: Contents
    ) -> tuple[MemoryData | None, list[str]]:
        """Handle memories for a target with no discrete memory list."""
        return memories, []

    def transform_bots(
        self, bots: CustomBotData, contents: Contents
    ) -> tuple[CustomBotData | None, list[str]]:
        return bots, []

    # -- Pipeline -----------------------------------------------------------

    async def transform(
        self, bundle: MigrationBundle, options: TransformOptions
    ) -> MigrationBundle:
        if bundle.source.platform != self.source:
            raise BundleValidationError(
                [f"Expected {self.source.value} bundle, got {bundle.source.platform.value}"]
            )
        validation = validate_bundle_for_target(bundle, self.target)
        if not validation.valid:
            raise BundleValidationError(validation.errors)

        strategy = OverflowStrategy(options.overflow_strategy)
        if strategy == OverflowStrategy.error:
            self._raise_on_overflow(bundle)

        progress = _Progress(options.on_progress)
        result = bundle.model_copy(deep=True)
        contents = result.contents
        warnings = list(validation.warnings)
        progress.report(0.05, f"Starting {platform_name(self.source)} → {self.target_name} transformation")

        overflow: str | None = None
        if contents.instructions is not None:
            progress.report(0.1, "Transforming instructions")
            contents.instructions, overflow, notes = self._transform_instructions(
                contents.instructions, strategy
            )
            warnings.extend(notes)
            result.recount()
        progress.report(0.25, "Instructions transformed")

        progress.report(0.3, "Processing memories")
        warnings.extend(self._transform_memories(contents, overflow))
        result.recount()
        progress.report(0.5, "Memories processed")

        if contents.conversations is not None:
            progress.report(0.55, "Processing conversations")
            warnings.extend(self._transform_conversations(contents.conversations, contents))
        progress.report(0.65, "Conversations processed")

        if contents.files is not None:
            progress.report(0.7, "Processing files")
            contents.files, notes = self._transform_files(contents.files)
            warnings.extend(notes)
            result.recount()
        progress.report(0.85, "Files processed")

        if contents.custom_bots is not None:
            progress.report(0.9, "Mapping custom bots")
            contents.custom_bots, notes = self.transform_bots(contents.custom_bots, contents)
            warnings.extend(notes)
            result.recount()

        result.target = BundleTarget(platform=self.target, transformer_version=self.version)
        result.metadata.warnings.extend(warnings)
        result.recount()
        progress.report(1.0, "Transformation complete")
        logger.info(
            "Transformed bundle %s for %s with %d warning(s)",
            result.id,
            self.target.value,
            len(warnings),
        )
        return result

    def _raise_on_overflow(self, bundle: MigrationBundle) -> None:
        contents = bundle.contents
        instruction_limit = self.limits[ContentType.instructions]
        if contents.instructions is not None and instruction_limit is not None:
            reshaped = self.reshape_instructions(contents.instructions)
            size = len(reshaped.content)
            if reshaped.overflow:
                size += len(reshaped.overflow) + 2
            size = max(size, contents.instructions.length)
            if size > instruction_limit.hard:
                raise ContentOverflowError(ContentType.instructions, size, instruction_limit.hard)

        if contents.memories is not None and self.capabilities.has_memory:
            count_limit = self.capabilities.memory_limit
            if count_limit is not None and contents.memories.count > count_limit:
                raise ContentOverflowError(
                    ContentType.memories, contents.memories.count, count_limit, unit="entries"
                )
            entry_limit = self.limits[ContentType.memories]
            if entry_limit is not None:
                for entry in contents.memories.entries:
                    if len(entry.content) > entry_limit.hard:
                        raise ContentOverflowError(
                            ContentType.memories, len(entry.content), entry_limit.hard
                        )

        size_limit = self.capabilities.file_size_limit
        if contents.files is not None and size_limit is not None:
            for entry in contents.files.files:
                if entry.size > size_limit:
                    raise ContentOverflowError(ContentType.files, entry.size, size_limit, unit="bytes")

    def _transform_instructions(
        self, instructions: InstructionData, strategy: OverflowStrategy
    ) -> tuple[InstructionData, str | None, list[str]]:
        reshaped = self.reshape_instructions(instructions)
        content = reshaped.content
        overflow_parts = [reshaped.overflow] if reshaped.overflow else []
        warnings = list(reshaped.warnings)

        limit = self.limits[ContentType.instructions]
        if limit is not None and len(content) > limit.hard:
            truncated = intelligent_truncate(content, limit.hard, instructions.sections)
            lost = dropped_paragraphs(content, truncated.content)
            if lost:
                overflow_parts.append(lost)
            detail = truncated.warning or "Instructions truncated"
            if strategy == OverflowStrategy.summarize:
                warnings.append(
                    f"Instructions exceed {self.target_name} limit ({len(content)} > {limit.hard}); "
                    f"summarization is not available, so they were truncated instead. {detail}"
                )
            elif strategy == OverflowStrategy.split:
                warnings.append(
                    f"Instructions exceed {self.target_name} limit ({len(content)} > {limit.hard}) "
                    f"and cannot be split; truncated instead. {detail}"
                )
            else:
                warnings.append(
                    f"Instructions exceed {self.target_name} limit ({len(content)} > {limit.hard}). {detail}"
                )
            content = truncated.content

        transformed = InstructionData(content=content, sections=instructions.sections)
        return transformed, "\n\n".join(overflow_parts) or None, warnings

    def _transform_memories(self, contents: Contents, overflow: str | None) -> list[str]:
        warnings: list[str] = []
        if not self.capabilities.has_memory:
            if overflow:
                contents.extras[EXTRA_INSTRUCTION_OVERFLOW] = overflow
                warnings.append(
                    f"{len(overflow)} characters of instructions did not fit and were kept "
                    "as instruction overflow for review"
                )
            if contents.memories is not None:
                contents.memories, notes = self.transform_memories_without_list(
                    contents.memories, contents
                )
                warnings.extend(notes)
            return warnings

        derived = self.knowledge_memories(contents)
        if overflow:
            overflow_entries = self._memories_from_text(overflow, INSTRUCTION_CONTEXT_CATEGORY)
            derived = overflow_entries + derived
            warnings.append(
                f"{len(overflow_entries)} memories created from instruction overflow"
            )
        if contents.memories is None and not derived:
            return warnings

        entries = derived + (contents.memories.entries if contents.memories else [])
        kept, notes = self._fit_memories(entries)
        warnings.extend(notes)
        contents.memories = MemoryData(entries=kept)
        return warnings

    def _fit_memories(self, entries: list[MemoryEntry]) -> tuple[list[MemoryEntry], list[str]]:
        """Split over-long entries, then cap the total by whole source entries, newest first."""
        entry_limit = self.limits[ContentType.memories]
        groups = [
            self._split_entry(entry, entry_limit.hard) if entry_limit is not None else [entry]
            for entry in entries
        ]
        count_limit = self.capabilities.memory_limit
        if count_limit is None or sum(len(group) for group in groups) <= count_limit:
            return [part for group in groups for part in group], []

        keep: set[int] = set()
        used = 0
        for index in _by_recency(entries):
            if used + len(groups[index]) > count_limit:
                break
            keep.add(index)
            used += len(groups[index])

        dropped = len(entries) - len(keep)
        kept = [part for index, group in enumerate(groups) if index in keep for part in group]
        return kept, [
            f"Memory limit exceeded: {dropped} entries dropped, kept the {len(keep)} most recently used"
        ]

    def _split_entry(self, entry: MemoryEntry, hard: int) -> list[MemoryEntry]:
        if len(entry.content) <= hard:
            return [entry]
        chunks = split_content(entry.content, max(hard - SPLIT_HEADROOM, 1))
        total = len(chunks)
        return [
            entry.model_copy(
                update={
                    "id": f"{entry.id}_part{index}",
                    "content": f"[Part {index}/{total}] {chunk}" if total > 1 else chunk,
                }
            )
            for index, chunk in enumerate(chunks, start=1)
        ]

    def _memories_from_text(self, text: str, category: str) -> list[MemoryEntry]:
        entry_limit = self.limits[ContentType.memories]
        if entry_limit is not None:
            chunks = split_content(text, max(entry_limit.hard - SPLIT_HEADROOM, 1))
        else:
            chunks = [p.strip() for p in text.split("\n\n") if p.strip()]
        return [
            MemoryEntry(
                id=f"instruction_overflow_{index}",
                content=chunk,
                category=category,
                source="instruction_overflow",
            )
            for index, chunk in enumerate(chunks, start=1)
        ]

    def _transform_conversations(
        self, conversations: ConversationData, contents: Contents
    ) -> list[str]:
        if conversations.summaries:
            contents.extras[EXTRA_CONVERSATION_INSIGHTS] = extract_context_from_conversations(
                conversations.summaries
            )
        return [
            f"{conversations.count} conversations cannot be imported into {self.target_name} as "
            "chat history; only summaries and key points are carried over"
        ]

    def _transform_files(self, files: FileData) -> tuple[FileData, list[str]]:
        if not self.capabilities.has_files:
            return FileData(), [
                f'File "{f.filename}" skipped: {self.target_name} does not support file uploads'
                for f in files.files
            ]

        limit = self.capabilities.file_size_limit
        if limit is None:
            return files, []

        kept = [f for f in files.files if f.size <= limit]
        warnings = [
            f'File "{f.filename}" ({format_bytes(f.size)}) exceeds {self.target_name} limit '
            f"({format_bytes(limit)}) and was skipped"
            for f in files.files
            if f.size > limit
        ]
        return FileData(files=kept), warnings


def _by_recency(entries: list[MemoryEntry]) -> list[int]:
    """Entry indices, most recently touched first; ties keep their original order."""
    return sorted(range(len(entries)), key=lambda i: entries[i].last_touched, reverse=True)


__all__ = [
    "BaseTransformer",
    "EXTRA_CONVERSATION_INSIGHTS",
    "EXTRA_INSTRUCTION_OVERFLOW",
    "INSTRUCTION_CONTEXT_CATEGORY",
    "ReshapedInstructions",
]

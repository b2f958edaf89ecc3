"""Transformation rules engine.

Pure, target-agnostic helpers used by the per-pair transformers: content
shrinking (truncation and splitting), instruction and memory format
conversion, conversation digests, bot/project mapping, and the pre-transform
bundle gate. Nothing here performs I/O or keeps state.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from ferry.capabilities import format_bytes, get_platform_capabilities, get_target_limits
from ferry.models.bundle import (
    ConversationSummary,
    CustomBotEntry,
    InstructionSection,
    MemoryEntry,
    MigrationBundle,
)
from ferry.models.platforms import ContentType, OverflowStrategy, Platform

ELLIPSIS = "..."
DEFAULT_CATEGORY = "General"
MAX_KEY_POINTS = 20

_CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)
_VERBOSE_NOTE_RE = re.compile(
    r"^[ \t]*(?:note|warning|tip|important|example|for example|e\.g\.)\s*:[^\n]*"
    r"(?:\n[ \t]+\S[^\n]*)*",
    re.IGNORECASE | re.MULTILINE,
)
_LONG_ASIDE_RE = re.compile(r"[ \t]*\([^()\n]{50,}\)")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_HEADER_LINE_RE = re.compile(r"^#{1,6}[ \t]", re.MULTILINE)
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)")
_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")

_CHATGPT_ABOUT_ME_RE = re.compile(
    r"^#{1,6}[ \t]*About Me[ \t]*:?[ \t]*$\n?(.*?)(?=^#{1,6}[ \t]|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_CHATGPT_RESPOND_RE = re.compile(
    r"^#{1,6}[ \t]*How (?:ChatGPT|the assistant) Should Respond[ \t]*:?[ \t]*$\n?(.*?)(?=^#{1,6}[ \t]|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_CLAUDE_USER_RE = re.compile(
    r"^#{0,6}[ \t]*(?:User Context|About (?:the )?User|Background)[ \t]*:?[ \t]*$\n?(.*?)(?=^#|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_CLAUDE_RESPONSE_RE = re.compile(
    r"^#{0,6}[ \t]*(?:Response Guidelines?|How to Respond|Instructions?|Guidelines?)[ \t]*:?[ \t]*$\n?(.*?)(?=^#|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_DOC_HEADER_RE = re.compile(r"^##\s+(.+?)\s*$")
_DOC_BULLET_RE = re.compile(r"^\s*[-*•]\s+(.+?)\s*$")

CHATGPT_ABOUT_ME_HEADER = "## About Me"
CHATGPT_RESPOND_HEADER = "## How ChatGPT Should Respond"
_MIN_SENTENCE_KEEP_RATIO = 0.5


# -- Truncation -------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TruncationResult:
    content: str
    warning: str | None = None
    needs_review: bool = False

    @property
    def dropped(self) -> bool:
        return self.warning is not None


def intelligent_truncate(
    content: str,
    limit: int,
    sections: Iterable[InstructionSection] | None = None,
) -> TruncationResult:
    """Shrink ``content`` to at most ``limit`` characters, least valuable parts first.

    Order: fenced code blocks, then low-priority sections and verbose notes,
    then a cut at the last sentence boundary with an ellipsis, and finally a
    hard cut. The last two mark the result for review.
    """
    limit = max(limit, 0)
    if len(content) <= limit:
        return TruncationResult(content=content)

    without_code, code_blocks = _CODE_BLOCK_RE.subn("", content)
    without_code = _collapse(without_code)
    if len(without_code) <= limit:
        return TruncationResult(
            content=without_code,
            warning=(
                "Code blocks removed to fit character limit"
                if code_blocks
                else "Extra whitespace removed to fit character limit"
            ),
        )

    without_verbose = _collapse(_strip_verbose(without_code, sections))
    if len(without_verbose) <= limit:
        return TruncationResult(
            content=without_verbose,
            warning="Code blocks and verbose sections removed to fit character limit",
        )

    at_sentence = _truncate_at_sentence(without_verbose, limit)
    if at_sentence is not None:
        return TruncationResult(
            content=at_sentence,
            warning=(
                f"Content truncated from {len(content)} to {len(at_sentence)} characters "
                "at a sentence boundary"
            ),
            needs_review=True,
        )

    hard = without_verbose[:limit]
    return TruncationResult(
        content=hard,
        warning=f"Content hard-truncated from {len(content)} to {len(hard)} characters",
        needs_review=True,
    )


def _collapse(text: str) -> str:
    return _BLANK_RUN_RE.sub("\n\n", text).strip()


def _strip_verbose(text: str, sections: Iterable[InstructionSection] | None) -> str:
    for section in sections or ():
        if section.priority == "low":
            text = _strip_section(text, section)
    text = _VERBOSE_NOTE_RE.sub("", text)
    return _LONG_ASIDE_RE.sub("", text)


def _strip_section(text: str, section: InstructionSection) -> str:
    """Remove one section: its header line and body up to the next header."""
    title = section.title.strip()
    if title:
        header = re.compile(rf"^#{{1,6}}[ \t]*{re.escape(title)}[ \t]*:?[ \t]*$", re.MULTILINE)
        match = header.search(text)
        if match is not None:
            following = _HEADER_LINE_RE.search(text, match.end())
            end = following.start() if following is not None else len(text)
            return text[: match.start()] + text[end:]
    # Headerless sections are only removed when their body is unambiguous.
    body = section.content.strip()
    if body and text.count(body) == 1:
        return text.replace(body, "", 1)
    return text


def _truncate_at_sentence(text: str, limit: int) -> str | None:
    budget = limit - len(ELLIPSIS)
    if budget <= 0:
        return None
    window = text[:budget]
    last_end = 0
    for match in _SENTENCE_END_RE.finditer(window):
        last_end = match.end()
    if last_end == 0 or last_end < budget * _MIN_SENTENCE_KEEP_RATIO:
        return None
    return window[:last_end].rstrip() + ELLIPSIS


def dropped_paragraphs(original: str, kept: str) -> str | None:
    """Paragraphs of ``original`` that do not survive intact in ``kept``."""
    lost = [p.strip() for p in _PARAGRAPH_BREAK_RE.split(original) if p.strip() and p.strip() not in kept]
    return "\n\n".join(lost) if lost else None


# -- Splitting --------------------------------------------------------------


def split_content(content: str, chunk_size: int) -> list[str]:
    """Split ``content`` into ordered, non-empty chunks of at most ``chunk_size``.

    Paragraph breaks are preferred, then sentence breaks; text without a
    natural break point is cut at exactly ``chunk_size``. Only whitespace at
    chunk boundaries is dropped.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")

    text = content.strip()
    if not text:
        return []
    if len(text) <= chunk_size:
        return [text]

    chunks: list[str] = []
    current = ""
    for joiner, unit in _split_units(text, chunk_size):
        if not current:
            current = unit
        elif len(current) + len(joiner) + len(unit) <= chunk_size:
            current = f"{current}{joiner}{unit}"
        else:
            chunks.append(current)
            current = unit
    if current:
        chunks.append(current)
    return chunks


def _split_units(text: str, chunk_size: int) -> Iterator[tuple[str, str]]:
    """Yield (joiner, unit) pairs where every unit fits in ``chunk_size``."""
    for paragraph in _PARAGRAPH_BREAK_RE.split(text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if len(paragraph) <= chunk_size:
            yield "\n\n", paragraph
            continue

        joiner = "\n\n"
        for sentence in _SENTENCE_SPLIT_RE.split(paragraph):
            if not sentence:
                continue
            if len(sentence) <= chunk_size:
                yield joiner, sentence
            else:
                for start in range(0, len(sentence), chunk_size):
                    piece = sentence[start : start + chunk_size]
                    if piece.strip():
                        yield joiner, piece
                        joiner = ""
            joiner = " "


# -- Instruction formats ----------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChatGPTInstructions:
    about_user: str
    about_model: str
    overflow: str | None = None

    def render(self) -> str:
        return format_chatgpt_instructions(self.about_user, self.about_model)


def parse_chatgpt_instructions(content: str) -> tuple[str, str] | None:
    """Return (about_user, about_model) for ChatGPT's two-box format, if present."""
    about_me = _CHATGPT_ABOUT_ME_RE.search(content)
    respond = _CHATGPT_RESPOND_RE.search(content)
    if about_me is None and respond is None:
        return None
    about_user = about_me.group(1).strip() if about_me else ""
    about_model = respond.group(1).strip() if respond else ""
    return about_user, about_model


def format_chatgpt_instructions(about_user: str, about_model: str) -> str:
    parts: list[str] = []
    if about_user:
        parts.append(f"{CHATGPT_ABOUT_ME_HEADER}\n{about_user}")
    if about_model:
        parts.append(f"{CHATGPT_RESPOND_HEADER}\n{about_model}")
    return "\n\n".join(parts)


def convert_chatgpt_instructions_to_claude(about_user: str, about_model: str) -> str:
    """ChatGPT "About Me" / "How to respond" boxes become Claude system prompt sections."""
    sections: list[str] = []
    if about_user:
        sections.append(f"# User Context\n\n{about_user}")
    if about_model:
        sections.append(f"# Response Guidelines\n\n{about_model}")
    return "\n\n".join(sections)


def convert_claude_instructions_to_chatgpt(
    system_prompt: str, limit: int = 1500
) -> ChatGPTInstructions:
    """Fit a Claude system prompt into ChatGPT's two instruction boxes.

    The rendered result never exceeds ``limit``. Whatever had to be dropped is
    returned as ``overflow`` so callers can fold it into memories.
    """
    about_user, about_model = _split_claude_sections(system_prompt)
    budget = max(limit - _chatgpt_header_overhead(about_user, about_model), 0)

    if about_user and about_model:
        user_budget = min(len(about_user), max(budget // 2, budget - len(about_model)))
    else:
        user_budget = budget
    fitted_user = intelligent_truncate(about_user, user_budget).content if about_user else ""

    model_budget = budget - len(fitted_user) if fitted_user else budget
    if about_user and not fitted_user:
        model_budget = max(limit - _chatgpt_header_overhead("", about_model), 0)
    fitted_model = intelligent_truncate(about_model, model_budget).content if about_model else ""

    overflow_parts = [
        part
        for part in (
            dropped_paragraphs(about_user, fitted_user) if about_user else None,
            dropped_paragraphs(about_model, fitted_model) if about_model else None,
        )
        if part
    ]
    return ChatGPTInstructions(
        about_user=fitted_user,
        about_model=fitted_model,
        overflow="\n\n".join(overflow_parts) or None,
    )


def _split_claude_sections(system_prompt: str) -> tuple[str, str]:
    user_match = _CLAUDE_USER_RE.search(system_prompt)
    response_match = _CLAUDE_RESPONSE_RE.search(system_prompt)

    about_user = user_match.group(1).strip() if user_match else ""
    if response_match:
        about_model = response_match.group(1).strip()
    elif user_match:
        about_model = (system_prompt[: user_match.start()] + system_prompt[user_match.end() :]).strip()
    else:
        about_model = system_prompt.strip()
    return about_user, about_model


def _chatgpt_header_overhead(about_user: str, about_model: str) -> int:
    overhead = 0
    if about_user:
        overhead += len(CHATGPT_ABOUT_ME_HEADER) + 1
    if about_model:
        overhead += len(CHATGPT_RESPOND_HEADER) + 1
    if about_user and about_model:
        overhead += 2
    return overhead


# -- Memory formats ---------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DocumentMemory:
    content: str
    category: str


def convert_memories_to_document(entries: Iterable[MemoryEntry]) -> str:
    """Render memories as a markdown knowledge document grouped by category.

    Most populous categories come first; ties keep first-seen order.
    """
    by_category: dict[str, list[MemoryEntry]] = {}
    for entry in entries:
        category = (entry.category or "").strip() or DEFAULT_CATEGORY
        by_category.setdefault(category, []).append(entry)

    lines = [
        "# User Memories",
        "",
        "> This document contains memories extracted from your previous AI assistant.",
        "> Use this context to personalize responses and maintain continuity.",
        "",
    ]
    for category, items in sorted(by_category.items(), key=lambda kv: len(kv[1]), reverse=True):
        lines.extend([f"## {category}", ""])
        lines.extend(f"- {item.content}" for item in items)
        lines.append("")
    return "\n".join(lines)


def convert_document_to_memories(document: str) -> list[DocumentMemory]:
    memories: list[DocumentMemory] = []
    category = DEFAULT_CATEGORY
    for line in document.splitlines():
        header = _DOC_HEADER_RE.match(line)
        if header:
            category = header.group(1).strip()
            continue
        bullet = _DOC_BULLET_RE.match(line)
        if bullet:
            memories.append(DocumentMemory(content=bullet.group(1), category=category))
    return memories


# -- Conversations ----------------------------------------------------------


def collect_key_points(
    summaries: Iterable[ConversationSummary], limit: int = MAX_KEY_POINTS
) -> list[str]:
    points: list[str] = []
    seen: set[str] = set()
    for summary in summaries:
        for point in summary.key_points:
            if point in seen:
                continue
            seen.add(point)
            points.append(point)
            if len(points) >= limit:
                return points
    return points


def extract_context_from_conversations(summaries: list[ConversationSummary]) -> str:
    """Digest of key decisions and preferences across conversation summaries."""
    lines = [
        "# Conversation Insights",
        "",
        "> Key decisions and preferences extracted from conversation history.",
        "",
    ]
    points = collect_key_points(summaries)
    if points:
        lines.extend(["## Key Decisions & Preferences", ""])
        lines.extend(f"- {point}" for point in points)
    else:
        plural = "" if len(summaries) == 1 else "s"
        lines.extend(
            [
                "*No key decisions or preferences were extracted from conversations.*",
                "",
                f"Reviewed {len(summaries)} conversation{plural}.",
            ]
        )
    return "\n".join(lines)


# -- Bots and projects ------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    project_name: str
    description: str
    system_prompt: str
    knowledge_files: list[str] = field(default_factory=list)
    truncated: bool = False


def map_bot_to_project(
    bot: CustomBotEntry,
    instruction_limit: int,
    supported_toggles: frozenset[str] = frozenset(),
) -> ProjectConfig:
    """Map a custom bot (GPT) configuration onto a project.

    Capabilities with no matching toggle on the target are appended as plain
    text; instructions are kept verbatim up to whatever room is left.
    """
    untoggled = [c for c in bot.capabilities if c not in supported_toggles]
    capability_block = ""
    if untoggled:
        capability_block = f"\n\n## Capabilities\nThis assistant can: {', '.join(untoggled)}"

    prefix_length = max(instruction_limit - len(capability_block), 0)
    instructions = bot.instructions[:prefix_length]
    return ProjectConfig(
        project_name=bot.name,
        description=bot.description or f"Migrated from GPT: {bot.name}",
        system_prompt=instructions + capability_block,
        knowledge_files=list(bot.knowledge_files),
        truncated=len(bot.instructions) > prefix_length,
    )


def map_project_to_bot(project: CustomBotEntry, prefix_length: int = 500) -> CustomBotEntry:
    """Turn a project into a GPT creation guide; GPTs cannot be created by API."""
    preview = project.instructions[:prefix_length]
    if len(project.instructions) > prefix_length:
        preview += ELLIPSIS
    description = (
        f"[Migrate to GPT] {project.description or project.name}\n\nInstructions:\n{preview}"
    )
    return project.model_copy(update={"description": description}, deep=True)


# -- Validation -------------------------------------------------------------


@dataclass(slots=True)
class BundleValidation:
    valid: bool
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def validate_bundle_for_target(bundle: MigrationBundle, target: Platform) -> BundleValidation:
    """Pre-transform gate.

    Only structural corruption makes a bundle invalid; content that is too
    large is reported as a warning and left to the overflow strategy.
    """
    target = Platform(target)
    errors: list[str] = []
    warnings: list[str] = []
    limits = get_target_limits(target)
    caps = get_platform_capabilities(target)
    contents = bundle.contents

    if bundle.target is not None and bundle.target.platform != target:
        errors.append(f"Bundle was already transformed for {bundle.target.platform.value}")

    instructions = contents.instructions
    instruction_limit = limits[ContentType.instructions]
    if instructions is not None and instruction_limit is not None:
        if instructions.length > instruction_limit.hard:
            verb = (
                "summarized"
                if instruction_limit.overflow_strategy == OverflowStrategy.summarize
                else "truncated"
            )
            warnings.append(
                f"Instructions ({instructions.length} chars) exceed {target.value} limit "
                f"({instruction_limit.hard}). Will be {verb}."
            )
        elif instruction_limit.soft and instructions.length > instruction_limit.soft:
            warnings.append(
                f"Instructions ({instructions.length} chars) exceed recommended length for "
                f"{target.value} ({instruction_limit.soft})"
            )

    memories = contents.memories
    if memories is not None:
        errors.extend(_duplicate_ids("memory", (m.id for m in memories.entries)))
        if memories.count > 0 and not caps.has_memory:
            warnings.append(
                f"{target.value} doesn't support explicit memories. "
                "Will be converted to knowledge document."
            )
        elif caps.memory_limit is not None and memories.count > caps.memory_limit:
            warnings.append(
                f"Memory count ({memories.count}) exceeds {target.value} limit ({caps.memory_limit})"
            )

    conversations = contents.conversations
    if conversations is not None and len(conversations.summaries) > conversations.count:
        errors.append(
            f"Conversation summaries ({len(conversations.summaries)}) outnumber "
            f"conversations ({conversations.count})"
        )

    files = contents.files
    if files is not None:
        errors.extend(_duplicate_ids("file", (f.id for f in files.files)))
        errors.extend(f"File {f.id} has no path" for f in files.files if not f.path.strip())
        if files.count > 0 and not caps.has_files:
            warnings.append(
                f"{target.value} doesn't support file uploads. {files.count} files cannot be migrated."
            )
        elif caps.file_size_limit is not None:
            warnings.extend(
                f'File "{f.filename}" ({format_bytes(f.size)}) exceeds {target.value} limit'
                for f in files.files
                if f.size > caps.file_size_limit
            )

    bots = contents.custom_bots
    if bots is not None:
        errors.extend(_duplicate_ids("custom bot", (b.id for b in bots.bots)))
        if bots.count > 0 and not caps.has_custom_bots and not caps.has_projects:
            warnings.append(
                f"{target.value} doesn't support custom bots. "
                f"{bots.count} bots will need manual recreation."
            )

    return BundleValidation(valid=not errors, warnings=warnings, errors=errors)


def _duplicate_ids(kind: str, ids: Iterable[str]) -> list[str]:
    counts = Counter(ids)
    return [f"Duplicate {kind} id: {item_id}" for item_id, n in counts.items() if n > 1]


__all__ = [
    "BundleValidation",
    "ChatGPTInstructions",
    "DEFAULT_CATEGORY",
    "DocumentMemory",
    "ELLIPSIS",
    "MAX_KEY_POINTS",
    "ProjectConfig",
    "TruncationResult",
    "collect_key_points",
    "convert_chatgpt_instructions_to_claude",
    "convert_claude_instructions_to_chatgpt",
    "convert_document_to_memories",
    "convert_memories_to_document",
    "dropped_paragraphs",
    "extract_context_from_conversations",
    "format_chatgpt_instructions",
    "intelligent_truncate",
    "map_bot_to_project",
    "map_project_to_bot",
    "parse_chatgpt_instructions",
    "split_content",
    "validate_bundle_for_target",
]

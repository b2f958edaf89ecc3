"""Compatibility analyzer: what survives a migration, what is adapted, what is lost.

The analyzer is independent of any transformer so it can back a dry run or a
review step before anything is written to the target.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ferry.capabilities import format_bytes, get_platform_capabilities, platform_name
from ferry.models.bundle import (
    ConversationData,
    CustomBotData,
    FileData,
    InstructionData,
    MemoryData,
    MigrationBundle,
)
from ferry.models.compatibility import (
    CompatibilityItem,
    CompatibilityItemType,
    CompatibilityReport,
    CompatibilityStatus,
    CompatibilitySummary,
    Feasibility,
)
from ferry.models.platforms import Platform

logger = logging.getLogger(__name__)

PARTIAL_INCOMPATIBLE_RATIO = 0.3
COMPLEX_INCOMPATIBLE_RATIO = 0.1
COMPLEX_PERFECT_RATIO = 0.5
EASY_PERFECT_RATIO = 0.8


@dataclass(frozen=True)
class FeatureCompatibility:
    """How one source capability (a GPT toggle) maps onto each target."""

    display_name: str
    targets: dict[Platform, CompatibilityStatus]
    adaptation_note: str | None = None
    alternatives: dict[Platform, str] = field(default_factory=dict)


FEATURE_COMPATIBILITY: dict[str, FeatureCompatibility] = {
    "dalle": FeatureCompatibility(
        display_name="DALL-E Integration",
        targets={
            Platform.claude: CompatibilityStatus.incompatible,
            Platform.gemini: CompatibilityStatus.adapted,
            Platform.copilot: CompatibilityStatus.adapted,
        },
        adaptation_note="Image generation is provided by a different service",
        alternatives={
            Platform.claude: "Use MCP image generation tools",
            Platform.gemini: "Use Imagen integration",
            Platform.copilot: "Use DALL-E via Bing",
        },
    ),
    "code_interpreter": FeatureCompatibility(
        display_name="Code Interpreter",
        targets={
            Platform.claude: CompatibilityStatus.adapted,
            Platform.gemini: CompatibilityStatus.incompatible,
            Platform.copilot: CompatibilityStatus.incompatible,
        },
        adaptation_note="Claude uses Artifacts for code execution",
        alternatives={Platform.claude: "Use Claude Artifacts"},
    ),
    "browsing": FeatureCompatibility(
        display_name="Web Browsing",
        targets={
            Platform.claude: CompatibilityStatus.adapted,
            Platform.gemini: CompatibilityStatus.perfect,
            Platform.copilot: CompatibilityStatus.perfect,
        },
        adaptation_note="Claude web browsing works differently",
    ),
    "plugins": FeatureCompatibility(
        display_name="ChatGPT Plugins",
        targets={
            Platform.claude: CompatibilityStatus.adapted,
            Platform.gemini: CompatibilityStatus.incompatible,
            Platform.copilot: CompatibilityStatus.incompatible,
        },
        adaptation_note="Claude uses MCP for external integrations",
        alternatives={Platform.claude: "See Claude MCP alternatives"},
    ),
}


class CompatibilityAnalyzer:
    """Classifies every item of a bundle against one target platform."""

    def __init__(self, source: Platform | str, target: Platform | str) -> None:
        self.source = Platform(source)
        self.target = Platform(target)
        self._target_caps = get_platform_capabilities(self.target)
        self._target_name = platform_name(self.target)

    async def analyze(self, bundle: MigrationBundle) -> CompatibilityReport:
        return self.analyze_sync(bundle)

    def analyze_sync(self, bundle: MigrationBundle) -> CompatibilityReport:
        contents = bundle.contents
        items: list[CompatibilityItem] = []
        if contents.instructions is not None:
            items.extend(self._analyze_instructions(contents.instructions))
        if contents.memories is not None:
            items.extend(self._analyze_memories(contents.memories))
        if contents.conversations is not None:
            items.extend(self._analyze_conversations(contents.conversations))
        if contents.files is not None:
            items.extend(self._analyze_files(contents.files))
        if contents.custom_bots is not None:
            items.extend(self._analyze_custom_bots(contents.custom_bots))

        summary = CompatibilitySummary.from_items(items)
        report = CompatibilityReport(
            source=self.source,
            target=self.target,
            summary=summary,
            items=items,
            recommendations=generate_recommendations(items, self.source, self.target),
            feasibility=calculate_feasibility(summary),
        )
        logger.debug(
            "Compatibility %s -> %s: %d perfect, %d adapted, %d incompatible (%s)",
            self.source,
            self.target,
            summary.perfect,
            summary.adapted,
            summary.incompatible,
            report.feasibility,
        )
        return report

    def _analyze_instructions(self, instructions: InstructionData) -> list[CompatibilityItem]:
        limit = self._target_caps.instruction_limit
        items: list[CompatibilityItem] = []
        if instructions.length <= limit:
            items.append(
                CompatibilityItem(
                    type=CompatibilityItemType.instructions,
                    name="Custom Instructions",
                    status=CompatibilityStatus.perfect,
                    reason="Will transfer without modification",
                    source_ref="instructions",
                )
            )
        else:
            items.append(
                CompatibilityItem(
                    type=CompatibilityItemType.instructions,
                    name="Custom Instructions",
                    status=CompatibilityStatus.adapted,
                    reason=(
                        f"Content exceeds {self._target_name} limit "
                        f"({instructions.length}/{limit} chars)"
                    ),
                    action="Content will be summarized or split",
                    source_ref="instructions",
                )
            )
        return items

    def _analyze_memories(self, memories: MemoryData) -> list[CompatibilityItem]:
        if memories.count == 0:
            return []
        name = f"Memory Entries ({memories.count} entries)"
        caps = self._target_caps

        if not caps.has_memory and caps.has_projects:
            return [
                CompatibilityItem(
                    type=CompatibilityItemType.memory,
                    name=name,
                    status=CompatibilityStatus.adapted,
                    reason=f"{self._target_name} uses project knowledge instead of explicit memories",
                    action="Memories will be converted to project knowledge files",
                    source_ref="memories",
                )
            ]
        if not caps.has_memory:
            return [
                CompatibilityItem(
                    type=CompatibilityItemType.memory,
                    name=name,
                    status=CompatibilityStatus.adapted,
                    reason=f"{self._target_name} doesn't support explicit memories",
                    action="Memories will be included in system instructions",
                    source_ref="memories",
                )
            ]
        if caps.memory_limit is not None and memories.count > caps.memory_limit:
            return [
                CompatibilityItem(
                    type=CompatibilityItemType.memory,
                    name=name,
                    status=CompatibilityStatus.adapted,
                    reason=f"Exceeds memory limit ({memories.count}/{caps.memory_limit})",
                    action="Most recently used memories are kept; the rest are dropped",
                    source_ref="memories",
                )
            ]
        return [
            CompatibilityItem(
                type=CompatibilityItemType.memory,
                name=name,
                status=CompatibilityStatus.perfect,
                reason="Will transfer as native memories",
                source_ref="memories",
            )
        ]

    def _analyze_conversations(self, conversations: ConversationData) -> list[CompatibilityItem]:
        if conversations.count == 0:
            return []
        return [
            CompatibilityItem(
                type=CompatibilityItemType.conversation,
                name=(
                    f"Conversations ({conversations.count} chats, "
                    f"{conversations.message_count} messages)"
                ),
                status=CompatibilityStatus.adapted,
                reason="Conversation history is preserved but cannot be imported as active chats",
                action="Conversations will be archived in your snapshot",
                source_ref="conversations",
            )
        ]

    def _analyze_files(self, files: FileData) -> list[CompatibilityItem]:
        caps = self._target_caps
        items: list[CompatibilityItem] = []
        for entry in files.files:
            ref = f"files/{entry.id}"
            if not caps.has_files:
                items.append(
                    CompatibilityItem(
                        type=CompatibilityItemType.file,
                        name=entry.filename,
                        status=CompatibilityStatus.incompatible,
                        reason=f"{self._target_name} doesn't support file uploads",
                        action="File cannot be migrated",
                        source_ref=ref,
                    )
                )
                continue

            limit = caps.file_size_limit
            if limit is None or entry.size <= limit:
                items.append(
                    CompatibilityItem(
                        type=CompatibilityItemType.file,
                        name=entry.filename,
                        status=CompatibilityStatus.perfect,
                        reason="Will transfer without modification",
                        source_ref=ref,
                    )
                )
                continue

            too_large = entry.size > limit * 2
            items.append(
                CompatibilityItem(
                    type=CompatibilityItemType.file,
                    name=entry.filename,
                    status=CompatibilityStatus.incompatible if too_large else CompatibilityStatus.adapted,
                    reason=(
                        f"File size ({format_bytes(entry.size)}) exceeds {self._target_name} "
                        f"limit ({format_bytes(limit)})"
                    ),
                    action=(
                        "File cannot be migrated"
                        if too_large
                        else "File may need to be compressed or split"
                    ),
                    source_ref=ref,
                )
            )
        return items

    def _analyze_custom_bots(self, custom_bots: CustomBotData) -> list[CompatibilityItem]:
        caps = self._target_caps
        items: list[CompatibilityItem] = []
        for bot in custom_bots.bots:
            ref = f"custom_bots/{bot.id}"
            if not caps.has_custom_bots and not caps.has_projects:
                items.append(
                    CompatibilityItem(
                        type=CompatibilityItemType.custom_bot,
                        name=bot.name,
                        status=CompatibilityStatus.incompatible,
                        reason=f"{self._target_name} has neither custom bots nor projects",
                        action=f'Recreate "{bot.name}" manually',
                        source_ref=ref,
                    )
                )
            elif len(bot.instructions) <= caps.instruction_limit:
                items.append(
                    CompatibilityItem(
                        type=CompatibilityItemType.custom_bot,
                        name=bot.name,
                        status=CompatibilityStatus.perfect,
                        reason="Bot configuration will transfer",
                        source_ref=ref,
                    )
                )
            else:
                items.append(
                    CompatibilityItem(
                        type=CompatibilityItemType.custom_bot,
                        name=bot.name,
                        status=CompatibilityStatus.adapted,
                        reason="Bot instructions exceed target limit",
                        action="Instructions will be summarized",
                        source_ref=ref,
                    )
                )

            for capability in bot.capabilities:
                feature = FEATURE_COMPATIBILITY.get(capability)
                if feature is None:
                    continue
                items.append(self._feature_item(capability, feature, ref))
        return items

    def _feature_item(
        self, capability: str, feature: FeatureCompatibility, bot_ref: str
    ) -> CompatibilityItem:
        status = feature.targets.get(self.target, CompatibilityStatus.incompatible)
        if status == CompatibilityStatus.incompatible:
            reason = f"Not available in {self._target_name}"
        elif status == CompatibilityStatus.perfect:
            reason = f"Supported natively by {self._target_name}"
        else:
            reason = feature.adaptation_note or "Works differently in target"

        action = feature.alternatives.get(self.target)
        if status == CompatibilityStatus.adapted and action is None:
            action = feature.adaptation_note or "Review how this works on the target"
        return CompatibilityItem(
            type=CompatibilityItemType.feature,
            name=feature.display_name,
            status=status,
            reason=reason,
            action=action,
            source_ref=f"{bot_ref}/capabilities/{capability}",
        )


def calculate_feasibility(summary: CompatibilitySummary) -> Feasibility:
    if summary.total == 0:
        return Feasibility.easy

    perfect_ratio = summary.perfect / summary.total
    incompatible_ratio = summary.incompatible / summary.total
    if incompatible_ratio > PARTIAL_INCOMPATIBLE_RATIO:
        return Feasibility.partial
    if incompatible_ratio > COMPLEX_INCOMPATIBLE_RATIO or perfect_ratio < COMPLEX_PERFECT_RATIO:
        return Feasibility.complex
    if perfect_ratio > EASY_PERFECT_RATIO:
        return Feasibility.easy
    return Feasibility.moderate


def generate_recommendations(
    items: list[CompatibilityItem], source: Platform, target: Platform
) -> list[str]:
    """Scan classified items for known problem patterns; result is deduplicated."""
    recommendations: list[str] = []

    if any(i.status == CompatibilityStatus.adapted for i in items):
        recommendations.append("Review adapted items before finalizing migration")

    feature_issue = any(
        i.type == CompatibilityItemType.feature
        and i.status != CompatibilityStatus.perfect
        and ("plugin" in i.name.lower() or "dall-e" in i.name.lower())
        for i in items
    )
    if feature_issue and target == Platform.claude:
        recommendations.append(
            f"Your {platform_name(source)} plugins won't transfer - see Claude MCP alternatives"
        )

    memory_item = next((i for i in items if i.type == CompatibilityItemType.memory), None)
    if memory_item is not None and memory_item.status == CompatibilityStatus.adapted:
        if get_platform_capabilities(target).has_memory:
            recommendations.append("Some memories will be dropped - review which ones are kept")
        else:
            recommendations.append(
                "Memories will be converted to project knowledge - review the mapping"
            )

    instruction_item = next(
        (i for i in items if i.type == CompatibilityItemType.instructions), None
    )
    if instruction_item is not None and instruction_item.status == CompatibilityStatus.adapted:
        recommendations.append("Review and approve the instruction reformatting")

    large_files = [
        i
        for i in items
        if i.type == CompatibilityItemType.file and i.status != CompatibilityStatus.perfect
    ]
    if large_files:
        recommendations.append(
            f"{len(large_files)} file(s) may need manual handling due to size limits"
        )

    recommendations.extend(
        i.action
        for i in items
        if i.status == CompatibilityStatus.incompatible and i.action
    )
    return list(dict.fromkeys(recommendations))


async def analyze_compatibility(
    bundle: MigrationBundle, target: Platform | str
) -> CompatibilityReport:
    return await CompatibilityAnalyzer(bundle.source.platform, target).analyze(bundle)


# -- Formatting -------------------------------------------------------------

_STATUS_SYMBOLS = {
    CompatibilityStatus.perfect: "✓",
    CompatibilityStatus.adapted: "⚠",
    CompatibilityStatus.incompatible: "✗",
}

_TYPE_TITLES = {
    CompatibilityItemType.instructions: "Custom Instructions",
    CompatibilityItemType.memory: "Memories",
    CompatibilityItemType.conversation: "Conversations",
    CompatibilityItemType.file: "Files",
    CompatibilityItemType.custom_bot: "Custom Bots/GPTs",
    CompatibilityItemType.feature: "Features/Capabilities",
}

_FEASIBILITY_TEXT = {
    Feasibility.easy: "✓ Easy - Most items transfer cleanly",
    Feasibility.moderate: "⚠ Moderate - Some items need adaptation",
    Feasibility.complex: "⚠ Complex - Significant adaptation required",
    Feasibility.partial: "✗ Partial - Some items cannot be migrated",
}


def format_report(report: CompatibilityReport) -> str:
    """Render a report as plain text, items grouped by type."""
    width = 61
    lines = [
        "╭" + "─" * width + "╮",
        f"│  Migration: {platform_name(report.source)} → {platform_name(report.target)}".ljust(width + 1)
        + "│",
        "├" + "─" * width + "┤",
        f"│  ✓ {report.summary.perfect} items will transfer perfectly".ljust(width + 1) + "│",
        f"│  ⚠ {report.summary.adapted} items require adaptation".ljust(width + 1) + "│",
        f"│  ✗ {report.summary.incompatible} items cannot be migrated".ljust(width + 1) + "│",
        "╰" + "─" * width + "╯",
        "",
    ]

    grouped: dict[CompatibilityItemType, list[CompatibilityItem]] = {}
    for item in report.items:
        grouped.setdefault(item.type, []).append(item)

    for item_type, items in grouped.items():
        lines.append(_TYPE_TITLES[item_type])
        for index, item in enumerate(items):
            prefix = "  └─" if index == len(items) - 1 else "  ├─"
            lines.append(f"{prefix} {_STATUS_SYMBOLS[item.status]} {item.name} ({item.reason})")
        lines.append("")

    if report.recommendations:
        lines.append("Recommendations:")
        lines.extend(f"  {n}. {rec}" for n, rec in enumerate(report.recommendations, start=1))
        lines.append("")

    lines.append(f"Feasibility: {_FEASIBILITY_TEXT[report.feasibility]}")
    return "\n".join(lines)


def format_report_json(report: CompatibilityReport) -> str:
    return report.model_dump_json(indent=2)


__all__ = [
    "FEATURE_COMPATIBILITY",
    "CompatibilityAnalyzer",
    "FeatureCompatibility",
    "analyze_compatibility",
    "calculate_feasibility",
    "format_report",
    "format_report_json",
    "generate_recommendations",
]

from __future__ import annotations

import json

import pytest
from ferry.compatibility import (
    CompatibilityAnalyzer,
    analyze_compatibility,
    calculate_feasibility,
    format_report,
    format_report_json,
)
from ferry.models.bundle import CustomBotEntry
from ferry.models.compatibility import (
    CompatibilityItemType,
    CompatibilityStatus,
    CompatibilitySummary,
    Feasibility,
)
from ferry.models.platforms import Platform

from tests.helpers import MB, empty_bundle, make_bundle


def _status_by_name(report, item_type: CompatibilityItemType) -> dict[str, CompatibilityStatus]:
    return {i.name: i.status for i in report.items if i.type == item_type}


class TestAnalyzer:
    @pytest.mark.asyncio
    async def test_file_size_classification(self) -> None:
        bundle = make_bundle(
            files=[("small.txt", 1024), ("big.bin", 40 * MB), ("huge.bin", 70 * MB)],
        )
        report = await analyze_compatibility(bundle, Platform.claude)

        assert _status_by_name(report, CompatibilityItemType.file) == {
            "small.txt": CompatibilityStatus.perfect,
            "big.bin": CompatibilityStatus.adapted,
            "huge.bin": CompatibilityStatus.incompatible,
        }
        assert "2 file(s) may need manual handling due to size limits" in report.recommendations

    def test_memories_to_claude_are_adapted_to_knowledge(self) -> None:
        report = CompatibilityAnalyzer(Platform.chatgpt, Platform.claude).analyze_sync(make_bundle(memories=5))
        memory = next(i for i in report.items if i.type == CompatibilityItemType.memory)
        assert memory.status == CompatibilityStatus.adapted
        assert memory.name == "Memory Entries (5 entries)"
        assert "Memories will be converted to project knowledge - review the mapping" in report.recommendations

    def test_memories_over_chatgpt_limit_are_adapted(self) -> None:
        bundle = make_bundle(Platform.claude, memories=120)
        report = CompatibilityAnalyzer(Platform.claude, Platform.chatgpt).analyze_sync(bundle)
        memory = next(i for i in report.items if i.type == CompatibilityItemType.memory)
        assert memory.status == CompatibilityStatus.adapted
        assert "Some memories will be dropped - review which ones are kept" in report.recommendations

    def test_memories_within_chatgpt_limit_are_perfect(self) -> None:
        bundle = make_bundle(Platform.claude, memories=10)
        report = CompatibilityAnalyzer(Platform.claude, Platform.chatgpt).analyze_sync(bundle)
        memory = next(i for i in report.items if i.type == CompatibilityItemType.memory)
        assert memory.status == CompatibilityStatus.perfect

    def test_long_instructions_are_adapted(self) -> None:
        bundle = make_bundle(Platform.claude, instructions="x" * 3000)
        report = CompatibilityAnalyzer(Platform.claude, Platform.chatgpt).analyze_sync(bundle)
        item = next(i for i in report.items if i.type == CompatibilityItemType.instructions)
        assert item.status == CompatibilityStatus.adapted
        assert item.reason == "Content exceeds ChatGPT limit (3000/1500 chars)"

    def test_conversations_are_adapted(self) -> None:
        report = CompatibilityAnalyzer(Platform.chatgpt, Platform.claude).analyze_sync(
            make_bundle(conversations=4)
        )
        item = next(i for i in report.items if i.type == CompatibilityItemType.conversation)
        assert item.status == CompatibilityStatus.adapted
        assert item.name == "Conversations (4 chats, 40 messages)"

    def test_bot_features_and_deduplicated_recommendations(self) -> None:
        bots = [
            CustomBotEntry(id="g1", name="Artist", instructions="Draw.", capabilities=["dalle", "browsing"]),
            CustomBotEntry(id="g2", name="Painter", instructions="Paint.", capabilities=["dalle"]),
        ]
        report = CompatibilityAnalyzer(Platform.chatgpt, Platform.claude).analyze_sync(make_bundle(bots=bots))

        features = [i for i in report.items if i.type == CompatibilityItemType.feature]
        assert [(f.name, f.status) for f in features] == [
            ("DALL-E Integration", CompatibilityStatus.incompatible),
            ("Web Browsing", CompatibilityStatus.adapted),
            ("DALL-E Integration", CompatibilityStatus.incompatible),
        ]
        assert report.recommendations.count("Use MCP image generation tools") == 1
        assert "Your ChatGPT plugins won't transfer - see Claude MCP alternatives" in report.recommendations
        assert len(report.recommendations) == len(set(report.recommendations))

    def test_adapted_items_always_have_action(self) -> None:
        bots = [CustomBotEntry(id="g1", name="Big", instructions="i" * 9000, capabilities=["browsing", "plugins"])]
        bundle = make_bundle(
            instructions="x" * 9000,
            memories=5,
            conversations=2,
            files=[("big.bin", 40 * MB)],
            bots=bots,
        )
        report = CompatibilityAnalyzer(Platform.chatgpt, Platform.claude).analyze_sync(bundle)
        adapted = [i for i in report.items if i.status == CompatibilityStatus.adapted]
        assert adapted
        assert all(i.action for i in adapted)

    def test_target_without_bots_or_projects(self) -> None:
        bots = [CustomBotEntry(id="g1", name="Helper", instructions="Help.")]
        report = CompatibilityAnalyzer(Platform.chatgpt, Platform.gemini).analyze_sync(make_bundle(bots=bots))
        bot = next(i for i in report.items if i.type == CompatibilityItemType.custom_bot)
        assert bot.status == CompatibilityStatus.incompatible
        assert 'Recreate "Helper" manually' in report.recommendations

    def test_analysis_is_idempotent(self) -> None:
        bundle = make_bundle(memories=5, conversations=2, files=[("big.bin", 40 * MB)])
        analyzer = CompatibilityAnalyzer(Platform.chatgpt, Platform.claude)
        first = analyzer.analyze_sync(bundle)
        second = analyzer.analyze_sync(bundle)
        assert first.model_dump(exclude={"generated_at"}) == second.model_dump(exclude={"generated_at"})

    def test_summary_counts_items(self) -> None:
        report = CompatibilityAnalyzer(Platform.chatgpt, Platform.claude).analyze_sync(
            make_bundle(memories=5, files=[("a.txt", 10)])
        )
        summary = report.summary
        assert summary.total == len(report.items)
        assert summary.perfect + summary.adapted + summary.incompatible == summary.total

    @pytest.mark.asyncio
    async def test_empty_bundle_is_easy(self) -> None:
        report = await analyze_compatibility(empty_bundle(), Platform.claude)
        assert report.summary.total == 0
        assert report.feasibility == Feasibility.easy
        assert report.recommendations == []


class TestFeasibility:
    @pytest.mark.parametrize(
        ("perfect", "adapted", "incompatible", "expected"),
        [
            (0, 0, 0, Feasibility.easy),
            (9, 1, 0, Feasibility.easy),
            (8, 2, 0, Feasibility.moderate),
            (7, 3, 0, Feasibility.moderate),
            (4, 6, 0, Feasibility.complex),
            (8, 0, 2, Feasibility.complex),
            (7, 0, 3, Feasibility.complex),
            (6, 0, 4, Feasibility.partial),
        ],
    )
    def test_thresholds(self, perfect: int, adapted: int, incompatible: int, expected: Feasibility) -> None:
        summary = CompatibilitySummary(
            perfect=perfect,
            adapted=adapted,
            incompatible=incompatible,
            total=perfect + adapted + incompatible,
        )
        assert calculate_feasibility(summary) == expected


class TestFormatting:
    def test_text_report(self) -> None:
        bundle = make_bundle(files=[("small.txt", 1024), ("huge.bin", 70 * MB)])
        report = CompatibilityAnalyzer(Platform.chatgpt, Platform.claude).analyze_sync(bundle)

        text = format_report(report)

        assert "Migration: ChatGPT → Claude" in text
        assert "Files" in text
        assert "✗ huge.bin" in text
        assert "✓ small.txt" in text
        assert "Recommendations:" in text
        assert text.splitlines()[-1].startswith("Feasibility: ")

    def test_json_report(self) -> None:
        report = CompatibilityAnalyzer(Platform.chatgpt, Platform.claude).analyze_sync(make_bundle())
        payload = json.loads(format_report_json(report))
        assert payload["source"] == "chatgpt"
        assert payload["target"] == "claude"
        assert payload["feasibility"] == report.feasibility.value
        assert len(payload["items"]) == report.summary.total

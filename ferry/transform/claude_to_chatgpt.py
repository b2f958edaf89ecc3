"""Claude → ChatGPT.

The system prompt is squeezed into ChatGPT's two instruction boxes, with the
remainder folded into memories. Project knowledge documents become memory
entries and projects become GPT creation guides (GPTs cannot be created
through an API).
"""

from __future__ import annotations

from ferry.models.bundle import Contents, CustomBotData, InstructionData, MemoryEntry, MigrationBundle
from ferry.models.platforms import ContentType, Platform
from ferry.transform.base import BaseTransformer, ReshapedInstructions
from ferry.transform.rules import (
    convert_claude_instructions_to_chatgpt,
    convert_document_to_memories,
    map_project_to_bot,
)

EXTRA_PROJECT_KNOWLEDGE = "project_knowledge"


class ClaudeToChatGPTTransformer(BaseTransformer):
    source = Platform.claude
    target = Platform.chatgpt

    def pair_recommendations(self, bundle: MigrationBundle) -> list[str]:
        contents = bundle.contents
        recommendations: list[str] = []
        limit = self.capabilities.instruction_limit
        if contents.instructions is not None and contents.instructions.length > limit:
            recommendations.append(
                f"The system prompt is longer than ChatGPT allows ({limit} chars). "
                "Overflow will become memories - review them after migration."
            )
        if contents.custom_bots is not None and contents.custom_bots.count > 0:
            recommendations.append(
                "Claude projects cannot be created as GPTs automatically. "
                "Follow the generated guides to recreate them."
            )
        return recommendations

    def reshape_instructions(self, instructions: InstructionData) -> ReshapedInstructions:
        limit = self.limits[ContentType.instructions]
        hard = limit.hard if limit is not None else self.capabilities.instruction_limit
        converted = convert_claude_instructions_to_chatgpt(instructions.content, hard)
        rendered = converted.render() or instructions.content[:hard]

        warnings: list[str] = []
        if converted.overflow:
            warnings.append(
                f"System prompt exceeded {self.target_name} limit. "
                f"{len(converted.overflow)} characters stored as overflow."
            )
        return ReshapedInstructions(content=rendered, overflow=converted.overflow, warnings=warnings)

    def knowledge_memories(self, contents: Contents) -> list[MemoryEntry]:
        document = contents.extras.get(EXTRA_PROJECT_KNOWLEDGE)
        if not isinstance(document, str) or not document.strip():
            return []
        return [
            MemoryEntry(
                id=f"project_knowledge_{index}",
                content=item.content,
                category=item.category,
                source=EXTRA_PROJECT_KNOWLEDGE,
            )
            for index, item in enumerate(convert_document_to_memories(document), start=1)
        ]

    def transform_bots(
        self, bots: CustomBotData, contents: Contents
    ) -> tuple[CustomBotData | None, list[str]]:
        if bots.count == 0:
            return bots, []
        guides = CustomBotData(bots=[map_project_to_bot(bot) for bot in bots.bots])
        return guides, [
            f"{bots.count} Claude project(s) need to be recreated as GPTs manually; "
            "creation guides were generated"
        ]


__all__ = ["ClaudeToChatGPTTransformer", "EXTRA_PROJECT_KNOWLEDGE"]

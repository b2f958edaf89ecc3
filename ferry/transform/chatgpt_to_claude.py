"""ChatGPT → Claude.

Custom instructions become a sectioned system prompt, memories become a
project knowledge document, and GPTs become project configurations.
"""

from __future__ import annotations

from ferry.models.bundle import Contents, CustomBotData, InstructionData, MemoryData, MigrationBundle
from ferry.models.platforms import ContentType, Platform
from ferry.transform.base import BaseTransformer, ReshapedInstructions
from ferry.transform.rules import (
    convert_chatgpt_instructions_to_claude,
    convert_memories_to_document,
    map_bot_to_project,
    parse_chatgpt_instructions,
)

EXTRA_MEMORIES_DOCUMENT = "memories_document"
EXTRA_PROJECTS = "projects"
MIGRATED_CATEGORY = "Migrated"
SHORT_INSTRUCTIONS = 500
MANY_MEMORIES = 20
LARGE_MEMORY_SET = 50

# GPT toggles with a native Claude project equivalent.
_CLAUDE_TOGGLES = frozenset({"browsing"})


class ChatGPTToClaudeTransformer(BaseTransformer):
    source = Platform.chatgpt
    target = Platform.claude

    def pair_recommendations(self, bundle: MigrationBundle) -> list[str]:
        contents = bundle.contents
        recommendations: list[str] = []
        if contents.instructions is not None and contents.instructions.length < SHORT_INSTRUCTIONS:
            recommendations.append(
                "Claude supports longer system prompts. Consider expanding instructions for better results."
            )
        if contents.memories is not None and contents.memories.count > MANY_MEMORIES:
            recommendations.append(
                "Many memories will be consolidated into a document. "
                "Review the knowledge file after migration."
            )
        if contents.custom_bots is not None and contents.custom_bots.count > 1:
            recommendations.append(
                "Multiple GPTs found. Each will become a separate Claude project. "
                "You may want to consolidate."
            )
        return recommendations

    def reshape_instructions(self, instructions: InstructionData) -> ReshapedInstructions:
        parsed = parse_chatgpt_instructions(instructions.content)
        if parsed is None:
            return ReshapedInstructions(content=instructions.content)
        about_user, about_model = parsed
        return ReshapedInstructions(
            content=convert_chatgpt_instructions_to_claude(about_user, about_model)
        )

    def transform_memories_without_list(
        self, memories: MemoryData, contents: Contents
    ) -> tuple[MemoryData | None, list[str]]:
        if memories.count == 0:
            return memories, []

        contents.extras[EXTRA_MEMORIES_DOCUMENT] = convert_memories_to_document(memories.entries)
        tagged = MemoryData(
            entries=[
                entry.model_copy(update={"category": entry.category or MIGRATED_CATEGORY})
                for entry in memories.entries
            ]
        )
        warnings = [
            f"{memories.count} memories converted to a {self.target_name} project knowledge document"
        ]
        if memories.count > LARGE_MEMORY_SET:
            warnings.append(
                f"Large number of memories ({memories.count}) converted to document. Review recommended."
            )
        return tagged, warnings

    def transform_bots(
        self, bots: CustomBotData, contents: Contents
    ) -> tuple[CustomBotData | None, list[str]]:
        if bots.count == 0:
            return bots, []

        limit = self.limits[ContentType.instructions]
        instruction_limit = limit.hard if limit is not None else self.capabilities.instruction_limit
        projects = []
        mapped = []
        warnings: list[str] = []
        for bot in bots.bots:
            project = map_bot_to_project(bot, instruction_limit, _CLAUDE_TOGGLES)
            if project.truncated:
                warnings.append(
                    f'Instructions for GPT "{bot.name}" were shortened to fit a {self.target_name} project'
                )
            projects.append(
                {
                    "project_name": project.project_name,
                    "description": project.description,
                    "system_prompt": project.system_prompt,
                    "knowledge_files": project.knowledge_files,
                }
            )
            mapped.append(
                bot.model_copy(
                    update={"instructions": project.system_prompt, "description": project.description}
                )
            )

        contents.extras[EXTRA_PROJECTS] = projects
        warnings.append(
            f"{bots.count} GPT(s) mapped to {self.target_name} project configurations. "
            "Manual project creation required."
        )
        return CustomBotData(bots=mapped), warnings


__all__ = ["ChatGPTToClaudeTransformer", "EXTRA_MEMORIES_DOCUMENT", "EXTRA_PROJECTS"]

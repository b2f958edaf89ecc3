from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from ferry.models.bundle import utc_now
from ferry.models.platforms import Platform


class CompatibilityStatus(StrEnum):
    perfect = "perfect"
    adapted = "adapted"
    incompatible = "incompatible"


class CompatibilityItemType(StrEnum):
    instructions = "instructions"
    memory = "memory"
    conversation = "conversation"
    file = "file"
    custom_bot = "custom_bot"
    feature = "feature"


class Feasibility(StrEnum):
    easy = "easy"
    moderate = "moderate"
    complex = "complex"
    partial = "partial"


class CompatibilityItem(BaseModel):
    type: CompatibilityItemType
    name: str
    status: CompatibilityStatus
    reason: str
    action: str | None = None
    """Always set for adapted items."""
    source_ref: str | None = None


class CompatibilitySummary(BaseModel):
    perfect: int = 0
    adapted: int = 0
    incompatible: int = 0
    total: int = 0

    @classmethod
    def from_items(cls, items: list[CompatibilityItem]) -> CompatibilitySummary:
        perfect = sum(1 for i in items if i.status == CompatibilityStatus.perfect)
        adapted = sum(1 for i in items if i.status == CompatibilityStatus.adapted)
        incompatible = sum(1 for i in items if i.status == CompatibilityStatus.incompatible)
        return cls(perfect=perfect, adapted=adapted, incompatible=incompatible, total=len(items))


class CompatibilityReport(BaseModel):
    source: Platform
    target: Platform
    generated_at: datetime = Field(default_factory=utc_now)
    summary: CompatibilitySummary
    items: list[CompatibilityItem] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    feasibility: Feasibility


__all__ = [
    "CompatibilityItem",
    "CompatibilityItemType",
    "CompatibilityReport",
    "CompatibilityStatus",
    "CompatibilitySummary",
    "Feasibility",
]

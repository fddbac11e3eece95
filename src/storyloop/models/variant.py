"""Content block and variant models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class VariantClassification(str, Enum):
    """Display category of a variant, derived from what it was written for."""

    GAP_FILL = "gap-fill"
    JOB_TARGET = "job-target"
    FALLBACK = "fallback"


CreatedBy = Literal["ai", "human", "human-edited-ai"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentBlock(BaseModel):
    """Canonical base text of a reusable story or paragraph."""

    id: str = Field(..., description="Stable identifier of the story/content block")

    title: str = Field(default="", description="Human-readable title")

    content: str = Field(..., description="Base text that variants rephrase")

    model_config = {"frozen": True}  # Changed only through an explicit edit (model_copy)


class Variant(BaseModel):
    """An alternate phrasing of a content block."""

    id: str = Field(..., description="Unique variant identifier")

    content: str = Field(..., description="Variant text")

    filled_gap: Optional[str] = Field(
        default=None,
        description="Reference to the gap this variant was written to fill"
    )

    target_label: Optional[str] = Field(
        default=None,
        description="What the variant was developed for (e.g. a job title)"
    )

    created_by: CreatedBy = Field(default="human", description="Who authored the variant")

    tags: set[str] = Field(default_factory=set, description="Free-form tags")

    created_at: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}

    @property
    def classification(self) -> VariantClassification:
        """Derived classification (never stored, so it cannot drift)."""
        if self.filled_gap:
            return VariantClassification.GAP_FILL
        if self.target_label:
            return VariantClassification.JOB_TARGET
        return VariantClassification.FALLBACK

    def label(self, index: int) -> str:
        """Display label; ``index`` is the variant's 0-based position in the list shown."""
        if self.filled_gap:
            return f"Fills Gap: {self.filled_gap}"
        if self.target_label:
            return f"For {self.target_label}"
        author = "AI" if self.created_by == "ai" else "User"
        return f"Variant #{index + 1} ({author})"

"""Gap model for detected content shortfalls."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class GapStatus(str, Enum):
    """Lifecycle states of a gap. Transitions only move forward."""

    OPEN = "open"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class Gap(BaseModel):
    """A shortfall between current content and a target requirement."""

    id: str = Field(..., description="Gap identifier, unique within its scope")

    scope: str = Field(
        ...,
        description="Content region the gap applies to (e.g. 'role-description', 'p1')"
    )

    severity: Literal["high", "medium", "low"] = Field(default="medium")

    description: str = Field(..., description="What is missing")

    suggestion: str = Field(default="", description="How to address it")

    related_variants: list[str] = Field(
        default_factory=list,
        description="Variant ids the analysis associated with this gap"
    )

    status: GapStatus = Field(
        default=GapStatus.OPEN,
        description="Owned by GapTracker; collaborators never supply it"
    )

    model_config = {"frozen": False}  # GapTracker advances status in place

"""Workflow session state for the human-in-the-loop tailoring flow."""

from datetime import datetime, timezone
from enum import IntEnum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class WorkflowStep(IntEnum):
    """The fixed, ordered steps of a tailoring session."""

    SELECT_VARIANT = 0
    GAP_ANALYSIS = 1
    COMPLIANCE_ASSESSMENT = 2
    ROLE_ASSESSMENT = 3
    CONTENT_GENERATION = 4
    REVIEW_AND_EDIT = 5

    @property
    def title(self) -> str:
        return STEP_TITLES[self]


STEP_TITLES = {
    WorkflowStep.SELECT_VARIANT: "Select Variant",
    WorkflowStep.GAP_ANALYSIS: "Gap Analysis",
    WorkflowStep.COMPLIANCE_ASSESSMENT: "ATS Assessment",
    WorkflowStep.ROLE_ASSESSMENT: "Role Assessment",
    WorkflowStep.CONTENT_GENERATION: "Content Generation",
    WorkflowStep.REVIEW_AND_EDIT: "Review & Edit",
}

FIRST_STEP = WorkflowStep.SELECT_VARIANT
LAST_STEP = WorkflowStep.REVIEW_AND_EDIT

WorkflowStatus = Literal["idle", "analyzing", "generating", "reviewing"]
StepState = Literal["completed", "active", "pending"]


class WorkflowSession(BaseModel):
    """Per-editing-session state. Mutated only by WorkflowController."""

    current_step_index: int = Field(
        default=int(FIRST_STEP),
        ge=int(FIRST_STEP),
        le=int(LAST_STEP),
        description="0-based index into WorkflowStep"
    )

    status: WorkflowStatus = Field(default="idle")

    selected_variant_id: Optional[str] = Field(default=None)

    working_content: Optional[str] = Field(
        default=None,
        description="Text under review; starts as the selected variant's content"
    )

    has_unsaved_changes: bool = Field(
        default=False,
        description="Working content differs from what was last saved, or a fresh draft was recovered"
    )

    finalized: bool = Field(
        default=False,
        description="Set once content has been emitted to the host; the session accepts no further actions"
    )

    model_config = {"frozen": False, "validate_assignment": True}

    @property
    def current_step(self) -> WorkflowStep:
        return WorkflowStep(self.current_step_index)

    def step_state(self, step: WorkflowStep) -> StepState:
        if step < self.current_step_index:
            return "completed"
        if step == self.current_step_index:
            return "active"
        return "pending"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentVersion(BaseModel):
    """One saved revision of a content block, appended on save-and-exit."""

    id: str
    content_id: str
    content: str
    version: int = Field(..., ge=1)
    change_type: Literal["creation", "modification", "variation"] = "modification"
    change_reason: Optional[str] = None
    created_by: Literal["user", "ai"] = "user"
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}

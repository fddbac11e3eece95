"""BackgroundTask model for in-flight analysis service calls."""

from pydantic import BaseModel, Field
from typing import Literal, Optional


TaskType = Literal[
    "gap_analysis",
    "compliance_scoring",
    "role_alignment",
    "content_generation",
]


class BackgroundTask(BaseModel):
    """Status of the latest call of one type, so hosts can show pending state."""

    task_type: TaskType = Field(..., description="Which collaborator operation is running")

    status: Literal["running", "completed", "failed", "superseded"] = Field(
        default="running",
        description="'superseded' when a newer request or a reset made the result stale"
    )

    request_token: int = Field(
        ...,
        ge=0,
        description="Monotonic token of the request that started this task"
    )

    error_message: Optional[str] = Field(
        default=None,
        description="Error details if status is 'failed'"
    )

    model_config = {"frozen": False}  # Allow mutation as task progresses

"""Draft model for locally persisted, unsaved edits."""

from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field


class Draft(BaseModel):
    """An edit that has not been saved to its permanent destination."""

    key: str = Field(..., description="Store key, derived from the content id")

    content: str = Field(..., description="Edited text")

    metadata: dict[str, Any] = Field(default_factory=dict)

    saved_at: datetime = Field(..., description="When the draft was written (timezone-aware)")

    def age(self, now: datetime) -> timedelta:
        return now - self.saved_at

    def is_stale(self, now: datetime, ttl: timedelta) -> bool:
        """True once the draft has reached ``ttl`` in age at ``now``."""
        return self.age(now) >= ttl

"""Pydantic data models for Storyloop."""

from storyloop.models.variant import ContentBlock, Variant, VariantClassification
from storyloop.models.gap import Gap, GapStatus
from storyloop.models.draft import Draft
from storyloop.models.workflow import ContentVersion, WorkflowSession, WorkflowStep
from storyloop.models.diff import DiffToken

__all__ = [
    "ContentBlock",
    "ContentVersion",
    "DiffToken",
    "Draft",
    "Gap",
    "GapStatus",
    "Variant",
    "VariantClassification",
    "WorkflowSession",
    "WorkflowStep",
]

"""Result models returned by the analysis/generation service.

Every result carries ``available``. A failed service call is surfaced to the
workflow as ``<Result>.unavailable()`` rather than as an exception, so the
current step stays interactive and the user can retry.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from storyloop.models.gap import Gap


class AnalysisResult(BaseModel):
    """Common base for collaborator results."""

    available: bool = Field(default=True, description="False when the service call failed")

    @classmethod
    def unavailable(cls):
        """Neutral result used when the service could not be reached."""
        return cls(available=False)


class ImprovementSuggestion(BaseModel):
    type: Literal["add-metrics", "clarify-ownership", "match-keywords", "improve-tone", "fill-gap"]
    content: str
    priority: Literal["high", "medium", "low"] = "medium"
    related_variants: list[str] = Field(default_factory=list)


class VariantCoverage(BaseModel):
    gaps_covered: list[str] = Field(default_factory=list)
    gaps_uncovered: list[str] = Field(default_factory=list)
    relevance: float = Field(default=0.0, ge=0.0, le=1.0)


class GapAnalysisResult(AnalysisResult):
    """Gaps between the content and a job description."""

    overall_score: Optional[int] = Field(default=None, ge=0, le=100)
    gaps: list[Gap] = Field(default_factory=list)
    suggestions: list[ImprovementSuggestion] = Field(default_factory=list)
    variant_coverage: dict[str, VariantCoverage] = Field(default_factory=dict)


class ComplianceScore(AnalysisResult):
    """Applicant-tracking-system compatibility of the content."""

    overall: Optional[int] = Field(default=None, ge=0, le=100)
    keyword_match: Optional[int] = Field(default=None, ge=0, le=100)
    formatting: Optional[int] = Field(default=None, ge=0, le=100)
    matched_keywords: list[str] = Field(default_factory=list)
    missing_keywords: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class CompetencyGap(BaseModel):
    competency: str
    current_strength: float = Field(..., ge=0.0, le=1.0)
    target_strength: float = Field(..., ge=0.0, le=1.0)
    suggestions: list[str] = Field(default_factory=list)

    @property
    def gap(self) -> float:
        return round(max(0.0, self.target_strength - self.current_strength), 4)


class AlignmentResult(AnalysisResult):
    """How well the content reads for a target role and level."""

    target_role: Optional[str] = None
    level: Optional[str] = None
    alignment_score: Optional[int] = Field(default=None, ge=0, le=100)
    competency_gaps: list[CompetencyGap] = Field(default_factory=list)
    level_suggestions: list[str] = Field(default_factory=list)


class GeneratedContent(AnalysisResult):
    """Text produced by the generation service, plus why it was produced."""

    content: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    reasoning: str = ""
    based_on_variants: list[str] = Field(default_factory=list)
    competency_enhancements: list[str] = Field(default_factory=list)


class GenerationContext(BaseModel):
    """What the generator knows about the request besides the prompt."""

    target_role: str = ""
    level: str = ""
    keywords: list[str] = Field(default_factory=list)
    variant_ids: list[str] = Field(default_factory=list)
    content_type: str = "work-history"

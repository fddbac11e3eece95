"""Analysis/generation service contract and a deterministic offline mock.

The workflow only depends on the AnalysisService protocol. Scoring and
generation logic belongs to the service; MockAnalysisService stands in for
a real one in tests, demos and offline use.
"""

import asyncio
import random
import re
from typing import Literal, Optional, Protocol, Sequence

import structlog

from storyloop.models.analysis import (
    AlignmentResult,
    ComplianceScore,
    CompetencyGap,
    GapAnalysisResult,
    GeneratedContent,
    GenerationContext,
    ImprovementSuggestion,
    VariantCoverage,
)
from storyloop.models.gap import Gap
from storyloop.models.variant import Variant

logger = structlog.get_logger()

GenerationMode = Literal["enhance", "expand", "rewrite", "custom"]


class AnalysisService(Protocol):
    """Asynchronous collaborator used by WorkflowController."""

    async def analyze_gaps(
        self, content: str, job_description: str, variants: Sequence[Variant]
    ) -> GapAnalysisResult: ...

    async def score_compliance(self, content: str, keywords: Sequence[str]) -> ComplianceScore: ...

    async def score_role_alignment(self, content: str, role: str, level: str) -> AlignmentResult: ...

    async def generate_content(self, prompt: str, context: GenerationContext) -> GeneratedContent: ...


def build_generation_prompt(
    mode: GenerationMode,
    content: str,
    target_role: str,
    keywords: Sequence[str] = (),
    custom_prompt: Optional[str] = None,
) -> str:
    """
    Build the prompt for one of the generation modes.

    Raises:
        ValueError: If mode is "custom" and no custom_prompt is given
    """
    if mode == "custom":
        if not custom_prompt:
            raise ValueError("custom generation needs a prompt")
        return custom_prompt

    if mode == "expand":
        return (f"Expand this content with more details and metrics for a {target_role} position. "
                f"Original: {content}")
    if mode == "rewrite":
        return f"Rewrite this content in a different style for a {target_role} position. Original: {content}"

    keyword_text = ", ".join(keywords)
    if keyword_text:
        return (f"Enhance this content for a {target_role} position, incorporating relevant keywords: "
                f"{keyword_text}. Original: {content}")
    return f"Enhance this content for a {target_role} position. Original: {content}"


def extract_original(prompt: str) -> str:
    """Return the text after the last 'Original:' marker, or the whole prompt."""
    marker = "Original:"
    if marker in prompt:
        return prompt.rsplit(marker, 1)[1].strip()
    return prompt.strip()


def match_keywords(content: str, keywords: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split keywords into (matched, missing) by case-insensitive whole-phrase search."""
    matched, missing = [], []
    for keyword in keywords:
        pattern = r"(?<!\w)" + re.escape(keyword.strip()) + r"(?!\w)"
        if keyword.strip() and re.search(pattern, content, flags=re.IGNORECASE):
            matched.append(keyword)
        else:
            missing.append(keyword)
    return matched, missing


class MockAnalysisService:
    """
    Offline stand-in for the analysis service.

    Scores that a real service would compute from a model are drawn from a
    seeded random generator, so runs with the same seed are reproducible.
    Keyword matching is real. ``latency`` simulates the network round trip.
    """

    def __init__(self, latency: float = 0.0, seed: int = 7):
        self.latency = latency
        self._rng = random.Random(seed)
        self.calls: list[str] = []

    async def _delay(self, operation: str) -> None:
        self.calls.append(operation)
        logger.debug("mock_analysis_call", operation=operation, latency=self.latency)
        if self.latency:
            await asyncio.sleep(self.latency)

    async def analyze_gaps(
        self, content: str, job_description: str, variants: Sequence[Variant]
    ) -> GapAnalysisResult:
        await self._delay("analyze_gaps")
        variant_ids = [v.id for v in variants]

        gaps = []
        if not re.search(r"\d", content):
            gaps.append(Gap(
                id="missing-metrics",
                scope="p1",
                severity="high",
                description="Missing specific metrics and KPIs",
                suggestion='Include quantifiable outcomes like "increased conversion by 25%"',
                related_variants=variant_ids[:2],
            ))
        gaps.append(Gap(
            id="leadership-context",
            scope="p2",
            severity="medium",
            description="Leadership context needs clarification",
            suggestion="Specify team size, reporting structure, and your level of responsibility",
            related_variants=variant_ids[:1],
        ))
        gaps.append(Gap(
            id="technical-depth",
            scope="p3",
            severity="low",
            description="Technical depth could be enhanced",
            suggestion="Mention specific technologies, methodologies, or frameworks used",
        ))

        suggestions = [
            ImprovementSuggestion(type="add-metrics", content="Include specific KPIs and outcomes achieved",
                                  priority="high", related_variants=variant_ids[:2]),
            ImprovementSuggestion(type="clarify-ownership", content="Specify your role and level of responsibility",
                                  related_variants=variant_ids[:1]),
            ImprovementSuggestion(type="match-keywords", content="Align with job description keywords"),
        ]

        coverage = {
            variant_id: VariantCoverage(
                gaps_covered=["leadership-context"],
                gaps_uncovered=[g.id for g in gaps if g.id != "leadership-context"],
                relevance=round(self._rng.uniform(0.7, 1.0), 2),
            )
            for variant_id in variant_ids
        }

        return GapAnalysisResult(
            overall_score=self._rng.randint(70, 100),
            gaps=gaps,
            suggestions=suggestions,
            variant_coverage=coverage,
        )

    async def score_compliance(self, content: str, keywords: Sequence[str]) -> ComplianceScore:
        await self._delay("score_compliance")
        matched, missing = match_keywords(content, keywords)
        keyword_match = round(100 * len(matched) / len(keywords)) if keywords else 100
        formatting = self._rng.randint(80, 100)

        suggestions = []
        if missing:
            suggestions.append(f"Include job-specific keywords: {', '.join(missing)}")
        suggestions.extend(["Use bullet points for better readability", "Add quantifiable achievements"])

        return ComplianceScore(
            overall=(keyword_match + formatting) // 2,
            keyword_match=keyword_match,
            formatting=formatting,
            matched_keywords=matched,
            missing_keywords=missing,
            suggestions=suggestions,
        )

    async def score_role_alignment(self, content: str, role: str, level: str) -> AlignmentResult:
        await self._delay("score_role_alignment")
        return AlignmentResult(
            target_role=role,
            level=level,
            alignment_score=self._rng.randint(70, 100),
            competency_gaps=[
                CompetencyGap(competency="product-strategy", current_strength=0.7, target_strength=0.9,
                              suggestions=["Include strategic thinking examples", "Show long-term vision"]),
                CompetencyGap(competency="data-analysis", current_strength=0.6, target_strength=0.8,
                              suggestions=["Add data-driven decision examples", "Include metrics and KPIs"]),
            ],
            level_suggestions=[
                "Emphasize strategic impact over tactical execution",
                "Show cross-functional leadership experience",
                "Include stakeholder management examples",
            ],
        )

    async def generate_content(self, prompt: str, context: GenerationContext) -> GeneratedContent:
        await self._delay("generate_content")
        original = extract_original(prompt)

        if context.keywords:
            addition = f"This experience demonstrates {', '.join(context.keywords)}."
        else:
            addition = ("As the primary decision maker, I was responsible for strategy, execution, "
                        "and stakeholder management.")

        return GeneratedContent(
            content=f"{original} {addition}".strip(),
            confidence=0.82,
            reasoning="Adds ownership and keyword coverage the analysis flagged as missing",
            based_on_variants=context.variant_ids[:2],
            competency_enhancements=["product-strategy", "stakeholder-management"],
        )

"""Analysis service backed by an OpenAI-compatible LLM."""

from typing import Literal, Sequence

import httpx
from pydantic import BaseModel, Field

from storyloop.models.analysis import (
    AlignmentResult,
    ComplianceScore,
    GapAnalysisResult,
    GeneratedContent,
    GenerationContext,
)
from storyloop.models.gap import Gap
from storyloop.models.variant import Variant
from storyloop.services.analysis import match_keywords
from storyloop.services.exceptions import AnalysisUnavailableError
from storyloop.services.llm_client import LLMClient
from storyloop.utils.logging import get_logger


logger = get_logger(__name__)


SYSTEM_PROMPT = (
    "You are a career coach reviewing resume and cover letter paragraphs against a "
    "target job. Be concrete and never invent experience the candidate did not describe. "
    "Reply with JSON only."
)

GAP_PROMPT = """Find gaps between this content and the job description.

Content:
{content}

Job description:
{job_description}

Variants already written for this content (id: text):
{variants}

Output one JSON object per line, nothing else:
{{"id": "short-kebab-id", "scope": "p1", "severity": "high|medium|low", "description": "...", "suggestion": "...", "related_variants": ["variant ids that already address it"]}}
"""

COMPLIANCE_PROMPT = """Rate how well this content would pass an applicant tracking system.

Content:
{content}

Keywords: {keywords}

Reply with one JSON object: {{"formatting": 0-100, "suggestions": ["..."]}}
"""

ALIGNMENT_PROMPT = """Rate how well this content reads for a {level} {role}.

Content:
{content}

Reply with one JSON object:
{{"alignment_score": 0-100,
  "competency_gaps": [{{"competency": "...", "current_strength": 0-1, "target_strength": 0-1, "suggestions": ["..."]}}],
  "level_suggestions": ["..."]}}
"""

GENERATION_PROMPT = """{prompt}

Target role: {role} ({level})
Keywords: {keywords}

Reply with one JSON object: {{"content": "...", "confidence": 0-1, "reasoning": "..."}}
"""


class GapChunk(BaseModel):
    """One streamed gap line."""

    id: str
    scope: str = "content"
    severity: Literal["high", "medium", "low"] = "medium"
    description: str
    suggestion: str = ""
    related_variants: list[str] = Field(default_factory=list)


class ComplianceReply(BaseModel):
    formatting: int = Field(..., ge=0, le=100)
    suggestions: list[str] = Field(default_factory=list)


class LLMAnalysisService:
    """
    AnalysisService implementation that asks an LLM.

    Transport and parse failures are raised as AnalysisUnavailableError; the
    workflow turns those into neutral results.
    """

    def __init__(self, client: LLMClient):
        self.client = client

    async def analyze_gaps(
        self, content: str, job_description: str, variants: Sequence[Variant]
    ) -> GapAnalysisResult:
        prompt = GAP_PROMPT.format(
            content=content,
            job_description=job_description or "(none provided)",
            variants="\n".join(f"{v.id}: {v.content}" for v in variants) or "(none)",
        )
        known_ids = {v.id for v in variants}
        gaps = []
        try:
            async for chunk in self.client.stream_ndjson(prompt, SYSTEM_PROMPT, GapChunk,
                                                         request_id="analyze_gaps"):
                related = [vid for vid in chunk.related_variants if vid in known_ids]
                gaps.append(Gap(**chunk.model_dump(exclude={"related_variants"}), related_variants=related))
        except httpx.HTTPError as e:
            raise AnalysisUnavailableError("analyze_gaps", str(e)) from e

        weights = {"high": 15, "medium": 8, "low": 3}
        score = max(0, 100 - sum(weights[g.severity] for g in gaps))
        logger.info("llm_gap_analysis_parsed", gap_count=len(gaps), overall_score=score)
        return GapAnalysisResult(overall_score=score, gaps=gaps)

    async def score_compliance(self, content: str, keywords: Sequence[str]) -> ComplianceScore:
        prompt = COMPLIANCE_PROMPT.format(content=content, keywords=", ".join(keywords) or "(none)")
        try:
            reply = await self.client.complete_json(prompt, SYSTEM_PROMPT, ComplianceReply,
                                                    request_id="score_compliance")
        except (httpx.HTTPError, ValueError) as e:
            raise AnalysisUnavailableError("score_compliance", str(e)) from e

        matched, missing = match_keywords(content, keywords)
        keyword_match = round(100 * len(matched) / len(keywords)) if keywords else 100
        return ComplianceScore(
            overall=(keyword_match + reply.formatting) // 2,
            keyword_match=keyword_match,
            formatting=reply.formatting,
            matched_keywords=matched,
            missing_keywords=missing,
            suggestions=reply.suggestions,
        )

    async def score_role_alignment(self, content: str, role: str, level: str) -> AlignmentResult:
        prompt = ALIGNMENT_PROMPT.format(content=content, role=role, level=level)
        try:
            result = await self.client.complete_json(prompt, SYSTEM_PROMPT, AlignmentResult,
                                                     request_id="score_role_alignment")
        except (httpx.HTTPError, ValueError) as e:
            raise AnalysisUnavailableError("score_role_alignment", str(e)) from e
        return result.model_copy(update={"target_role": role, "level": level, "available": True})

    async def generate_content(self, prompt: str, context: GenerationContext) -> GeneratedContent:
        full_prompt = GENERATION_PROMPT.format(
            prompt=prompt,
            role=context.target_role or "the target role",
            level=context.level or "any level",
            keywords=", ".join(context.keywords) or "(none)",
        )
        try:
            result = await self.client.complete_json(full_prompt, SYSTEM_PROMPT, GeneratedContent,
                                                     request_id="generate_content")
        except (httpx.HTTPError, ValueError) as e:
            raise AnalysisUnavailableError("generate_content", str(e)) from e

        if not result.content.strip():
            raise AnalysisUnavailableError("generate_content", "LLM returned empty content")
        return result.model_copy(update={"based_on_variants": context.variant_ids[:2], "available": True})

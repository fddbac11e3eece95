"""Unit tests for data models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from storyloop.models.analysis import CompetencyGap, ComplianceScore, GapAnalysisResult, GeneratedContent
from storyloop.models.background_task import BackgroundTask
from storyloop.models.draft import Draft
from storyloop.models.story import Story
from storyloop.models.variant import ContentBlock, Variant, VariantClassification
from storyloop.models.workflow import STEP_TITLES, ContentVersion, WorkflowSession, WorkflowStep


class TestVariant:
    """Test Variant model."""

    def test_classification_is_derived(self):
        assert Variant(id="a", content="x", filled_gap="metrics").classification == VariantClassification.GAP_FILL
        assert Variant(id="a", content="x", target_label="PM").classification == VariantClassification.JOB_TARGET
        assert Variant(id="a", content="x").classification == VariantClassification.FALLBACK

    @pytest.mark.parametrize("kwargs,expected", [
        ({"filled_gap": "outcome-metrics"}, "Fills Gap: outcome-metrics"),
        ({"target_label": "Senior PM"}, "For Senior PM"),
        ({"created_by": "ai"}, "Variant #3 (AI)"),
        ({"created_by": "human-edited-ai"}, "Variant #3 (User)"),
        ({}, "Variant #3 (User)"),
    ])
    def test_label(self, kwargs, expected):
        assert Variant(id="a", content="x", **kwargs).label(2) == expected

    def test_variant_is_frozen(self):
        variant = Variant(id="a", content="x")

        with pytest.raises(ValidationError):
            variant.content = "y"

    def test_invalid_author_rejected(self):
        with pytest.raises(ValidationError):
            Variant(id="a", content="x", created_by="robot")

    def test_created_at_is_timezone_aware(self):
        assert Variant(id="a", content="x").created_at.tzinfo is not None


class TestContentBlock:
    def test_content_block_is_frozen(self):
        block = ContentBlock(id="s", content="x")

        with pytest.raises(ValidationError):
            block.content = "y"


class TestDraft:
    def test_staleness_boundary(self):
        saved = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)
        draft = Draft(key="draft-v1", content="x", saved_at=saved)
        ttl = timedelta(hours=1)

        assert not draft.is_stale(saved + ttl - timedelta(seconds=1), ttl)
        assert draft.is_stale(saved + ttl, ttl)


class TestWorkflowSession:
    """Test WorkflowSession bounds and step states."""

    def test_defaults(self):
        session = WorkflowSession()

        assert session.current_step == WorkflowStep.SELECT_VARIANT
        assert session.status == "idle"
        assert session.selected_variant_id is None

    @pytest.mark.parametrize("index", [-1, 6])
    def test_step_index_is_bounded(self, index):
        session = WorkflowSession()

        with pytest.raises(ValidationError):
            session.current_step_index = index

    def test_step_states(self):
        session = WorkflowSession(current_step_index=2)

        assert session.step_state(WorkflowStep.GAP_ANALYSIS) == "completed"
        assert session.step_state(WorkflowStep.COMPLIANCE_ASSESSMENT) == "active"
        assert session.step_state(WorkflowStep.REVIEW_AND_EDIT) == "pending"

    def test_step_titles(self):
        assert [step.title for step in WorkflowStep] == [
            "Select Variant", "Gap Analysis", "ATS Assessment",
            "Role Assessment", "Content Generation", "Review & Edit",
        ]
        assert len(STEP_TITLES) == 6


class TestContentVersion:
    def test_version_starts_at_one(self):
        with pytest.raises(ValidationError):
            ContentVersion(id="x", content_id="v1", content="text", version=0)


class TestAnalysisResults:
    def test_unavailable_results_are_neutral(self):
        gaps = GapAnalysisResult.unavailable()
        compliance = ComplianceScore.unavailable()
        generated = GeneratedContent.unavailable()

        assert gaps.available is False and gaps.gaps == [] and gaps.overall_score is None
        assert compliance.available is False and compliance.overall is None
        assert generated.available is False and generated.content == ""

    def test_competency_gap(self):
        gap = CompetencyGap(competency="strategy", current_strength=0.6, target_strength=0.9)

        assert gap.gap == pytest.approx(0.3)

    def test_score_bounds(self):
        with pytest.raises(ValidationError):
            ComplianceScore(overall=101)


class TestBackgroundTask:
    def test_defaults_to_running(self):
        task = BackgroundTask(task_type="gap_analysis", request_token=1)

        assert task.status == "running"
        task.status = "completed"
        assert task.status == "completed"


class TestStory:
    """Test story file loading."""

    def test_load_story(self, tmp_path):
        path = tmp_path / "story.yaml"
        path.write_text(
            "id: leadership\n"
            "title: Leadership story\n"
            "content: Led a team of 5\n"
            "variants:\n"
            "  - id: v1\n"
            "    content: Led a team of 5 engineers\n"
            "    target_label: Senior PM\n"
            "    tags: [metrics]\n"
        )

        story = Story.load(path)

        assert story.block == ContentBlock(id="leadership", title="Leadership story", content="Led a team of 5")
        assert story.variants[0].classification == VariantClassification.JOB_TARGET
        assert story.variants[0].tags == {"metrics"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Story.load(tmp_path / "missing.yaml")

    @pytest.mark.parametrize("content", ["- just\n- a list\n", "id: x\n"])
    def test_invalid_story(self, tmp_path, content):
        path = tmp_path / "story.yaml"
        path.write_text(content)

        with pytest.raises(ValueError):
            Story.load(path)

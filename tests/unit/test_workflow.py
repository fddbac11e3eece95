"""Unit tests for WorkflowController."""

import asyncio

import pytest

from storyloop.models.analysis import GenerationContext
from storyloop.models.gap import Gap, GapStatus
from storyloop.models.workflow import WorkflowStep
from storyloop.services.analysis import MockAnalysisService
from storyloop.services.draft_persistence import DraftPersistence
from storyloop.services.kv_store import MemoryKeyValueStore
from storyloop.services.workflow import TargetProfile, WorkflowController, WorkflowHooks


class RecordingHooks(WorkflowHooks):
    """WorkflowHooks that records every callback as (name, args)."""

    def __init__(self):
        self.events = []
        super().__init__(
            on_variant_selected=lambda vid: self.events.append(("variant_selected", vid)),
            on_step_advance=lambda index: self.events.append(("step_advance", index)),
            on_step_back=lambda: self.events.append(("step_back",)),
            on_workflow_reset=lambda: self.events.append(("reset",)),
            on_content_finalized=lambda content: self.events.append(("finalized", content)),
            on_gap_resolved=lambda gap_id: self.events.append(("gap_resolved", gap_id)),
            on_gap_dismissed=lambda gap_id: self.events.append(("gap_dismissed", gap_id)),
        )

    def named(self, name):
        return [e for e in self.events if e[0] == name]


class FailingService(MockAnalysisService):
    async def analyze_gaps(self, content, job_description, variants):
        raise ConnectionError("service down")

    async def generate_content(self, prompt, context):
        raise TimeoutError("too slow")


class GatedService(MockAnalysisService):
    """Each call waits on its own event so tests control completion order."""

    def __init__(self):
        super().__init__()
        self.gates = []

    async def score_compliance(self, content, keywords):
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return await super().score_compliance(content, keywords)

    async def generate_content(self, prompt, context):
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return await super().generate_content(prompt, context)


@pytest.fixture
def hooks():
    return RecordingHooks()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def drafts(kv, clock):
    return DraftPersistence(kv, clock=clock)


@pytest.fixture
def target():
    return TargetProfile(role="Senior PM", level="senior", job_description="Own the roadmap",
                         keywords=["roadmap", "billing"])


@pytest.fixture
def controller(store, hooks, drafts, scheduler, target):
    return WorkflowController(store, MockAnalysisService(), target=target, drafts=drafts,
                              hooks=hooks, scheduler=scheduler)


def advance_to(controller, step):
    controller.select_variant("v2")
    for index in range(WorkflowStep.GAP_ANALYSIS, step):
        assert controller.complete_step(index)
    assert controller.current_step == step


class TestSelection:
    """Test variant selection."""

    def test_initial_state(self, controller):
        assert controller.session.current_step_index == 0
        assert controller.session.status == "idle"
        assert controller.selected_variant is None
        assert len(controller.steps) == 6

    def test_select_at_step_zero_advances(self, controller, hooks):
        assert controller.select_variant("v2") is True

        assert controller.session.current_step_index == 1
        assert controller.session.status == "analyzing"
        assert controller.session.working_content == controller.store.get_variant("v2").content
        assert hooks.events == [("variant_selected", "v2"), ("step_advance", 1)]

    def test_select_unknown_variant_is_noop(self, controller, hooks):
        assert controller.select_variant("missing") is False

        assert controller.session.current_step_index == 0
        assert hooks.events == []

    def test_reselect_mid_workflow_keeps_step(self, controller, hooks):
        advance_to(controller, WorkflowStep.ROLE_ASSESSMENT)

        assert controller.select_variant("v1") is True

        assert controller.session.current_step_index == 3
        assert controller.session.selected_variant_id == "v1"
        assert hooks.named("step_advance")[-1] == ("step_advance", 3)

    def test_select_in_review_step_is_noop(self, controller):
        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)

        assert controller.select_variant("v1") is False
        assert controller.session.selected_variant_id == "v2"


class TestStepTransitions:
    """Test complete/back/reset transitions."""

    def test_complete_before_selection_is_noop(self, controller, hooks):
        assert controller.complete_step(0) is False
        assert controller.complete_step(1) is False

        assert controller.session.current_step_index == 0
        assert hooks.events == []

    def test_complete_advances_one_step(self, controller):
        controller.select_variant("v2")

        assert controller.complete_step(1) is True

        assert controller.session.current_step_index == 2
        assert controller.session.status == "analyzing"

    def test_complete_out_of_order_is_noop(self, controller):
        controller.select_variant("v2")

        assert controller.complete_step(3) is False
        assert controller.session.current_step_index == 1

    def test_entering_last_step_sets_reviewing(self, controller, hooks):
        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)

        assert controller.session.status == "reviewing"
        assert [e[1] for e in hooks.named("step_advance")] == [1, 2, 3, 4, 5]

    def test_completing_last_step_stays_in_bounds(self, controller):
        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)

        for _ in range(3):
            assert controller.complete_step(5) is True

        assert controller.session.current_step_index == 5
        assert controller.session.status == "reviewing"

    def test_go_back(self, controller, hooks):
        advance_to(controller, WorkflowStep.COMPLIANCE_ASSESSMENT)

        assert controller.go_to_previous_step() is True

        assert controller.session.current_step_index == 1
        assert controller.session.status == "analyzing"
        assert hooks.named("step_back") == [("step_back",)]

    def test_go_back_clamps_at_zero(self, controller, hooks):
        assert controller.go_to_previous_step() is False

        controller.select_variant("v2")
        controller.go_to_previous_step()
        assert controller.go_to_previous_step() is False
        assert controller.session.current_step_index == 0
        assert len(hooks.named("step_back")) == 1

    def test_reset_returns_to_start(self, controller, hooks, scheduler):
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)
        controller.gaps.add_gaps([Gap(id="g", scope="p1", description="d")])
        controller.gaps.resolve("p1", "g")

        assert controller.reset_workflow() is True

        assert controller.session.current_step_index == 0
        assert controller.session.status == "idle"
        assert controller.session.selected_variant_id is None
        assert controller.gaps.all_gaps() == []
        assert scheduler.pending == []
        assert hooks.events[-1] == ("reset",)

    def test_step_index_never_leaves_bounds(self, controller):
        """Any sequence of commands keeps the index in [0, 5]."""
        actions = [
            lambda: controller.go_to_previous_step(),
            lambda: controller.select_variant("v3"),
            lambda: controller.complete_step(controller.session.current_step_index),
            lambda: controller.complete_step(controller.session.current_step_index),
            lambda: controller.go_to_previous_step(),
        ]
        for _ in range(10):
            for action in actions:
                action()
                assert 0 <= controller.session.current_step_index <= 5
                if controller.session.status == "idle":
                    assert controller.session.current_step_index == 0


class TestSaveAndExit:
    """Test finalization."""

    def test_save_before_last_step_is_noop(self, controller, hooks):
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)

        assert controller.save_and_exit("final") is False
        assert hooks.named("finalized") == []

    def test_save_emits_once_and_ends_session(self, controller, hooks, kv):
        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)
        controller.edit_content("Edited in review")
        assert kv.get("draft-v2") is not None

        assert controller.save_and_exit("Edited in review") is True
        assert controller.save_and_exit("again") is False

        assert hooks.named("finalized") == [("finalized", "Edited in review")]
        assert controller.session.finalized is True
        assert kv.get("draft-v2") is None
        assert [(v.content_id, v.version) for v in controller.history] == [("v2", 1)]

    def test_finalized_session_ignores_everything_but_reset(self, controller):
        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)
        controller.save_and_exit("final")

        assert controller.go_to_previous_step() is False
        assert controller.complete_step(5) is False
        assert controller.edit_content("more") is False
        assert controller.reset_workflow() is True
        assert controller.session.finalized is False

    def test_version_numbers_increase_per_variant(self, controller):
        for text in ("first", "second"):
            advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)
            controller.save_and_exit(text)
            controller.reset_workflow()

        assert [v.version for v in controller.history] == [1, 2]
        assert controller.history[0].id != controller.history[1].id


class TestDrafts:
    """Test draft autosave through the controller."""

    def test_edit_saves_draft_and_reverting_clears_it(self, controller, kv):
        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)
        original = controller.session.working_content

        controller.edit_content("Something new")
        assert controller.session.has_unsaved_changes is True
        assert kv.get("draft-v2") is not None

        controller.edit_content(original)
        assert controller.session.has_unsaved_changes is False
        assert kv.get("draft-v2") is None

    def test_edit_outside_review_is_noop(self, controller, kv):
        advance_to(controller, WorkflowStep.ROLE_ASSESSMENT)

        assert controller.edit_content("text") is False
        assert kv.keys() == []

    def test_fresh_draft_is_recovered_on_entering_review(self, controller, drafts):
        drafts.save_draft("v2", "Recovered text")

        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)

        assert controller.session.working_content == "Recovered text"
        assert controller.session.has_unsaved_changes is True

    def test_stale_draft_is_not_recovered(self, controller, drafts, clock, kv):
        drafts.save_draft("v2", "Old text")
        clock.advance(hours=1, seconds=1)

        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)

        assert controller.session.working_content == controller.store.get_variant("v2").content
        assert controller.session.has_unsaved_changes is False
        assert kv.get("draft-v2") is None

    def test_reset_keeps_draft_by_default(self, controller, kv):
        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)
        controller.edit_content("unsaved")

        controller.reset_workflow()

        assert kv.get("draft-v2") is not None

    def test_reset_can_clear_draft(self, store, drafts, kv, scheduler):
        controller = WorkflowController(store, MockAnalysisService(), drafts=drafts, scheduler=scheduler,
                                        clear_draft_on_reset=True)
        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)
        controller.edit_content("unsaved")

        controller.reset_workflow()

        assert kv.get("draft-v2") is None

    def test_without_draft_persistence(self, store, scheduler):
        controller = WorkflowController(store, MockAnalysisService(), scheduler=scheduler)
        advance_to(controller, WorkflowStep.REVIEW_AND_EDIT)

        assert controller.open_editor() is None
        assert controller.edit_content("text") is True
        assert controller.save_and_exit("text") is True


class TestAnalysisSteps:
    """Test the async analysis operations."""

    @pytest.mark.asyncio
    async def test_gap_analysis_tracks_gaps(self, controller):
        controller.select_variant("v2")

        result = await controller.run_gap_analysis()

        assert result.available
        assert controller.gap_analysis is result
        assert [g.id for g in controller.gaps.open_gaps()] == [g.id for g in result.gaps]
        assert controller.tasks["gap_analysis"].status == "completed"

    @pytest.mark.asyncio
    async def test_analysis_at_wrong_step_is_noop(self, controller):
        controller.select_variant("v2")

        assert await controller.run_compliance_assessment() is None
        assert await controller.generate_content() is None
        assert controller.analysis.calls == []

    @pytest.mark.asyncio
    async def test_compliance_and_role_assessment(self, controller):
        advance_to(controller, WorkflowStep.COMPLIANCE_ASSESSMENT)
        compliance = await controller.run_compliance_assessment()
        controller.complete_step(WorkflowStep.COMPLIANCE_ASSESSMENT)
        alignment = await controller.run_role_assessment()

        assert compliance.matched_keywords == ["billing"]
        assert compliance.missing_keywords == ["roadmap"]
        assert alignment.target_role == "Senior PM"
        assert controller.alignment is alignment

    @pytest.mark.asyncio
    async def test_service_failure_returns_unavailable(self, store, hooks, scheduler):
        controller = WorkflowController(store, FailingService(), hooks=hooks, scheduler=scheduler)
        controller.select_variant("v2")

        result = await controller.run_gap_analysis()

        assert result.available is False
        assert result.gaps == []
        assert controller.session.current_step_index == 1
        assert controller.tasks["gap_analysis"].status == "failed"
        assert "service down" in controller.tasks["gap_analysis"].error_message

    @pytest.mark.asyncio
    async def test_generation_failure_restores_status(self, store, scheduler):
        controller = WorkflowController(store, FailingService(), scheduler=scheduler)
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)

        result = await controller.generate_content()

        assert result.available is False
        assert controller.session.status == "analyzing"
        assert controller.generated is None

    @pytest.mark.asyncio
    async def test_status_is_generating_while_pending(self, controller):
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)
        controller.analysis.latency = 0.01

        task = asyncio.create_task(controller.generate_content())
        await asyncio.sleep(0)
        assert controller.session.status == "generating"

        result = await task
        assert controller.session.status == "analyzing"
        assert controller.generated is result

    @pytest.mark.asyncio
    async def test_generation_passes_context(self, controller):
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)
        seen = {}
        original = controller.analysis.generate_content

        async def spy(prompt, context: GenerationContext):
            seen["prompt"], seen["context"] = prompt, context
            return await original(prompt, context)

        controller.analysis.generate_content = spy
        await controller.generate_content("expand")

        assert seen["prompt"].startswith("Expand this content")
        assert seen["context"].keywords == ["roadmap", "billing"]
        assert seen["context"].variant_ids == ["v3", "v2", "v1"]

    @pytest.mark.asyncio
    async def test_custom_generation_needs_prompt(self, controller):
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)

        assert await controller.generate_content("custom") is None
        assert controller.session.status == "analyzing"

    @pytest.mark.asyncio
    async def test_older_response_is_discarded(self, store, scheduler):
        """When two requests overlap, only the latest one's result is applied."""
        service = GatedService()
        controller = WorkflowController(store, service, scheduler=scheduler)
        advance_to(controller, WorkflowStep.COMPLIANCE_ASSESSMENT)

        first = asyncio.create_task(controller.run_compliance_assessment())
        second = asyncio.create_task(controller.run_compliance_assessment())
        await asyncio.sleep(0)
        service.gates[1].set()
        latest = await second
        service.gates[0].set()
        stale = await first

        assert stale is None
        assert controller.compliance is latest
        assert controller.tasks["compliance_scoring"].status == "completed"

    @pytest.mark.asyncio
    async def test_superseded_generation_restores_status(self, store, scheduler):
        """Switching variant mid-generation leaves no request marked in flight."""
        service = GatedService()
        controller = WorkflowController(store, service, scheduler=scheduler)
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)

        pending = asyncio.create_task(controller.generate_content())
        await asyncio.sleep(0)
        assert controller.session.status == "generating"

        assert controller.select_variant("v3")
        service.gates[0].set()

        assert await pending is None
        assert controller.session.status == "analyzing"
        assert controller.generated is None
        assert controller.tasks["content_generation"].status == "superseded"

    @pytest.mark.asyncio
    async def test_cancelled_generation_is_not_left_running(self, store, scheduler):
        service = GatedService()
        controller = WorkflowController(store, service, scheduler=scheduler)
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)

        pending = asyncio.create_task(controller.generate_content())
        await asyncio.sleep(0)
        pending.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending
        assert controller.session.status == "analyzing"
        assert controller.tasks["content_generation"].status == "superseded"

    @pytest.mark.asyncio
    async def test_reset_discards_pending_result(self, store, scheduler):
        service = GatedService()
        controller = WorkflowController(store, service, scheduler=scheduler)
        advance_to(controller, WorkflowStep.COMPLIANCE_ASSESSMENT)

        pending = asyncio.create_task(controller.run_compliance_assessment())
        await asyncio.sleep(0)
        controller.reset_workflow()
        service.gates[0].set()

        assert await pending is None
        assert controller.compliance is None
        assert controller.tasks["compliance_scoring"].status == "superseded"


class TestGeneratedContent:
    """Test accepting generated content."""

    @pytest.mark.asyncio
    async def test_apply_generated_content_resolves_gaps(self, controller, hooks, scheduler):
        advance_to(controller, WorkflowStep.GAP_ANALYSIS)
        await controller.run_gap_analysis()
        for index in range(1, 4):
            controller.complete_step(index)
        generated = await controller.generate_content()
        addressed = [g for g in controller.gaps.open_gaps() if g.id == "leadership-context"]

        assert controller.apply_generated_content(generated.content, addressed) is True

        assert controller.session.current_step_index == 5
        assert controller.session.status == "reviewing"
        assert controller.session.working_content == generated.content
        assert controller.session.has_unsaved_changes is False
        assert hooks.named("gap_resolved") == [("gap_resolved", "leadership-context")]

        scheduler.advance(3.0)
        assert hooks.named("gap_dismissed") == [("gap_dismissed", "leadership-context")]
        assert controller.gaps.get_gap("p2", "leadership-context").status == GapStatus.DISMISSED

    def test_apply_outside_generation_step_is_noop(self, controller):
        advance_to(controller, WorkflowStep.ROLE_ASSESSMENT)

        assert controller.apply_generated_content("new text") is False
        assert controller.session.current_step_index == 3

    def test_apply_empty_content_is_noop(self, controller):
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)

        assert controller.apply_generated_content("   ") is False

    def test_working_diff(self, controller):
        advance_to(controller, WorkflowStep.CONTENT_GENERATION)
        controller.apply_generated_content(controller.store.base.content + " with measurable results")

        added = [t.text for t in controller.working_diff() if t.kind == "added"]

        assert added == ["with", "measurable", "results"]

    def test_close_cancels_gap_timers(self, controller, scheduler):
        controller.gaps.add_gaps([Gap(id="g", scope="p1", description="d")])
        controller.gaps.resolve("p1", "g")

        controller.close()

        assert scheduler.pending == []

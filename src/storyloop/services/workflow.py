"""Human-in-the-loop tailoring workflow.

WorkflowController sequences the six steps of a tailoring session:

    0 Select Variant -> 1 Gap Analysis -> 2 ATS Assessment
      -> 3 Role Assessment -> 4 Content Generation -> 5 Review & Edit

## State rules

- ``current_step_index`` never leaves [0, 5].
- ``status`` is "idle" only at step 0 before anything is selected.
- Entering step 5 always sets ``status`` to "reviewing".
- A finalized session (content emitted by save_and_exit) accepts nothing
  but reset_workflow().

Every command returns True when it changed state and False when it was a
no-op. Out-of-order or invalid calls (completing a step before a variant is
selected, saving before the last step...) are ignored rather than raised,
because UI call ordering cannot be fully guaranteed.

## Analysis calls

run_gap_analysis(), run_compliance_assessment(), run_role_assessment() and
generate_content() await the injected AnalysisService. Nothing stops a
second call being issued while the first is pending. Each call takes a
request token; when it resolves, a result whose token is no longer the
latest for its operation (a newer call was made, or the workflow was reset
or closed) is discarded and the method returns None. Service failures are
logged and returned as ``<Result>.unavailable()``; the step stays active so
the user can retry.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import structlog

from storyloop.models.analysis import (
    AlignmentResult,
    AnalysisResult,
    ComplianceScore,
    GapAnalysisResult,
    GeneratedContent,
    GenerationContext,
)
from storyloop.models.background_task import BackgroundTask, TaskType
from storyloop.models.diff import DiffToken
from storyloop.models.draft import Draft
from storyloop.models.gap import Gap
from storyloop.models.variant import Variant
from storyloop.models.workflow import (
    LAST_STEP,
    ContentVersion,
    WorkflowSession,
    WorkflowStep,
)
from storyloop.services.analysis import AnalysisService, GenerationMode, build_generation_prompt
from storyloop.services.draft_persistence import DraftPersistence
from storyloop.services.gap_tracker import DEFAULT_AUTO_DISMISS_DELAY, GapRegistry, Scheduler
from storyloop.services.variant_store import VariantStore
from storyloop.utils.ids import generate_deterministic_uuid

logger = structlog.get_logger()

R = TypeVar("R", bound=AnalysisResult)


@dataclass
class WorkflowHooks:
    """Host callbacks. Each is optional and called after the state change it reports."""

    on_variant_selected: Optional[Callable[[str], None]] = None
    on_step_advance: Optional[Callable[[int], None]] = None
    on_step_back: Optional[Callable[[], None]] = None
    on_workflow_reset: Optional[Callable[[], None]] = None
    on_content_finalized: Optional[Callable[[str], None]] = None
    on_gap_resolved: Optional[Callable[[str], None]] = None
    on_gap_dismissed: Optional[Callable[[str], None]] = None


@dataclass
class TargetProfile:
    """The job the content is being tailored for."""

    role: str = ""
    level: str = ""
    job_description: str = ""
    keywords: list[str] = field(default_factory=list)


class WorkflowController:
    """
    State machine for one tailoring session over a VariantStore.

    Example:
        >>> controller = WorkflowController(store, MockAnalysisService())
        >>> controller.select_variant("v2")
        True
        >>> controller.session.current_step_index, controller.session.status
        (1, 'analyzing')
    """

    def __init__(
        self,
        store: VariantStore,
        analysis: AnalysisService,
        *,
        target: Optional[TargetProfile] = None,
        drafts: Optional[DraftPersistence] = None,
        hooks: Optional[WorkflowHooks] = None,
        auto_dismiss_delay: float = DEFAULT_AUTO_DISMISS_DELAY,
        scheduler: Optional[Scheduler] = None,
        clear_draft_on_reset: bool = False,
    ):
        """
        Args:
            store: Base content and its variants
            analysis: Analysis/generation collaborator
            target: Job being targeted (role, level, description, keywords)
            drafts: Draft autosave; None disables autosave and recovery
            hooks: Host callbacks
            auto_dismiss_delay: Seconds before a resolved gap is dismissed
            scheduler: Timer source for gap auto-dismissal (defaults to the running loop)
            clear_draft_on_reset: Whether reset_workflow() also deletes the draft
        """
        self.store = store
        self.analysis = analysis
        self.target = target or TargetProfile()
        self.drafts = drafts
        self.hooks = hooks or WorkflowHooks()
        self.clear_draft_on_reset = clear_draft_on_reset

        self.gaps = GapRegistry(
            auto_dismiss_delay=auto_dismiss_delay,
            scheduler=scheduler,
            on_resolved=self._gap_resolved,
            on_dismissed=self._gap_dismissed,
        )
        self.session = WorkflowSession()
        self.history: list[ContentVersion] = []
        self.tasks: dict[str, BackgroundTask] = {}

        self.gap_analysis: Optional[GapAnalysisResult] = None
        self.compliance: Optional[ComplianceScore] = None
        self.alignment: Optional[AlignmentResult] = None
        self.generated: Optional[GeneratedContent] = None

        self._editor_base: Optional[str] = None
        self._request_counter = 0
        self._latest_tokens: dict[str, int] = {}

    # Queries

    @property
    def steps(self) -> list[WorkflowStep]:
        return list(WorkflowStep)

    @property
    def current_step(self) -> WorkflowStep:
        return self.session.current_step

    @property
    def selected_variant(self) -> Optional[Variant]:
        return self.store.find_variant(self.session.selected_variant_id)

    def working_diff(self) -> list[DiffToken]:
        """Word diff from the base content to the text under review."""
        return self.store.diff_against_base(self.session.working_content or "")

    # Transitions

    def select_variant(self, variant_id: str) -> bool:
        """
        Choose the variant to tailor.

        Allowed at any step up to Content Generation. At step 0 this also
        advances to Gap Analysis. Unknown ids are ignored.
        """
        if self.session.finalized or self.session.current_step_index > WorkflowStep.CONTENT_GENERATION:
            logger.debug("workflow_select_ignored", variant_id=variant_id,
                         step=self.session.current_step_index, finalized=self.session.finalized)
            return False

        variant = self.store.find_variant(variant_id)
        if variant is None:
            logger.warning("workflow_select_unknown_variant", variant_id=variant_id)
            return False

        if variant_id != self.session.selected_variant_id:
            # Results computed for the previous variant no longer apply
            self._invalidate_requests()
            self.gap_analysis = self.compliance = self.alignment = self.generated = None

        self.session.selected_variant_id = variant_id
        self.session.working_content = variant.content
        self.session.has_unsaved_changes = False
        self._editor_base = variant.content
        logger.info("workflow_variant_selected", variant_id=variant_id,
                    classification=variant.classification.value)
        self._emit(self.hooks.on_variant_selected, variant_id)

        if self.session.current_step_index == WorkflowStep.SELECT_VARIANT:
            self._move_to(WorkflowStep.GAP_ANALYSIS)
        return True

    def complete_step(self, step_index: int) -> bool:
        """
        Mark ``step_index`` complete.

        Only the active step can be completed, and only once a variant is
        selected. Completing the last step sets status to "reviewing" and
        leaves the index where it is.
        """
        session = self.session
        if session.finalized or session.selected_variant_id is None or step_index != session.current_step_index:
            logger.debug("workflow_complete_ignored", step_index=step_index,
                         current=session.current_step_index,
                         selected=session.selected_variant_id, finalized=session.finalized)
            return False

        if step_index < LAST_STEP:
            self._move_to(WorkflowStep(step_index + 1))
        else:
            session.status = "reviewing"
        return True

    def go_to_previous_step(self) -> bool:
        """Step back once; no-op at step 0 or after finalization."""
        session = self.session
        if session.finalized or session.current_step_index == WorkflowStep.SELECT_VARIANT:
            return False

        previous = session.current_step_index
        session.current_step_index = previous - 1
        session.status = "analyzing" if session.selected_variant_id else "idle"
        logger.info("workflow_step_back", from_step=previous, to_step=session.current_step_index)
        self._emit(self.hooks.on_step_back)
        return True

    def reset_workflow(self) -> bool:
        """
        Return to step 0 with nothing selected.

        Clears session-scoped state, cancels gap timers and discards any
        pending analysis results. The draft for the selected variant is
        deleted only when ``clear_draft_on_reset`` is set.
        """
        content_id = self.session.selected_variant_id

        self._invalidate_requests()
        self.gaps.clear()
        self.gap_analysis = self.compliance = self.alignment = self.generated = None
        self.session = WorkflowSession()
        self._editor_base = None

        if self.clear_draft_on_reset and self.drafts is not None and content_id:
            self.drafts.clear_draft(content_id)

        logger.info("workflow_reset", previous_variant=content_id,
                    draft_cleared=bool(self.clear_draft_on_reset and self.drafts and content_id))
        self._emit(self.hooks.on_workflow_reset)
        return True

    def apply_generated_content(self, content: str, addressed_gaps: Sequence[Gap] = ()) -> bool:
        """
        Accept generated text and move to Review & Edit.

        Gaps the text addresses are resolved (and later auto-dismissed).
        Only valid at the Content Generation step.
        """
        session = self.session
        if (session.finalized or session.selected_variant_id is None
                or session.current_step_index != WorkflowStep.CONTENT_GENERATION or not content.strip()):
            logger.debug("workflow_apply_generated_ignored", step=session.current_step_index)
            return False

        session.working_content = content
        session.has_unsaved_changes = False
        self._editor_base = content
        for gap in addressed_gaps:
            self.gaps.resolve(gap.scope, gap.id)

        logger.info("workflow_generated_content_applied", variant_id=session.selected_variant_id,
                    resolved_gaps=[g.id for g in addressed_gaps])
        self._move_to(LAST_STEP)
        return True

    def open_editor(self) -> Optional[Draft]:
        """
        Recover an autosaved draft into the editor.

        Called when Review & Edit becomes active. A fresh draft replaces the
        working content and flags unsaved changes; stale drafts are discarded
        by DraftPersistence and never reach the editor.
        """
        session = self.session
        if (self.drafts is None or session.finalized or session.selected_variant_id is None
                or session.current_step_index != LAST_STEP):
            return None

        draft = self.drafts.load_draft(session.selected_variant_id)
        if draft is not None and draft.content != session.working_content:
            session.working_content = draft.content
            session.has_unsaved_changes = True
            logger.info("workflow_draft_recovered", variant_id=session.selected_variant_id,
                        saved_at=draft.saved_at.isoformat())
        return draft

    def edit_content(self, content: str) -> bool:
        """
        Record an edit in Review & Edit and autosave it as a draft.

        Editing back to the text the editor started from removes the draft.
        """
        session = self.session
        if session.finalized or session.selected_variant_id is None or session.current_step_index != LAST_STEP:
            return False

        session.working_content = content
        session.has_unsaved_changes = content != self._editor_base

        if self.drafts is not None:
            if session.has_unsaved_changes:
                self.drafts.save_draft(
                    session.selected_variant_id,
                    content,
                    metadata=self._draft_metadata(),
                    base_content=self._editor_base,
                )
            else:
                self.drafts.clear_draft(session.selected_variant_id)
        return True

    def save_and_exit(self, final_content: str) -> bool:
        """
        Finish the session: emit ``final_content`` to the host exactly once.

        Only valid at Review & Edit. Clears the draft, records a
        ContentVersion and tears down gap timers.
        """
        session = self.session
        if session.finalized or session.selected_variant_id is None or session.current_step_index != LAST_STEP:
            logger.debug("workflow_save_ignored", step=session.current_step_index, finalized=session.finalized)
            return False

        variant_id = session.selected_variant_id
        session.working_content = final_content
        session.has_unsaved_changes = False
        session.status = "reviewing"
        session.finalized = True

        if self.drafts is not None:
            self.drafts.clear_draft(variant_id)

        version = sum(1 for v in self.history if v.content_id == variant_id) + 1
        self.history.append(ContentVersion(
            id=generate_deterministic_uuid(f"{variant_id}:{version}:{final_content}"),
            content_id=variant_id,
            content=final_content,
            version=version,
            change_reason="User edit in review step",
        ))
        self.close()

        logger.info("workflow_content_finalized", variant_id=variant_id, version=version,
                    length=len(final_content))
        self._emit(self.hooks.on_content_finalized, final_content)
        return True

    def close(self) -> None:
        """Teardown: cancel gap timers and drop pending analysis results."""
        self._invalidate_requests()
        self.gaps.cancel_all()

    # Analysis steps

    async def run_gap_analysis(self) -> Optional[GapAnalysisResult]:
        """Analyze gaps against the job description and track them."""
        if not self._can_run(WorkflowStep.GAP_ANALYSIS):
            return None

        result = await self._call(
            "gap_analysis",
            lambda: self.analysis.analyze_gaps(
                self.session.working_content or "",
                self.target.job_description,
                self.store.get_ordered_variants(),
            ),
            GapAnalysisResult,
        )
        if result is not None and result.available:
            self.gap_analysis = result
            self.gaps.add_gaps(result.gaps)
        return result

    async def run_compliance_assessment(self) -> Optional[ComplianceScore]:
        if not self._can_run(WorkflowStep.COMPLIANCE_ASSESSMENT):
            return None

        result = await self._call(
            "compliance_scoring",
            lambda: self.analysis.score_compliance(self.session.working_content or "", self.target.keywords),
            ComplianceScore,
        )
        if result is not None and result.available:
            self.compliance = result
        return result

    async def run_role_assessment(self) -> Optional[AlignmentResult]:
        if not self._can_run(WorkflowStep.ROLE_ASSESSMENT):
            return None

        result = await self._call(
            "role_alignment",
            lambda: self.analysis.score_role_alignment(
                self.session.working_content or "", self.target.role, self.target.level
            ),
            AlignmentResult,
        )
        if result is not None and result.available:
            self.alignment = result
        return result

    async def generate_content(
        self, mode: GenerationMode = "enhance", custom_prompt: Optional[str] = None
    ) -> Optional[GeneratedContent]:
        """
        Ask the service for new text. The result is kept in ``self.generated``
        until the user accepts it with apply_generated_content().
        """
        if not self._can_run(WorkflowStep.CONTENT_GENERATION):
            return None
        if mode == "custom" and not custom_prompt:
            logger.warning("workflow_generate_missing_prompt")
            return None

        prompt = build_generation_prompt(
            mode,
            self.session.working_content or "",
            self.target.role,
            self.target.keywords,
            custom_prompt,
        )
        context = GenerationContext(
            target_role=self.target.role,
            level=self.target.level,
            keywords=list(self.target.keywords),
            variant_ids=[v.id for v in self.store.get_ordered_variants()],
        )

        self.session.status = "generating"
        try:
            result = await self._call("content_generation",
                                      lambda: self.analysis.generate_content(prompt, context),
                                      GeneratedContent)
        finally:
            if self.session.status == "generating":
                self.session.status = "analyzing"
        if result is not None and result.available:
            self.generated = result
        return result

    # Internals

    def _move_to(self, step: WorkflowStep) -> None:
        previous = self.session.current_step_index
        self.session.current_step_index = int(step)
        self.session.status = "reviewing" if step == LAST_STEP else "analyzing"
        logger.info("workflow_step_advanced", from_step=previous, to_step=int(step), step=step.title)
        self._emit(self.hooks.on_step_advance, int(step))
        if step == LAST_STEP:
            self.open_editor()

    def _can_run(self, step: WorkflowStep) -> bool:
        session = self.session
        allowed = (not session.finalized and session.selected_variant_id is not None
                   and session.current_step_index == step)
        if not allowed:
            logger.debug("workflow_analysis_ignored", step=int(step), current=session.current_step_index)
        return allowed

    def _invalidate_requests(self) -> None:
        for task in self.tasks.values():
            if task.status == "running":
                task.status = "superseded"
        self._latest_tokens.clear()

    async def _call(
        self,
        task_type: TaskType,
        operation: Callable[[], Awaitable[R]],
        result_type: type[R],
    ) -> Optional[R]:
        self._request_counter += 1
        token = self._request_counter
        self._latest_tokens[task_type] = token
        task = BackgroundTask(task_type=task_type, request_token=token)
        self.tasks[task_type] = task
        logger.info("analysis_call_started", task_type=task_type, request_token=token)

        error: Optional[Exception] = None
        try:
            result = await operation()
        except asyncio.CancelledError:
            task.status = "superseded"
            logger.warning("analysis_call_cancelled", task_type=task_type, request_token=token)
            raise
        except Exception as e:
            error = e
            result = result_type.unavailable()

        if self._latest_tokens.get(task_type) != token:
            task.status = "superseded"
            logger.warning("analysis_result_stale", task_type=task_type, request_token=token)
            return None

        if error is not None:
            task.status = "failed"
            task.error_message = str(error)
            logger.error("analysis_call_failed", task_type=task_type, request_token=token,
                         error=str(error), error_type=type(error).__name__)
        else:
            task.status = "completed" if result.available else "failed"
            logger.info("analysis_call_completed", task_type=task_type, request_token=token,
                        available=result.available)
        return result

    def _draft_metadata(self) -> dict[str, Any]:
        return {
            "variant_id": self.session.selected_variant_id,
            "content_id": self.store.base.id,
            "target_role": self.target.role,
        }

    def _gap_resolved(self, gap_id: str) -> None:
        self._emit(self.hooks.on_gap_resolved, gap_id)

    def _gap_dismissed(self, gap_id: str) -> None:
        self._emit(self.hooks.on_gap_dismissed, gap_id)

    @staticmethod
    def _emit(callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is not None:
            callback(*args)

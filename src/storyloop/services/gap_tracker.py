"""Gap lifecycle tracking: open -> resolved -> dismissed.

A GapTracker owns the gaps of one content scope (e.g. "role-description",
"outcome-metrics", or a paragraph id). GapRegistry keeps one tracker per
scope so every view of a session reads the same gap state.

Resolving a gap schedules its automatic dismissal. The timer is a
cancellable handle owned by the tracker; cancel_pending() is called on
teardown so a late callback never touches a session that is gone.
"""

import asyncio
from typing import Callable, Iterable, Optional, Protocol

import structlog

from storyloop.models.gap import Gap, GapStatus

logger = structlog.get_logger()

DEFAULT_AUTO_DISMISS_DELAY = 3.0

GapCallback = Callable[[str], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback later. asyncio event loops qualify."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class GapTracker:
    """
    State machine for the gaps of a single content scope.

    Transitions are one-directional and idempotent:
    - resolve(): open -> resolved, otherwise no-op
    - dismiss(): resolved -> dismissed, otherwise no-op (dismissing an open
      gap is not a defined transition and is ignored)

    Unknown gap ids are ignored. Callbacks fire exactly once per transition.
    """

    def __init__(
        self,
        scope: str,
        gaps: Optional[Iterable[Gap]] = None,
        *,
        auto_dismiss_delay: float = DEFAULT_AUTO_DISMISS_DELAY,
        scheduler: Optional[Scheduler] = None,
        on_resolved: Optional[GapCallback] = None,
        on_dismissed: Optional[GapCallback] = None,
    ):
        """
        Args:
            scope: Content scope this tracker owns
            gaps: Initial gaps (all must belong to ``scope``)
            auto_dismiss_delay: Seconds between resolve and automatic dismissal
            scheduler: Timer source; defaults to the running asyncio loop
            on_resolved: Called with the gap id after open -> resolved
            on_dismissed: Called with the gap id after resolved -> dismissed
        """
        self.scope = scope
        self.auto_dismiss_delay = auto_dismiss_delay
        self._scheduler = scheduler
        self._on_resolved = on_resolved
        self._on_dismissed = on_dismissed
        self._gaps: dict[str, Gap] = {}
        self._timers: dict[str, TimerHandle] = {}

        for gap in gaps or []:
            self.add_gap(gap)

    def add_gap(self, gap: Gap) -> Gap:
        """
        Start tracking a gap in the open state.

        Re-adding a known id keeps the tracked gap (and its status), so a
        repeated analysis cannot reopen a resolved gap.

        Raises:
            ValueError: If the gap belongs to another scope
        """
        if gap.scope != self.scope:
            raise ValueError(f"Gap {gap.id} has scope {gap.scope!r}, tracker owns {self.scope!r}")

        existing = self._gaps.get(gap.id)
        if existing is not None:
            return existing

        tracked = gap.model_copy(update={"status": GapStatus.OPEN})
        self._gaps[gap.id] = tracked
        logger.debug("gap_tracked", scope=self.scope, gap_id=gap.id, severity=gap.severity)
        return tracked

    def get_gap(self, gap_id: str) -> Optional[Gap]:
        return self._gaps.get(gap_id)

    def gaps(self, status: Optional[GapStatus] = None) -> list[Gap]:
        """Tracked gaps in the order they were added, optionally filtered by status."""
        return [g for g in self._gaps.values() if status is None or g.status == status]

    def status_of(self, gap_id: str) -> Optional[GapStatus]:
        gap = self._gaps.get(gap_id)
        return gap.status if gap else None

    def is_open(self, gap_id: str) -> bool:
        return self.status_of(gap_id) == GapStatus.OPEN

    def is_resolved_awaiting_ack(self, gap_id: str) -> bool:
        """Resolved but not yet dismissed (the transient 'fixed' state shown to the user)."""
        return self.status_of(gap_id) == GapStatus.RESOLVED

    def is_dismissed(self, gap_id: str) -> bool:
        return self.status_of(gap_id) == GapStatus.DISMISSED

    @property
    def pending_timer_count(self) -> int:
        return len(self._timers)

    def resolve(self, gap_id: str) -> bool:
        """
        Move an open gap to resolved and schedule its automatic dismissal.

        Returns:
            True if the transition happened, False for a no-op
        """
        gap = self._gaps.get(gap_id)
        if gap is None or gap.status != GapStatus.OPEN:
            logger.debug("gap_resolve_ignored", scope=self.scope, gap_id=gap_id,
                         status=gap.status.value if gap else None)
            return False

        gap.status = GapStatus.RESOLVED
        logger.info("gap_resolved", scope=self.scope, gap_id=gap_id)
        self._schedule_auto_dismiss(gap_id)

        if self._on_resolved:
            self._on_resolved(gap_id)
        return True

    def dismiss(self, gap_id: str) -> bool:
        """
        Move a resolved gap to dismissed.

        Returns:
            True if the transition happened, False for a no-op
        """
        gap = self._gaps.get(gap_id)
        if gap is None or gap.status != GapStatus.RESOLVED:
            logger.debug("gap_dismiss_ignored", scope=self.scope, gap_id=gap_id,
                         status=gap.status.value if gap else None)
            return False

        gap.status = GapStatus.DISMISSED
        timer = self._timers.pop(gap_id, None)
        if timer is not None:
            timer.cancel()
        logger.info("gap_dismissed", scope=self.scope, gap_id=gap_id)

        if self._on_dismissed:
            self._on_dismissed(gap_id)
        return True

    def cancel_pending(self) -> int:
        """
        Cancel every scheduled auto-dismissal.

        Returns:
            Number of timers cancelled
        """
        count = len(self._timers)
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        if count:
            logger.debug("gap_timers_cancelled", scope=self.scope, count=count)
        return count

    def _schedule_auto_dismiss(self, gap_id: str) -> None:
        scheduler = self._scheduler
        if scheduler is None:
            try:
                scheduler = asyncio.get_running_loop()
            except RuntimeError:
                # No loop and no injected scheduler: the gap waits for a manual dismiss
                logger.warning("gap_auto_dismiss_unscheduled", scope=self.scope, gap_id=gap_id)
                return

        self._timers[gap_id] = scheduler.call_later(
            self.auto_dismiss_delay, lambda: self._auto_dismiss(gap_id)
        )

    def _auto_dismiss(self, gap_id: str) -> None:
        self._timers.pop(gap_id, None)
        self.dismiss(gap_id)


class GapRegistry:
    """
    One GapTracker per content scope, created on first use.

    This is the single store of gap state for a session; hosts mirror it
    through the on_resolved/on_dismissed callbacks rather than keeping
    their own copies.
    """

    def __init__(
        self,
        *,
        auto_dismiss_delay: float = DEFAULT_AUTO_DISMISS_DELAY,
        scheduler: Optional[Scheduler] = None,
        on_resolved: Optional[GapCallback] = None,
        on_dismissed: Optional[GapCallback] = None,
    ):
        self.auto_dismiss_delay = auto_dismiss_delay
        self._scheduler = scheduler
        self._on_resolved = on_resolved
        self._on_dismissed = on_dismissed
        self._trackers: dict[str, GapTracker] = {}

    @property
    def scopes(self) -> list[str]:
        return list(self._trackers)

    def tracker(self, scope: str) -> GapTracker:
        if scope not in self._trackers:
            self._trackers[scope] = GapTracker(
                scope,
                auto_dismiss_delay=self.auto_dismiss_delay,
                scheduler=self._scheduler,
                on_resolved=self._on_resolved,
                on_dismissed=self._on_dismissed,
            )
        return self._trackers[scope]

    def add_gaps(self, gaps: Iterable[Gap]) -> list[Gap]:
        return [self.tracker(gap.scope).add_gap(gap) for gap in gaps]

    def get_gap(self, scope: str, gap_id: str) -> Optional[Gap]:
        tracker = self._trackers.get(scope)
        return tracker.get_gap(gap_id) if tracker else None

    def resolve(self, scope: str, gap_id: str) -> bool:
        tracker = self._trackers.get(scope)
        return tracker.resolve(gap_id) if tracker else False

    def dismiss(self, scope: str, gap_id: str) -> bool:
        tracker = self._trackers.get(scope)
        return tracker.dismiss(gap_id) if tracker else False

    def all_gaps(self) -> list[Gap]:
        return [gap for tracker in self._trackers.values() for gap in tracker.gaps()]

    def open_gaps(self) -> list[Gap]:
        return [gap for tracker in self._trackers.values() for gap in tracker.gaps(GapStatus.OPEN)]

    def cancel_all(self) -> int:
        return sum(tracker.cancel_pending() for tracker in self._trackers.values())

    def clear(self) -> None:
        """Cancel timers and forget every scope."""
        self.cancel_all()
        self._trackers.clear()

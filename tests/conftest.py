"""Shared test fixtures for all test modules."""

from datetime import datetime, timedelta, timezone

import pytest

from storyloop.models.variant import ContentBlock, Variant
from storyloop.services.variant_store import VariantStore


class ManualTimer:
    def __init__(self, scheduler, due, callback):
        self._scheduler = scheduler
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """
    Scheduler whose clock only moves when a test calls advance().

    Implements call_later() like an asyncio loop so gap auto-dismiss timers
    can be driven deterministically.
    """

    def __init__(self):
        self.now = 0.0
        self.timers: list[ManualTimer] = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self, self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> int:
        """Move time forward and run due timers. Returns how many fired."""
        self.now += seconds
        fired = 0
        for timer in sorted(self.pending, key=lambda t: t.due):
            if timer.due <= self.now and not timer.cancelled:
                timer.cancelled = True
                timer.callback()
                fired += 1
        return fired


class FixedClock:
    """Callable clock for DraftPersistence; tests move it with advance()."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def base_block():
    return ContentBlock(
        id="leadership",
        title="Leadership story",
        content="Led a team of 5 engineers to ship the billing platform",
    )


@pytest.fixture
def sample_variants():
    """One variant of each class, inserted in reverse priority order."""
    return [
        Variant(id="v1", content="Led a team of 5 engineers to ship the billing platform on time",
                created_by="human"),
        Variant(id="v2", content="Led 5 engineers to ship billing for the Senior PM role",
                target_label="Senior PM", created_by="ai"),
        Variant(id="v3", content="Led a team of 5 engineers, cutting invoice errors by 40%",
                filled_gap="outcome-metrics", created_by="ai"),
    ]


@pytest.fixture
def store(base_block, sample_variants):
    return VariantStore(base_block, sample_variants)

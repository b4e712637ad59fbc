"""Wall-clock and item-count governor for one generator run."""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from autopulse.core.logging import get_logger
from autopulse.core.settings import Settings

logger = get_logger(__name__)

STOP_MAX_ITEMS = "max_items"
STOP_TIME_BUDGET = "time_budget"
STOP_TARGET_REACHED = "target_reached"


@dataclass(frozen=True)
class RunBudget:
    """Limits fixed at run start."""
    max_duration_seconds: float = 270.0
    max_items: int = 15
    target_items: int = 10
    seconds_per_item: float = 25.0
    safety_buffer_seconds: float = 15.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RunBudget":
        return cls(
            max_duration_seconds=settings.max_duration_seconds,
            max_items=settings.max_articles_per_run,
            target_items=settings.target_articles,
            seconds_per_item=settings.estimated_seconds_per_article,
            safety_buffer_seconds=settings.safety_buffer_seconds,
        )

    @property
    def required_for_next(self) -> float:
        """Time one more item needs, buffer included."""
        return self.seconds_per_item + self.safety_buffer_seconds

    @property
    def comfortable_for_bonus(self) -> float:
        """Time needed before taking an item beyond the target."""
        return 2 * self.seconds_per_item + self.safety_buffer_seconds


class BudgetSupervisor:
    """
    Decides, before each work item, whether the run may start another one.

    Work items are not preemptible, so this is the only checkpoint: an item
    that starts with time left can still overrun the deadline.
    """

    def __init__(self, budget: RunBudget, clock: Optional[Callable[[], float]] = None):
        self.budget = budget
        self.clock = clock or time.monotonic
        self.started_at = self.clock()
        self.processed = 0
        self.stop_reason: Optional[str] = None

    @property
    def elapsed(self) -> float:
        return self.clock() - self.started_at

    @property
    def remaining(self) -> float:
        return self.budget.max_duration_seconds - self.elapsed

    def record_processed(self) -> None:
        self.processed += 1

    def should_continue(self) -> Tuple[bool, Optional[str]]:
        """
        Returns:
            (continue, stop_reason); the reason is None while continuing
        """
        budget = self.budget
        remaining = self.remaining

        if self.processed >= budget.max_items:
            return self._stop(STOP_MAX_ITEMS, remaining)

        if self.processed < budget.target_items:
            if remaining < budget.required_for_next:
                return self._stop(STOP_TIME_BUDGET, remaining)
            return True, None

        if remaining >= budget.comfortable_for_bonus:
            return True, None
        return self._stop(STOP_TARGET_REACHED, remaining)

    def _stop(self, reason: str, remaining: float) -> Tuple[bool, str]:
        self.stop_reason = reason
        logger.info(
            f"Budget stop: {reason}",
            extra={'processed': self.processed, 'remaining_seconds': round(remaining, 1)}
        )
        return False, reason

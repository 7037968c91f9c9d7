"""
Position-based Spaced Repetition Scheduler.

An SM-2 style scheduler whose clock is the concept's global position
counter (cards reviewed) instead of calendar days. Every memorization
attempt advances the concept's clock by exactly one, shared across all of
its items, which gives the due-queue a single deterministic ordering.

Update rule for comprehension score c (0-5):
- c >= 4: successes + 1, ease + 0.1 (max 4.0), interval = 1 on the first
  success, else max(1, round(interval * ease))
- c < 4:  ease - 0.2 (min 1.3), interval reset to 1
- next_due_position = position + interval

Items with two or more successes are mastered and leave the queue.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

from loguru import logger

from src.progress.models import (
    DEFAULT_EASE_FACTOR,
    ITEM_MASTERY_SUCCESSES,
    SUCCESS_COMPREHENSION,
    Attempt,
    ItemProgress,
    LearningSession,
    SchedulingUpdate,
    validate_comprehension,
)
from src.progress.store import ProgressStore

# Ease is kept to a few decimals so repeated +0.1/-0.2 steps do not drift
EASE_PRECISION = 4


def round_half_up(value: float) -> int:
    """Round x.5 away from zero (Python's round() uses banker's rounding)."""
    return math.floor(value + 0.5)


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class SchedulerConfig:
    """Tunable curve for the position scheduler."""

    initial_ease: float = DEFAULT_EASE_FACTOR
    min_ease: float = 1.3
    max_ease: float = 4.0
    success_bonus: float = 0.1
    failure_penalty: float = 0.2
    success_threshold: int = SUCCESS_COMPREHENSION

    def __post_init__(self):
        if self.min_ease > self.max_ease:
            raise ValueError(f"min_ease {self.min_ease} exceeds max_ease {self.max_ease}")

    @classmethod
    def from_settings(cls, settings) -> SchedulerConfig:
        return cls(
            initial_ease=settings.scheduler_initial_ease,
            min_ease=settings.scheduler_min_ease,
            max_ease=settings.scheduler_max_ease,
            success_bonus=settings.scheduler_success_bonus,
            failure_penalty=settings.scheduler_failure_penalty,
            success_threshold=settings.scheduler_success_threshold,
        )


@dataclass(frozen=True)
class DueCard:
    """One entry of the flashcard due-queue."""

    item: str
    ease_factor: float
    interval: int
    next_due_position: int
    success_count: int
    is_due: bool


# =============================================================================
# Scheduler
# =============================================================================


class PositionScheduler:
    """
    Computes when each memorization item is shown next.

    The scheduler itself is stateless; all timing state lives on the
    session's ItemProgress entries and is written through the ProgressStore.
    """

    def __init__(self, store: ProgressStore, config: SchedulerConfig | None = None):
        """
        Initialize the scheduler.

        Args:
            store: ProgressStore used to record attempts and advance the clock
            config: Curve configuration (uses defaults if None)
        """
        self.store = store
        self.config = config or SchedulerConfig()

    def calculate_next_review(
        self,
        item: ItemProgress,
        comprehension: int,
        position: int,
    ) -> SchedulingUpdate:
        """
        Calculate the item's timing fields after an attempt at `position`.

        Args:
            item: Current item state (not modified)
            comprehension: Evaluator score 0-5
            position: Concept clock value assigned to this attempt

        Returns:
            SchedulingUpdate with the new ease, interval and positions
        """
        cfg = self.config
        ease = self._clamp(item.ease_factor)

        if comprehension >= cfg.success_threshold:
            success_count = item.success_count + 1
            ease = self._clamp(ease + cfg.success_bonus)
            if item.success_count == 0:
                interval = 1
            else:
                interval = max(1, round_half_up(item.interval * ease))
        else:
            success_count = item.success_count
            ease = self._clamp(ease - cfg.failure_penalty)
            interval = 1

        return SchedulingUpdate(
            ease_factor=ease,
            interval=interval,
            last_review_position=position,
            next_due_position=position + interval,
            success_count=success_count,
        )

    def record_review(
        self,
        session: LearningSession,
        concept_name: str,
        item_name: str,
        attempt: Attempt,
    ) -> ItemProgress:
        """
        Record a memorization attempt and reschedule the item.

        Advances the concept clock, computes the new timing fields and
        writes attempt and timing together through the store.

        Raises:
            InvalidComprehensionScoreError: before any state is touched
        """
        score = validate_comprehension(attempt.comprehension)

        concept = self.store.ensure_concept(session, concept_name)
        current = concept.items_progress.get(item_name) or ItemProgress(
            item_name=item_name, ease_factor=self.config.initial_ease
        )

        position = self.store.increment_global_position(session, concept_name)
        update = self.calculate_next_review(current, score, position)
        item = self.store.record_item_attempt(session, concept_name, item_name, attempt, update)

        logger.debug(
            f"Recorded review for {concept_name}/{item_name}: score={score}, "
            f"position={position}, ease={item.ease_factor}, interval={item.interval}, "
            f"next_due={item.next_due_position}"
        )
        if item.success_count == ITEM_MASTERY_SUCCESSES and current.success_count < ITEM_MASTERY_SUCCESSES:
            logger.info(f"'{item_name}' mastered in concept '{concept_name}'")

        return item

    # =========================================================================
    # Due Queue
    # =========================================================================

    def due_queue(
        self,
        session: LearningSession,
        concept_name: str,
        items: Iterable[str] | None = None,
    ) -> list[DueCard]:
        """
        Unmastered items in presentation order.

        Due items (next_due_position <= current position) come first by due
        position, then ease (hardest first); the rest follow in the same
        order for look-ahead presentation. Items listed in `items` but never
        attempted enter with default state and are due immediately.
        """
        position = self.store.global_position(session, concept_name)
        concept = session.concept(concept_name)
        progress = dict(concept.items_progress) if concept else {}

        for name in items or ():
            if name not in progress:
                progress[name] = ItemProgress(item_name=name, ease_factor=self.config.initial_ease)

        cards = [
            DueCard(
                item=name,
                ease_factor=item.ease_factor,
                interval=item.interval,
                next_due_position=item.next_due_position,
                success_count=item.success_count,
                is_due=item.next_due_position <= position,
            )
            for name, item in progress.items()
            if not item.is_mastered
        ]
        # Due cards always sort ahead of look-ahead cards since their positions are smaller
        return sorted(cards, key=lambda c: (c.next_due_position, c.ease_factor, c.item))

    def next_item(
        self,
        session: LearningSession,
        concept_name: str,
        items: Iterable[str] | None = None,
    ) -> DueCard | None:
        """The card to present next, or None when every item is mastered."""
        queue = self.due_queue(session, concept_name, items)
        return queue[0] if queue else None

    def _clamp(self, ease: float) -> float:
        bounded = min(self.config.max_ease, max(self.config.min_ease, ease))
        return round(bounded, EASE_PRECISION)

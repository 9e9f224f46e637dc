"""
Review Service.

Host-side orchestration of the grader, selector and statistics over a
ProgressStore and a Clock. Each recorded attempt is one atomic store update.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace

from loguru import logger

from .clock import Clock, SystemClock, ensure_utc
from .errors import ItemNotFoundError, ItemNotFoundInPool
from .grader import ReviewGrader, sanitize_state
from .models import (
    Item,
    ReviewLogEntry,
    ReviewState,
    SchedulerConfig,
    SessionCard,
    SetProgressEntry,
    SetStatistics,
    StudyAttempt,
)
from .selector import SessionSelector
from .statistics import get_set_statistics
from .store import ProgressStore


def require_in_pool(pool: Sequence[Item], item_id: str, pool_id: str | None = None) -> Item:
    """Return the pool item with the given id, or raise ItemNotFoundInPool."""
    for item in pool:
        if item.id == item_id:
            return item
    if pool_id is None and pool:
        pool_id = pool[0].pool_id
    raise ItemNotFoundInPool(item_id, pool_id)


class ReviewService:
    """
    Records attempts and builds sessions for a learner.

    Handles:
    - Single and bulk attempt recording (one atomic read, grade, write and log)
    - Due-card session selection and the plain due list
    - Per-set progress and statistics
    - Progress reset
    """

    def __init__(
        self,
        store: ProgressStore,
        clock: Clock | None = None,
        config: SchedulerConfig | None = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config or SchedulerConfig()
        self.grader = ReviewGrader(self.config)
        self.selector = SessionSelector(self.config)

    def record_attempt(self, attempt: StudyAttempt, pool_id: str | None = None) -> ReviewState:
        """
        Grade an attempt and persist the result.

        Args:
            attempt: The answered card
            pool_id: When given, the card must belong to this pool

        Raises:
            ItemNotFoundError: The item does not exist
            ItemNotFoundInPool: The item is not part of pool_id
        """
        if pool_id is not None:
            require_in_pool(self.store.list_by_pool(pool_id), attempt.item_id, pool_id)
        elif self.store.get_item(attempt.item_id) is None:
            raise ItemNotFoundError(attempt.item_id)

        now = ensure_utc(attempt.occurred_at or self.clock.now())
        timed = replace(attempt, occurred_at=now)

        def grade(prior: ReviewState | None) -> tuple[ReviewState, ReviewLogEntry]:
            state, confidence, quality = self.grader.grade(prior, timed)
            entry = ReviewLogEntry(
                user_id=attempt.user_id,
                item_id=attempt.item_id,
                is_correct=attempt.is_correct,
                confidence=confidence,
                quality=quality,
                reviewed_at=now,
                time_spent_ms=attempt.time_spent_ms,
            )
            return state, entry

        state = self.store.update(attempt.user_id, attempt.item_id, grade)

        logger.debug(
            f"Recorded attempt for {attempt.item_id}: next_review={state.next_review_at}, "
            f"interval={state.interval}d"
        )
        return state

    def record_study_session(self, user_id: str, attempts: Iterable[StudyAttempt]) -> list[ReviewState]:
        """Apply a batch of attempts in order; later attempts see earlier results."""
        results = []
        for attempt in attempts:
            results.append(self.record_attempt(replace(attempt, user_id=user_id)))
        logger.info(f"Recorded study session for {user_id}: {len(results)} attempts")
        return results

    def get_due_items(self, user_id: str, pool_id: str, target_count: int) -> list[SessionCard]:
        """Build the next study session for a learner over one pool."""
        pool = self.store.list_by_pool(pool_id)
        states = self.store.list_states(user_id, [item.id for item in pool])
        return self.selector.get_due_items(pool, states, self.clock.now(), target_count)

    def list_due_cards(self, user_id: str, pool_id: str | None = None) -> list[SessionCard]:
        """
        Every studied card whose review time has passed, soonest first.

        Unlike get_due_items this adds no low-mastery or new cards and is not
        capped; pool_id narrows it to one pool.
        """
        cards = self.store.list_due(user_id, self.clock.now(), pool_id)
        return [
            replace(card, state=sanitize_state(card.state, context=f"{user_id}/{card.item.id}"))
            for card in cards
        ]

    def get_set_progress(self, user_id: str, pool_id: str) -> list[SetProgressEntry]:
        """Every card in the pool with its state (None if never studied)."""
        pool = self.store.list_by_pool(pool_id)
        states = self.store.list_states(user_id, [item.id for item in pool])
        return [SetProgressEntry(item=item, state=states.get(item.id)) for item in pool]

    def get_set_statistics(self, user_id: str, pool_id: str) -> SetStatistics:
        pool = self.store.list_by_pool(pool_id)
        states = self.store.list_states(user_id, [item.id for item in pool])
        return get_set_statistics(pool, states, self.clock.now(), self.config.mastered_threshold)

    def reset_progress(self, user_id: str, item_id: str) -> bool:
        """Delete a learner's state for one card. Returns True if one existed."""
        removed = self.store.delete(user_id, item_id)
        if removed:
            logger.info(f"Reset progress for {user_id}/{item_id}")
        return removed

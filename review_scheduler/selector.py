"""
Study Session Selection.

Picks the cards for the next study session from a pool:
1. Cards with history that need review (due, low mastery or under-practiced)
2. Never-studied cards fill the remaining quota

Cards that are neither are left out even if the session comes up short;
low-priority cards are never forced in just to hit the target.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime

from loguru import logger

from .grader import sanitize_state
from .models import Item, ReviewState, SchedulerConfig, SessionCard


class SessionSelector:
    """
    Builds bounded study sessions from a pool and the learner's review states.

    Read-only: placeholder states for new cards are never persisted.
    """

    def __init__(self, config: SchedulerConfig | None = None):
        self.config = config or SchedulerConfig()

    def needs_review(self, state: ReviewState, now: datetime) -> bool:
        """True if the card is due, weakly mastered or under-practiced."""
        return (
            state.is_due(now)
            or state.mastery_level < self.config.low_mastery_threshold
            or state.times_studied < self.config.min_practice_count
        )

    def get_due_items(
        self,
        pool: Sequence[Item],
        states: Mapping[str, ReviewState],
        now: datetime,
        target_count: int,
    ) -> list[SessionCard]:
        """
        Select the cards to study next.

        Args:
            pool: Items in the set, in display order
            states: The learner's review states keyed by item id
            now: Current time
            target_count: Desired session size

        Returns:
            At most min(target_count, len(pool)) SessionCards, review cards
            first, then new cards
        """
        target = min(target_count, len(pool))
        if target <= 0:
            return []

        review: list[SessionCard] = []
        unstudied: list[Item] = []

        for item in pool:
            state = states.get(item.id)
            if state is None:
                unstudied.append(item)
                continue
            if len(review) >= target:
                continue
            state = sanitize_state(state, context=item.id)
            if self.needs_review(state, now):
                review.append(SessionCard(item=item, state=state))

        remaining = target - len(review)
        new = [
            SessionCard(item=item, state=ReviewState.placeholder(), is_new=True)
            for item in unstudied[:remaining]
        ]

        session = (review + new)[:target]

        logger.debug(
            f"Session built: {len(review)} review + {len(new)} new = {len(session)} cards "
            f"(target {target_count}, pool {len(pool)})"
        )

        return session


def get_due_items(
    pool: Sequence[Item],
    states: Mapping[str, ReviewState],
    now: datetime,
    target_count: int,
    config: SchedulerConfig | None = None,
) -> list[SessionCard]:
    """Select a session with a default-configured SessionSelector."""
    return SessionSelector(config).get_due_items(pool, states, now, target_count)

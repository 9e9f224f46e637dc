"""Read-only progress statistics for a set of cards."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from datetime import datetime

from .grader import sanitize_state
from .models import Item, ReviewState, SetStatistics

MASTERED_THRESHOLD = 80


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def get_set_statistics(
    pool: Sequence[Item],
    states: Mapping[str, ReviewState],
    now: datetime,
    mastered_threshold: int = MASTERED_THRESHOLD,
) -> SetStatistics:
    """
    Aggregate a learner's progress over a pool.

    Only states for items in the pool are counted, each clamped back inside
    its invariants first. average_mastery and success_rate (a percentage)
    are rounded to whole numbers.
    """
    studied = [sanitize_state(states[item.id], context=item.id) for item in pool if item.id in states]

    total_attempts = sum(s.times_studied for s in studied)
    total_correct = sum(s.times_correct for s in studied)

    average_mastery = sum(s.mastery_level for s in studied) / len(studied) if studied else 0
    success_rate = total_correct / total_attempts * 100 if total_attempts else 0

    return SetStatistics(
        total_cards=len(pool),
        studied_cards=len(studied),
        unstudied_cards=len(pool) - len(studied),
        mastered_cards=sum(1 for s in studied if s.mastery_level >= mastered_threshold),
        due_for_review=sum(1 for s in studied if s.is_due(now)),
        average_mastery=_round_half_up(average_mastery),
        success_rate=_round_half_up(success_rate),
        total_attempts=total_attempts,
        total_correct=total_correct,
    )

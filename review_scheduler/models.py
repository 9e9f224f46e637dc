"""
Review Scheduler Data Model.

Design:
- Confidence: Learner confidence in an answer (easy/medium/hard)
- ReviewState: SM-2 scheduling state for one (user, item) pair
- StudyAttempt: A single answered card, never stored as-is
- Item: A card and the pool (set) it belongs to
- SessionCard: One entry of a selected study session
- SetStatistics: Read-only aggregate over a pool
- SchedulerConfig: SM-2 and selection constants
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from .clock import ensure_utc
from .errors import InvalidStateError

if TYPE_CHECKING:
    from config import Settings

INITIAL_EASE_FACTOR = 2.5
MINIMUM_EASE_FACTOR = 1.3


class Confidence(str, Enum):
    """Self-reported or inferred confidence in an answer."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def quality(self) -> int:
        """SM-2 quality (0-5) for this confidence."""
        return {
            Confidence.EASY: 5,  # Perfect response
            Confidence.MEDIUM: 4,  # Correct after hesitation
            Confidence.HARD: 3,  # Correct with difficulty
        }[self]


@dataclass
class SchedulerConfig:
    """Constants for grading and session selection."""

    initial_ease_factor: float = INITIAL_EASE_FACTOR
    minimum_ease_factor: float = MINIMUM_EASE_FACTOR
    failure_ease_penalty: float = 0.2
    failure_delay_hours: int = 4
    first_interval: int = 1  # Days after first success
    perfect_first_interval: int = 3  # First success on a never-failed card
    second_interval: int = 6  # Days after second success
    struggle_streak: int = 2  # Prior consecutive failures that count as struggling
    struggle_total: int = 5  # Lifetime failures that count as struggling

    low_mastery_threshold: int = 50
    min_practice_count: int = 3
    mastered_threshold: int = 80

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerConfig:
        """Build a config from application settings."""
        return cls(**settings.get_scheduler_config())


@dataclass
class ReviewState:
    """
    SM-2 scheduling state for a single (user, item) pair.

    Created on the first attempt and replaced on every subsequent one.
    mastery_level is derived and should only be written by the grader.
    """

    ease_factor: float = INITIAL_EASE_FACTOR
    interval: int = 0  # Days until next review, 0 = due now
    repetitions: int = 0  # Consecutive successes since last failure

    times_studied: int = 0
    times_correct: int = 0
    times_incorrect: int = 0
    consecutive_incorrect: int = 0

    mastery_level: int = 0  # 0-100
    last_studied_at: datetime | None = None
    next_review_at: datetime | None = None

    @classmethod
    def placeholder(cls) -> ReviewState:
        """State shown for a never-studied item. Never persisted."""
        return cls()

    @property
    def is_new(self) -> bool:
        return self.times_studied == 0 and self.next_review_at is None

    @property
    def success_rate(self) -> float:
        if self.times_studied == 0:
            return 0.0
        return self.times_correct / self.times_studied

    def is_due(self, now: datetime) -> bool:
        """True when the scheduled review time has passed."""
        if self.next_review_at is None:
            return False
        return ensure_utc(self.next_review_at) <= ensure_utc(now)

    def violations(self) -> list[str]:
        """List every invariant this state breaks."""
        problems: list[str] = []
        if not math.isfinite(self.ease_factor) or self.ease_factor < MINIMUM_EASE_FACTOR:
            problems.append(f"ease_factor {self.ease_factor} below {MINIMUM_EASE_FACTOR}")
        if self.interval < 0:
            problems.append(f"negative interval {self.interval}")
        if self.repetitions < 0:
            problems.append(f"negative repetitions {self.repetitions}")
        for name in ("times_studied", "times_correct", "times_incorrect", "consecutive_incorrect"):
            if getattr(self, name) < 0:
                problems.append(f"negative {name} {getattr(self, name)}")
        if self.times_studied != self.times_correct + self.times_incorrect:
            problems.append(
                f"times_studied {self.times_studied} != "
                f"{self.times_correct} correct + {self.times_incorrect} incorrect"
            )
        if not 0 <= self.mastery_level <= 100:
            problems.append(f"mastery_level {self.mastery_level} outside 0-100")
        return problems

    def validate(self) -> None:
        """Raise InvalidStateError if any invariant is broken."""
        problems = self.violations()
        if problems:
            raise InvalidStateError(problems)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = asdict(self)
        for key in ("last_studied_at", "next_review_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass
class StudyAttempt:
    """One answered card."""

    user_id: str
    item_id: str
    is_correct: bool
    confidence: Confidence | None = None
    occurred_at: datetime | None = None  # Defaults to the clock's now
    time_spent_ms: int | None = None


@dataclass(frozen=True)
class Item:
    """A learning item and the pool it belongs to."""

    id: str
    pool_id: str
    front: str = ""
    back: str = ""


@dataclass
class SessionCard:
    """An item selected for a study session, with its (possibly placeholder) state."""

    item: Item
    state: ReviewState
    is_new: bool = False


@dataclass
class SetProgressEntry:
    """Progress of one item in a set; state is None when never studied."""

    item: Item
    state: ReviewState | None = None


@dataclass
class ReviewLogEntry:
    """A single recorded attempt."""

    user_id: str
    item_id: str
    is_correct: bool
    confidence: Confidence
    quality: int
    reviewed_at: datetime
    time_spent_ms: int | None = None
    id: int | None = None


@dataclass
class SetStatistics:
    """Aggregate progress over a pool of items."""

    total_cards: int = 0
    studied_cards: int = 0
    unstudied_cards: int = 0
    mastered_cards: int = 0
    due_for_review: int = 0
    average_mastery: int = 0
    success_rate: int = 0  # Percentage
    total_attempts: int = 0
    total_correct: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

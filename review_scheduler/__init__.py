"""
Review Scheduler: SM-2 spaced repetition for study cards.

Components:
- ReviewGrader: Turns a study attempt into an updated ReviewState
- SessionSelector: Picks the cards for the next study session
- get_set_statistics: Read-only progress aggregation
- ReviewService: Orchestration over a ProgressStore and a Clock
- InMemoryProgressStore / SqlProgressStore: Persistence
"""

from .clock import Clock, FixedClock, SystemClock
from .db import SqlProgressStore
from .errors import InvalidStateError, ItemNotFoundError, ItemNotFoundInPool, SchedulerError
from .grader import ReviewGrader, SM2Result, calculate_mastery, record_attempt, sanitize_state
from .models import (
    Confidence,
    Item,
    ReviewLogEntry,
    ReviewState,
    SchedulerConfig,
    SessionCard,
    SetProgressEntry,
    SetStatistics,
    StudyAttempt,
)
from .selector import SessionSelector, get_due_items
from .service import ReviewService, require_in_pool
from .statistics import get_set_statistics
from .store import InMemoryProgressStore, ProgressStore

__all__ = [
    # Model
    "Confidence",
    "Item",
    "ReviewLogEntry",
    "ReviewState",
    "SchedulerConfig",
    "SessionCard",
    "SetProgressEntry",
    "SetStatistics",
    "StudyAttempt",
    # Grading
    "ReviewGrader",
    "SM2Result",
    "calculate_mastery",
    "record_attempt",
    "sanitize_state",
    # Selection
    "SessionSelector",
    "get_due_items",
    "get_set_statistics",
    # Service
    "ReviewService",
    "require_in_pool",
    # Persistence
    "ProgressStore",
    "InMemoryProgressStore",
    "SqlProgressStore",
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    # Errors
    "SchedulerError",
    "ItemNotFoundError",
    "ItemNotFoundInPool",
    "InvalidStateError",
]

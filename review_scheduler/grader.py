"""
SM-2 Review Grader.

Turns a single study attempt into an updated ReviewState:
1. Infer confidence from history when the learner gives none
2. Map confidence to an SM-2 quality
3. Update the attempt counters
4. Run the SM-2 step (ease factor, interval, repetitions, next review)
5. Recompute mastery from scratch

SM-2 Quality Scale (only 2-5 are produced here):
2 - Incorrect (fixed grade for every wrong answer)
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from loguru import logger

from .clock import ensure_utc
from .models import (
    INITIAL_EASE_FACTOR,
    MINIMUM_EASE_FACTOR,
    Confidence,
    ReviewState,
    SchedulerConfig,
    StudyAttempt,
)

FAILING_QUALITY = 2
PASSING_QUALITY = 3


@dataclass
class SM2Result:
    """Output of one SM-2 step."""

    ease_factor: float
    interval: int
    repetitions: int
    next_review_at: datetime


def sanitize_state(state: ReviewState, context: str = "") -> ReviewState:
    """
    Clamp a persisted state back inside its invariants.

    Corrupt values are logged and repaired rather than raised, so one bad
    row never stops a scheduling computation.
    """
    problems = state.violations()
    if not problems:
        return state

    logger.warning(f"Clamping invalid review state{' for ' + context if context else ''}: {'; '.join(problems)}")

    ease = state.ease_factor
    if not math.isfinite(ease):
        ease = INITIAL_EASE_FACTOR
    times_correct = max(0, state.times_correct)
    times_incorrect = max(0, state.times_incorrect)

    return replace(
        state,
        ease_factor=max(MINIMUM_EASE_FACTOR, ease),
        interval=max(0, state.interval),
        repetitions=max(0, state.repetitions),
        times_correct=times_correct,
        times_incorrect=times_incorrect,
        times_studied=times_correct + times_incorrect,
        consecutive_incorrect=max(0, state.consecutive_incorrect),
        mastery_level=min(100, max(0, state.mastery_level)),
    )


def calculate_mastery(
    times_correct: int,
    times_studied: int,
    repetitions: int,
    consecutive_incorrect: int,
) -> int:
    """
    Mastery level (0-100) from the full counters.

    70% weight on success rate, 30% on the repetition streak (capped at 10),
    minus 10 points per consecutive failure (capped at 30).
    """
    success_rate = times_correct / times_studied if times_studied else 0.0
    rep_factor = min(repetitions, 10) / 10
    consecutive_penalty = min(consecutive_incorrect * 10, 30)

    raw = success_rate * 70 + rep_factor * 30 - consecutive_penalty
    # Half-up rounding, not banker's rounding
    return min(100, max(0, math.floor(raw + 0.5)))


class ReviewGrader:
    """
    Implements the SM-2 grading step with confidence inference.

    The grader is stateless: every call is a pure function of the prior
    state, the attempt and the supplied time.
    """

    def __init__(self, config: SchedulerConfig | None = None):
        """
        Initialize the grader.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SchedulerConfig()

    def infer_confidence(
        self,
        is_correct: bool,
        consecutive_incorrect: int,
        times_studied: int,
    ) -> Confidence:
        """
        Infer confidence from performance history.

        Args:
            is_correct: Whether this attempt was correct
            consecutive_incorrect: Failure streak going into this attempt
            times_studied: Attempts recorded before this one

        Returns:
            Inferred Confidence
        """
        if not is_correct:
            return Confidence.HARD

        # Recent failure: medium at best
        if consecutive_incorrect >= 1:
            return Confidence.MEDIUM

        # No history to justify "easy" yet
        if times_studied in (0, 1):
            return Confidence.MEDIUM

        return Confidence.EASY

    def quality_for(self, is_correct: bool, confidence: Confidence) -> int:
        """SM-2 quality for an attempt; every wrong answer gets the failing grade."""
        if not is_correct:
            return FAILING_QUALITY
        return confidence.quality

    def calculate_sm2(
        self,
        quality: int,
        now: datetime,
        ease_factor: float | None = None,
        interval: int = 0,
        repetitions: int = 0,
        consecutive_incorrect: int = 0,
        total_incorrect: int = 0,
    ) -> SM2Result:
        """
        Run one SM-2 step.

        Args:
            quality: SM-2 quality (0-5)
            now: Time of the attempt
            ease_factor: Prior ease factor (initial ease if None)
            interval: Prior interval in days
            repetitions: Prior consecutive successes
            consecutive_incorrect: Failure streak before this attempt
            total_incorrect: Lifetime failures before this attempt

        Returns:
            SM2Result with the new ease, interval, repetitions and next review
        """
        cfg = self.config
        if ease_factor is None:
            ease_factor = cfg.initial_ease_factor

        if quality < PASSING_QUALITY:
            next_review_at = now
            # Isolated failure on a card that has failed before: let it sink in
            if consecutive_incorrect == 0 and total_incorrect > 0:
                next_review_at = now + timedelta(hours=cfg.failure_delay_hours)

            return SM2Result(
                ease_factor=max(cfg.minimum_ease_factor, ease_factor - cfg.failure_ease_penalty),
                interval=0,
                repetitions=0,
                next_review_at=next_review_at,
            )

        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
        new_ef = max(cfg.minimum_ease_factor, ease_factor + ef_delta)

        if repetitions == 0:
            if consecutive_incorrect >= cfg.struggle_streak or total_incorrect >= cfg.struggle_total:
                new_interval = cfg.first_interval
            elif total_incorrect == 0:
                new_interval = cfg.perfect_first_interval
            else:
                new_interval = cfg.first_interval
        elif repetitions == 1:
            new_interval = cfg.second_interval
        else:
            # round off float noise before ceil
            new_interval = math.ceil(round(interval * new_ef, 6))

        return SM2Result(
            ease_factor=new_ef,
            interval=new_interval,
            repetitions=repetitions + 1,
            next_review_at=now + timedelta(days=new_interval),
        )

    def record_attempt(
        self,
        prior: ReviewState | None,
        attempt: StudyAttempt,
        now: datetime | None = None,
    ) -> ReviewState:
        """
        Grade an attempt against the prior state.

        Args:
            prior: Existing state, or None for the first attempt
            attempt: The answered card
            now: Attempt time when attempt.occurred_at is unset

        Returns:
            The new ReviewState to persist
        """
        state, _, _ = self.grade(prior, attempt, now)
        return state

    def grade(
        self,
        prior: ReviewState | None,
        attempt: StudyAttempt,
        now: datetime | None = None,
    ) -> tuple[ReviewState, Confidence, int]:
        """Like record_attempt, also returning the confidence and quality used."""
        at = attempt.occurred_at or now
        if at is None:
            raise ValueError("attempt time required: set occurred_at or pass now")
        at = ensure_utc(at)

        if prior is None:
            base = ReviewState(ease_factor=self.config.initial_ease_factor)
        else:
            base = sanitize_state(prior, context=f"{attempt.user_id}/{attempt.item_id}")

        confidence = attempt.confidence or self.infer_confidence(
            attempt.is_correct,
            base.consecutive_incorrect,
            base.times_studied,
        )
        quality = self.quality_for(attempt.is_correct, confidence)

        sm2 = self.calculate_sm2(
            quality,
            at,
            ease_factor=base.ease_factor,
            interval=base.interval,
            repetitions=base.repetitions,
            consecutive_incorrect=base.consecutive_incorrect,
            total_incorrect=base.times_incorrect,
        )

        times_studied = base.times_studied + 1
        times_correct = base.times_correct + (1 if attempt.is_correct else 0)
        times_incorrect = base.times_incorrect + (0 if attempt.is_correct else 1)
        consecutive_incorrect = 0 if attempt.is_correct else base.consecutive_incorrect + 1

        mastery = calculate_mastery(times_correct, times_studied, sm2.repetitions, consecutive_incorrect)

        logger.debug(
            f"Graded {attempt.item_id} for {attempt.user_id}: correct={attempt.is_correct}, "
            f"confidence={confidence.value}, quality={quality}, interval={sm2.interval}d, "
            f"mastery={mastery}"
        )

        state = ReviewState(
            ease_factor=sm2.ease_factor,
            interval=sm2.interval,
            repetitions=sm2.repetitions,
            times_studied=times_studied,
            times_correct=times_correct,
            times_incorrect=times_incorrect,
            consecutive_incorrect=consecutive_incorrect,
            mastery_level=mastery,
            last_studied_at=at,
            next_review_at=sm2.next_review_at,
        )
        return state, confidence, quality


def record_attempt(
    prior: ReviewState | None,
    attempt: StudyAttempt,
    now: datetime | None = None,
    config: SchedulerConfig | None = None,
) -> ReviewState:
    """Grade an attempt with a default-configured ReviewGrader."""
    return ReviewGrader(config).record_attempt(prior, attempt, now)

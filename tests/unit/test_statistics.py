"""Unit tests for set statistics."""

from datetime import timedelta

from loguru import logger

from review_scheduler import Item, ReviewState, get_set_statistics


def test_empty_pool(now):
    stats = get_set_statistics([], {}, now)

    assert stats.total_cards == 0
    assert stats.average_mastery == 0
    assert stats.success_rate == 0


def test_unstudied_pool(now, sample_pool):
    stats = get_set_statistics(sample_pool, {}, now)

    assert stats.total_cards == 10
    assert stats.studied_cards == 0
    assert stats.unstudied_cards == 10
    assert stats.due_for_review == 0


def test_mixed_progress(now):
    pool = [Item(id=f"c{i}", pool_id="set") for i in range(4)]
    states = {
        "c0": ReviewState(
            times_studied=4, times_correct=4, mastery_level=85, next_review_at=now - timedelta(hours=1)
        ),
        "c1": ReviewState(
            times_studied=2, times_correct=1, times_incorrect=1, mastery_level=40,
            next_review_at=now + timedelta(days=1),
        ),
        "c2": ReviewState(
            times_studied=3, times_correct=2, times_incorrect=1, mastery_level=80, next_review_at=now
        ),
    }

    stats = get_set_statistics(pool, states, now)

    assert stats.total_cards == 4
    assert stats.studied_cards == 3
    assert stats.unstudied_cards == 1
    assert stats.mastered_cards == 2  # 85 and 80
    assert stats.due_for_review == 2  # c0 and c2 (due exactly now)
    assert stats.average_mastery == 68  # 205 / 3
    assert stats.success_rate == 78  # 7 / 9
    assert stats.total_attempts == 9
    assert stats.total_correct == 7


def test_states_outside_pool_are_ignored(now):
    pool = [Item(id="c0", pool_id="set")]
    states = {
        "c0": ReviewState(times_studied=1, times_correct=1, mastery_level=73),
        "other": ReviewState(times_studied=9, times_incorrect=9),
    }

    stats = get_set_statistics(pool, states, now)

    assert stats.studied_cards == 1
    assert stats.total_attempts == 1
    assert stats.success_rate == 100


def test_custom_mastered_threshold(now):
    pool = [Item(id="c0", pool_id="set")]
    states = {"c0": ReviewState(times_studied=1, times_correct=1, mastery_level=73)}

    assert get_set_statistics(pool, states, now, mastered_threshold=70).mastered_cards == 1


def test_to_dict(now, sample_pool):
    data = get_set_statistics(sample_pool, {}, now).to_dict()
    assert data["total_cards"] == 10
    assert set(data) >= {"studied_cards", "due_for_review", "success_rate"}


def test_corrupt_states_are_clamped(now):
    pool = [Item(id="c0", pool_id="set"), Item(id="c1", pool_id="set")]
    states = {
        "c0": ReviewState(times_studied=2, times_correct=2, mastery_level=400),
        "c1": ReviewState(times_studied=9, times_correct=1, times_incorrect=-3, mastery_level=-20),
    }

    messages = []
    handler_id = logger.add(messages.append, level="WARNING")
    try:
        stats = get_set_statistics(pool, states, now)
    finally:
        logger.remove(handler_id)

    assert stats.average_mastery == 50  # (100 + 0) / 2
    assert stats.mastered_cards == 1
    assert stats.total_attempts == 3  # c1 recomputed as 1 correct + 0 incorrect
    assert stats.success_rate == 100
    assert any("c0" in str(m) for m in messages)

"""
Unit tests for SessionSelector.

Focused on the stateless selection so these tests do not require a DB.
"""

from datetime import timedelta

import pytest

from review_scheduler import Item, ReviewState, SchedulerConfig, SessionSelector, get_due_items


def settled_state(now, **overrides):
    """A well-practiced, mastered card scheduled in the future."""
    fields = dict(
        ease_factor=2.6,
        interval=16,
        repetitions=3,
        times_studied=5,
        times_correct=5,
        mastery_level=90,
        last_studied_at=now - timedelta(days=1),
        next_review_at=now + timedelta(days=15),
    )
    fields.update(overrides)
    return ReviewState(**fields)


@pytest.fixture
def selector():
    return SessionSelector()


class TestSelectionCriteria:
    def test_due_card_is_selected(self, selector, now, sample_pool):
        states = {"card-00": settled_state(now, next_review_at=now)}
        session = selector.get_due_items(sample_pool[:1], states, now, 5)
        assert [c.item.id for c in session] == ["card-00"]
        assert session[0].is_new is False

    def test_low_mastery_card_is_selected(self, selector, now, sample_pool):
        states = {"card-00": settled_state(now, mastery_level=49)}
        assert len(selector.get_due_items(sample_pool[:1], states, now, 5)) == 1

    def test_under_practiced_card_is_selected(self, selector, now, sample_pool):
        states = {"card-00": settled_state(now, times_studied=2, times_correct=2)}
        assert len(selector.get_due_items(sample_pool[:1], states, now, 5)) == 1

    def test_settled_cards_are_not_forced_in(self, selector, now, sample_pool):
        states = {item.id: settled_state(now) for item in sample_pool}
        assert selector.get_due_items(sample_pool, states, now, 5) == []

    def test_custom_thresholds(self, now, sample_pool):
        selector = SessionSelector(SchedulerConfig(low_mastery_threshold=95))
        states = {"card-00": settled_state(now)}
        assert len(selector.get_due_items(sample_pool[:1], states, now, 5)) == 1


class TestPaddingAndBounds:
    def test_empty_pool(self, selector, now):
        assert selector.get_due_items([], {}, now, 10) == []

    def test_non_positive_target(self, selector, now, sample_pool):
        assert selector.get_due_items(sample_pool, {}, now, 0) == []
        assert selector.get_due_items(sample_pool, {}, now, -3) == []

    def test_empty_history_returns_exactly_k(self, selector, now, sample_pool):
        session = selector.get_due_items(sample_pool, {}, now, 4)

        assert [c.item.id for c in session] == ["card-00", "card-01", "card-02", "card-03"]
        assert all(c.is_new for c in session)

    def test_placeholder_state(self, selector, now, sample_pool):
        card = selector.get_due_items(sample_pool, {}, now, 1)[0]

        assert card.state.times_studied == 0
        assert card.state.mastery_level == 0
        assert card.state.ease_factor == 2.5
        assert card.state.interval == 0
        assert card.state.repetitions == 0
        assert card.state.next_review_at is None

    def test_target_clamped_to_pool(self, selector, now, sample_pool):
        assert len(selector.get_due_items(sample_pool[:3], {}, now, 10)) == 3

    def test_review_cards_capped_at_target(self, selector, now, sample_pool):
        states = {item.id: settled_state(now, next_review_at=now) for item in sample_pool[:5]}
        session = selector.get_due_items(sample_pool, states, now, 3)

        assert [c.item.id for c in session] == ["card-00", "card-01", "card-02"]
        assert not any(c.is_new for c in session)

    def test_review_cards_come_before_new_cards(self, selector, now, sample_pool):
        # card-09 has history; everything before it is new
        states = {"card-09": settled_state(now, next_review_at=now)}
        session = selector.get_due_items(sample_pool, states, now, 3)

        assert [c.item.id for c in session] == ["card-09", "card-00", "card-01"]
        assert [c.is_new for c in session] == [False, True, True]

    def test_mixed_pool_fills_session(self, selector, now, sample_pool):
        states = {}
        for item in sample_pool[:3]:
            states[item.id] = settled_state(now, next_review_at=now - timedelta(hours=1))
        for item in sample_pool[3:5]:
            states[item.id] = settled_state(now, mastery_level=30)

        session = selector.get_due_items(sample_pool, states, now, 10)

        assert len(session) == 10
        assert [c.is_new for c in session] == [False] * 5 + [True] * 5

    def test_short_result_when_nothing_qualifies(self, selector, now, sample_pool):
        states = {item.id: settled_state(now) for item in sample_pool[:8]}
        session = selector.get_due_items(sample_pool, states, now, 5)

        # Only the two never-studied cards; mastered cards are not forced in
        assert [c.item.id for c in session] == ["card-08", "card-09"]

    @pytest.mark.parametrize("k", range(0, 13))
    def test_result_never_exceeds_bound(self, selector, now, sample_pool, k):
        states = {
            "card-00": settled_state(now, next_review_at=now),
            "card-02": settled_state(now, mastery_level=10),
            "card-04": settled_state(now),
            "card-06": settled_state(now, times_studied=1, times_correct=1),
        }
        session = selector.get_due_items(sample_pool, states, now, k)
        assert len(session) <= min(k, len(sample_pool))

    def test_corrupt_state_does_not_break_selection(self, selector, now):
        pool = [Item(id="a", pool_id="p")]
        states = {"a": ReviewState(interval=-5, ease_factor=0.1, times_studied=1, times_correct=1)}
        session = selector.get_due_items(pool, states, now, 1)

        assert len(session) == 1
        assert session[0].state.ease_factor == 1.3

    def test_module_level_helper(self, now, sample_pool):
        assert len(get_due_items(sample_pool, {}, now, 2)) == 2

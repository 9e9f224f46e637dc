"""
Progress persistence contract and an in-memory implementation.

Stores hold:
- Items grouped into pools
- One ReviewState per (user, item)
- An append-only review log
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from loguru import logger

from .clock import ensure_utc
from .models import Item, ReviewLogEntry, ReviewState, SessionCard

# Turns the prior state (None before the first attempt) into the new state
# and the log entry recording it
GradeFn = Callable[[ReviewState | None], tuple[ReviewState, ReviewLogEntry]]


class ProgressStore(Protocol):
    """Persistence collaborator used by ReviewService."""

    def get(self, user_id: str, item_id: str) -> ReviewState | None: ...

    def upsert(self, user_id: str, item_id: str, state: ReviewState) -> None: ...

    def delete(self, user_id: str, item_id: str) -> bool: ...

    def get_item(self, item_id: str) -> Item | None: ...

    def list_by_pool(self, pool_id: str) -> list[Item]: ...

    def list_states(self, user_id: str, item_ids: Iterable[str]) -> dict[str, ReviewState]: ...

    def log_review(self, entry: ReviewLogEntry) -> int: ...

    def update(self, user_id: str, item_id: str, grade: GradeFn) -> ReviewState: ...

    def list_due(self, user_id: str, now: datetime, pool_id: str | None = None) -> list[SessionCard]: ...


class InMemoryProgressStore:
    """
    Dict-backed ProgressStore.

    Every method takes one lock. update() holds it across read, grade,
    write and log, so concurrent attempts on a card never lose a count.
    States are copied in and out so callers cannot mutate stored rows.
    """

    def __init__(self, items: Iterable[Item] = ()):
        self._lock = threading.Lock()
        self._items: dict[str, Item] = {}
        self._states: dict[tuple[str, str], ReviewState] = {}
        self._log: list[ReviewLogEntry] = []
        for item in items:
            self.add_item(item)

    def add_item(self, item: Item) -> None:
        with self._lock:
            self._items[item.id] = item

    def get_item(self, item_id: str) -> Item | None:
        with self._lock:
            return self._items.get(item_id)

    def list_by_pool(self, pool_id: str) -> list[Item]:
        with self._lock:
            return [item for item in self._items.values() if item.pool_id == pool_id]

    def get(self, user_id: str, item_id: str) -> ReviewState | None:
        with self._lock:
            state = self._states.get((user_id, item_id))
            return replace(state) if state else None

    def upsert(self, user_id: str, item_id: str, state: ReviewState) -> None:
        with self._lock:
            self._states[(user_id, item_id)] = replace(state)

    def delete(self, user_id: str, item_id: str) -> bool:
        with self._lock:
            return self._states.pop((user_id, item_id), None) is not None

    def list_states(self, user_id: str, item_ids: Iterable[str]) -> dict[str, ReviewState]:
        with self._lock:
            result = {}
            for item_id in item_ids:
                state = self._states.get((user_id, item_id))
                if state is not None:
                    result[item_id] = replace(state)
            return result

    def log_review(self, entry: ReviewLogEntry) -> int:
        with self._lock:
            entry_id = len(self._log) + 1
            self._log.append(replace(entry, id=entry_id))
        logger.debug(f"Logged review #{entry_id} for {entry.item_id}")
        return entry_id

    def update(self, user_id: str, item_id: str, grade: GradeFn) -> ReviewState:
        """Read, grade and write one card's state and its log entry atomically."""
        with self._lock:
            prior = self._states.get((user_id, item_id))
            state, entry = grade(replace(prior) if prior else None)
            self._states[(user_id, item_id)] = replace(state)
            entry_id = len(self._log) + 1
            self._log.append(replace(entry, id=entry_id))
        logger.debug(f"Updated {user_id}/{item_id}, logged review #{entry_id}")
        return replace(state)

    def list_due(self, user_id: str, now: datetime, pool_id: str | None = None) -> list[SessionCard]:
        """Cards whose review time has passed, soonest first."""
        now = ensure_utc(now)
        with self._lock:
            cards = []
            for (owner, item_id), state in self._states.items():
                item = self._items.get(item_id)
                if owner != user_id or item is None or not state.is_due(now):
                    continue
                if pool_id is not None and item.pool_id != pool_id:
                    continue
                cards.append(SessionCard(item=item, state=replace(state), is_new=False))
        cards.sort(key=lambda card: (card.state.next_review_at, card.item.id))
        return cards

    def review_history(self, user_id: str, item_id: str) -> list[ReviewLogEntry]:
        """Review log for one card, most recent first."""
        with self._lock:
            entries = [e for e in self._log if e.user_id == user_id and e.item_id == item_id]
        return list(reversed(entries))

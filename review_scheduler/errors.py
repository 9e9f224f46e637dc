"""Exception types raised by the review scheduler."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for scheduler errors."""


class ItemNotFoundError(SchedulerError):
    """An item id does not exist in the store."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class ItemNotFoundInPool(SchedulerError):
    """A requested item id is absent from the supplied pool."""

    def __init__(self, item_id: str, pool_id: str | None = None):
        self.item_id = item_id
        self.pool_id = pool_id
        where = f" in pool {pool_id}" if pool_id else " in pool"
        super().__init__(f"Item {item_id} not found{where}")


class InvalidStateError(SchedulerError):
    """A persisted review state violates one of its invariants."""

    def __init__(self, violations: list[str]):
        self.violations = violations
        super().__init__("Invalid review state: " + "; ".join(violations))

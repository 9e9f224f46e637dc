"""
SQLAlchemy-backed progress store.

Tables:
- review_items: cards and the pool they belong to
- review_progress: one ReviewState row per (user, item)
- review_log: every recorded attempt
"""

from __future__ import annotations

import threading
from collections.abc import Generator, Iterable
from contextlib import contextmanager, nullcontext
from datetime import datetime
from pathlib import Path

from loguru import logger
from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .clock import ensure_utc
from .models import Confidence, Item, ReviewLogEntry, ReviewState, SessionCard
from .store import GradeFn


class Base(DeclarativeBase):
    pass


class ItemRecord(Base):
    """A card in a pool."""

    __tablename__ = "review_items"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    pool_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    front: Mapped[str] = mapped_column(Text, default="")
    back: Mapped[str] = mapped_column(Text, default="")

    def to_item(self) -> Item:
        return Item(id=self.id, pool_id=self.pool_id, front=self.front or "", back=self.back or "")


class ReviewProgress(Base):
    """SM-2 state per user per item."""

    __tablename__ = "review_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    item_id: Mapped[str] = mapped_column(
        ForeignKey("review_items.id", ondelete="CASCADE"), nullable=False
    )

    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval: Mapped[int] = mapped_column(Integer, default=0)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)

    times_studied: Mapped[int] = mapped_column(Integer, default=0)
    times_correct: Mapped[int] = mapped_column(Integer, default=0)
    times_incorrect: Mapped[int] = mapped_column(Integer, default=0)
    consecutive_incorrect: Mapped[int] = mapped_column(Integer, default=0)

    mastery_level: Mapped[int] = mapped_column(Integer, default=0)
    last_studied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_review_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_progress_user_item"),
        Index("idx_progress_next_review", "user_id", "next_review_at"),
    )

    def __repr__(self) -> str:
        return f"<ReviewProgress user={self.user_id} item={self.item_id} mastery={self.mastery_level}>"

    def to_state(self) -> ReviewState:
        return ReviewState(
            ease_factor=self.ease_factor,
            interval=self.interval,
            repetitions=self.repetitions,
            times_studied=self.times_studied,
            times_correct=self.times_correct,
            times_incorrect=self.times_incorrect,
            consecutive_incorrect=self.consecutive_incorrect,
            mastery_level=self.mastery_level,
            last_studied_at=ensure_utc(self.last_studied_at) if self.last_studied_at else None,
            next_review_at=ensure_utc(self.next_review_at) if self.next_review_at else None,
        )

    def apply(self, state: ReviewState) -> None:
        self.ease_factor = state.ease_factor
        self.interval = state.interval
        self.repetitions = state.repetitions
        self.times_studied = state.times_studied
        self.times_correct = state.times_correct
        self.times_incorrect = state.times_incorrect
        self.consecutive_incorrect = state.consecutive_incorrect
        self.mastery_level = state.mastery_level
        self.last_studied_at = state.last_studied_at
        self.next_review_at = state.next_review_at


class ReviewLog(Base):
    """A single recorded attempt."""

    __tablename__ = "review_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    item_id: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    confidence: Mapped[str] = mapped_column(Text, nullable=False)
    quality: Mapped[int] = mapped_column(Integer, nullable=False)
    time_spent_ms: Mapped[int | None] = mapped_column(Integer)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_review_log_user_item", "user_id", "item_id"),)

    @classmethod
    def from_entry(cls, entry: ReviewLogEntry) -> ReviewLog:
        return cls(
            user_id=entry.user_id,
            item_id=entry.item_id,
            is_correct=entry.is_correct,
            confidence=entry.confidence.value,
            quality=entry.quality,
            time_spent_ms=entry.time_spent_ms,
            reviewed_at=entry.reviewed_at,
        )

    def to_entry(self) -> ReviewLogEntry:
        return ReviewLogEntry(
            id=self.id,
            user_id=self.user_id,
            item_id=self.item_id,
            is_correct=self.is_correct,
            confidence=Confidence(self.confidence),
            quality=self.quality,
            time_spent_ms=self.time_spent_ms,
            reviewed_at=ensure_utc(self.reviewed_at),
        )


class SqlProgressStore:
    """
    ProgressStore on any SQLAlchemy database.

    Each write runs in its own transaction. update() reads the row with
    SELECT ... FOR UPDATE and writes the new state and its review log entry
    in that same transaction. SQLite ignores FOR UPDATE, so updates through
    one store are also serialized on a process lock there.
    """

    def __init__(self, database_url: str | None = None, engine: Engine | None = None):
        """
        Initialize the store.

        Args:
            database_url: SQLAlchemy URL (ignored when engine is given)
            engine: Pre-built engine, e.g. an in-memory SQLite engine in tests
        """
        if engine is None:
            if database_url is None:
                raise ValueError("database_url or engine is required")
            _ensure_sqlite_dir(database_url)
            engine = create_engine(database_url, pool_pre_ping=True)

        self.engine = engine
        self._write_lock = threading.Lock() if engine.dialect.name == "sqlite" else nullcontext()
        self._session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
        Base.metadata.create_all(bind=engine)

        logger.info(f"SqlProgressStore initialized at {engine.url.render_as_string(hide_password=True)}")

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            session.rollback()
            raise
        finally:
            session.close()

    # =========================================================================
    # Items
    # =========================================================================

    def add_item(self, item: Item) -> None:
        with self.session_scope() as session:
            session.merge(ItemRecord(id=item.id, pool_id=item.pool_id, front=item.front, back=item.back))

    def get_item(self, item_id: str) -> Item | None:
        with self.session_scope() as session:
            record = session.get(ItemRecord, item_id)
            return record.to_item() if record else None

    def list_by_pool(self, pool_id: str) -> list[Item]:
        with self.session_scope() as session:
            rows = session.scalars(select(ItemRecord).where(ItemRecord.pool_id == pool_id).order_by(ItemRecord.id))
            return [row.to_item() for row in rows]

    # =========================================================================
    # Review State
    # =========================================================================

    def get(self, user_id: str, item_id: str) -> ReviewState | None:
        with self.session_scope() as session:
            row = session.scalar(
                select(ReviewProgress).where(
                    ReviewProgress.user_id == user_id,
                    ReviewProgress.item_id == item_id,
                )
            )
            return row.to_state() if row else None

    def upsert(self, user_id: str, item_id: str, state: ReviewState) -> None:
        with self._write_lock, self.session_scope() as session:
            row = _locked_progress(session, user_id, item_id)
            if row is None:
                row = ReviewProgress(user_id=user_id, item_id=item_id)
                session.add(row)
            row.apply(state)

    def update(self, user_id: str, item_id: str, grade: GradeFn) -> ReviewState:
        """Read, grade and write one card's state and its log entry in one transaction."""
        with self._write_lock, self.session_scope() as session:
            row = _locked_progress(session, user_id, item_id)
            state, entry = grade(row.to_state() if row else None)
            if row is None:
                row = ReviewProgress(user_id=user_id, item_id=item_id)
                session.add(row)
            row.apply(state)
            session.add(ReviewLog.from_entry(entry))
        return state

    def list_due(self, user_id: str, now: datetime, pool_id: str | None = None) -> list[SessionCard]:
        """Cards whose review time has passed, soonest first."""
        stmt = (
            select(ReviewProgress, ItemRecord)
            .join(ItemRecord, ItemRecord.id == ReviewProgress.item_id)
            .where(
                ReviewProgress.user_id == user_id,
                ReviewProgress.next_review_at.is_not(None),
                ReviewProgress.next_review_at <= ensure_utc(now),
            )
            .order_by(ReviewProgress.next_review_at, ReviewProgress.item_id)
        )
        if pool_id is not None:
            stmt = stmt.where(ItemRecord.pool_id == pool_id)

        with self.session_scope() as session:
            return [
                SessionCard(item=item.to_item(), state=progress.to_state(), is_new=False)
                for progress, item in session.execute(stmt)
            ]

    def delete(self, user_id: str, item_id: str) -> bool:
        with self.session_scope() as session:
            result = session.execute(
                delete(ReviewProgress).where(
                    ReviewProgress.user_id == user_id,
                    ReviewProgress.item_id == item_id,
                )
            )
            return result.rowcount > 0

    def list_states(self, user_id: str, item_ids: Iterable[str]) -> dict[str, ReviewState]:
        ids = list(item_ids)
        if not ids:
            return {}
        with self.session_scope() as session:
            rows = session.scalars(
                select(ReviewProgress).where(
                    ReviewProgress.user_id == user_id,
                    ReviewProgress.item_id.in_(ids),
                )
            )
            return {row.item_id: row.to_state() for row in rows}

    # =========================================================================
    # Review Log
    # =========================================================================

    def log_review(self, entry: ReviewLogEntry) -> int:
        with self.session_scope() as session:
            row = ReviewLog.from_entry(entry)
            session.add(row)
            session.flush()
            return row.id

    def review_history(self, user_id: str, item_id: str, limit: int = 10) -> list[ReviewLogEntry]:
        """Review log for one card, most recent first."""
        with self.session_scope() as session:
            rows = session.scalars(
                select(ReviewLog)
                .where(ReviewLog.user_id == user_id, ReviewLog.item_id == item_id)
                .order_by(ReviewLog.reviewed_at.desc(), ReviewLog.id.desc())
                .limit(limit)
            )
            return [row.to_entry() for row in rows]


def _locked_progress(session: Session, user_id: str, item_id: str) -> ReviewProgress | None:
    return session.scalar(
        select(ReviewProgress)
        .where(
            ReviewProgress.user_id == user_id,
            ReviewProgress.item_id == item_id,
        )
        .with_for_update()
    )


def _ensure_sqlite_dir(database_url: str) -> None:
    """Create the parent directory of a file-based SQLite database."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

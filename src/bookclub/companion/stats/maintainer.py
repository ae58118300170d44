"""Maintains the denormalized reading statistics.

``StatsMaintainer.apply_progress_event`` is the only writer of ``user_stats``
and ``book_stats``. Each event is applied to the user aggregate and the book
aggregate in separate transactions, each guarded by a per-aggregate lock and
recorded in ``processed_events`` so that redelivery is a no-op.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from tqdm import tqdm

from ..config import get_config
from ..db.models import BookProgress, BookStats, ProcessedEvent, UserStats
from ..db.schemas import ProgressStatus
from ..db.sqlite import Database, get_db
from ..errors import AggregateUpdateError
from ..progress.events import ProgressChange
from ..timeutils import parse_instant, utcnow
from .transitions import TransitionEffect, classify

logger = logging.getLogger(__name__)

# Per-aggregate locks, shared by every maintainer in the process
_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _get_lock(key: str) -> threading.Lock:
    """Get or create the lock for an aggregate key."""
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.Lock()
        return _locks[key]


def user_key(user_id: str) -> str:
    return f"user:{user_id}"


def book_key(book_id: int) -> str:
    return f"book:{book_id}"


def _latest(current: Optional[datetime], candidate: Optional[datetime]) -> Optional[datetime]:
    if current is None:
        return candidate
    if candidate is None or candidate <= current:
        return current
    return candidate


class StatsMaintainer:
    """Applies progress changes to UserStats and BookStats."""

    def __init__(
        self,
        db: Optional[Database] = None,
        default_display_name: Optional[str] = None,
    ):
        """Initialize the maintainer.

        Args:
            db: Database instance (uses global if not provided)
            default_display_name: Name given to users without a profile
                (default: BOOKCLUB_DEFAULT_DISPLAY_NAME)
        """
        self.db = db or get_db()
        self.default_display_name = default_display_name or get_config().default_display_name

    # ========================================================================
    # Event Application
    # ========================================================================

    def apply_progress_event(self, change: ProgressChange) -> TransitionEffect:
        """Apply one progress change to the user and book aggregates.

        The two aggregates are updated independently: a failure in one is
        rolled back and reported without undoing the other.

        Args:
            change: Progress record change

        Returns:
            The classified effect of the change

        Raises:
            ValueError: If the change has neither snapshot
            AggregateUpdateError: If either aggregate could not be updated
        """
        effect = classify(change.before, change.after)

        steps: list[tuple[str, Callable[[Session, ProgressChange, TransitionEffect], None]]] = [
            (user_key(change.user_id), self._apply_user),
            (book_key(change.book_id), self._apply_book),
        ]

        errors: list[tuple[str, Exception]] = []
        for key, step in steps:
            try:
                self._apply_once(key, change, effect, step)
            except Exception as e:
                logger.error("Failed to apply progress event %s to %s: %s", change.event_id, key, e)
                errors.append((key, e))

        if errors:
            raise AggregateUpdateError(change.event_id, errors)

        return effect

    def _apply_once(
        self,
        key: str,
        change: ProgressChange,
        effect: TransitionEffect,
        step: Callable[[Session, ProgressChange, TransitionEffect], None],
    ) -> bool:
        """Run ``step`` for one aggregate unless the event was already applied to it.

        Returns:
            True if applied, False if skipped as a duplicate
        """
        with _get_lock(key):
            with self.db.get_session() as session:
                stmt = select(ProcessedEvent).where(
                    ProcessedEvent.event_id == change.event_id,
                    ProcessedEvent.aggregate_key == key,
                )
                if session.execute(stmt).scalar_one_or_none() is not None:
                    logger.info("Progress event %s already applied to %s", change.event_id, key)
                    return False

                step(session, change, effect)
                session.add(ProcessedEvent(event_id=change.event_id, aggregate_key=key))

        logger.debug("Applied progress event %s (%s) to %s", change.event_id, change.kind.value, key)
        return True

    def _apply_user(self, session: Session, change: ProgressChange, effect: TransitionEffect) -> None:
        """Create the user's row on their first change, then update the finished counter."""
        stats = session.get(UserStats, change.user_id)

        if stats is None:
            stats = self._new_user_stats(session, change.user_id)
            session.add(stats)
        elif not effect.touches_user:
            return

        finished = self._count_finished(session, change.user_id)
        if stats.finished_count + effect.finished_delta != finished:
            logger.debug(
                "Reconciled finished_count of user %s from %d to %d",
                change.user_id,
                stats.finished_count + effect.finished_delta,
                finished,
            )

        stats.finished_count = finished

        if effect.set_last_finished:
            stats.last_finished_at = _latest(stats.last_finished_at, self._finished_at(change))

        stats.updated_at = utcnow()

    def _apply_book(self, session: Session, change: ProgressChange, effect: TransitionEffect) -> None:
        """Recompute the book's reader distribution when the change affects it."""
        stats = session.get(BookStats, change.book_id)

        if stats is None:
            stats = BookStats(book_id=change.book_id)
            session.add(stats)
        elif not effect.recompute_book:
            return

        self._fill_book_stats(session, stats)

    # ========================================================================
    # Recomputation
    # ========================================================================

    def recompute_user(self, user_id: str) -> UserStats:
        """Rebuild a user's statistics from their progress records.

        ``last_finished_at`` only moves forward, as on the event path, so
        unfinishing or deleting a book does not rewind it.
        """
        with _get_lock(user_key(user_id)):
            with self.db.get_session() as session:
                stats = session.get(UserStats, user_id)
                if stats is None:
                    stats = self._new_user_stats(session, user_id)
                    session.add(stats)
                else:
                    stats.last_finished_at = _latest(
                        stats.last_finished_at, self._last_finished_at(session, user_id)
                    )
                stats.finished_count = self._count_finished(session, user_id)
                stats.updated_at = utcnow()
                session.flush()
                session.expunge(stats)
                return stats

    def recompute_book(self, book_id: int) -> BookStats:
        """Rebuild a book's statistics from its progress records."""
        with _get_lock(book_key(book_id)):
            with self.db.get_session() as session:
                stats = session.get(BookStats, book_id)
                if stats is None:
                    stats = BookStats(book_id=book_id)
                    session.add(stats)
                self._fill_book_stats(session, stats)
                session.flush()
                session.expunge(stats)
                return stats

    def rebuild_all(self, show_progress: bool = False) -> tuple[int, int]:
        """Recompute the statistics of every user and book with progress records.

        Returns:
            (users rebuilt, books rebuilt)
        """
        with self.db.get_session() as session:
            user_ids = list(session.execute(select(BookProgress.user_id).distinct()).scalars())
            book_ids = list(session.execute(select(BookProgress.book_id).distinct()).scalars())

        for user_id in tqdm(user_ids, desc="Users", disable=not show_progress):
            self.recompute_user(user_id)
        for book_id in tqdm(book_ids, desc="Books", disable=not show_progress):
            self.recompute_book(book_id)

        logger.info("Rebuilt statistics for %d users and %d books", len(user_ids), len(book_ids))
        return len(user_ids), len(book_ids)

    # ========================================================================
    # Helpers
    # ========================================================================

    def _new_user_stats(self, session: Session, user_id: str) -> UserStats:
        """Create a user's statistics row, copying their profile."""
        user = self.db.get_user(user_id, session=session)
        display_name = user.display_name if user and user.display_name else None

        return UserStats(
            user_id=user_id,
            finished_count=0,
            last_finished_at=self._last_finished_at(session, user_id),
            display_name=display_name or self.default_display_name,
            photo_url=user.photo_url if user else None,
        )

    def _count_finished(self, session: Session, user_id: str) -> int:
        stmt = select(func.count(BookProgress.id)).where(
            BookProgress.user_id == user_id,
            BookProgress.status == ProgressStatus.FINISHED.value,
        )
        return session.execute(stmt).scalar_one()

    def _last_finished_at(self, session: Session, user_id: str) -> Optional[datetime]:
        stmt = select(func.max(BookProgress.finished_at)).where(
            BookProgress.user_id == user_id,
            BookProgress.status == ProgressStatus.FINISHED.value,
        )
        value = session.execute(stmt).scalar_one_or_none()
        return parse_instant(value) if value is not None else None

    def _finished_at(self, change: ProgressChange) -> datetime:
        """When the change finished the book: finishedAt, else updatedAt, else the event time."""
        after = change.after or {}
        for field_name in ("finishedAt", "updatedAt"):
            value = parse_instant(after.get(field_name))
            if value is not None:
                return value
        return parse_instant(change.occurred_at)

    def _fill_book_stats(self, session: Session, stats: BookStats) -> None:
        """Recount a book's readers from every one of its progress records."""
        records = self.db.get_progress_for_book(stats.book_id, session=session)

        sum_percent = float(sum(r.percent_complete or 0 for r in records))
        reader_count = len(records)

        stats.active_readers = sum(1 for r in records if r.status == ProgressStatus.READING.value)
        stats.finished_readers = sum(1 for r in records if r.status == ProgressStatus.FINISHED.value)
        stats.reader_count = reader_count
        stats.sum_percent = sum_percent
        stats.avg_percent = round(sum_percent / reader_count, 2) if reader_count else 0.0
        stats.updated_at = utcnow()

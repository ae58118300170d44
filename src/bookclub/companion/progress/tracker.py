"""Reading progress records.

Each (user, book) pair has at most one progress record. Every write also
records a change event in the outbox; once the write has committed the event
is handed to the dispatcher, which keeps the reading statistics up to date.
"""

import logging
from datetime import datetime
from typing import Optional

from ..db.models import BookProgress
from ..db.schemas import Privacy, ProgressStatus, ProgressUpdate
from ..db.sqlite import Database, get_db
from ..timeutils import as_utc, utcnow
from .dispatcher import ProgressEventDispatcher

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Stores reading progress and publishes its changes."""

    def __init__(
        self,
        db: Optional[Database] = None,
        dispatcher: Optional[ProgressEventDispatcher] = None,
        auto_dispatch: bool = True,
    ):
        """Initialize the tracker.

        Args:
            db: Database instance (uses global if not provided)
            dispatcher: Event dispatcher. If not provided, one is created with
                the statistics maintainer subscribed.
            auto_dispatch: Deliver each change right after its write commits.
                When False, changes stay pending until
                ``dispatcher.process_pending()`` runs.
        """
        self.db = db or get_db()

        if dispatcher is None:
            from ..stats.maintainer import StatsMaintainer

            dispatcher = ProgressEventDispatcher(self.db)
            dispatcher.subscribe(StatsMaintainer(self.db).apply_progress_event)

        self.dispatcher = dispatcher
        self.auto_dispatch = auto_dispatch

    def upsert(
        self,
        user_id: str,
        book_id: int,
        data: ProgressUpdate,
        at: Optional[datetime] = None,
    ) -> BookProgress:
        """Create or update a user's progress on a book.

        Args:
            user_id: Reader
            book_id: Book
            data: Fields to set; omitted fields keep their value
            at: Write time (default: now)

        Returns:
            The stored progress record
        """
        now = as_utc(at) if at is not None else utcnow()

        with self.db.get_session() as session:
            record = self.db.get_progress(user_id, book_id, session=session)
            before = record.to_snapshot() if record else None

            if record is None:
                record = BookProgress(
                    user_id=user_id,
                    book_id=book_id,
                    status=ProgressStatus.NOT_STARTED.value,
                    percent_complete=0,
                    privacy=Privacy.PUBLIC.value,
                )
                session.add(record)

            if data.status is not None:
                self._apply_status(record, data.status, data.percent_complete, now)
            if data.percent_complete is not None:
                record.percent_complete = data.percent_complete
            if data.privacy is not None:
                record.privacy = data.privacy.value

            record.updated_at = now
            session.flush()

            event = self.db.add_progress_event(
                session,
                record_id=record.id,
                user_id=user_id,
                book_id=book_id,
                before=before,
                after=record.to_snapshot(),
            )
            event_id = event.id
            session.expunge(record)

        logger.debug(
            "Saved progress of user %s on book %s: %s %d%%",
            user_id,
            book_id,
            record.status,
            record.percent_complete,
        )
        self._dispatch(event_id)
        return record

    def _apply_status(
        self,
        record: BookProgress,
        status: ProgressStatus,
        percent_complete: Optional[int],
        now: datetime,
    ) -> None:
        """Move a record to a new status, stamping the transition times."""
        previous = record.status
        if previous == status.value:
            return

        record.status = status.value

        if status == ProgressStatus.READING:
            if record.started_at is None:
                record.started_at = now
        elif status == ProgressStatus.FINISHED:
            if record.started_at is None:
                record.started_at = now
            record.finished_at = now
            if percent_complete is None:
                record.percent_complete = 100

        if previous == ProgressStatus.FINISHED.value:
            record.finished_at = None

    def delete(self, user_id: str, book_id: int) -> bool:
        """Delete a user's progress on a book.

        Returns:
            True if a record was deleted, False if none existed
        """
        with self.db.get_session() as session:
            record = self.db.get_progress(user_id, book_id, session=session)
            if record is None:
                return False

            before = record.to_snapshot()
            event = self.db.add_progress_event(
                session,
                record_id=record.id,
                user_id=user_id,
                book_id=book_id,
                before=before,
                after=None,
            )
            event_id = event.id
            session.delete(record)

        logger.debug("Deleted progress of user %s on book %s", user_id, book_id)
        self._dispatch(event_id)
        return True

    def _dispatch(self, event_id: str) -> None:
        """Deliver a committed change unless dispatch is deferred."""
        if not self.auto_dispatch:
            return
        if not self.dispatcher.deliver(event_id):
            logger.warning("Progress event %s left pending for retry", event_id)

    def get(self, user_id: str, book_id: int) -> Optional[BookProgress]:
        """Get a user's progress on a book."""
        return self.db.get_progress(user_id, book_id)

    def list_for_user(self, user_id: str) -> list[BookProgress]:
        """Get all of a user's progress records, most recently updated first."""
        return self.db.get_progress_for_user(user_id)

    def list_for_book(self, book_id: int, public_only: bool = False) -> list[BookProgress]:
        """Get every reader's progress on a book, most recently updated first."""
        return self.db.get_progress_for_book(book_id, public_only=public_only)

"""SQLite database operations.

Handles database connection, session management, member profiles, progress
record reads and the progress-event outbox.
"""

import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..timeutils import as_utc, utcnow
from .models import Base, BookProgress, ProcessedEvent, ProgressEvent, User
from .schemas import Privacy, UserProfile

# Outbox statuses
EVENT_PENDING = "pending"
EVENT_PROCESSED = "processed"
EVENT_FAILED = "failed"


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     BOOKCLUB_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "BOOKCLUB_DB_PATH",
                str(Path.home() / ".bookclub" / "companion.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # In-memory databases share one connection so every session sees the same data
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Member Profiles
    # ========================================================================

    def upsert_user(self, profile: UserProfile, session: Optional[Session] = None) -> User:
        """Create or update a member profile."""

        def _upsert(s: Session) -> User:
            user = s.get(User, profile.uid)
            if user is None:
                user = User(uid=profile.uid)
                s.add(user)
            if profile.display_name is not None:
                user.display_name = profile.display_name
            if profile.photo_url is not None:
                user.photo_url = profile.photo_url
            s.flush()
            return user

        if session:
            return _upsert(session)
        else:
            with self.get_session() as s:
                user = _upsert(s)
                s.expunge(user)
                return user

    def get_user(self, uid: str, session: Optional[Session] = None) -> Optional[User]:
        """Get a member profile by uid."""

        def _get(s: Session) -> Optional[User]:
            return s.get(User, uid)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                user = _get(s)
                if user:
                    s.expunge(user)
                return user

    # ========================================================================
    # Progress Records
    # ========================================================================

    def get_progress(
        self, user_id: str, book_id: int, session: Optional[Session] = None
    ) -> Optional[BookProgress]:
        """Get the progress record for a (user, book) pair."""

        def _get(s: Session) -> Optional[BookProgress]:
            stmt = select(BookProgress).where(
                BookProgress.user_id == user_id,
                BookProgress.book_id == book_id,
            )
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                record = _get(s)
                if record:
                    s.expunge(record)
                return record

    def get_progress_for_book(
        self,
        book_id: int,
        public_only: bool = False,
        session: Optional[Session] = None,
    ) -> list[BookProgress]:
        """Get all progress records for a book."""

        def _get(s: Session) -> list[BookProgress]:
            stmt = select(BookProgress).where(BookProgress.book_id == book_id)
            if public_only:
                stmt = stmt.where(BookProgress.privacy == Privacy.PUBLIC.value)
            stmt = stmt.order_by(BookProgress.updated_at.desc())
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                records = _get(s)
                for record in records:
                    s.expunge(record)
                return records

    def get_progress_for_user(
        self, user_id: str, session: Optional[Session] = None
    ) -> list[BookProgress]:
        """Get all progress records for a user."""

        def _get(s: Session) -> list[BookProgress]:
            stmt = (
                select(BookProgress)
                .where(BookProgress.user_id == user_id)
                .order_by(BookProgress.updated_at.desc())
            )
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                records = _get(s)
                for record in records:
                    s.expunge(record)
                return records

    # ========================================================================
    # Progress Event Outbox
    # ========================================================================

    def add_progress_event(
        self,
        session: Session,
        record_id: int,
        user_id: str,
        book_id: int,
        before: Optional[dict],
        after: Optional[dict],
    ) -> ProgressEvent:
        """Record a progress change in the outbox, in the caller's transaction."""
        event = ProgressEvent(
            record_id=record_id,
            user_id=user_id,
            book_id=book_id,
            status=EVENT_PENDING,
        )
        event.set_before(before)
        event.set_after(after)
        session.add(event)
        session.flush()
        return event

    def get_progress_event(
        self, event_id: str, session: Optional[Session] = None
    ) -> Optional[ProgressEvent]:
        """Get an outbox event by ID."""

        def _get(s: Session) -> Optional[ProgressEvent]:
            return s.get(ProgressEvent, event_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                event = _get(s)
                if event:
                    s.expunge(event)
                return event

    def get_undelivered_events(
        self,
        max_retries: Optional[int] = None,
        limit: Optional[int] = None,
        session: Optional[Session] = None,
    ) -> list[ProgressEvent]:
        """Get pending and retryable failed events, oldest first."""

        def _get(s: Session) -> list[ProgressEvent]:
            stmt = select(ProgressEvent).where(
                ProgressEvent.status.in_([EVENT_PENDING, EVENT_FAILED])
            )
            if max_retries is not None:
                stmt = stmt.where(ProgressEvent.retry_count < max_retries)
            stmt = stmt.order_by(ProgressEvent.created_at)
            if limit:
                stmt = stmt.limit(limit)
            return list(s.execute(stmt).scalars().all())

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                events = _get(s)
                for event in events:
                    s.expunge(event)
                return events

    def count_undelivered_events(self, session: Optional[Session] = None) -> int:
        """Count pending and failed events."""

        def _count(s: Session) -> int:
            stmt = select(func.count(ProgressEvent.id)).where(
                ProgressEvent.status.in_([EVENT_PENDING, EVENT_FAILED])
            )
            return s.execute(stmt).scalar_one()

        if session:
            return _count(session)
        else:
            with self.get_session() as s:
                return _count(s)

    def mark_event_processed(self, event_id: str, session: Optional[Session] = None) -> None:
        """Mark an outbox event as delivered."""

        def _mark(s: Session) -> None:
            event = s.get(ProgressEvent, event_id)
            if event:
                event.status = EVENT_PROCESSED
                event.last_error = None
                event.updated_at = utcnow()

        if session:
            _mark(session)
        else:
            with self.get_session() as s:
                _mark(s)

    def mark_event_failed(
        self, event_id: str, error: str, session: Optional[Session] = None
    ) -> None:
        """Mark an outbox event as failed so it is redelivered later."""

        def _mark(s: Session) -> None:
            event = s.get(ProgressEvent, event_id)
            if event:
                event.status = EVENT_FAILED
                event.last_error = error
                event.retry_count += 1
                event.updated_at = utcnow()

        if session:
            _mark(session)
        else:
            with self.get_session() as s:
                _mark(s)

    def prune_delivered_events(
        self, older_than: datetime, session: Optional[Session] = None
    ) -> tuple[int, int]:
        """Delete processed outbox events and idempotency markers older than a cutoff.

        Markers of events still pending or failed in the outbox are kept, since
        those events will be redelivered.

        Returns:
            (outbox events deleted, markers deleted)
        """
        cutoff = as_utc(older_than)

        def _prune(s: Session) -> tuple[int, int]:
            undelivered = select(ProgressEvent.id).where(
                ProgressEvent.status.in_([EVENT_PENDING, EVENT_FAILED])
            )
            markers = s.execute(
                delete(ProcessedEvent)
                .where(
                    ProcessedEvent.processed_at < cutoff,
                    ProcessedEvent.event_id.not_in(undelivered),
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            events = s.execute(
                delete(ProgressEvent)
                .where(
                    ProgressEvent.status == EVENT_PROCESSED,
                    ProgressEvent.updated_at < cutoff,
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            return events, markers

        if session:
            return _prune(session)
        else:
            with self.get_session() as s:
                return _prune(s)


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None

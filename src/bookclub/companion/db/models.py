"""SQLAlchemy ORM models for local SQLite database.

Tables:
- goals: Tracked personal objectives
- goal_entries: Timestamped activity against habit/metric goals
- milestones: Ordered sub-steps of milestone goals
- goal_completions: Manual per-period completion marks
- users: Club member profiles
- book_progress: One reading-progress record per (user, book)
- progress_events: Outbox of progress-record changes awaiting delivery
- user_stats / book_stats: Derived aggregates, written only by the maintainer
- processed_events: Idempotency markers per (event, aggregate)
"""

import json
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..timeutils import as_utc, isoformat, utcnow
from .schemas import Privacy, ProgressStatus


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """DateTime column that always round-trips aware UTC datetimes.

    SQLite has no timezone support, so values are stored as naive UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Goal(Base):
    """Goal model - a tracked personal objective."""

    __tablename__ = "goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Variant
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    measure: Mapped[Optional[str]] = mapped_column(String(10))
    cadence: Mapped[Optional[str]] = mapped_column(String(10))

    # Targets
    target_count: Mapped[Optional[int]] = mapped_column(Integer)
    target_quantity: Mapped[Optional[float]] = mapped_column(Float)
    unit: Mapped[Optional[str]] = mapped_column(String(50))

    # One-time goals
    due_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    archived: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    entries: Mapped[list["GoalEntry"]] = relationship(
        "GoalEntry", back_populates="goal", cascade="all, delete-orphan"
    )
    milestones: Mapped[list["Milestone"]] = relationship(
        "Milestone",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="Milestone.order",
    )

    def __repr__(self) -> str:
        return f"<Goal(id={self.id}, type={self.type}, title='{self.title}')>"


class GoalEntry(Base):
    """Goal entry model - one timestamped activity record."""

    __tablename__ = "goal_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    goal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    quantity: Mapped[Optional[float]] = mapped_column(Float)  # metric goals only

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    goal: Mapped["Goal"] = relationship("Goal", back_populates="entries")

    def __repr__(self) -> str:
        return f"<GoalEntry(id={self.id}, goal_id={self.goal_id}, occurred_at={self.occurred_at})>"


class Milestone(Base):
    """Milestone model - an ordered sub-step of a milestone goal."""

    __tablename__ = "milestones"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    goal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    order: Mapped[int] = mapped_column("sort_order", Integer, nullable=False, default=0)
    done: Mapped[bool] = mapped_column(Boolean, default=False)
    done_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    goal: Mapped["Goal"] = relationship("Goal", back_populates="milestones")

    def __repr__(self) -> str:
        return f"<Milestone(id={self.id}, order={self.order}, done={self.done})>"


class GoalCompletion(Base):
    """Manual completion mark for one goal period."""

    __tablename__ = "goal_completions"
    __table_args__ = (UniqueConstraint("user_id", "goal_id", "period_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    goal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("goals.id", ondelete="CASCADE"), nullable=False
    )
    period_id: Mapped[str] = mapped_column(String(20), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<GoalCompletion(goal_id={self.goal_id}, period_id={self.period_id})>"


class User(Base):
    """Club member profile."""

    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(200))
    photo_url: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<User(uid={self.uid}, display_name='{self.display_name}')>"


class BookProgress(Base):
    """Reading progress of one user on one book."""

    __tablename__ = "book_progress"
    __table_args__ = (UniqueConstraint("user_id", "book_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    book_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ProgressStatus.NOT_STARTED.value, index=True
    )
    percent_complete: Mapped[int] = mapped_column(Integer, default=0)
    privacy: Mapped[str] = mapped_column(String(20), default=Privacy.PUBLIC.value)

    started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    finished_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<BookProgress(user_id={self.user_id}, book_id={self.book_id}, "
            f"status={self.status})>"
        )

    def to_snapshot(self) -> dict:
        """Field snapshot carried by change events."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "status": self.status,
            "percentComplete": self.percent_complete,
            "privacy": self.privacy,
            "startedAt": isoformat(self.started_at),
            "finishedAt": isoformat(self.finished_at),
            "updatedAt": isoformat(self.updated_at),
        }


class ProgressEvent(Base):
    """Outbox row - one progress-record change awaiting delivery."""

    __tablename__ = "progress_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    record_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    book_id: Mapped[int] = mapped_column(Integer, nullable=False)
    before: Mapped[Optional[str]] = mapped_column(Text)  # JSON
    after: Mapped[Optional[str]] = mapped_column(Text)  # JSON

    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<ProgressEvent(id={self.id}, record={self.record_id}, status={self.status})>"

    def get_before(self) -> Optional[dict]:
        """Get before snapshot as dict."""
        if self.before:
            return json.loads(self.before)
        return None

    def set_before(self, snapshot: Optional[dict]) -> None:
        """Set before snapshot from dict."""
        self.before = json.dumps(snapshot) if snapshot else None

    def get_after(self) -> Optional[dict]:
        """Get after snapshot as dict."""
        if self.after:
            return json.loads(self.after)
        return None

    def set_after(self, snapshot: Optional[dict]) -> None:
        """Set after snapshot from dict."""
        self.after = json.dumps(snapshot) if snapshot else None


class UserStats(Base):
    """Per-user finished-book counter."""

    __tablename__ = "user_stats"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    finished_count: Mapped[int] = mapped_column(Integer, default=0, index=True)
    last_finished_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    photo_url: Mapped[Optional[str]] = mapped_column(Text)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<UserStats(user_id={self.user_id}, finished={self.finished_count})>"


class BookStats(Base):
    """Per-book reader distribution."""

    __tablename__ = "book_stats"

    book_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    active_readers: Mapped[int] = mapped_column(Integer, default=0)
    finished_readers: Mapped[int] = mapped_column(Integer, default=0)
    reader_count: Mapped[int] = mapped_column(Integer, default=0)
    sum_percent: Mapped[float] = mapped_column(Float, default=0.0)
    avg_percent: Mapped[float] = mapped_column(Float, default=0.0)

    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<BookStats(book_id={self.book_id}, readers={self.reader_count})>"


class ProcessedEvent(Base):
    """Marks an event as applied to one aggregate."""

    __tablename__ = "processed_events"
    __table_args__ = (UniqueConstraint("event_id", "aggregate_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    aggregate_key: Mapped[str] = mapped_column(String(160), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<ProcessedEvent(event_id={self.event_id}, key={self.aggregate_key})>"

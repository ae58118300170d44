"""Progress-record change events."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ..db.models import ProgressEvent, generate_uuid
from ..timeutils import utcnow


class ChangeKind(str, Enum):
    """Kind of progress-record write."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ProgressChange:
    """One write to a progress record, as delivered to subscribers.

    ``before`` is None on creation and ``after`` is None on deletion.
    Delivery is at-least-once; ``event_id`` is stable across redeliveries.
    """

    record_id: int
    user_id: str
    book_id: int
    before: Optional[dict]
    after: Optional[dict]
    event_id: str = field(default_factory=generate_uuid)
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def kind(self) -> ChangeKind:
        """Create, update or delete."""
        if self.before is None:
            return ChangeKind.CREATE
        if self.after is None:
            return ChangeKind.DELETE
        return ChangeKind.UPDATE

    @classmethod
    def from_event(cls, event: ProgressEvent) -> "ProgressChange":
        """Build from an outbox row."""
        return cls(
            record_id=event.record_id,
            user_id=event.user_id,
            book_id=event.book_id,
            before=event.get_before(),
            after=event.get_after(),
            event_id=event.id,
            occurred_at=event.created_at or utcnow(),
        )

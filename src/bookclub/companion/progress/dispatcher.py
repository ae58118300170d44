"""Outbox delivery of progress-record changes.

Changes are written to the ``progress_events`` table in the same transaction
as the record itself, then delivered to subscribers after commit. A delivery
that raises leaves the event ``failed`` so that ``process_pending`` can retry
it later. Subscribers must therefore tolerate redelivery.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Optional

from tqdm import tqdm

from ..config import get_config
from ..db.models import ProgressEvent
from ..db.sqlite import EVENT_PROCESSED, Database, get_db
from ..errors import NotFound
from ..timeutils import utcnow
from .events import ProgressChange

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ProgressChange], Any]


@dataclass
class DispatchResult:
    """Result of a delivery run."""

    delivered: int = 0
    failed: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.delivered + self.failed

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


class ProgressEventDispatcher:
    """Delivers outbox events to subscribed handlers."""

    def __init__(self, db: Optional[Database] = None, max_retries: int = 5):
        """Initialize dispatcher.

        Args:
            db: Database instance (uses global if not provided)
            max_retries: Failed events are no longer retried after this many attempts
        """
        self.db = db or get_db()
        self.max_retries = max_retries
        self._handlers: list[ChangeHandler] = []

    def subscribe(self, handler: ChangeHandler) -> None:
        """Register a handler called with every ``ProgressChange``."""
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: ChangeHandler) -> None:
        """Remove a previously registered handler."""
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def handlers(self) -> list[ChangeHandler]:
        return list(self._handlers)

    def deliver(self, event_id: str) -> bool:
        """Deliver one outbox event.

        Args:
            event_id: Outbox event ID

        Returns:
            True if the event is (now or already) processed, False if a
            handler failed and the event was left for retry

        Raises:
            NotFound: If the event does not exist
        """
        event = self.db.get_progress_event(event_id)
        if event is None:
            raise NotFound(f"Progress event not found: {event_id}")

        if event.status == EVENT_PROCESSED:
            return True

        return self._deliver(event) is None

    def process_pending(
        self,
        limit: Optional[int] = None,
        show_progress: bool = False,
    ) -> DispatchResult:
        """Deliver pending events and retry failed ones, oldest first.

        Args:
            limit: Maximum number of events to attempt
            show_progress: Show progress bar

        Returns:
            DispatchResult with delivery statistics
        """
        result = DispatchResult()
        events = self.db.get_undelivered_events(max_retries=self.max_retries, limit=limit)

        iterator = tqdm(events, desc="Delivering", disable=not show_progress)

        for event in iterator:
            error = self._deliver(event)
            if error is None:
                result.delivered += 1
            else:
                result.failed += 1
                result.errors.append((event.id, error))

        return result

    def prune_delivered(self, older_than_days: Optional[int] = None) -> tuple[int, int]:
        """Delete delivered events and idempotency markers past the retention window.

        Redelivery of a pruned event is no longer detected, so the window
        (default: BOOKCLUB_EVENT_RETENTION_DAYS) must exceed the longest
        time an event can wait for redelivery.

        Returns:
            (outbox events deleted, markers deleted)
        """
        days = older_than_days if older_than_days is not None else get_config().event_retention_days
        if days < 1:
            raise ValueError("Retention must be at least 1 day")

        events, markers = self.db.prune_delivered_events(utcnow() - timedelta(days=days))
        logger.info(
            "Pruned %d delivered events and %d markers older than %d days", events, markers, days
        )
        return events, markers

    def _deliver(self, event: ProgressEvent) -> Optional[str]:
        """Call every handler with the event's change.

        Returns:
            None on success, otherwise the error message recorded on the event
        """
        change = ProgressChange.from_event(event)

        try:
            for handler in list(self._handlers):
                handler(change)
        except Exception as e:
            logger.error(
                "Delivery of progress event %s failed (attempt %d): %s",
                event.id,
                event.retry_count + 1,
                e,
            )
            self.db.mark_event_failed(event.id, str(e))
            return str(e)

        self.db.mark_event_processed(event.id)
        logger.debug("Delivered progress event %s (%s)", event.id, change.kind.value)
        return None

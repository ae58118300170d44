"""Progress-record status transitions and their effect on aggregates.

| Event                               | finished_count | active  | finished |
|-------------------------------------|----------------|---------|----------|
| create, status=finished             | +1             | -       | recount  |
| create, status=reading              | -              | recount | -        |
| update, X -> finished (X!=finished) | +1             | recount | recount  |
| update, finished -> Y (Y!=finished) | -1             | recount | recount  |
| update, X -> reading / reading -> Y | -              | recount | -        |
| delete, status=finished             | -1             | -       | recount  |
| delete, status=reading              | -              | recount | -        |

Book statistics are always recomputed from every progress record of the
book, so ``recompute_book`` is also set when a record appears or disappears
or its percentage changes.
"""

from dataclasses import dataclass
from typing import Optional

from ..db.schemas import ProgressStatus
from ..progress.events import ChangeKind


@dataclass(frozen=True)
class TransitionEffect:
    """What one progress change does to the aggregates."""

    kind: ChangeKind
    before_status: Optional[ProgressStatus]
    after_status: Optional[ProgressStatus]
    finished_delta: int = 0
    set_last_finished: bool = False
    recompute_active: bool = False
    recompute_finished: bool = False
    percent_changed: bool = False

    @property
    def touches_user(self) -> bool:
        """Whether the user's finished counter changes."""
        return self.finished_delta != 0

    @property
    def recompute_book(self) -> bool:
        """Whether the book's reader distribution must be recomputed."""
        return (
            self.recompute_active
            or self.recompute_finished
            or self.percent_changed
            or self.kind != ChangeKind.UPDATE
        )


def snapshot_status(snapshot: Optional[dict]) -> Optional[ProgressStatus]:
    """Status carried by a record snapshot (absent record -> None)."""
    if snapshot is None:
        return None
    value = snapshot.get("status") or ProgressStatus.NOT_STARTED.value
    return ProgressStatus(value)


def snapshot_percent(snapshot: Optional[dict]) -> int:
    """Percentage carried by a record snapshot (missing -> 0)."""
    if snapshot is None:
        return 0
    return int(snapshot.get("percentComplete") or 0)


def classify(before: Optional[dict], after: Optional[dict]) -> TransitionEffect:
    """Map a (before, after) snapshot pair onto the transition table.

    Args:
        before: Previous field snapshot, None on creation
        after: New field snapshot, None on deletion

    Returns:
        TransitionEffect describing the aggregate updates

    Raises:
        ValueError: If both snapshots are absent or a status is unknown
    """
    if before is None and after is None:
        raise ValueError("Progress change carries neither a before nor an after snapshot")

    old = snapshot_status(before)
    new = snapshot_status(after)
    finished = ProgressStatus.FINISHED
    reading = ProgressStatus.READING

    if before is None:
        return TransitionEffect(
            kind=ChangeKind.CREATE,
            before_status=None,
            after_status=new,
            finished_delta=1 if new == finished else 0,
            set_last_finished=new == finished,
            recompute_active=new == reading,
            recompute_finished=new == finished,
            percent_changed=snapshot_percent(after) != 0,
        )

    if after is None:
        return TransitionEffect(
            kind=ChangeKind.DELETE,
            before_status=old,
            after_status=None,
            finished_delta=-1 if old == finished else 0,
            recompute_active=old == reading,
            recompute_finished=old == finished,
            percent_changed=snapshot_percent(before) != 0,
        )

    percent_changed = snapshot_percent(before) != snapshot_percent(after)

    if old == new:
        return TransitionEffect(
            kind=ChangeKind.UPDATE,
            before_status=old,
            after_status=new,
            percent_changed=percent_changed,
        )

    if new == finished:
        return TransitionEffect(
            kind=ChangeKind.UPDATE,
            before_status=old,
            after_status=new,
            finished_delta=1,
            set_last_finished=True,
            recompute_active=True,
            recompute_finished=True,
            percent_changed=percent_changed,
        )

    if old == finished:
        return TransitionEffect(
            kind=ChangeKind.UPDATE,
            before_status=old,
            after_status=new,
            finished_delta=-1,
            recompute_active=True,
            recompute_finished=True,
            percent_changed=percent_changed,
        )

    # Remaining changes move between not_started and reading
    return TransitionEffect(
        kind=ChangeKind.UPDATE,
        before_status=old,
        after_status=new,
        recompute_active=True,
        percent_changed=percent_changed,
    )

"""Goal completion evaluation.

A stored goal is converted into one of four variants, each carrying only the
fields its evaluation needs:

- HabitGoal: count of entries in the current cadence period vs target_count
- MetricGoal: sum of entry quantities in the period vs target_quantity
- MilestoneGoal: milestones done vs total milestones
- OneTimeGoal: the goal's own completed flag

Evaluation is a pure read-side computation over a snapshot of entries or
milestones; it is recomputed from raw activity on every call.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Union

from ..db.schemas import MEASURE_FOR_TYPE, Cadence, GoalProgress, GoalType, Measure
from ..errors import InvalidGoal
from ..timeutils import as_utc, parse_instant
from .periods import coerce_cadence, period_boundaries

# Evaluation windows
WINDOW_CURRENT = "current"
WINDOW_ALL = "all"


@dataclass(frozen=True)
class HabitGoal:
    """Do something ``target_count`` times per cadence period."""

    id: str
    cadence: Cadence
    target_count: int


@dataclass(frozen=True)
class MetricGoal:
    """Accumulate ``target_quantity`` units per cadence period."""

    id: str
    cadence: Cadence
    target_quantity: float
    unit: str


@dataclass(frozen=True)
class MilestoneGoal:
    """Complete every milestone in an ordered checklist."""

    id: str


@dataclass(frozen=True)
class OneTimeGoal:
    """Done once, marked complete by the user."""

    id: str
    completed: bool


GoalVariant = Union[HabitGoal, MetricGoal, MilestoneGoal, OneTimeGoal]
PeriodicGoal = Union[HabitGoal, MetricGoal]


def goal_from_record(record: Any) -> GoalVariant:
    """Build the evaluation variant for a stored goal.

    Args:
        record: Object with the goal's attributes (ORM ``Goal`` or similar)

    Raises:
        InvalidGoal: If the type is unknown, a habit/metric goal has no
            cadence or target, or its measure is unrecognized
        InvalidCadence: If the cadence literal is unsupported
    """
    try:
        goal_type = GoalType(record.type)
    except ValueError:
        raise InvalidGoal(f"Invalid goal type: {record.type}") from None

    if goal_type == GoalType.MILESTONE:
        return MilestoneGoal(id=record.id)

    if goal_type == GoalType.ONE_TIME:
        return OneTimeGoal(id=record.id, completed=bool(record.completed))

    if not record.cadence:
        raise InvalidGoal("Goal must have cadence for evaluation")
    cadence = coerce_cadence(record.cadence)

    try:
        measure = Measure(record.measure or MEASURE_FOR_TYPE[goal_type].value)
    except ValueError:
        raise InvalidGoal(f"Invalid measure: {record.measure}") from None
    if measure != MEASURE_FOR_TYPE[goal_type]:
        raise InvalidGoal(f"Invalid measure for {goal_type.value} goal: {measure.value}")

    if measure == Measure.COUNT:
        if record.target_count is None:
            raise InvalidGoal("Habit goals must have target_count")
        return HabitGoal(id=record.id, cadence=cadence, target_count=int(record.target_count))

    if record.target_quantity is None:
        raise InvalidGoal("Metric goals must have target_quantity")
    return MetricGoal(
        id=record.id,
        cadence=cadence,
        target_quantity=float(record.target_quantity),
        unit=record.unit or "",
    )


def resolve_window(
    cadence: Cadence,
    window: Optional[str] = None,
    reference: Optional[datetime] = None,
) -> tuple[Optional[datetime], Optional[datetime]]:
    """Resolve an evaluation window to a half-open ``[start, end)`` range.

    Args:
        cadence: The goal's cadence
        window: ``current`` (default), ``all``, or ``YYYY-MM-DD,YYYY-MM-DD``
            (both days inclusive)
        reference: Instant locating the current period (default: now)

    Returns:
        (start, end); both None for ``all``

    Raises:
        InvalidGoal: If the window cannot be parsed
    """
    if window is None or window == WINDOW_CURRENT:
        return period_boundaries(cadence, reference)

    if window == WINDOW_ALL:
        return None, None

    if "," in window:
        start_str, end_str = window.split(",", 1)
        try:
            start = parse_instant(start_str.strip()[:10])
            last_day = parse_instant(end_str.strip()[:10])
        except ValueError:
            raise InvalidGoal(f"Invalid period: {window}") from None
        if start is None or last_day is None or last_day < start:
            raise InvalidGoal(f"Invalid period: {window}")
        return start, last_day + timedelta(days=1)

    raise InvalidGoal(
        f"Invalid period: {window}. Must be 'current', 'all', or 'YYYY-MM-DD,YYYY-MM-DD'"
    )


def entry_quantity(value: Any) -> float:
    """Quantity of an entry; missing, unparseable or NaN counts as 0."""
    if value is None:
        return 0.0
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(quantity):
        return 0.0
    return quantity


def entries_in_window(
    entries: Iterable[Any],
    start: Optional[datetime],
    end: Optional[datetime],
) -> list[Any]:
    """Filter entries to ``start <= occurred_at < end`` (unbounded when None)."""
    selected = []
    for entry in entries:
        occurred_at = as_utc(entry.occurred_at)
        if start is not None and occurred_at < start:
            continue
        if end is not None and occurred_at >= end:
            continue
        selected.append(entry)
    return selected


def evaluate(
    goal: GoalVariant,
    activity: Iterable[Any] = (),
    reference: Optional[datetime] = None,
    window: Optional[str] = None,
) -> GoalProgress:
    """Decide whether a goal is complete and summarize its progress.

    Args:
        goal: Goal variant (see ``goal_from_record``)
        activity: Entries (``occurred_at``, ``quantity``) for habit/metric
            goals, or milestones (``done``) for milestone goals
        reference: Instant locating the current period (default: now)
        window: Evaluation window for habit/metric goals (default: current)

    Returns:
        GoalProgress with completed, actual, target and (metric) unit

    Raises:
        InvalidGoal: If a periodic goal has no cadence or the window is invalid
    """
    if isinstance(goal, MilestoneGoal):
        milestones = list(activity)
        done = sum(1 for m in milestones if m.done)
        total = len(milestones)
        return GoalProgress(completed=total > 0 and done == total, actual=done, target=total)

    if isinstance(goal, OneTimeGoal):
        return GoalProgress(
            completed=goal.completed,
            actual=1 if goal.completed else 0,
            target=1,
        )

    if isinstance(goal, (HabitGoal, MetricGoal)):
        if goal.cadence is None:
            raise InvalidGoal("Goal must have cadence for evaluation")
        start, end = resolve_window(goal.cadence, window, reference)
        selected = entries_in_window(activity, start, end)

        if isinstance(goal, HabitGoal):
            count = len(selected)
            return GoalProgress(
                completed=count >= goal.target_count,
                actual=count,
                target=goal.target_count,
            )

        total = sum(entry_quantity(e.quantity) for e in selected)
        return GoalProgress(
            completed=total >= goal.target_quantity,
            actual=total,
            target=goal.target_quantity,
            unit=goal.unit,
        )

    raise InvalidGoal(f"Unsupported goal variant: {type(goal).__name__}")


def habit_weight(position: int) -> float:
    """Ranking weight of the habit at 1-based ``position``: 1 / log2(n + 1)."""
    if position < 1:
        raise ValueError("Habit position must be 1 or greater")
    return 1 / math.log2(position + 1)

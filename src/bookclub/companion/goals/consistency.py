"""Completion history of periodic goals."""

from datetime import datetime
from typing import Any, Iterable, Optional

from ..db.schemas import HabitConsistency, PeriodResult
from ..timeutils import as_utc, utcnow
from .evaluator import PeriodicGoal, evaluate
from .periods import period_boundaries, previous_period_boundaries


def habit_consistency(
    goal: PeriodicGoal,
    entries: Iterable[Any],
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    reference: Optional[datetime] = None,
    include_streak: bool = True,
    max_periods: int = 100,
    elapsed_only: bool = False,
) -> HabitConsistency:
    """Walk back period by period and score how often the goal was met.

    Starting from the period containing ``reference`` (default: now), every
    period overlapping ``[since, until]`` is evaluated, newest first, up to
    ``max_periods`` periods back. With ``elapsed_only`` the period still in
    progress is skipped.

    Args:
        goal: Habit or metric goal
        entries: All entries of the goal
        since: Earliest instant of interest (default: unbounded)
        until: Latest instant of interest (default and upper bound: reference)
        reference: "Now" for the walk
        include_streak: Also count consecutive completed periods from the
            most recent one
        max_periods: Maximum number of periods to walk back
        elapsed_only: Only count periods that ended by ``reference``

    Returns:
        HabitConsistency with rate (percent), optional streak and per-period results
    """
    now = as_utc(reference) if reference is not None else utcnow()
    effective_end = now if until is None or as_utc(until) > now else as_utc(until)
    floor = as_utc(since) if since is not None else None
    entries = list(entries)

    periods: list[PeriodResult] = []
    start, end = period_boundaries(goal.cadence, now)

    for _ in range(max_periods):
        if floor is not None and end <= floor:
            break
        if start <= effective_end and (not elapsed_only or end <= now):
            progress = evaluate(goal, entries, reference=start)
            periods.append(
                PeriodResult(
                    start=start,
                    end=end,
                    completed=progress.completed,
                    actual=progress.actual,
                )
            )
        start, end = previous_period_boundaries(goal.cadence, start)

    if not periods:
        return HabitConsistency(
            consistency_rate=0.0,
            streak=0 if include_streak else None,
            periods=[],
        )

    completed_count = sum(1 for p in periods if p.completed)
    result = HabitConsistency(
        consistency_rate=round(completed_count / len(periods) * 100, 2),
        periods=periods,
    )

    if include_streak:
        streak = 0
        for period in periods:
            if not period.completed:
                break
            streak += 1
        result.streak = streak

    return result

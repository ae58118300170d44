"""Cadence period boundaries.

Every period is a half-open UTC interval ``[start, end)``. Weeks start on
Monday (ISO-8601); quarters start in January, April, July and October.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from ..db.schemas import Cadence
from ..errors import InvalidCadence
from ..timeutils import as_utc, utcnow

# Length of one period per cadence
PERIOD_LENGTH: dict[Cadence, relativedelta] = {
    Cadence.DAY: relativedelta(days=1),
    Cadence.WEEK: relativedelta(weeks=1),
    Cadence.MONTH: relativedelta(months=1),
    Cadence.QUARTER: relativedelta(months=3),
}


def coerce_cadence(cadence: Union[Cadence, str, None]) -> Cadence:
    """Convert a cadence literal to ``Cadence``.

    Raises:
        InvalidCadence: If the value is not a supported cadence
    """
    if isinstance(cadence, Cadence):
        return cadence
    try:
        return Cadence(cadence)
    except ValueError:
        raise InvalidCadence(f"Invalid cadence: {cadence}") from None


def period_boundaries(
    cadence: Union[Cadence, str],
    reference: Optional[datetime] = None,
) -> tuple[datetime, datetime]:
    """Get the cadence period containing an instant.

    Args:
        cadence: day, week, month or quarter
        reference: Instant to locate (default: now). Naive values are UTC.

    Returns:
        (start, end) with start <= reference < end

    Raises:
        InvalidCadence: If the cadence is not supported

    Example:
        >>> period_boundaries("week", datetime(2025, 1, 10, tzinfo=timezone.utc))[0]
        datetime.datetime(2025, 1, 6, 0, 0, tzinfo=datetime.timezone.utc)
    """
    cadence = coerce_cadence(cadence)
    now = as_utc(reference) if reference is not None else utcnow()
    midnight = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)

    if cadence == Cadence.DAY:
        start = midnight
    elif cadence == Cadence.WEEK:
        # isoweekday: Monday=1 .. Sunday=7
        start = midnight - timedelta(days=now.isoweekday() - 1)
    elif cadence == Cadence.MONTH:
        start = midnight.replace(day=1)
    else:
        quarter = (now.month - 1) // 3
        start = datetime(now.year, quarter * 3 + 1, 1, tzinfo=timezone.utc)

    return start, start + PERIOD_LENGTH[cadence]


def previous_period_boundaries(
    cadence: Union[Cadence, str],
    current_start: datetime,
) -> tuple[datetime, datetime]:
    """Get the period immediately before the one starting at ``current_start``."""
    cadence = coerce_cadence(cadence)
    step = PERIOD_LENGTH[cadence]
    start = as_utc(current_start) - step
    return start, start + step


def period_id(cadence: Union[Cadence, str], reference: Optional[datetime] = None) -> str:
    """Stable label for the period containing ``reference``.

    Examples: ``2025-01-06`` (day), ``2025-W02`` (week), ``2025-01`` (month),
    ``2025-Q1`` (quarter).
    """
    cadence = coerce_cadence(cadence)
    start, _ = period_boundaries(cadence, reference)

    if cadence == Cadence.DAY:
        return start.date().isoformat()
    if cadence == Cadence.WEEK:
        iso_year, iso_week, _ = start.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if cadence == Cadence.MONTH:
        return start.strftime("%Y-%m")
    return f"{start.year}-Q{(start.month - 1) // 3 + 1}"

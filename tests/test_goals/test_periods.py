"""Tests for cadence period boundaries."""

from datetime import datetime, timedelta, timezone

import pytest

from bookclub.companion.db.schemas import Cadence
from bookclub.companion.errors import InvalidCadence, InvalidGoal
from bookclub.companion.goals.periods import (
    coerce_cadence,
    period_boundaries,
    period_id,
    previous_period_boundaries,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestPeriodBoundaries:
    """Tests for period_boundaries."""

    def test_day(self):
        """Test a day runs midnight to midnight."""
        start, end = period_boundaries("day", utc(2025, 3, 14, 15, 30))

        assert start == utc(2025, 3, 14)
        assert end == utc(2025, 3, 15)

    def test_week_starts_monday(self):
        """Test a week runs Monday to the next Monday."""
        start, end = period_boundaries("week", utc(2025, 1, 10, 12))  # Friday

        assert start == utc(2025, 1, 6)
        assert end == utc(2025, 1, 13)

    def test_week_on_monday(self):
        """Test a Monday is the first instant of its own week."""
        start, _ = period_boundaries(Cadence.WEEK, utc(2025, 1, 6))

        assert start == utc(2025, 1, 6)

    def test_week_on_sunday(self):
        """Test a Sunday belongs to the week that started six days earlier."""
        start, end = period_boundaries("week", utc(2025, 1, 12, 23, 59))

        assert start == utc(2025, 1, 6)
        assert end == utc(2025, 1, 13)

    def test_week_across_year(self):
        """Test a week spanning New Year."""
        start, end = period_boundaries("week", utc(2025, 1, 1))

        assert start == utc(2024, 12, 30)
        assert end == utc(2025, 1, 6)

    def test_month(self):
        """Test a month runs from its first day to the next month's first day."""
        start, end = period_boundaries("month", utc(2024, 2, 29, 8))

        assert start == utc(2024, 2, 1)
        assert end == utc(2024, 3, 1)

    def test_december(self):
        """Test December rolls over into the next year."""
        start, end = period_boundaries("month", utc(2025, 12, 31, 23))

        assert start == utc(2025, 12, 1)
        assert end == utc(2026, 1, 1)

    @pytest.mark.parametrize(
        "month,expected_start",
        [(1, 1), (3, 1), (4, 4), (6, 4), (8, 7), (11, 10)],
    )
    def test_quarter(self, month: int, expected_start: int):
        """Test quarters start in January, April, July and October."""
        start, end = period_boundaries("quarter", utc(2025, month, 15))

        assert start == utc(2025, expected_start, 1)
        assert (end.year, end.month) == (
            (2026, 1) if expected_start == 10 else (2025, expected_start + 3)
        )

    def test_naive_reference_is_utc(self):
        """Test naive datetimes are treated as UTC."""
        start, _ = period_boundaries("day", datetime(2025, 3, 14, 23, 30))

        assert start == utc(2025, 3, 14)

    def test_offset_reference_converted(self):
        """Test an offset instant is located in UTC."""
        reference = datetime(2025, 3, 15, 1, 0, tzinfo=timezone(timedelta(hours=3)))
        start, _ = period_boundaries("day", reference)

        assert start == utc(2025, 3, 14)

    def test_default_reference_is_now(self):
        """Test the current period contains now."""
        start, end = period_boundaries("day")
        now = datetime.now(timezone.utc)

        assert start <= now < end

    @pytest.mark.parametrize("cadence", list(Cadence))
    def test_reference_inside_period(self, cadence: Cadence):
        """Test start <= reference < end for every cadence."""
        reference = utc(2025, 5, 17, 6, 45)
        start, end = period_boundaries(cadence, reference)

        assert start <= reference < end
        assert start.tzinfo is not None

    def test_invalid_cadence(self):
        """Test an unsupported cadence is rejected."""
        with pytest.raises(InvalidCadence, match="Invalid cadence: year"):
            period_boundaries("year", utc(2025, 1, 1))

    def test_invalid_cadence_is_invalid_goal(self):
        """Test InvalidCadence can be handled as InvalidGoal."""
        with pytest.raises(InvalidGoal):
            coerce_cadence("fortnight")


class TestPreviousPeriod:
    """Tests for previous_period_boundaries."""

    def test_previous_week(self):
        """Test stepping back one week."""
        start, end = previous_period_boundaries("week", utc(2025, 1, 6))

        assert start == utc(2024, 12, 30)
        assert end == utc(2025, 1, 6)

    def test_previous_month_handles_lengths(self):
        """Test stepping back from March lands on February 1."""
        start, end = previous_period_boundaries("month", utc(2025, 3, 1))

        assert start == utc(2025, 2, 1)
        assert end == utc(2025, 3, 1)

    def test_previous_quarter(self):
        """Test stepping back from Q1 lands in the previous year's Q4."""
        start, end = previous_period_boundaries("quarter", utc(2025, 1, 1))

        assert start == utc(2024, 10, 1)
        assert end == utc(2025, 1, 1)


class TestPeriodId:
    """Tests for period_id labels."""

    def test_day_label(self):
        assert period_id("day", utc(2025, 1, 6, 10)) == "2025-01-06"

    def test_week_label(self):
        assert period_id("week", utc(2025, 1, 10)) == "2025-W02"

    def test_week_label_uses_iso_year(self):
        """Test the week of 2024-12-30 is labelled with ISO year 2025."""
        assert period_id("week", utc(2024, 12, 31)) == "2025-W01"

    def test_month_label(self):
        assert period_id("month", utc(2025, 1, 31)) == "2025-01"

    def test_quarter_label(self):
        assert period_id("quarter", utc(2025, 8, 1)) == "2025-Q3"

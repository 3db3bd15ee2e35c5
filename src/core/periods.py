"""Calendar period boundaries for weekly duties and reports.

A period is a 7-day window that begins on a configurable weekday (Monday by
default) at 00:00:00.000 and ends six days later at 23:59:59.999.
"""

import contextlib
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

from src.core.config import constants, settings
from src.core.errors import InvalidInputError


_PERIOD_END_TIME = time(23, 59, 59, 999000)


@dataclass(frozen=True)
class Period:
    """Start and end instants of one period."""

    start: datetime
    end: datetime

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    def contains(self, moment: date | datetime) -> bool:
        """Check whether a date or datetime falls inside the period."""
        if isinstance(moment, datetime):
            return self.start_date <= moment.date() <= self.end_date
        return self.start_date <= moment <= self.end_date


def parse_period_date(value: date | datetime | str) -> date:
    """Normalise a reference value to a calendar date.

    Args:
        value: date, datetime or ISO string (YYYY-MM-DD or full ISO datetime)

    Returns:
        The calendar date

    Raises:
        InvalidInputError: If the value is not a date or cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        with contextlib.suppress(ValueError):
            return date.fromisoformat(text)
        try:
            return datetime.fromisoformat(text).date()
        except ValueError as e:
            msg = f"Malformed date: {value!r}. Use YYYY-MM-DD."
            raise InvalidInputError(msg) from e
    msg = f"Unsupported date value: {value!r}"
    raise InvalidInputError(msg)


def _resolve_start_weekday(start_weekday: int | None) -> int:
    weekday = settings.period_start_weekday if start_weekday is None else start_weekday
    if isinstance(weekday, bool) or not isinstance(weekday, int) or not 0 <= weekday <= 6:
        msg = f"Period start weekday must be 0 (Monday) to 6 (Sunday), got {weekday!r}"
        raise InvalidInputError(msg)
    return weekday


def get_period_bounds(
    reference: date | datetime | str | None = None,
    *,
    start_weekday: int | None = None,
) -> Period:
    """Get the period containing a reference moment.

    Args:
        reference: Reference date or datetime. If None, uses current time (UTC).
        start_weekday: First day of the period (0=Monday). Defaults to settings.

    Returns:
        Period with start at 00:00:00.000 and end at 23:59:59.999, keeping the
        reference's timezone when it is an aware datetime

    Raises:
        InvalidInputError: If the reference or weekday is invalid
    """
    weekday = _resolve_start_weekday(start_weekday)

    if reference is None:
        reference = datetime.now(UTC)

    tzinfo = reference.tzinfo if isinstance(reference, datetime) else None
    ref_date = parse_period_date(reference)

    days_since_start = (ref_date.weekday() - weekday) % constants.PERIOD_LENGTH_DAYS
    start_date = ref_date - timedelta(days=days_since_start)
    end_date = start_date + timedelta(days=constants.PERIOD_LENGTH_DAYS - 1)

    return Period(
        start=datetime.combine(start_date, time.min, tzinfo=tzinfo),
        end=datetime.combine(end_date, _PERIOD_END_TIME, tzinfo=tzinfo),
    )


def get_week_start_date(reference: date | datetime | str | None = None) -> date:
    """Get the first calendar date of the period containing the reference."""
    return get_period_bounds(reference).start_date


def get_week_end_date(reference: date | datetime | str | None = None) -> date:
    """Get the last calendar date of the period containing the reference."""
    return get_period_bounds(reference).end_date

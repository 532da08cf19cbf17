"""Period keys used to bucket bonus-cap usage.

Calendar periods are keyed ``YYYY-MM``. Statement periods start on the
instrument's statement day and are keyed by the month the cycle starts in,
suffixed with the day: ``YYYY-MM@DD``. A date before the statement day belongs
to the previous month's cycle.
"""

import calendar
import datetime as dt

from cardpoints.domain.models import Instrument, PeriodType


def calendar_period_key(day: dt.date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def statement_period_start(day: dt.date, statement_day: int) -> dt.date:
    if not 1 <= statement_day <= 31:
        raise ValueError(f"statement_day must be within 1..31, got {statement_day}")

    year, month = day.year, day.month
    if day.day < _clamp(year, month, statement_day):
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return dt.date(year, month, _clamp(year, month, statement_day))


def statement_period_key(day: dt.date, statement_day: int) -> str:
    if statement_day == 1:
        return calendar_period_key(day)
    start = statement_period_start(day, statement_day)
    return f"{start.year:04d}-{start.month:02d}@{statement_day:02d}"


def period_key_for(day: dt.date, period_type: PeriodType, instrument: Instrument) -> str:
    if period_type == PeriodType.STATEMENT:
        return statement_period_key(day, instrument.statement_day)
    return calendar_period_key(day)


def _clamp(year: int, month: int, statement_day: int) -> int:
    # Day 31 in a 30-day month starts the cycle on the last day instead.
    return min(statement_day, calendar.monthrange(year, month)[1])

"""Date manipulation utilities"""

import calendar
from datetime import date, timedelta


def day_in_month(year: int, month: int, day: int) -> date:
    """Build a date, clamping the day to the month's length (31 -> Feb 28/29)"""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def add_months(from_date: date, months: int, day: int | None = None) -> date:
    """
    Shift a date by whole months.

    Args:
        from_date: Starting date
        months: Months to add (negative to go back)
        day: Day-of-month to land on (default: from_date's day), clamped
    """
    index = from_date.year * 12 + (from_date.month - 1) + months
    year, month = divmod(index, 12)
    return day_in_month(year, month + 1, day if day is not None else from_date.day)


def add_years(from_date: date, years: int) -> date:
    return day_in_month(from_date.year + years, from_date.month, from_date.day)


def add_weeks(from_date: date, weeks: int) -> date:
    return from_date + timedelta(days=7 * weeks)


def month_diff(start: date, end: date) -> int:
    """Calendar months from start's month to end's month (days ignored)"""
    return (end.year - start.year) * 12 + (end.month - start.month)

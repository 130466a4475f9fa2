"""Unit tests for date helpers"""

from datetime import date

from ledger_core.utils.date_utils import add_months, add_weeks, add_years, day_in_month, month_diff


def test_day_in_month_clamps():
    assert day_in_month(2023, 2, 31) == date(2023, 2, 28)
    assert day_in_month(2024, 2, 30) == date(2024, 2, 29)
    assert day_in_month(2024, 4, 31) == date(2024, 4, 30)


def test_add_months_across_year():
    assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)
    assert add_months(date(2024, 1, 15), -1) == date(2023, 12, 15)


def test_add_months_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 2, 29), 1, day=31) == date(2024, 3, 31)


def test_add_years_leap_day():
    assert add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)


def test_add_weeks():
    assert add_weeks(date(2024, 12, 28), 1) == date(2025, 1, 4)


def test_month_diff():
    assert month_diff(date(2024, 3, 31), date(2024, 6, 1)) == 3
    assert month_diff(date(2023, 11, 5), date(2024, 2, 5)) == 3
    assert month_diff(date(2024, 6, 20), date(2024, 6, 15)) == 0
    assert month_diff(date(2024, 7, 1), date(2024, 6, 15)) == -1

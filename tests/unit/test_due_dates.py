"""Unit tests for due-date arithmetic."""

import calendar
from datetime import date, timedelta

import pytest

from pgmanager.services.due_dates import (
    GENERAL_GRACE_DAYS,
    SELF_SERVICE_GRACE_DAYS,
    compute_due_date,
    compute_due_dates,
    BillingCycle,
    iter_billing_cycles,
    next_period,
    validate_period,
)
from pgmanager.services.errors import ValidationError

JOIN_DAYS = range(1, 32)
MONTHS = range(1, 13)
YEARS = [2023, 2024]  # non-leap, leap


def _join_date(day: int) -> date:
    # January has 31 days, so every day-of-month is representable
    return date(2023, 1, day)


@pytest.mark.unit
@pytest.mark.parametrize("year", YEARS)
@pytest.mark.parametrize("month", MONTHS)
@pytest.mark.parametrize("join_day", JOIN_DAYS)
def test_due_date_stays_in_target_month_and_clamps(join_day, month, year):
    due = compute_due_date(_join_date(join_day), month, year)
    last_day = calendar.monthrange(year, month)[1]

    assert (due.year, due.month) == (year, month)
    assert due.day == min(join_day, last_day)


@pytest.mark.unit
@pytest.mark.parametrize(
    "join, month, year, expected",
    [
        (date(2024, 1, 31), 2, 2024, date(2024, 2, 29)),
        (date(2024, 1, 31), 2, 2023, date(2023, 2, 28)),
        (date(2024, 1, 30), 4, 2024, date(2024, 4, 30)),
        (date(2024, 1, 31), 4, 2024, date(2024, 4, 30)),
        (date(2024, 1, 10), 1, 2024, date(2024, 1, 10)),
    ],
)
def test_due_date_examples(join, month, year, expected):
    assert compute_due_date(join, month, year) == expected


@pytest.mark.unit
def test_overdue_date_uses_general_grace_by_default():
    dates = compute_due_dates(date(2024, 1, 10), 1, 2024)

    assert dates.due_date == date(2024, 1, 10)
    assert dates.overdue_date == date(2024, 1, 17)
    assert GENERAL_GRACE_DAYS == 7


@pytest.mark.unit
def test_self_service_grace_is_five_days():
    dates = compute_due_dates(date(2024, 1, 10), 1, 2024, SELF_SERVICE_GRACE_DAYS)

    assert dates.overdue_date - dates.due_date == timedelta(days=5)


@pytest.mark.unit
def test_overdue_date_can_cross_into_next_month():
    dates = compute_due_dates(date(2024, 1, 31), 2, 2024)

    assert dates.due_date == date(2024, 2, 29)
    assert dates.overdue_date == date(2024, 3, 7)


@pytest.mark.unit
@pytest.mark.parametrize("month, year", [(0, 2024), (13, 2024), (1, 0)])
def test_invalid_period_rejected(month, year):
    with pytest.raises(ValidationError):
        validate_period(month, year)


@pytest.mark.unit
def test_next_period_rolls_over_year():
    assert next_period(12, 2023) == (1, 2024)
    assert next_period(6, 2024) == (7, 2024)


@pytest.mark.unit
def test_billing_cycles_are_anchored_on_joining_day():
    cycles = list(iter_billing_cycles(date(2024, 1, 5), date(2024, 4, 15)))

    assert [(c.month, c.start, c.end) for c in cycles] == [
        (1, date(2024, 1, 5), date(2024, 2, 4)),
        (2, date(2024, 2, 5), date(2024, 3, 4)),
        (3, date(2024, 3, 5), date(2024, 4, 4)),
        (4, date(2024, 4, 5), date(2024, 5, 4)),
    ]
    assert cycles[-1].length == 30


@pytest.mark.unit
def test_billing_cycles_clamp_in_short_months():
    cycles = list(iter_billing_cycles(date(2024, 1, 31), date(2024, 4, 1)))

    assert [c.start for c in cycles] == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
    ]
    assert [c.length for c in cycles] == [29, 31, 30]


@pytest.mark.unit
def test_billing_cycles_cross_year_boundary():
    cycles = list(iter_billing_cycles(date(2023, 12, 20), date(2024, 1, 19)))

    assert cycles == [BillingCycle(12, 2023, date(2023, 12, 20), date(2024, 1, 19))]


@pytest.mark.unit
def test_billing_cycle_on_last_day_starts_next_cycle():
    cycles = list(iter_billing_cycles(date(2024, 3, 5), date(2024, 4, 5)))

    assert [(c.month, c.year) for c in cycles] == [(3, 2024), (4, 2024)]

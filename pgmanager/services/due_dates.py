"""Due-date arithmetic for monthly billing periods.

A member's rent falls due on the same day of the month as their joining day.
Months that are too short for that day use their last calendar day instead.
"""

import calendar
from datetime import date, timedelta
from typing import Iterator, NamedTuple

from pgmanager.services.errors import ValidationError

# Grace periods before an unpaid record counts as overdue. The general path
# (member portal upload, staff-recorded payments, next-period reservation)
# and the public self-service form historically use different values.
GENERAL_GRACE_DAYS = 7
SELF_SERVICE_GRACE_DAYS = 5


class DueDates(NamedTuple):
    """Due date and overdue threshold for one billing period."""

    due_date: date
    overdue_date: date


def validate_period(month: int, year: int) -> None:
    """Raise ValidationError unless month is 1-12 and year is a plausible calendar year."""
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError("Invalid month. Month must be between 1 and 12")
    if not isinstance(year, int) or not 1 <= year <= 9999:
        raise ValidationError("Invalid year")


def days_in_month(month: int, year: int) -> int:
    return calendar.monthrange(year, month)[1]


def compute_due_date(join_date: date, month: int, year: int) -> date:
    """Map the joining day-of-month into (month, year), clamped to the month's last day."""
    validate_period(month, year)
    day = min(join_date.day, days_in_month(month, year))
    return date(year, month, day)


def compute_due_dates(
    join_date: date, month: int, year: int, grace_days: int = GENERAL_GRACE_DAYS
) -> DueDates:
    """Compute the due date and overdue threshold for a billing period.

    Args:
        join_date: Member's joining date
        month: Target month (1-12)
        year: Target calendar year
        grace_days: Days between due date and overdue threshold

    Returns:
        DueDates(due_date, overdue_date)
    """
    due_date = compute_due_date(join_date, month, year)
    return DueDates(due_date, due_date + timedelta(days=grace_days))


def next_period(month: int, year: int) -> tuple[int, int]:
    """Billing period following (month, year)."""
    if month == 12:
        return 1, year + 1
    return month + 1, year


class BillingCycle(NamedTuple):
    """One rent cycle, from a period's due date to the day before the next one."""

    month: int
    year: int
    start: date
    end: date

    @property
    def length(self) -> int:
        return (self.end - self.start).days + 1


def iter_billing_cycles(join_date: date, until: date) -> Iterator[BillingCycle]:
    """Yield the cycles anchored on the joining day that begin on or before ``until``.

    A member who joined on the 5th is billed 5th to 4th. Joining days missing
    from a month are clamped like due dates, so a join on Jan 31 gives cycles
    starting Feb 29 and Mar 31 in 2024.
    """
    month, year = join_date.month, join_date.year
    start = join_date
    while start <= until:
        next_month, next_year = next_period(month, year)
        next_start = compute_due_date(join_date, next_month, next_year)
        yield BillingCycle(month, year, start, next_start - timedelta(days=1))
        month, year, start = next_month, next_year, next_start


__all__ = [
    "GENERAL_GRACE_DAYS",
    "SELF_SERVICE_GRACE_DAYS",
    "DueDates",
    "validate_period",
    "days_in_month",
    "compute_due_date",
    "compute_due_dates",
    "next_period",
    "BillingCycle",
    "iter_billing_cycles",
]

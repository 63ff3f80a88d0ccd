"""Dues owed by a member who has asked to leave.

Billing follows the member's rent cycles, which start on the joining date and
then on every later due date (same day of month, clamped in short months).
Every cycle that ends on or before the leave date costs the full monthly rent
and electricity. The cycle containing the leave date costs rent / cycle length
per occupied day, rounded to paise. Short-term members pay their per-day price
for every occupied day instead of rent. Approved payments for the billed
periods are credited, and the remainder, floored at zero, is the pending
dues. A negative remainder is reported separately as a credit.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pgmanager.models import (
    OPEN_LEAVING_STATUSES,
    ApprovalStatus,
    LeavingRequest,
    Member,
    PaymentRecord,
    RentType,
    Room,
)
from pgmanager.services.clock import Clock, SystemClock
from pgmanager.services.due_dates import iter_billing_cycles
from pgmanager.services.errors import EngineError, ItemFailure, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def prorate(monthly_amount: Decimal, days_occupied: int, cycle_length: int) -> Decimal:
    """Monthly charge for ``days_occupied`` out of ``cycle_length`` days."""
    if days_occupied >= cycle_length:
        return _money(monthly_amount)
    return _money(monthly_amount * days_occupied / cycle_length)


@dataclass
class DuesLine:
    """Charges for one rent cycle of the stay, keyed by the cycle's billing period."""

    year: int
    month: int
    days_occupied: int
    days_in_cycle: int
    rent: Decimal
    electricity: Decimal

    @property
    def total(self) -> Decimal:
        return self.rent + self.electricity


@dataclass
class DuesBreakdown:
    """Full dues computation for one member and leave date."""

    member_id: int
    leave_date: date
    lines: list[DuesLine] = field(default_factory=list)
    gross_total: Decimal = ZERO
    approved_total: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        """Gross charges minus approved payments (negative means overpaid)."""
        return self.gross_total - self.approved_total

    @property
    def pending_dues(self) -> Decimal:
        return max(self.balance, ZERO)

    @property
    def credit(self) -> Decimal:
        return max(-self.balance, ZERO)


def calculate_dues(
    member: Member,
    room: Room | None,
    leave_date: date,
    approved_payments: list[PaymentRecord],
) -> DuesBreakdown:
    """Pure dues computation; see the module docstring for the billing rules.

    Args:
        member: Leaving member (join date, rent type, per-day price)
        room: Member's room, required for long-term rent
        leave_date: Last day of occupancy (inclusive)
        approved_payments: Approved attempts of the member; only those for
            months inside the stay are credited

    Raises:
        ValidationError: Leave date precedes joining or billing terms are missing
    """
    start = member.date_of_joining
    if leave_date < start:
        raise ValidationError("Leave date cannot be before the date of joining")
    if member.rent_type == RentType.LONG_TERM and room is None:
        raise ValidationError("Member has no room assigned, monthly rent is unknown")
    if member.rent_type == RentType.SHORT_TERM and member.price_per_day is None:
        raise ValidationError("Short-term member has no per-day price")

    breakdown = DuesBreakdown(member_id=member.id, leave_date=leave_date)
    electricity_rate = room.electricity_charge if room is not None else ZERO
    periods = set()

    for cycle in iter_billing_cycles(start, leave_date):
        periods.add((cycle.year, cycle.month))
        days = (min(leave_date, cycle.end) - cycle.start).days + 1

        if member.rent_type == RentType.SHORT_TERM:
            rent = _money(member.price_per_day * days)
        else:
            rent = prorate(room.rent, days, cycle.length)
        electricity = prorate(electricity_rate or ZERO, days, cycle.length)
        breakdown.lines.append(
            DuesLine(cycle.year, cycle.month, days, cycle.length, rent, electricity)
        )

    breakdown.gross_total = sum((line.total for line in breakdown.lines), ZERO)
    breakdown.approved_total = sum(
        (
            Decimal(payment.amount)
            for payment in approved_payments
            if payment.approval_status == ApprovalStatus.APPROVED
            and (payment.year, payment.month) in periods
        ),
        ZERO,
    )
    return breakdown


@dataclass
class DuesChange:
    """A leaving request whose stored dues changed during a refresh."""

    leaving_request_id: int
    member_id: int
    previous_dues: Decimal | None
    updated_dues: Decimal

    @property
    def change_amount(self) -> Decimal:
        return self.updated_dues - (self.previous_dues or ZERO)


@dataclass
class DuesRefreshResult:
    """Summary of a refresh over all open leaving requests."""

    updated_requests: int = 0
    total_open_requests: int = 0
    details: list[DuesChange] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)


class DuesService:
    """Computes and stores dues snapshots on leaving requests."""

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or SystemClock()

    def compute_breakdown(self, member_id: int, leave_date: date) -> DuesBreakdown:
        """Dues for a member leaving on ``leave_date`` from current store contents."""
        member = self.db.get(Member, member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found")
        approved = (
            self.db.execute(
                select(PaymentRecord).where(
                    PaymentRecord.member_id == member_id,
                    PaymentRecord.approval_status == ApprovalStatus.APPROVED,
                )
            )
            .scalars()
            .all()
        )
        return calculate_dues(member, member.room, leave_date, list(approved))

    def apply_snapshot(self, leaving_request: LeavingRequest) -> DuesBreakdown:
        """Recompute dues and write them onto the request without committing."""
        breakdown = self.compute_breakdown(
            leaving_request.member_id, leaving_request.requested_leave_date
        )
        leaving_request.pending_dues = breakdown.pending_dues
        leaving_request.dues_credit = breakdown.credit
        leaving_request.dues_computed_at = self.clock.now()
        return breakdown

    def recompute(self, leaving_request: LeavingRequest) -> DuesBreakdown:
        """Recompute and persist the dues snapshot of one leaving request."""
        try:
            breakdown = self.apply_snapshot(leaving_request)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            f"Leaving request {leaving_request.id}: pending dues {breakdown.pending_dues}, "
            f"credit {breakdown.credit}"
        )
        return breakdown

    def recompute_for_member(self, member_id: int) -> LeavingRequest | None:
        """Refresh the member's open leaving request, if there is one."""
        leaving_request = self._open_request_for(member_id)
        if leaving_request is None:
            return None
        self.recompute(leaving_request)
        return leaving_request

    def refresh_open_requests(self) -> DuesRefreshResult:
        """Recompute dues for every open leaving request.

        Only requests whose amount changed are written. A request that cannot
        be recomputed is recorded as a failure and the pass continues.
        """
        open_requests = (
            self.db.execute(
                select(LeavingRequest)
                .where(LeavingRequest.status.in_(OPEN_LEAVING_STATUSES))
                .order_by(LeavingRequest.id)
            )
            .scalars()
            .all()
        )
        result = DuesRefreshResult(total_open_requests=len(open_requests))
        computed_at: datetime = self.clock.now()

        for leaving_request in open_requests:
            request_id = leaving_request.id
            try:
                previous = leaving_request.pending_dues
                breakdown = self.compute_breakdown(
                    leaving_request.member_id, leaving_request.requested_leave_date
                )
                unchanged = (
                    previous is not None
                    and Decimal(previous) == breakdown.pending_dues
                    and Decimal(leaving_request.dues_credit or ZERO) == breakdown.credit
                )
                if unchanged:
                    continue
                leaving_request.pending_dues = breakdown.pending_dues
                leaving_request.dues_credit = breakdown.credit
                leaving_request.dues_computed_at = computed_at
                self.db.commit()
                result.updated_requests += 1
                result.details.append(
                    DuesChange(
                        request_id, leaving_request.member_id, previous, breakdown.pending_dues
                    )
                )
            except (EngineError, SQLAlchemyError) as e:
                self.db.rollback()
                logger.error(f"Failed to update dues for leaving request {request_id}: {e}")
                result.failures.append(ItemFailure(request_id, str(e)))

        logger.info(
            f"Updated pending dues for {result.updated_requests} of "
            f"{result.total_open_requests} open leaving requests"
        )
        return result

    def _open_request_for(self, member_id: int) -> LeavingRequest | None:
        return self.db.execute(
            select(LeavingRequest)
            .where(
                LeavingRequest.member_id == member_id,
                LeavingRequest.status.in_(OPEN_LEAVING_STATUSES),
            )
            .order_by(LeavingRequest.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()


__all__ = [
    "DuesLine",
    "DuesBreakdown",
    "DuesChange",
    "DuesRefreshResult",
    "DuesService",
    "calculate_dues",
    "prorate",
]

"""Payment attempt tracking for a member's monthly billing periods.

A billing period is identified by (member, month, year). Every submission for
a period is an attempt; what a new submission does depends on the state of the
latest attempt:

    payment / approval   state               new submission
    PENDING / PENDING    RESERVED            fills the reserved record in place
    PAID    / PENDING    AWAITING_APPROVAL   conflict (already in flight)
    PAID    / APPROVED   APPROVED            conflict (period already paid)
    PAID    / REJECTED   REJECTED            appends attempt N+1

No other combination is valid. Due dates are fixed by the first attempt of a
period and carried over by every later one.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pgmanager.models import (
    ApprovalStatus,
    Member,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    RentType,
)
from pgmanager.services.clock import Clock, SystemClock
from pgmanager.services.due_dates import (
    GENERAL_GRACE_DAYS,
    SELF_SERVICE_GRACE_DAYS,
    DueDates,
    compute_due_dates,
    next_period,
    validate_period,
)
from pgmanager.services.errors import ConflictError, NotFoundError, ValidationError
from pgmanager.services.file_storage import LocalFileStorage, get_file_storage
from pgmanager.services.pagination import Page, paginate
from pgmanager.services.store import atomic

logger = logging.getLogger(__name__)

MIN_PAYMENT_YEAR = 2000
CENT = Decimal("0.01")


class AttemptState(str, Enum):
    """State of the latest attempt for a period, keyed by (payment, approval) status."""

    RESERVED = "reserved"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


_ATTEMPT_STATES = {
    (PaymentStatus.PENDING, ApprovalStatus.PENDING): AttemptState.RESERVED,
    (PaymentStatus.PAID, ApprovalStatus.PENDING): AttemptState.AWAITING_APPROVAL,
    (PaymentStatus.PAID, ApprovalStatus.APPROVED): AttemptState.APPROVED,
    (PaymentStatus.PAID, ApprovalStatus.REJECTED): AttemptState.REJECTED,
}


def classify_attempt(record: PaymentRecord) -> AttemptState:
    """Map a record onto one of the four reachable attempt states.

    Raises:
        ConflictError: The record carries a combination the workflow never produces
    """
    state = _ATTEMPT_STATES.get((record.payment_status, record.approval_status))
    if state is None:
        raise ConflictError(
            f"Payment {record.id} is in an invalid state "
            f"({record.payment_status.value}/{record.approval_status.value})"
        )
    return state


class PeriodState(str, Enum):
    """What a member sees for one billing period."""

    NO_RECORD = "no_record"
    DUE = "due"
    OVERDUE = "overdue"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class SubmissionResult:
    """Outcome of a payment submission."""

    payment: PaymentRecord
    created: bool

    @property
    def attempt_number(self) -> int:
        return self.payment.attempt_number

    @property
    def status(self) -> str:
        return "Paid - Pending Approval" if self.created else "Updated - Pending Approval"


@dataclass
class PeriodStatusView:
    """Status of one billing period plus the attempt it was derived from."""

    month: int
    year: int
    state: PeriodState
    payment: PaymentRecord | None = None


def parse_amount(value) -> Decimal:
    """Parse a positive money amount rounded to paise."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid amount. Amount must be a positive number") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Invalid amount. Amount must be a positive number")
    return amount.quantize(CENT)


def parse_payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(str(value).upper())
    except ValueError:
        raise ValidationError("Invalid payment method. Must be CASH or ONLINE") from None


class PaymentService:
    """Creates and updates payment attempts and answers period-status queries."""

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        storage: LocalFileStorage | None = None,
    ):
        """Initialize payment service.

        Args:
            db: SQLAlchemy database session
            clock: Time source (defaults to system time)
            storage: File storage used to discard proofs of rejected submissions
        """
        self.db = db
        self.clock = clock or SystemClock()
        self.storage = storage or get_file_storage()

    def get_payment(self, payment_id: int) -> PaymentRecord:
        payment = self.db.get(PaymentRecord, payment_id)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    def get_latest_attempt(self, member_id: int, month: int, year: int) -> PaymentRecord | None:
        """Most recent attempt for a period (highest attempt number), or None."""
        return self.db.execute(
            select(PaymentRecord)
            .where(
                PaymentRecord.member_id == member_id,
                PaymentRecord.month == month,
                PaymentRecord.year == year,
            )
            .order_by(PaymentRecord.attempt_number.desc())
            .limit(1)
        ).scalar_one_or_none()

    def submit_payment(
        self,
        member_id: int,
        month: int,
        year: int,
        amount,
        payment_method,
        rent_proof_ref: str | None = None,
        electricity_proof_ref: str | None = None,
        grace_days: int = GENERAL_GRACE_DAYS,
    ) -> SubmissionResult:
        """Submit or update the payment for a member's billing period.

        Proof files referenced by a submission that fails for any reason are
        deleted before the error propagates, so rejected uploads never linger.

        Args:
            member_id: Paying member
            month: Billing month (1-12)
            year: Billing year
            amount: Amount paid (anything Decimal accepts)
            payment_method: "ONLINE" or "CASH"
            rent_proof_ref: Stored rent proof reference (online payments)
            electricity_proof_ref: Stored electricity proof reference (online payments)
            grace_days: Grace period used if this is the period's first attempt

        Returns:
            SubmissionResult with the created or updated attempt

        Raises:
            ValidationError: Bad input, inactive member or member without a PG
            NotFoundError: Member does not exist
            ConflictError: Period already approved or an attempt awaits a decision
        """
        proof_refs = [ref for ref in (rent_proof_ref, electricity_proof_ref) if ref]
        try:
            amount_value, method = self._validate_submission(
                amount, month, year, payment_method, proof_refs
            )
            member = self._get_payable_member(member_id)
            return self._record_attempt(
                member,
                month,
                year,
                amount_value,
                method,
                rent_proof_ref,
                electricity_proof_ref,
                grace_days,
            )
        except Exception:
            self._discard_proofs(proof_refs)
            raise

    def submit_self_service_payment(
        self,
        member_code: str,
        name: str,
        room_no: str | None,
        amount,
        payment_method,
        rent_proof_ref: str | None = None,
        electricity_proof_ref: str | None = None,
    ) -> SubmissionResult:
        """Public self-service form: pay the current month after proving identity.

        The member is looked up by member code and must match the submitted name
        and room number. The period is the clock's current month and the
        self-service grace period applies to a newly opened period.
        """
        proof_refs = [ref for ref in (rent_proof_ref, electricity_proof_ref) if ref]
        try:
            member = self.db.execute(
                select(Member).where(Member.member_code == (member_code or "").strip())
            ).scalar_one_or_none()
            if member is None:
                raise NotFoundError("Member not found")

            member_room_no = member.room.room_no if member.room else None
            if (member.name or "").strip().lower() != (name or "").strip().lower() or (
                member_room_no != (room_no or None)
            ):
                raise ValidationError("Member details do not match")
        except Exception:
            self._discard_proofs(proof_refs)
            raise

        today = self.clock.today()
        return self.submit_payment(
            member.id,
            today.month,
            today.year,
            amount,
            payment_method,
            rent_proof_ref,
            electricity_proof_ref,
            grace_days=SELF_SERVICE_GRACE_DAYS,
        )

    def list_payment_history(self, member_id: int, page: int = 1, limit: int = 10) -> Page:
        """All attempts of a member, newest period and attempt first."""
        if self.db.get(Member, member_id) is None:
            raise NotFoundError(f"Member {member_id} not found")
        stmt = (
            select(PaymentRecord)
            .where(PaymentRecord.member_id == member_id)
            .order_by(
                PaymentRecord.year.desc(),
                PaymentRecord.month.desc(),
                PaymentRecord.attempt_number.desc(),
            )
        )
        return paginate(self.db, stmt, page, limit)

    def get_period_status(self, member_id: int, month: int, year: int) -> PeriodStatusView:
        """Status of a billing period, keeping "no record" apart from "overdue record"."""
        validate_period(month, year)
        latest = self.get_latest_attempt(member_id, month, year)
        if latest is None:
            return PeriodStatusView(month, year, PeriodState.NO_RECORD)

        state = classify_attempt(latest)
        if state == AttemptState.RESERVED:
            overdue = latest.is_overdue or latest.overdue_date < self.clock.today()
            period_state = PeriodState.OVERDUE if overdue else PeriodState.DUE
        elif state == AttemptState.AWAITING_APPROVAL:
            period_state = PeriodState.AWAITING_APPROVAL
        elif state == AttemptState.APPROVED:
            period_state = PeriodState.APPROVED
        else:
            period_state = PeriodState.REJECTED
        return PeriodStatusView(month, year, period_state, latest)

    def reserve_next_period(self, member: Member, payment: PaymentRecord) -> PaymentRecord | None:
        """Open the period after ``payment`` with a reserved, unpaid record.

        Only long-term members with a room get a reservation, and only when the
        next period has no record yet. Runs inside the caller's transaction.
        """
        if member.rent_type != RentType.LONG_TERM or member.room is None:
            return None

        month, year = next_period(payment.month, payment.year)
        existing = self.db.execute(
            select(PaymentRecord.id)
            .where(
                PaymentRecord.member_id == member.id,
                PaymentRecord.month == month,
                PaymentRecord.year == year,
            )
            .limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            return None

        due = compute_due_dates(member.date_of_joining, month, year, GENERAL_GRACE_DAYS)
        reserved = PaymentRecord(
            member_id=member.id,
            pg_id=member.pg_id,
            month=month,
            year=year,
            attempt_number=1,
            amount=member.room.rent,
            due_date=due.due_date,
            overdue_date=due.overdue_date,
            payment_status=PaymentStatus.PENDING,
            approval_status=ApprovalStatus.PENDING,
        )
        self.db.add(reserved)
        self.db.flush()
        logger.info(
            f"Reserved payment {reserved.id} for member {member.id} period {year}-{month:02d} "
            f"(due {due.due_date})"
        )
        return reserved

    def _validate_submission(
        self, amount, month: int, year: int, payment_method, proof_refs: list[str]
    ) -> tuple[Decimal, PaymentMethod]:
        amount_value = parse_amount(amount)
        validate_period(month, year)
        if not MIN_PAYMENT_YEAR <= year <= self.clock.today().year + 1:
            raise ValidationError("Invalid year")
        method = parse_payment_method(payment_method)
        if method == PaymentMethod.CASH and proof_refs:
            raise ValidationError("File uploads are not allowed for cash payments")
        return amount_value, method

    def _get_payable_member(self, member_id: int) -> Member:
        member = self.db.get(Member, member_id)
        if member is None:
            raise NotFoundError("Member not found")
        if not member.is_active:
            raise ValidationError("Member account is inactive")
        if member.pg_id is None:
            raise ValidationError("Member is not assigned to any PG")
        return member

    def _record_attempt(
        self,
        member: Member,
        month: int,
        year: int,
        amount: Decimal,
        method: PaymentMethod,
        rent_proof_ref: str | None,
        electricity_proof_ref: str | None,
        grace_days: int,
    ) -> SubmissionResult:
        replaced_refs: list[str] = []
        with atomic(self.db, "Another payment for this period was submitted at the same time"):
            latest = self.get_latest_attempt(member.id, month, year)

            if latest is None:
                due = compute_due_dates(member.date_of_joining, month, year, grace_days)
                payment = self._append_attempt(
                    member, month, year, 1, due, amount, method, rent_proof_ref, electricity_proof_ref
                )
                result = SubmissionResult(payment, created=True)
            else:
                state = classify_attempt(latest)
                if state == AttemptState.RESERVED:
                    new_refs = {rent_proof_ref, electricity_proof_ref}
                    replaced_refs = [ref for ref in latest.proof_refs if ref not in new_refs]
                    self._fill_reserved(latest, amount, method, rent_proof_ref, electricity_proof_ref)
                    result = SubmissionResult(latest, created=False)
                elif state == AttemptState.AWAITING_APPROVAL:
                    raise ConflictError(
                        "Payment already exists for this month and is pending approval"
                    )
                elif state == AttemptState.APPROVED:
                    raise ConflictError("Payment for this month has already been approved")
                elif state == AttemptState.REJECTED:
                    due = DueDates(latest.due_date, latest.overdue_date)
                    payment = self._append_attempt(
                        member,
                        month,
                        year,
                        latest.attempt_number + 1,
                        due,
                        amount,
                        method,
                        rent_proof_ref,
                        electricity_proof_ref,
                    )
                    result = SubmissionResult(payment, created=True)
                else:
                    raise ConflictError(f"Unhandled attempt state {state}")

        self.db.refresh(result.payment)
        self._discard_proofs(replaced_refs)
        logger.info(
            f"{'Created' if result.created else 'Updated'} payment {result.payment.id} for member "
            f"{member.id} period {year}-{month:02d} attempt {result.attempt_number} "
            f"({method.value}, {amount})"
        )
        return result

    def _append_attempt(
        self,
        member: Member,
        month: int,
        year: int,
        attempt_number: int,
        due: DueDates,
        amount: Decimal,
        method: PaymentMethod,
        rent_proof_ref: str | None,
        electricity_proof_ref: str | None,
    ) -> PaymentRecord:
        payment = PaymentRecord(
            member_id=member.id,
            pg_id=member.pg_id,
            month=month,
            year=year,
            attempt_number=attempt_number,
            amount=amount,
            payment_method=method,
            due_date=due.due_date,
            overdue_date=due.overdue_date,
            paid_date=self.clock.now(),
            payment_status=PaymentStatus.PAID,
            approval_status=ApprovalStatus.PENDING,
            rent_proof_ref=rent_proof_ref,
            electricity_proof_ref=electricity_proof_ref,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def _fill_reserved(
        self,
        reserved: PaymentRecord,
        amount: Decimal,
        method: PaymentMethod,
        rent_proof_ref: str | None,
        electricity_proof_ref: str | None,
    ) -> None:
        """Pay a reserved record in place, only if it is still unpaid and undecided."""
        now = self.clock.now()
        result = self.db.execute(
            update(PaymentRecord)
            .where(
                PaymentRecord.id == reserved.id,
                PaymentRecord.payment_status == PaymentStatus.PENDING,
                PaymentRecord.approval_status == ApprovalStatus.PENDING,
            )
            .values(
                amount=amount,
                payment_method=method,
                rent_proof_ref=rent_proof_ref,
                electricity_proof_ref=electricity_proof_ref,
                payment_status=PaymentStatus.PAID,
                paid_date=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError("Payment for this period changed while submitting, please retry")

    def _discard_proofs(self, references: list[str]) -> None:
        for reference in references:
            outcome = self.storage.delete(reference)
            logger.info(f"Discarded proof {reference}: {outcome.value}")


__all__ = [
    "AttemptState",
    "PeriodState",
    "SubmissionResult",
    "PeriodStatusView",
    "PaymentService",
    "classify_attempt",
    "parse_amount",
    "parse_payment_method",
]

"""Staff/admin decisions on submitted payment attempts.

PENDING -> APPROVED or PENDING -> REJECTED, exactly once per attempt. Only an
attempt that has been paid (proof uploaded or cash recorded) can be decided.
Each transition is a conditional update on the expected prior state, so two
concurrent decisions on the same attempt cannot both apply.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pgmanager.models import ApprovalStatus, Member, PaymentRecord, PaymentStatus
from pgmanager.services.clock import Clock, SystemClock
from pgmanager.services.dues_service import DuesService
from pgmanager.services.errors import ConflictError, EngineError, ValidationError
from pgmanager.services.notification_service import (
    NotificationService,
    get_notification_service,
)
from pgmanager.services.pagination import Page, paginate
from pgmanager.services.payment_service import PaymentService
from pgmanager.services.store import atomic

logger = logging.getLogger(__name__)


class ApprovalService:
    """Approve or reject payment attempts."""

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        notifier: NotificationService | None = None,
        payment_service: PaymentService | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.notifier = notifier or get_notification_service()
        self.payments = payment_service or PaymentService(db, self.clock)

    def list_pending_approvals(
        self, page: int = 1, limit: int = 10, pg_id: int | None = None
    ) -> Page:
        """Paid attempts waiting for a decision, oldest payment first."""
        stmt = select(PaymentRecord).where(
            PaymentRecord.payment_status == PaymentStatus.PAID,
            PaymentRecord.approval_status == ApprovalStatus.PENDING,
        )
        if pg_id is not None:
            stmt = stmt.where(PaymentRecord.pg_id == pg_id)
        stmt = stmt.order_by(PaymentRecord.paid_date.asc(), PaymentRecord.id.asc())
        return paginate(self.db, stmt, page, limit)

    def approve_payment(self, payment_id: int, approver_id: int) -> PaymentRecord:
        """Approve a paid attempt.

        Records the approver and time, leaves the amount untouched and, for
        long-term members, reserves the next billing period. Afterwards the
        member's open leaving request (if any) gets its dues recomputed.

        Raises:
            NotFoundError: Payment does not exist
            ConflictError: Attempt already decided or not paid yet
        """
        payment = self.payments.get_payment(payment_id)
        self._ensure_decidable(payment)

        with atomic(self.db, f"Payment {payment_id} was decided concurrently"):
            self._transition(
                payment,
                approval_status=ApprovalStatus.APPROVED,
                approved_by=approver_id,
                approved_at=self.clock.now(),
                rejection_reason=None,
            )
            member = self.db.get(Member, payment.member_id)
            self.payments.reserve_next_period(member, payment)

        self.db.refresh(payment)
        logger.info(
            f"Payment {payment.id} (member {payment.member_id}, {payment.year}-{payment.month:02d}, "
            f"attempt {payment.attempt_number}) approved by {approver_id}"
        )

        self._refresh_leaving_dues(payment.member_id)
        self.notifier.notify_payment_decision(member, payment)
        return payment

    def reject_payment(self, payment_id: int, approver_id: int, reason: str) -> PaymentRecord:
        """Reject a paid attempt; the member may then submit a new attempt.

        Raises:
            ValidationError: Reason is empty
            NotFoundError: Payment does not exist
            ConflictError: Attempt already decided or not paid yet
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required")

        payment = self.payments.get_payment(payment_id)
        self._ensure_decidable(payment)

        with atomic(self.db, f"Payment {payment_id} was decided concurrently"):
            self._transition(
                payment,
                approval_status=ApprovalStatus.REJECTED,
                approved_by=approver_id,
                approved_at=None,
                rejection_reason=reason,
            )

        self.db.refresh(payment)
        logger.info(f"Payment {payment.id} rejected by {approver_id}: {reason}")

        member = self.db.get(Member, payment.member_id)
        self.notifier.notify_payment_decision(member, payment)
        return payment

    def _ensure_decidable(self, payment: PaymentRecord) -> None:
        if payment.approval_status != ApprovalStatus.PENDING:
            raise ConflictError(
                f"Payment has already been {payment.approval_status.value.lower()}"
            )
        if payment.payment_status != PaymentStatus.PAID:
            raise ConflictError("Payment has not been submitted yet")

    def _transition(self, payment: PaymentRecord, **values) -> None:
        """Apply a decision only if the attempt is still paid and undecided."""
        result = self.db.execute(
            update(PaymentRecord)
            .where(
                PaymentRecord.id == payment.id,
                PaymentRecord.approval_status == ApprovalStatus.PENDING,
                PaymentRecord.payment_status == PaymentStatus.PAID,
            )
            .values(updated_at=self.clock.now(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(f"Payment {payment.id} has already been decided")

    def _refresh_leaving_dues(self, member_id: int) -> None:
        try:
            DuesService(self.db, self.clock).recompute_for_member(member_id)
        except (EngineError, SQLAlchemyError) as e:
            # The nightly refresh picks this up again
            logger.warning(f"Could not refresh leaving dues for member {member_id}: {e}")


__all__ = ["ApprovalService"]

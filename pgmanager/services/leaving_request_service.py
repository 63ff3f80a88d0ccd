"""Leaving requests: a member's notice to vacate and its settlement.

    PENDING -> APPROVED -> COMPLETED (settled)
    PENDING -> REJECTED

A member may hold at most one open (PENDING or APPROVED) request. Dues are
computed when the request is filed and refreshed whenever a payment of the
member is approved or the batch refresh runs.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pgmanager.models import (
    OPEN_LEAVING_STATUSES,
    LeavingRequest,
    LeavingRequestStatus,
    Member,
)
from pgmanager.services.clock import Clock, SystemClock
from pgmanager.services.dues_service import DuesBreakdown, DuesService
from pgmanager.services.errors import ConflictError, NotFoundError, ValidationError
from pgmanager.services.file_storage import LocalFileStorage, get_file_storage
from pgmanager.services.notification_service import (
    NotificationService,
    get_notification_service,
)
from pgmanager.services.pagination import Page, paginate
from pgmanager.services.payment_service import CENT, parse_payment_method
from pgmanager.services.store import atomic

logger = logging.getLogger(__name__)


class LeavingRequestService:
    """Service for filing, deciding and settling leaving requests."""

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        notifier: NotificationService | None = None,
        storage: LocalFileStorage | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.notifier = notifier or get_notification_service()
        self.storage = storage or get_file_storage()
        self.dues = DuesService(db, self.clock)

    def apply(
        self,
        member_id: int,
        requested_leave_date: date,
        reason: str,
        feedback: str | None = None,
    ) -> LeavingRequest:
        """File a leaving request and compute its dues as of the leave date.

        Raises:
            ValidationError: Missing reason, inactive member or leave date before joining
            NotFoundError: Member does not exist
            ConflictError: The member already has an open request
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Reason for leaving is required")
        if requested_leave_date is None:
            raise ValidationError("Requested leave date is required")

        member = self.db.get(Member, member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found")
        if not member.is_active:
            raise ValidationError("Member account is inactive")
        if requested_leave_date < member.date_of_joining:
            raise ValidationError("Leave date cannot be before the date of joining")

        with atomic(self.db, "Member already has an open leaving request"):
            if self._open_request_exists(member_id):
                raise ConflictError("Member already has an open leaving request")
            leaving_request = LeavingRequest(
                member_id=member.id,
                pg_id=member.pg_id,
                room_id=member.room_id,
                requested_leave_date=requested_leave_date,
                reason=reason,
                feedback=feedback,
                status=LeavingRequestStatus.PENDING,
            )
            self.db.add(leaving_request)
            self.db.flush()
            self.dues.apply_snapshot(leaving_request)

        self.db.refresh(leaving_request)
        logger.info(
            f"Leaving request {leaving_request.id} filed by member {member_id} for "
            f"{requested_leave_date}, pending dues {leaving_request.pending_dues}"
        )
        return leaving_request

    def get(self, request_id: int) -> LeavingRequest:
        leaving_request = self.db.get(LeavingRequest, request_id)
        if leaving_request is None:
            raise NotFoundError(f"Leaving request {request_id} not found")
        return leaving_request

    def list_for_member(
        self,
        member_id: int,
        page: int = 1,
        limit: int = 10,
        status: LeavingRequestStatus | None = None,
    ) -> Page:
        """A member's leaving requests, newest first."""
        stmt = select(LeavingRequest).where(LeavingRequest.member_id == member_id)
        if status is not None:
            stmt = stmt.where(LeavingRequest.status == status)
        stmt = stmt.order_by(LeavingRequest.created_at.desc(), LeavingRequest.id.desc())
        return paginate(self.db, stmt, page, limit)

    def breakdown(self, request_id: int) -> DuesBreakdown:
        """Month-by-month dues for a request, computed from current payments."""
        leaving_request = self.get(request_id)
        return self.dues.compute_breakdown(
            leaving_request.member_id, leaving_request.requested_leave_date
        )

    def approve(
        self, request_id: int, staff_id: int, final_amount=None
    ) -> LeavingRequest:
        """Approve a pending request, refreshing its dues first.

        ``final_amount`` defaults to the freshly computed pending dues.
        """
        leaving_request = self.get(request_id)
        self._require_status(leaving_request, LeavingRequestStatus.PENDING)

        with atomic(self.db, f"Leaving request {request_id} was decided concurrently"):
            breakdown = self.dues.apply_snapshot(leaving_request)
            amount = breakdown.pending_dues if final_amount is None else self._amount(final_amount)
            self._transition(
                leaving_request,
                LeavingRequestStatus.PENDING,
                status=LeavingRequestStatus.APPROVED,
                approved_by=staff_id,
                approved_at=self.clock.now(),
                final_amount=amount,
            )

        self.db.refresh(leaving_request)
        logger.info(
            f"Leaving request {request_id} approved by {staff_id}, "
            f"final amount {leaving_request.final_amount}"
        )
        self.notifier.notify_leaving_request_decision(leaving_request.member, leaving_request)
        return leaving_request

    def reject(self, request_id: int, staff_id: int, reason: str) -> LeavingRequest:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required")

        leaving_request = self.get(request_id)
        self._require_status(leaving_request, LeavingRequestStatus.PENDING)

        with atomic(self.db):
            self._transition(
                leaving_request,
                LeavingRequestStatus.PENDING,
                status=LeavingRequestStatus.REJECTED,
                approved_by=staff_id,
                approved_at=None,
                rejection_reason=reason,
            )

        self.db.refresh(leaving_request)
        logger.info(f"Leaving request {request_id} rejected by {staff_id}: {reason}")
        self.notifier.notify_leaving_request_decision(leaving_request.member, leaving_request)
        return leaving_request

    def settle(
        self,
        request_id: int,
        staff_id: int,
        final_amount,
        settlement_method,
        settlement_proof_ref: str | None = None,
    ) -> LeavingRequest:
        """Record the final settlement of an approved request and mark it COMPLETED.

        A stored settlement proof is deleted again if the settlement fails.
        """
        try:
            amount = self._amount(final_amount)
            method = parse_payment_method(settlement_method)
            leaving_request = self.get(request_id)
            self._require_status(leaving_request, LeavingRequestStatus.APPROVED)

            with atomic(self.db):
                self._transition(
                    leaving_request,
                    LeavingRequestStatus.APPROVED,
                    status=LeavingRequestStatus.COMPLETED,
                    final_amount=amount,
                    settlement_method=method,
                    settlement_proof_ref=settlement_proof_ref,
                    settled_date=self.clock.today(),
                )
        except Exception:
            if settlement_proof_ref:
                outcome = self.storage.delete(settlement_proof_ref)
                logger.info(f"Discarded settlement proof {settlement_proof_ref}: {outcome.value}")
            raise

        self.db.refresh(leaving_request)
        logger.info(
            f"Leaving request {request_id} settled by {staff_id}: {amount} via {method.value}"
        )
        self.notifier.notify_leaving_request_decision(leaving_request.member, leaving_request)
        return leaving_request

    def _open_request_exists(self, member_id: int) -> bool:
        return (
            self.db.execute(
                select(LeavingRequest.id)
                .where(
                    LeavingRequest.member_id == member_id,
                    LeavingRequest.status.in_(OPEN_LEAVING_STATUSES),
                )
                .limit(1)
            ).scalar_one_or_none()
            is not None
        )

    @staticmethod
    def _amount(value) -> Decimal:
        """Non-negative settlement amount; zero means nothing is owed."""
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError("Invalid amount. Amount must be a number") from None
        if not amount.is_finite() or amount < 0:
            raise ValidationError("Invalid amount. Amount cannot be negative")
        return amount.quantize(CENT)

    @staticmethod
    def _require_status(leaving_request: LeavingRequest, expected: LeavingRequestStatus) -> None:
        if leaving_request.status != expected:
            raise ConflictError(
                f"Leaving request is {leaving_request.status.value.lower()}, "
                f"expected {expected.value.lower()}"
            )

    def _transition(
        self, leaving_request: LeavingRequest, expected: LeavingRequestStatus, **values
    ) -> None:
        """Apply a status change only if the request is still in the expected status."""
        result = self.db.execute(
            update(LeavingRequest)
            .where(LeavingRequest.id == leaving_request.id, LeavingRequest.status == expected)
            .values(updated_at=self.clock.now(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(f"Leaving request {leaving_request.id} changed concurrently")


__all__ = ["LeavingRequestService"]

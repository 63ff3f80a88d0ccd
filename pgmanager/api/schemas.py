"""Pydantic schemas for the payment and leaving-request API."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from pgmanager.models import (
    ApprovalStatus,
    LeavingRequestStatus,
    PaymentMethod,
    PaymentStatus,
)
from pgmanager.services.payment_service import PeriodState


class PaymentResponse(BaseModel):
    """One payment attempt."""

    id: int
    member_id: int
    month: int
    year: int
    attempt_number: int
    amount: Decimal
    payment_method: PaymentMethod | None
    due_date: date
    overdue_date: date
    paid_date: datetime | None
    payment_status: PaymentStatus
    approval_status: ApprovalStatus
    is_overdue: bool
    rent_proof_ref: str | None = None
    electricity_proof_ref: str | None = None
    rejection_reason: str | None = None
    approved_by: int | None = None
    approved_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubmissionResponse(BaseModel):
    """Response for a payment submission."""

    payment_id: int
    attempt_number: int
    status: str
    payment: PaymentResponse


class PaymentPageResponse(BaseModel):
    items: list[PaymentResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class PeriodStatusResponse(BaseModel):
    """Status of one billing period; ``payment`` is null for NO_RECORD."""

    month: int
    year: int
    state: PeriodState
    payment: PaymentResponse | None = None


class RejectPayload(BaseModel):
    """Payload for rejecting a payment or leaving request."""

    reason: str = Field(..., min_length=1, description="Why the submission was rejected")


class LeavingRequestCreatePayload(BaseModel):
    """Payload for POST /api/leaving-requests."""

    requested_leave_date: date
    reason: str = Field(..., description="Reason for leaving")
    feedback: str | None = None


class LeavingRequestApprovePayload(BaseModel):
    final_amount: Decimal | None = Field(
        None, description="Settlement amount; defaults to the computed pending dues"
    )


class LeavingRequestResponse(BaseModel):
    """A leaving request with its dues snapshot."""

    id: int
    member_id: int
    requested_leave_date: date
    reason: str
    feedback: str | None = None
    status: LeavingRequestStatus
    pending_dues: Decimal | None = None
    dues_credit: Decimal | None = None
    dues_computed_at: datetime | None = None
    rejection_reason: str | None = None
    approved_by: int | None = None
    approved_at: datetime | None = None
    final_amount: Decimal | None = None
    settled_date: date | None = None
    settlement_method: PaymentMethod | None = None
    settlement_proof_ref: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class LeavingRequestPageResponse(BaseModel):
    items: list[LeavingRequestResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class DuesLineResponse(BaseModel):
    year: int
    month: int
    days_occupied: int
    days_in_cycle: int
    rent: Decimal
    electricity: Decimal
    total: Decimal

    model_config = {"from_attributes": True}


class DuesBreakdownResponse(BaseModel):
    """Month-by-month dues for a leaving request."""

    member_id: int
    leave_date: date
    lines: list[DuesLineResponse]
    gross_total: Decimal
    approved_total: Decimal
    pending_dues: Decimal
    credit: Decimal

    model_config = {"from_attributes": True}


class FailureResponse(BaseModel):
    item_id: int
    error: str

    model_config = {"from_attributes": True}


class ReconcileResponse(BaseModel):
    updated_count: int
    scanned_count: int
    failures: list[FailureResponse]

    model_config = {"from_attributes": True}


class DuesChangeResponse(BaseModel):
    leaving_request_id: int
    member_id: int
    previous_dues: Decimal | None
    updated_dues: Decimal
    change_amount: Decimal

    model_config = {"from_attributes": True}


class DuesRefreshResponse(BaseModel):
    updated_requests: int
    total_open_requests: int
    details: list[DuesChangeResponse]
    failures: list[FailureResponse]

    model_config = {"from_attributes": True}


class CleanupResponse(BaseModel):
    deleted_members: int
    deleted_files: int
    already_absent_files: int
    member_ids: list[int]
    failures: list[FailureResponse]

    model_config = {"from_attributes": True}

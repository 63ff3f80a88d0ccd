"""Payment submission, history and approval endpoints."""

import logging

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from pgmanager.api.deps import (
    get_approval_service,
    get_member_id,
    get_payment_service,
    get_staff_id,
    get_storage,
)
from pgmanager.api.schemas import (
    PaymentPageResponse,
    PaymentResponse,
    PeriodStatusResponse,
    RejectPayload,
    SubmissionResponse,
)
from pgmanager.config import settings
from pgmanager.services.approval_service import ApprovalService
from pgmanager.services.errors import ValidationError
from pgmanager.services.file_storage import FileCategory, LocalFileStorage
from pgmanager.services.pagination import Page
from pgmanager.services.payment_service import PaymentService, SubmissionResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["payments"])


async def store_uploads(
    storage: LocalFileStorage, category: FileCategory, uploads: list[UploadFile | None]
) -> list[str | None]:
    """Store image uploads, returning one reference (or None) per slot.

    If any upload is rejected, files stored earlier in the same request are
    deleted before the error propagates.
    """
    references: list[str | None] = []
    try:
        for upload in uploads:
            if upload is None or not upload.filename:
                references.append(None)
                continue
            if not (upload.content_type or "").startswith("image/"):
                raise ValidationError(f"Only image files are allowed: {upload.filename}")
            content = await upload.read()
            if len(content) > settings.max_upload_bytes:
                raise ValidationError(f"File too large: {upload.filename}")
            references.append(storage.store(category, upload.filename, content))
    except Exception:
        storage.delete_many([ref for ref in references if ref])
        raise
    return references


def _submission_response(result: SubmissionResult) -> SubmissionResponse:
    return SubmissionResponse(
        payment_id=result.payment.id,
        attempt_number=result.attempt_number,
        status=result.status,
        payment=PaymentResponse.model_validate(result.payment),
    )


def _payment_page(page: Page) -> PaymentPageResponse:
    return PaymentPageResponse(
        items=[PaymentResponse.model_validate(item) for item in page.items],
        page=page.page,
        limit=page.limit,
        total=page.total,
        total_pages=page.total_pages,
    )


@router.post("/payments", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def submit_payment(
    amount: str = Form(...),
    month: int = Form(...),
    year: int = Form(...),
    payment_method: str = Form(...),
    rent_proof: UploadFile | None = File(None),  # noqa: B008
    electricity_proof: UploadFile | None = File(None),  # noqa: B008
    member_id: int = Depends(get_member_id),  # noqa: B008
    service: PaymentService = Depends(get_payment_service),  # noqa: B008
    storage: LocalFileStorage = Depends(get_storage),  # noqa: B008
) -> SubmissionResponse:
    """
    Submit or update the authenticated member's payment for a period.

    Returns:
        201: Attempt number and status of the created or updated attempt
        409: Period already approved, or an attempt is awaiting approval
        422: Invalid amount, period, method or upload
    """
    rent_ref, electricity_ref = await store_uploads(
        storage, FileCategory.PAYMENT, [rent_proof, electricity_proof]
    )
    result = service.submit_payment(
        member_id, month, year, amount, payment_method, rent_ref, electricity_ref
    )
    return _submission_response(result)


@router.post(
    "/public/payments", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED
)
async def submit_self_service_payment(
    member_code: str = Form(...),
    name: str = Form(...),
    room_no: str | None = Form(None),
    amount: str = Form(...),
    payment_method: str = Form(...),
    rent_proof: UploadFile | None = File(None),  # noqa: B008
    electricity_proof: UploadFile | None = File(None),  # noqa: B008
    service: PaymentService = Depends(get_payment_service),  # noqa: B008
    storage: LocalFileStorage = Depends(get_storage),  # noqa: B008
) -> SubmissionResponse:
    """Public form: pay the current month after matching member code, name and room."""
    rent_ref, electricity_ref = await store_uploads(
        storage, FileCategory.PAYMENT, [rent_proof, electricity_proof]
    )
    result = service.submit_self_service_payment(
        member_code, name, room_no, amount, payment_method, rent_ref, electricity_ref
    )
    return _submission_response(result)


@router.post(
    "/admin/members/{member_id}/payments",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    member_id: int,
    amount: str = Form(...),
    month: int = Form(...),
    year: int = Form(...),
    payment_method: str = Form(...),
    rent_proof: UploadFile | None = File(None),  # noqa: B008
    electricity_proof: UploadFile | None = File(None),  # noqa: B008
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    service: PaymentService = Depends(get_payment_service),  # noqa: B008
    storage: LocalFileStorage = Depends(get_storage),  # noqa: B008
) -> SubmissionResponse:
    """Staff-recorded payment on behalf of a member (cash desk)."""
    rent_ref, electricity_ref = await store_uploads(
        storage, FileCategory.PAYMENT, [rent_proof, electricity_proof]
    )
    result = service.submit_payment(
        member_id, month, year, amount, payment_method, rent_ref, electricity_ref
    )
    logger.info(f"Staff {staff_id} recorded payment {result.payment.id} for member {member_id}")
    return _submission_response(result)


@router.get("/payments", response_model=PaymentPageResponse)
async def list_payment_history(
    page: int = Query(1),
    limit: int = Query(10),
    member_id: int = Depends(get_member_id),  # noqa: B008
    service: PaymentService = Depends(get_payment_service),  # noqa: B008
) -> PaymentPageResponse:
    """The authenticated member's payment attempts, newest period first."""
    return _payment_page(service.list_payment_history(member_id, page, limit))


@router.get("/payments/{year}/{month}/status", response_model=PeriodStatusResponse)
async def get_period_status(
    year: int,
    month: int,
    member_id: int = Depends(get_member_id),  # noqa: B008
    service: PaymentService = Depends(get_payment_service),  # noqa: B008
) -> PeriodStatusResponse:
    view = service.get_period_status(member_id, month, year)
    return PeriodStatusResponse(
        month=view.month,
        year=view.year,
        state=view.state,
        payment=PaymentResponse.model_validate(view.payment) if view.payment else None,
    )


@router.get("/admin/payments/pending", response_model=PaymentPageResponse)
async def list_pending_payments(
    page: int = Query(1),
    limit: int = Query(10),
    pg_id: int | None = Query(None),
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    service: ApprovalService = Depends(get_approval_service),  # noqa: B008
) -> PaymentPageResponse:
    """Paid attempts waiting for a staff decision."""
    return _payment_page(service.list_pending_approvals(page, limit, pg_id))


@router.post("/admin/payments/{payment_id}/approve", response_model=PaymentResponse)
async def approve_payment(
    payment_id: int,
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    service: ApprovalService = Depends(get_approval_service),  # noqa: B008
) -> PaymentResponse:
    """
    Approve a paid attempt.

    Returns:
        200: The approved attempt
        404: Payment not found
        409: Attempt already decided or not paid yet
    """
    return PaymentResponse.model_validate(service.approve_payment(payment_id, staff_id))


@router.post("/admin/payments/{payment_id}/reject", response_model=PaymentResponse)
async def reject_payment(
    payment_id: int,
    payload: RejectPayload,
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    service: ApprovalService = Depends(get_approval_service),  # noqa: B008
) -> PaymentResponse:
    return PaymentResponse.model_validate(
        service.reject_payment(payment_id, staff_id, payload.reason)
    )

"""Leaving-request endpoints for members and staff."""

import logging

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from pgmanager.api.deps import (
    get_leaving_request_service,
    get_member_id,
    get_staff_id,
    get_storage,
)
from pgmanager.api.payments import store_uploads
from pgmanager.api.schemas import (
    DuesBreakdownResponse,
    LeavingRequestApprovePayload,
    LeavingRequestCreatePayload,
    LeavingRequestPageResponse,
    LeavingRequestResponse,
    RejectPayload,
)
from pgmanager.models import LeavingRequestStatus
from pgmanager.services.errors import NotFoundError
from pgmanager.services.file_storage import FileCategory, LocalFileStorage
from pgmanager.services.leaving_request_service import LeavingRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["leaving-requests"])


@router.post(
    "/leaving-requests",
    response_model=LeavingRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def apply_leaving_request(
    payload: LeavingRequestCreatePayload,
    member_id: int = Depends(get_member_id),  # noqa: B008
    service: LeavingRequestService = Depends(get_leaving_request_service),  # noqa: B008
) -> LeavingRequestResponse:
    """
    File a leaving request for the authenticated member.

    Returns:
        201: The request with dues computed as of the leave date
        409: The member already has an open request
        422: Missing reason, inactive member or leave date before joining
    """
    leaving_request = service.apply(
        member_id, payload.requested_leave_date, payload.reason, payload.feedback
    )
    return LeavingRequestResponse.model_validate(leaving_request)


@router.get("/leaving-requests", response_model=LeavingRequestPageResponse)
async def list_leaving_requests(
    page: int = Query(1),
    limit: int = Query(10),
    status_filter: LeavingRequestStatus | None = Query(None, alias="status"),  # noqa: B008
    member_id: int = Depends(get_member_id),  # noqa: B008
    service: LeavingRequestService = Depends(get_leaving_request_service),  # noqa: B008
) -> LeavingRequestPageResponse:
    result = service.list_for_member(member_id, page, limit, status_filter)
    return LeavingRequestPageResponse(
        items=[LeavingRequestResponse.model_validate(item) for item in result.items],
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get("/leaving-requests/{request_id}/dues", response_model=DuesBreakdownResponse)
async def get_dues_breakdown(
    request_id: int,
    member_id: int = Depends(get_member_id),  # noqa: B008
    service: LeavingRequestService = Depends(get_leaving_request_service),  # noqa: B008
) -> DuesBreakdownResponse:
    """Month-by-month dues for one of the member's own requests."""
    if service.get(request_id).member_id != member_id:
        raise NotFoundError(f"Leaving request {request_id} not found")
    return DuesBreakdownResponse.model_validate(service.breakdown(request_id))


@router.post(
    "/admin/leaving-requests/{request_id}/approve", response_model=LeavingRequestResponse
)
async def approve_leaving_request(
    request_id: int,
    payload: LeavingRequestApprovePayload | None = None,
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    service: LeavingRequestService = Depends(get_leaving_request_service),  # noqa: B008
) -> LeavingRequestResponse:
    final_amount = payload.final_amount if payload else None
    return LeavingRequestResponse.model_validate(
        service.approve(request_id, staff_id, final_amount)
    )


@router.post(
    "/admin/leaving-requests/{request_id}/reject", response_model=LeavingRequestResponse
)
async def reject_leaving_request(
    request_id: int,
    payload: RejectPayload,
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    service: LeavingRequestService = Depends(get_leaving_request_service),  # noqa: B008
) -> LeavingRequestResponse:
    return LeavingRequestResponse.model_validate(
        service.reject(request_id, staff_id, payload.reason)
    )


@router.post(
    "/admin/leaving-requests/{request_id}/settle", response_model=LeavingRequestResponse
)
async def settle_leaving_request(
    request_id: int,
    final_amount: str = Form(...),
    settlement_method: str = Form(...),
    settlement_proof: UploadFile | None = File(None),  # noqa: B008
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    service: LeavingRequestService = Depends(get_leaving_request_service),  # noqa: B008
    storage: LocalFileStorage = Depends(get_storage),  # noqa: B008
) -> LeavingRequestResponse:
    """Record the final settlement of an approved request (marks it COMPLETED)."""
    (proof_ref,) = await store_uploads(storage, FileCategory.SETTLEMENT, [settlement_proof])
    leaving_request = service.settle(
        request_id, staff_id, final_amount, settlement_method, proof_ref
    )
    return LeavingRequestResponse.model_validate(leaving_request)

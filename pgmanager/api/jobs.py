"""Admin-triggered batch jobs (also runnable from the CLI for cron)."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pgmanager.api.deps import get_clock, get_staff_id, get_storage
from pgmanager.api.schemas import CleanupResponse, DuesRefreshResponse, ReconcileResponse
from pgmanager.services import get_db
from pgmanager.services.cleanup_service import MemberCleanupService
from pgmanager.services.clock import Clock
from pgmanager.services.dues_service import DuesService
from pgmanager.services.file_storage import LocalFileStorage
from pgmanager.services.overdue_service import OverdueReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/jobs", tags=["jobs"])


@router.post("/reconcile-overdue", response_model=ReconcileResponse)
async def reconcile_overdue(
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
) -> ReconcileResponse:
    """Flag unpaid records past their overdue date; returns the updated count."""
    logger.info(f"Overdue reconciliation triggered by staff {staff_id}")
    result = OverdueReconciler(db, clock).reconcile()
    return ReconcileResponse.model_validate(result)


@router.post("/refresh-dues", response_model=DuesRefreshResponse)
async def refresh_dues(
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
) -> DuesRefreshResponse:
    logger.info(f"Leaving-request dues refresh triggered by staff {staff_id}")
    result = DuesService(db, clock).refresh_open_requests()
    return DuesRefreshResponse.model_validate(result)


@router.post("/cleanup-members", response_model=CleanupResponse)
async def cleanup_members(
    staff_id: int = Depends(get_staff_id),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
    storage: LocalFileStorage = Depends(get_storage),  # noqa: B008
) -> CleanupResponse:
    """Purge settled members past the retention window, files first."""
    logger.info(f"Member cleanup triggered by staff {staff_id}")
    result = MemberCleanupService(db, clock, storage).run()
    return CleanupResponse.model_validate(result)

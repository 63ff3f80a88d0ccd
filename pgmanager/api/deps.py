"""Request dependencies: identity headers and engine collaborators.

Identity is supplied by the upstream auth layer as trusted headers and is not
re-verified here. Collaborators are resolved through functions so tests can
swap them with ``app.dependency_overrides``.
"""

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from pgmanager.services import get_db
from pgmanager.services.approval_service import ApprovalService
from pgmanager.services.clock import Clock, SystemClock
from pgmanager.services.file_storage import LocalFileStorage, get_file_storage
from pgmanager.services.leaving_request_service import LeavingRequestService
from pgmanager.services.notification_service import (
    NotificationService,
    get_notification_service,
)
from pgmanager.services.payment_service import PaymentService


def get_clock() -> Clock:
    return SystemClock()


def get_storage() -> LocalFileStorage:
    return get_file_storage()


def get_notifier() -> NotificationService:
    return get_notification_service()


def get_member_id(x_member_id: int | None = Header(None, alias="X-Member-Id")) -> int:  # noqa: B008
    """Authenticated member, as forwarded by the auth layer."""
    if x_member_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Member identity required"
        )
    return x_member_id


def get_staff_id(x_staff_id: int | None = Header(None, alias="X-Staff-Id")) -> int:  # noqa: B008
    """Authenticated staff/admin user, as forwarded by the auth layer."""
    if x_staff_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Staff identity required"
        )
    return x_staff_id


def get_payment_service(
    db: Session = Depends(get_db),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
    storage: LocalFileStorage = Depends(get_storage),  # noqa: B008
) -> PaymentService:
    return PaymentService(db, clock, storage)


def get_approval_service(
    db: Session = Depends(get_db),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
    storage: LocalFileStorage = Depends(get_storage),  # noqa: B008
) -> ApprovalService:
    return ApprovalService(db, clock, notifier, PaymentService(db, clock, storage))


def get_leaving_request_service(
    db: Session = Depends(get_db),  # noqa: B008
    clock: Clock = Depends(get_clock),  # noqa: B008
    notifier: NotificationService = Depends(get_notifier),  # noqa: B008
    storage: LocalFileStorage = Depends(get_storage),  # noqa: B008
) -> LeavingRequestService:
    return LeavingRequestService(db, clock, notifier, storage)

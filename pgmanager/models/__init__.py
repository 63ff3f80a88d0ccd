"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from pgmanager.models.pg import PG, PgType  # noqa: E402
from pgmanager.models.room import Room  # noqa: E402
from pgmanager.models.member import Member, RentType  # noqa: E402
from pgmanager.models.payment import (  # noqa: E402
    ApprovalStatus,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
)
from pgmanager.models.leaving_request import (  # noqa: E402
    OPEN_LEAVING_STATUSES,
    LeavingRequest,
    LeavingRequestStatus,
)

__all__ = [
    "Base",
    "BaseModel",
    "PG",
    "PgType",
    "Room",
    "Member",
    "RentType",
    "PaymentRecord",
    "PaymentStatus",
    "ApprovalStatus",
    "PaymentMethod",
    "LeavingRequest",
    "LeavingRequestStatus",
    "OPEN_LEAVING_STATUSES",
]

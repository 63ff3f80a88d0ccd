"""LeavingRequest ORM model: a member's notice to vacate and its computed dues."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pgmanager.models import Base, BaseModel
from pgmanager.models.payment import PaymentMethod


class LeavingRequestStatus(str, Enum):
    """Lifecycle of a leaving request."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    """Settled; the member's data becomes eligible for cleanup after retention"""


OPEN_LEAVING_STATUSES = (LeavingRequestStatus.PENDING, LeavingRequestStatus.APPROVED)


class LeavingRequest(Base, BaseModel):
    """Notice of intent to vacate, carrying the dues snapshot computed for the leave date."""

    __tablename__ = "leaving_requests"

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    pg_id: Mapped[int | None] = mapped_column(ForeignKey("pgs.id"), nullable=True)
    room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id"), nullable=True)

    requested_leave_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[LeavingRequestStatus] = mapped_column(
        SQLEnum(LeavingRequestStatus, native_enum=False),
        nullable=False,
        default=LeavingRequestStatus.PENDING,
        index=True,
    )

    # Decision
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Dues snapshot
    pending_dues: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, comment="Amount owed as of the leave date, floored at 0"
    )
    dues_credit: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, comment="Overpayment reported alongside the dues"
    )
    dues_computed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Settlement
    final_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    settled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    settlement_method: Mapped[PaymentMethod | None] = mapped_column(
        SQLEnum(PaymentMethod, native_enum=False), nullable=True
    )
    settlement_proof_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (Index("idx_leaving_member_status", "member_id", "status"),)

    member: Mapped["Member"] = relationship(  # noqa: F821
        "Member", back_populates="leaving_requests"
    )

    def __repr__(self) -> str:
        return (
            f"<LeavingRequest(id={self.id}, member_id={self.member_id}, "
            f"requested_leave_date={self.requested_leave_date}, status={self.status})>"
        )


__all__ = ["LeavingRequest", "LeavingRequestStatus", "OPEN_LEAVING_STATUSES"]

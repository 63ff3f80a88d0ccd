"""PaymentRecord ORM model: one attempt at paying for a member's billing period."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pgmanager.models import Base, BaseModel


class PaymentStatus(str, Enum):
    """Whether funds for the attempt are considered paid (independent of approval)."""

    PENDING = "PENDING"
    PAID = "PAID"


class ApprovalStatus(str, Enum):
    """Staff/admin decision on an attempt."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentMethod(str, Enum):
    """How the member paid."""

    ONLINE = "ONLINE"
    CASH = "CASH"


class PaymentRecord(Base, BaseModel):
    """
    One versioned payment attempt for (member, month, year).

    Attempts are numbered from 1 without gaps. At most one attempt per period
    may await a decision (approval_status=PENDING); a new attempt is appended
    only after the previous one was rejected. Approved attempts are immutable.

    Due/overdue dates are fixed when the first attempt for a period is created
    and carried over to every later attempt.
    """

    __tablename__ = "payments"

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    pg_id: Mapped[int | None] = mapped_column(ForeignKey("pgs.id"), nullable=True, index=True)

    # Billing period
    month: Mapped[int] = mapped_column(Integer, nullable=False, comment="Billing month 1-12")
    year: Mapped[int] = mapped_column(Integer, nullable=False, comment="Billing year")
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        SQLEnum(PaymentMethod, native_enum=False),
        nullable=True,
        comment="Null for reserved records nobody has paid yet",
    )

    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    overdue_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, native_enum=False),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        SQLEnum(ApprovalStatus, native_enum=False),
        nullable=False,
        default=ApprovalStatus.PENDING,
        index=True,
    )
    is_overdue: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Set by the overdue reconciler once overdue_date passed while unpaid",
    )

    # Proof of payment (file-storage references)
    rent_proof_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    electricity_proof_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Decision
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Staff/admin who decided the attempt"
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "member_id", "month", "year", "attempt_number", name="uq_payment_attempt"
        ),
        # Only one attempt per period may await a decision
        Index(
            "uq_payment_pending_decision",
            "member_id",
            "month",
            "year",
            unique=True,
            sqlite_where=text("approval_status = 'PENDING'"),
            postgresql_where=text("approval_status = 'PENDING'"),
        ),
        Index("idx_payment_period", "member_id", "year", "month"),
        Index("idx_payment_overdue_scan", "payment_status", "is_overdue", "overdue_date"),
    )

    member: Mapped["Member"] = relationship("Member", back_populates="payments")  # noqa: F821

    @property
    def proof_refs(self) -> list[str]:
        """Stored proof references, skipping empty slots."""
        return [ref for ref in (self.rent_proof_ref, self.electricity_proof_ref) if ref]

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord(id={self.id}, member_id={self.member_id}, "
            f"period={self.year}-{self.month:02d}, attempt={self.attempt_number}, "
            f"payment_status={self.payment_status}, approval_status={self.approval_status})>"
        )


__all__ = ["PaymentRecord", "PaymentStatus", "ApprovalStatus", "PaymentMethod"]

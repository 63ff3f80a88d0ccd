"""Member ORM model for PG residents."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pgmanager.models import Base, BaseModel


class RentType(str, Enum):
    """How a member is billed."""

    LONG_TERM = "LONG_TERM"
    """Fixed monthly rent taken from the room"""

    SHORT_TERM = "SHORT_TERM"
    """Per-day price agreed at registration"""


class Member(Base, BaseModel):
    """
    A resident of a PG.

    Owned by the account-management side of the system; the payment engine
    reads it and only flips is_active while purging settled members.
    Payments and leaving requests are owned by the member and cascade on delete.
    """

    __tablename__ = "members"

    member_code: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True, comment="Human-facing member ID"
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    telegram_chat_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, comment="Chat used for payment notifications"
    )

    # Uploaded documents (file-storage references)
    photo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    document_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    digital_signature: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Billing terms
    rent_type: Mapped[RentType] = mapped_column(
        SQLEnum(RentType, native_enum=False), nullable=False, default=RentType.LONG_TERM
    )
    price_per_day: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, comment="Short-term only"
    )
    advance_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )

    pg_id: Mapped[int | None] = mapped_column(ForeignKey("pgs.id"), nullable=True, index=True)
    room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id"), nullable=True, index=True)

    date_of_joining: Mapped[date] = mapped_column(Date, nullable=False)
    date_of_relieving: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    __table_args__ = (Index("idx_member_pg_active", "pg_id", "is_active"),)

    # Relationships
    pg: Mapped["PG | None"] = relationship("PG")  # noqa: F821
    room: Mapped["Room | None"] = relationship("Room")  # noqa: F821
    payments: Mapped[list["PaymentRecord"]] = relationship(  # noqa: F821
        "PaymentRecord",
        back_populates="member",
        cascade="all, delete-orphan",
    )
    leaving_requests: Mapped[list["LeavingRequest"]] = relationship(  # noqa: F821
        "LeavingRequest",
        back_populates="member",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<Member(id={self.id}, member_code={self.member_code}, name={self.name}, "
            f"rent_type={self.rent_type}, is_active={self.is_active})>"
        )


__all__ = ["Member", "RentType"]

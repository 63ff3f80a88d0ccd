"""Room ORM model: rent and utility rates used by billing."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pgmanager.models import Base, BaseModel


class Room(Base, BaseModel):
    """A room inside a PG. Read-only input to the billing engine."""

    __tablename__ = "rooms"

    room_no: Mapped[str] = mapped_column(String(20), nullable=False, comment="Room number")
    rent: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, comment="Monthly rent"
    )
    electricity_charge: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Monthly electricity charge, prorated like rent for partial months",
    )
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, comment="Number of beds")
    pg_id: Mapped[int | None] = mapped_column(
        ForeignKey("pgs.id"), nullable=True, index=True, comment="Owning PG"
    )

    pg: Mapped["PG | None"] = relationship("PG", back_populates="rooms")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, room_no={self.room_no}, rent={self.rent})>"


__all__ = ["Room"]

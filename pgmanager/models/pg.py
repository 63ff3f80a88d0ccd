"""PG (paying-guest property) ORM model."""

from enum import Enum

from sqlalchemy import Enum as SQLEnum
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pgmanager.models import Base, BaseModel


class PgType(str, Enum):
    """Occupancy type of a PG property."""

    WOMENS = "WOMENS"
    MENS = "MENS"


class PG(Base, BaseModel):
    """A paying-guest property. Shared reference data for billing."""

    __tablename__ = "pgs"

    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Property name")
    type: Mapped[PgType] = mapped_column(
        SQLEnum(PgType, native_enum=False),
        nullable=False,
        index=True,
        comment="Occupancy type (womens/mens)",
    )
    location: Mapped[str] = mapped_column(String(255), nullable=False, comment="Property location")

    rooms: Mapped[list["Room"]] = relationship(  # noqa: F821
        "Room",
        back_populates="pg",
    )

    def __repr__(self) -> str:
        return f"<PG(id={self.id}, name={self.name}, type={self.type})>"


__all__ = ["PG", "PgType"]

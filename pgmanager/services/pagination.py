"""Page/limit pagination over SQLAlchemy select statements."""

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from pgmanager.services.errors import ValidationError

T = TypeVar("T")

MAX_PAGE_SIZE = 100


@dataclass
class Page(Generic[T]):
    """One page of results plus totals."""

    items: list[T] = field(default_factory=list)
    page: int = 1
    limit: int = 10
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def paginate(db: Session, stmt: Select, page: int = 1, limit: int = 10) -> Page:
    """Execute stmt for the requested page.

    Raises:
        ValidationError: page < 1 or limit outside 1..MAX_PAGE_SIZE
    """
    if page < 1:
        raise ValidationError("page must be at least 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    items = db.execute(stmt.offset((page - 1) * limit).limit(limit)).scalars().all()
    return Page(items=list(items), page=page, limit=limit, total=total)


__all__ = ["Page", "paginate", "MAX_PAGE_SIZE"]

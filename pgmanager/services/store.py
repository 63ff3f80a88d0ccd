"""Transaction helper shared by the engine services."""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from pgmanager.services.errors import ConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session, conflict_message: str = "Record was modified concurrently") -> Iterator[Session]:
    """Run a read-then-write sequence as one transaction.

    Commits on success and rolls back on any error. Constraint violations
    (a concurrent writer won the race) become ConflictError, store timeouts
    become StoreUnavailableError.

    Example:
        ```python
        with atomic(db, "Payment already submitted for this period"):
            db.add(record)
        ```
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity conflict: {conflict_message} ({e.orig})")
        raise ConflictError(conflict_message) from e
    except OperationalError as e:
        db.rollback()
        logger.error(f"Store call failed: {e.orig}")
        raise StoreUnavailableError("Database unavailable or timed out, retry later") from e
    except Exception:
        db.rollback()
        raise


__all__ = ["atomic"]

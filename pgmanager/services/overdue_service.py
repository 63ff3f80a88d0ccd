"""Batch pass that flags unpaid payment records past their overdue date.

The pass is idempotent: each record is flagged by a conditional update that
only matches while the flag is still clear, so repeated or concurrent runs
never count a record twice. Members without any record are left alone;
absence of a record is reported by the period-status view, not here.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pgmanager.models import ApprovalStatus, Member, PaymentRecord, PaymentStatus
from pgmanager.services.clock import Clock, SystemClock
from pgmanager.services.errors import ItemFailure

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Summary of one reconciliation pass."""

    updated_count: int = 0
    scanned_count: int = 0
    failures: list[ItemFailure] = field(default_factory=list)


def _overdue_conditions(today):
    return (
        PaymentRecord.payment_status != PaymentStatus.PAID,
        PaymentRecord.approval_status != ApprovalStatus.APPROVED,
        PaymentRecord.overdue_date < today,
        PaymentRecord.is_overdue.is_(False),
    )


class OverdueReconciler:
    """Marks overdue payment records of active members."""

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or SystemClock()

    def find_candidates(self) -> list[int]:
        """IDs of records that the next pass would flag."""
        today = self.clock.today()
        return list(
            self.db.execute(
                select(PaymentRecord.id)
                .join(Member, Member.id == PaymentRecord.member_id)
                .where(Member.is_active.is_(True), *_overdue_conditions(today))
                .order_by(PaymentRecord.id)
            )
            .scalars()
            .all()
        )

    def reconcile(self) -> ReconcileResult:
        """Flag every overdue record; one record's failure does not stop the pass."""
        today = self.clock.today()
        candidate_ids = self.find_candidates()
        result = ReconcileResult(scanned_count=len(candidate_ids))

        for payment_id in candidate_ids:
            try:
                outcome = self.db.execute(
                    update(PaymentRecord)
                    .where(PaymentRecord.id == payment_id, *_overdue_conditions(today))
                    .values(is_overdue=True, updated_at=self.clock.now())
                    .execution_options(synchronize_session=False)
                )
                self.db.commit()
                # Zero rows: paid, approved or flagged by a concurrent run meanwhile
                if outcome.rowcount == 1:
                    result.updated_count += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to flag payment {payment_id} as overdue: {e}")
                result.failures.append(ItemFailure(payment_id, str(e)))

        logger.info(
            f"Overdue reconciliation on {today}: {result.updated_count} flagged, "
            f"{result.scanned_count} scanned, {len(result.failures)} failed"
        )
        return result


__all__ = ["OverdueReconciler", "ReconcileResult"]

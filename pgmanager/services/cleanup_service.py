"""Purge members whose leaving request was settled and whose retention has run out.

For each qualifying member the account is deactivated first, then every
uploaded file is deletion-attempted, and only when no deletion reported an
error is the member row removed (payments and leaving requests cascade).
A member whose files could not all be removed stays in the database, inactive,
and is picked up again by the next run.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pgmanager.config import settings
from pgmanager.models import LeavingRequest, LeavingRequestStatus, Member
from pgmanager.services.clock import Clock, SystemClock
from pgmanager.services.errors import ItemFailure
from pgmanager.services.file_storage import (
    DeleteOutcome,
    LocalFileStorage,
    get_file_storage,
)

logger = logging.getLogger(__name__)


@dataclass
class FileDeletion:
    """Outcome of deleting one of a member's files."""

    category: str
    reference: str
    outcome: DeleteOutcome


@dataclass
class CleanupResult:
    """Summary of one cleanup run."""

    deleted_members: int = 0
    deleted_files: int = 0
    already_absent_files: int = 0
    member_ids: list[int] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)


def member_file_references(member: Member) -> list[tuple[str, str]]:
    """(category, reference) for every uploaded file that belongs to the member."""
    references = [
        ("profile", member.photo_url),
        ("identity_document", member.document_url),
        ("signature", member.digital_signature),
    ]
    for payment in member.payments:
        references.append(("payment_proof", payment.rent_proof_ref))
        references.append(("payment_proof", payment.electricity_proof_ref))
    for leaving_request in member.leaving_requests:
        references.append(("settlement_proof", leaving_request.settlement_proof_ref))
    return [(category, ref) for category, ref in references if ref]


class MemberCleanupService:
    """Removes settled members and their uploaded files."""

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        storage: LocalFileStorage | None = None,
        retention_days: int | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.storage = storage or get_file_storage()
        self.retention_days = (
            settings.member_retention_days if retention_days is None else retention_days
        )

    def find_eligible_members(self) -> list[Member]:
        """Members with a completed leaving request whose retention window has elapsed."""
        cutoff = self.clock.today() - timedelta(days=self.retention_days)
        rows = self.db.execute(
            select(Member, LeavingRequest.requested_leave_date)
            .join(LeavingRequest, LeavingRequest.member_id == Member.id)
            .where(LeavingRequest.status == LeavingRequestStatus.COMPLETED)
            .order_by(Member.id, LeavingRequest.requested_leave_date.desc())
        ).all()

        eligible: dict[int, Member] = {}
        for member, leave_date in rows:
            if member.id in eligible:
                continue
            relieving_date: date = member.date_of_relieving or leave_date
            if relieving_date <= cutoff:
                eligible[member.id] = member
        return list(eligible.values())

    def run(self) -> CleanupResult:
        """Clean up every eligible member; a failing member does not stop the run."""
        result = CleanupResult()
        members = self.find_eligible_members()
        logger.info(f"Found {len(members)} member(s) eligible for cleanup")

        for member in members:
            member_id = member.id
            try:
                self._cleanup_member(member, result)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to clean up member {member_id}: {e}", exc_info=True)
                result.failures.append(ItemFailure(member_id, str(e)))

        logger.info(
            f"Cleanup finished: {result.deleted_members} member(s), {result.deleted_files} "
            f"file(s) deleted, {result.already_absent_files} already absent, "
            f"{len(result.failures)} failure(s)"
        )
        return result

    def _cleanup_member(self, member: Member, result: CleanupResult) -> None:
        member_id = member.id
        if member.is_active:
            member.is_active = False
            self.db.commit()
            logger.info(f"Deactivated member {member_id} before cleanup")

        deletions = [
            FileDeletion(category, reference, self.storage.delete(reference))
            for category, reference in member_file_references(member)
        ]
        outcomes = Counter(deletion.outcome for deletion in deletions)
        result.deleted_files += outcomes[DeleteOutcome.DELETED]
        result.already_absent_files += outcomes[DeleteOutcome.ALREADY_ABSENT]

        errors = [d for d in deletions if d.outcome == DeleteOutcome.ERROR]
        if errors:
            # Keep the row so the next run retries the remaining files
            failed = ", ".join(f"{d.category}:{d.reference}" for d in errors)
            logger.error(f"Member {member_id} kept, {len(errors)} file(s) not deleted: {failed}")
            result.failures.append(ItemFailure(member_id, f"File deletion failed: {failed}"))
            return

        self.db.delete(member)
        self.db.commit()
        result.deleted_members += 1
        result.member_ids.append(member_id)
        logger.info(f"Deleted member {member_id} and {len(deletions)} file reference(s)")


__all__ = ["CleanupResult", "FileDeletion", "MemberCleanupService", "member_file_references"]

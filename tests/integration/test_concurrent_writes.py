"""Races between workers writing the same payment period.

Each test loads a record in the service's session, lets a second session
change it and commit, then continues with the now stale object.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from pgmanager.models import ApprovalStatus, PaymentMethod, PaymentRecord, PaymentStatus
from pgmanager.services.approval_service import ApprovalService
from pgmanager.services.errors import ConflictError, StoreUnavailableError
from pgmanager.services.file_storage import FileCategory
from pgmanager.services.payment_service import PaymentService
from pgmanager.services.store import atomic


@pytest.fixture
def payments(db_session, clock, storage):
    return PaymentService(db_session, clock, storage)


@pytest.fixture
def approvals(db_session, clock, notifier, payments):
    return ApprovalService(db_session, clock, notifier, payments)


def _approve_elsewhere(other_session, payment_id):
    other_session.execute(
        update(PaymentRecord)
        .where(PaymentRecord.id == payment_id)
        .values(approval_status=ApprovalStatus.APPROVED, approved_by=99)
    )
    other_session.commit()


def _second_attempt(member, **overrides) -> PaymentRecord:
    values = {
        "member_id": member.id,
        "pg_id": member.pg_id,
        "month": 1,
        "year": 2024,
        "attempt_number": 2,
        "amount": Decimal("6000.00"),
        "payment_method": PaymentMethod.CASH,
        "due_date": date(2024, 1, 10),
        "overdue_date": date(2024, 1, 17),
        "payment_status": PaymentStatus.PAID,
        "approval_status": ApprovalStatus.PENDING,
    }
    values.update(overrides)
    return PaymentRecord(**values)


class TestConcurrentDecisions:
    @pytest.mark.integration
    def test_stale_approval_loses_to_committed_approval(
        self, approvals, db_session, other_session, member, make_payment, notifier
    ):
        payment = make_payment(member, 1, 2024)
        db_session.refresh(payment)
        _approve_elsewhere(other_session, payment.id)

        assert payment.approval_status == ApprovalStatus.PENDING
        with pytest.raises(ConflictError, match="already been decided"):
            approvals.approve_payment(payment.id, approver_id=7)

        assert other_session.get(PaymentRecord, payment.id).approved_by == 99
        # The losing approval must not reserve February either
        assert db_session.query(PaymentRecord).filter_by(member_id=member.id).count() == 1
        notifier.notify_payment_decision.assert_not_called()

    @pytest.mark.integration
    def test_stale_rejection_loses_to_committed_approval(
        self, approvals, db_session, other_session, member, make_payment
    ):
        payment = make_payment(member, 1, 2024)
        db_session.refresh(payment)
        _approve_elsewhere(other_session, payment.id)

        with pytest.raises(ConflictError, match="already been decided"):
            approvals.reject_payment(payment.id, approver_id=7, reason="Blurry receipt")

        other_session.expire_all()
        stored = other_session.get(PaymentRecord, payment.id)
        assert stored.approval_status == ApprovalStatus.APPROVED
        assert stored.rejection_reason is None


class TestConcurrentSubmissions:
    @pytest.mark.integration
    def test_reserved_record_paid_by_another_worker(
        self, payments, db_session, other_session, member, make_payment, storage
    ):
        reserved = make_payment(
            member, 2, 2024, payment_status=PaymentStatus.PENDING, payment_method=None
        )
        db_session.refresh(reserved)
        other_session.execute(
            update(PaymentRecord)
            .where(PaymentRecord.id == reserved.id)
            .values(payment_status=PaymentStatus.PAID, payment_method=PaymentMethod.CASH)
        )
        other_session.commit()
        proof = storage.store(FileCategory.PAYMENT, "rent.png", b"png")

        with pytest.raises(ConflictError, match="changed while submitting"):
            payments.submit_payment(member.id, 2, 2024, "6000", "ONLINE", rent_proof_ref=proof)

        assert not storage.exists(proof)
        other_session.expire_all()
        stored = other_session.get(PaymentRecord, reserved.id)
        assert stored.payment_method == PaymentMethod.CASH
        assert stored.rent_proof_ref is None

    @pytest.mark.integration
    def test_second_pending_attempt_for_period_is_a_conflict(
        self, db_session, member, make_payment
    ):
        make_payment(member, 1, 2024)

        with pytest.raises(ConflictError, match="submitted at the same time"):
            with atomic(db_session, "Another payment was submitted at the same time"):
                db_session.add(_second_attempt(member))

        assert db_session.query(PaymentRecord).filter_by(member_id=member.id).count() == 1

    @pytest.mark.integration
    def test_pending_attempt_allowed_next_to_decided_one(self, db_session, member, make_payment):
        make_payment(member, 1, 2024, approval_status=ApprovalStatus.REJECTED)

        with atomic(db_session):
            db_session.add(_second_attempt(member))

        assert db_session.query(PaymentRecord).filter_by(member_id=member.id).count() == 2

    @pytest.mark.integration
    def test_duplicate_attempt_number_is_a_conflict(self, db_session, member, make_payment):
        make_payment(member, 1, 2024, approval_status=ApprovalStatus.REJECTED)
        make_payment(
            member, 1, 2024, attempt_number=2, approval_status=ApprovalStatus.REJECTED
        )

        with pytest.raises(ConflictError):
            with atomic(db_session):
                db_session.add(_second_attempt(member))


@pytest.mark.integration
def test_store_timeout_is_retryable(db_session):
    with pytest.raises(StoreUnavailableError) as excinfo:
        with atomic(db_session):
            raise OperationalError("UPDATE payments", {}, Exception("database is locked"))

    assert excinfo.value.retryable is True
    assert excinfo.value.http_status == 503

"""Unit tests for the leaving-request workflow."""

from datetime import date
from decimal import Decimal

import pytest

from pgmanager.models import LeavingRequestStatus, PaymentMethod
from pgmanager.services.errors import ConflictError, NotFoundError, ValidationError
from pgmanager.services.file_storage import FileCategory
from pgmanager.services.leaving_request_service import LeavingRequestService


@pytest.fixture
def service(db_session, clock, notifier, storage):
    return LeavingRequestService(db_session, clock, notifier, storage)


@pytest.fixture
def filed(service, member):
    return service.apply(member.id, date(2024, 1, 31), "Moving to another city")


class TestApply:
    @pytest.mark.unit
    def test_apply_computes_dues(self, filed, member):
        assert filed.status == LeavingRequestStatus.PENDING
        assert filed.member_id == member.id
        assert filed.pending_dues == Decimal("4258.06")
        assert filed.dues_credit == Decimal("0.00")
        assert filed.dues_computed_at is not None

    @pytest.mark.unit
    def test_second_open_request_conflicts(self, service, filed, member):
        with pytest.raises(ConflictError, match="open leaving request"):
            service.apply(member.id, date(2024, 2, 15), "Changed my mind")

    @pytest.mark.unit
    def test_can_reapply_after_rejection(self, service, filed, member):
        service.reject(filed.id, staff_id=3, reason="Notice period too short")

        again = service.apply(member.id, date(2024, 2, 29), "Moving out")

        assert again.id != filed.id

    @pytest.mark.unit
    def test_reason_required(self, service, member):
        with pytest.raises(ValidationError, match="Reason"):
            service.apply(member.id, date(2024, 1, 31), "  ")

    @pytest.mark.unit
    def test_leave_date_before_joining(self, service, member):
        with pytest.raises(ValidationError, match="before the date of joining"):
            service.apply(member.id, date(2024, 1, 1), "Oops")

    @pytest.mark.unit
    def test_inactive_member(self, service, make_member):
        former = make_member(is_active=False)

        with pytest.raises(ValidationError, match="inactive"):
            service.apply(former.id, date(2024, 1, 31), "Leaving")

    @pytest.mark.unit
    def test_unknown_member(self, service):
        with pytest.raises(NotFoundError):
            service.apply(999, date(2024, 1, 31), "Leaving")


class TestDecisions:
    @pytest.mark.unit
    def test_approve_defaults_final_amount_to_dues(self, service, filed, notifier):
        approved = service.approve(filed.id, staff_id=3)

        assert approved.status == LeavingRequestStatus.APPROVED
        assert approved.approved_by == 3
        assert approved.final_amount == Decimal("4258.06")
        notifier.notify_leaving_request_decision.assert_called_once()

    @pytest.mark.unit
    def test_approve_with_explicit_amount(self, service, filed):
        approved = service.approve(filed.id, staff_id=3, final_amount="4000")

        assert approved.final_amount == Decimal("4000.00")

    @pytest.mark.unit
    def test_approve_twice_conflicts(self, service, filed):
        service.approve(filed.id, staff_id=3)

        with pytest.raises(ConflictError):
            service.approve(filed.id, staff_id=3)

    @pytest.mark.unit
    def test_reject_requires_reason(self, service, filed):
        with pytest.raises(ValidationError):
            service.reject(filed.id, staff_id=3, reason="")

    @pytest.mark.unit
    def test_reject(self, service, filed):
        rejected = service.reject(filed.id, staff_id=3, reason="Dues disputed")

        assert rejected.status == LeavingRequestStatus.REJECTED
        assert rejected.rejection_reason == "Dues disputed"


class TestSettle:
    @pytest.mark.unit
    def test_settle_completes_request(self, service, filed, storage):
        service.approve(filed.id, staff_id=3)
        proof = storage.store(FileCategory.SETTLEMENT, "refund.png", b"png")

        settled = service.settle(filed.id, 3, "0", "cash", proof)

        assert settled.status == LeavingRequestStatus.COMPLETED
        assert settled.final_amount == Decimal("0.00")
        assert settled.settlement_method == PaymentMethod.CASH
        assert settled.settled_date == date(2024, 1, 20)
        assert settled.settlement_proof_ref == proof

    @pytest.mark.unit
    def test_settling_pending_request_conflicts_and_discards_proof(
        self, service, filed, storage
    ):
        proof = storage.store(FileCategory.SETTLEMENT, "refund.png", b"png")

        with pytest.raises(ConflictError):
            service.settle(filed.id, 3, "100", "ONLINE", proof)

        assert not storage.exists(proof)

    @pytest.mark.unit
    def test_negative_amount_rejected(self, service, filed):
        service.approve(filed.id, staff_id=3)

        with pytest.raises(ValidationError):
            service.settle(filed.id, 3, "-5", "CASH")


class TestQueries:
    @pytest.mark.unit
    def test_list_for_member_with_status_filter(self, service, filed, member):
        service.reject(filed.id, staff_id=3, reason="No")
        service.apply(member.id, date(2024, 2, 29), "Second try")

        everything = service.list_for_member(member.id)
        pending = service.list_for_member(member.id, status=LeavingRequestStatus.PENDING)

        assert everything.total == 2
        assert [item.reason for item in pending.items] == ["Second try"]

    @pytest.mark.unit
    def test_breakdown_lists_months(self, service, member):
        leaving_request = service.apply(member.id, date(2024, 2, 29), "Leaving")

        breakdown = service.breakdown(leaving_request.id)

        assert [(line.year, line.month) for line in breakdown.lines] == [(2024, 1), (2024, 2)]
        assert breakdown.gross_total == Decimal("6000.00") + Decimal("4137.93")

"""Unit tests for leaving-request dues computation."""

from datetime import date
from decimal import Decimal

import pytest

from pgmanager.models import ApprovalStatus, LeavingRequest, LeavingRequestStatus, RentType, Room
from pgmanager.services.dues_service import DuesService, calculate_dues, prorate
from pgmanager.services.errors import NotFoundError, ValidationError


@pytest.fixture
def service(db_session, clock):
    return DuesService(db_session, clock)


@pytest.fixture
def room_9000(db_session, pg):
    room = Room(room_no="202", rent=Decimal("9000.00"), capacity=3, pg_id=pg.id)
    db_session.add(room)
    db_session.commit()
    return room


def _open_request(db_session, member, leave_date, **overrides):
    values = {
        "member_id": member.id,
        "requested_leave_date": leave_date,
        "reason": "Relocating",
        "status": LeavingRequestStatus.PENDING,
    }
    values.update(overrides)
    leaving_request = LeavingRequest(**values)
    db_session.add(leaving_request)
    db_session.commit()
    return leaving_request


@pytest.mark.unit
@pytest.mark.parametrize(
    "monthly, days, length, expected",
    [
        ("9000", 11, 30, "3300.00"),
        ("6000", 22, 31, "4258.06"),
        ("6000", 31, 31, "6000.00"),
        ("1000", 1, 3, "333.33"),
        ("1000", 2, 3, "666.67"),
    ],
)
def test_prorate(monthly, days, length, expected):
    assert prorate(Decimal(monthly), days, length) == Decimal(expected)


class TestCalculateDues:
    @pytest.mark.unit
    def test_partial_single_month(self, make_member, room_9000):
        member = make_member(room_id=room_9000.id, date_of_joining=date(2024, 4, 5))

        breakdown = calculate_dues(member, room_9000, date(2024, 4, 15), [])

        assert len(breakdown.lines) == 1
        assert breakdown.lines[0].days_occupied == 11
        assert breakdown.lines[0].days_in_cycle == 30
        assert breakdown.pending_dues == Decimal("3300.00")

    @pytest.mark.unit
    def test_full_months_between_join_and_leave(self, make_member, room_9000):
        member = make_member(room_id=room_9000.id, date_of_joining=date(2024, 1, 1))

        breakdown = calculate_dues(member, room_9000, date(2024, 4, 15), [])

        assert [line.rent for line in breakdown.lines] == [
            Decimal("9000.00"),
            Decimal("9000.00"),
            Decimal("9000.00"),
            Decimal("4500.00"),
        ]
        assert breakdown.gross_total == Decimal("31500.00")

    @pytest.mark.unit
    def test_full_cycles_then_prorated_last_cycle(self, make_member, room_9000):
        member = make_member(room_id=room_9000.id, date_of_joining=date(2024, 1, 5))

        breakdown = calculate_dues(member, room_9000, date(2024, 4, 15), [])

        assert [line.rent for line in breakdown.lines] == [
            Decimal("9000.00"),
            Decimal("9000.00"),
            Decimal("9000.00"),
            Decimal("3300.00"),
        ]
        assert breakdown.lines[-1].days_occupied == 11
        assert breakdown.gross_total == Decimal("30300.00")

    @pytest.mark.unit
    def test_join_on_31st_follows_clamped_due_dates(self, make_member, room):
        member = make_member(date_of_joining=date(2024, 1, 31))

        breakdown = calculate_dues(member, room, date(2024, 3, 15), [])

        cycles = [(line.month, line.days_occupied, line.days_in_cycle) for line in breakdown.lines]
        assert cycles == [(1, 29, 29), (2, 16, 31)]
        assert breakdown.gross_total == Decimal("6000.00") + Decimal("3096.77")

    @pytest.mark.unit
    def test_leaving_on_cycle_end_pays_full_cycle(self, make_member, room_9000):
        member = make_member(room_id=room_9000.id, date_of_joining=date(2024, 1, 5))

        breakdown = calculate_dues(member, room_9000, date(2024, 2, 4), [])

        assert breakdown.gross_total == Decimal("9000.00")

    @pytest.mark.unit
    def test_electricity_prorated_like_rent(self, make_member, pg, db_session):
        room = Room(
            room_no="303",
            rent=Decimal("6000.00"),
            electricity_charge=Decimal("600.00"),
            capacity=1,
            pg_id=pg.id,
        )
        db_session.add(room)
        db_session.commit()
        member = make_member(room_id=room.id, date_of_joining=date(2024, 6, 1))

        breakdown = calculate_dues(member, room, date(2024, 7, 15), [])

        assert [line.electricity for line in breakdown.lines] == [
            Decimal("600.00"),
            Decimal("290.32"),
        ]
        assert breakdown.gross_total == Decimal("6000.00") + Decimal("2903.23") + Decimal(
            "600.00"
        ) + Decimal("290.32")

    @pytest.mark.unit
    def test_short_term_charges_per_day(self, make_member, room):
        member = make_member(
            rent_type=RentType.SHORT_TERM,
            price_per_day=Decimal("450.00"),
            date_of_joining=date(2024, 1, 28),
        )

        breakdown = calculate_dues(member, room, date(2024, 2, 3), [])

        assert [line.days_occupied for line in breakdown.lines] == [7]
        assert breakdown.pending_dues == Decimal("3150.00")

    @pytest.mark.unit
    def test_approved_payments_in_span_are_credited(
        self, make_member, room_9000, make_payment
    ):
        member = make_member(room_id=room_9000.id, date_of_joining=date(2024, 1, 1))
        approved = [
            make_payment(member, 1, 2024, amount=Decimal("9000"), approval_status=ApprovalStatus.APPROVED),
            make_payment(member, 12, 2023, amount=Decimal("9000"), approval_status=ApprovalStatus.APPROVED),
            make_payment(member, 2, 2024, amount=Decimal("9000"), approval_status=ApprovalStatus.REJECTED),
        ]

        breakdown = calculate_dues(member, room_9000, date(2024, 2, 29), approved)

        assert breakdown.approved_total == Decimal("9000")
        assert breakdown.pending_dues == Decimal("9000.00")

    @pytest.mark.unit
    def test_overpayment_reported_as_credit(self, make_member, room_9000, make_payment):
        member = make_member(room_id=room_9000.id, date_of_joining=date(2024, 4, 5))
        paid = make_payment(
            member, 4, 2024, amount=Decimal("9000"), approval_status=ApprovalStatus.APPROVED
        )

        breakdown = calculate_dues(member, room_9000, date(2024, 4, 15), [paid])

        assert breakdown.pending_dues == Decimal("0.00")
        assert breakdown.credit == Decimal("5700.00")

    @pytest.mark.unit
    def test_leave_before_join_rejected(self, member, room):
        with pytest.raises(ValidationError):
            calculate_dues(member, room, date(2023, 12, 31), [])

    @pytest.mark.unit
    def test_long_term_without_room_rejected(self, make_member):
        member = make_member(room_id=None)

        with pytest.raises(ValidationError, match="no room"):
            calculate_dues(member, None, date(2024, 2, 1), [])


class TestDuesService:
    @pytest.mark.unit
    def test_recompute_is_idempotent(self, service, db_session, member):
        leaving_request = _open_request(db_session, member, date(2024, 1, 31))

        first = service.recompute(leaving_request)
        second = service.recompute(leaving_request)

        assert first.pending_dues == second.pending_dues == Decimal("4258.06")
        assert leaving_request.pending_dues == Decimal("4258.06")

    @pytest.mark.unit
    def test_unknown_member(self, service):
        with pytest.raises(NotFoundError):
            service.compute_breakdown(999, date(2024, 1, 31))

    @pytest.mark.unit
    def test_refresh_updates_only_changed_requests(
        self, service, db_session, member, make_member
    ):
        stale = _open_request(db_session, member, date(2024, 1, 31), pending_dues=Decimal("1.00"))
        other = make_member()
        current = _open_request(
            db_session,
            other,
            date(2024, 1, 31),
            pending_dues=Decimal("4258.06"),
            dues_credit=Decimal("0.00"),
        )
        _open_request(
            db_session,
            make_member(),
            date(2024, 1, 31),
            status=LeavingRequestStatus.COMPLETED,
            pending_dues=Decimal("1.00"),
        )

        result = service.refresh_open_requests()

        assert result.total_open_requests == 2
        assert result.updated_requests == 1
        assert [change.leaving_request_id for change in result.details] == [stale.id]
        assert result.details[0].change_amount == Decimal("4257.06")
        db_session.refresh(current)
        assert current.dues_computed_at is None

    @pytest.mark.unit
    def test_refresh_collects_failures_and_continues(
        self, service, db_session, member, make_member
    ):
        roomless = make_member(room_id=None)
        broken = _open_request(db_session, roomless, date(2024, 1, 31))
        healthy = _open_request(db_session, member, date(2024, 1, 31))

        result = service.refresh_open_requests()

        assert [failure.item_id for failure in result.failures] == [broken.id]
        assert result.updated_requests == 1
        db_session.refresh(healthy)
        assert healthy.pending_dues == Decimal("4258.06")

"""Pytest configuration and shared fixtures."""

import os
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

# Point settings at an in-memory database BEFORE importing pgmanager
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from pgmanager.api import deps  # noqa: E402
from pgmanager.models import (  # noqa: E402
    PG,
    ApprovalStatus,
    Base,
    Member,
    PaymentMethod,
    PaymentRecord,
    PaymentStatus,
    PgType,
    RentType,
    Room,
)
from pgmanager.services import build_engine, get_db  # noqa: E402
from pgmanager.services.clock import FixedClock  # noqa: E402
from pgmanager.services.file_storage import LocalFileStorage  # noqa: E402
from pgmanager.services.notification_service import NotificationService  # noqa: E402

test_engine = build_engine("sqlite:///:memory:")
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session():
    """Provide a test database session with all tables created."""
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def other_session(db_session):
    """A second session on the same database, standing in for a concurrent worker."""
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at 2024-01-20 09:00 UTC."""
    return FixedClock(datetime(2024, 1, 20, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "uploads")


@pytest.fixture
def notifier() -> MagicMock:
    """Notification collaborator double; records calls, sends nothing."""
    return MagicMock(spec=NotificationService)


@pytest.fixture
def pg(db_session) -> PG:
    pg = PG(name="Sunrise PG", type=PgType.WOMENS, location="Bengaluru")
    db_session.add(pg)
    db_session.commit()
    return pg


@pytest.fixture
def room(db_session, pg) -> Room:
    room = Room(
        room_no="101",
        rent=Decimal("6000.00"),
        electricity_charge=Decimal("0.00"),
        capacity=2,
        pg_id=pg.id,
    )
    db_session.add(room)
    db_session.commit()
    return room


@pytest.fixture
def make_member(db_session, pg, room):
    """Factory for members; defaults to a long-term resident of room 101."""
    counter = {"n": 0}

    def _make_member(**overrides) -> Member:
        counter["n"] += 1
        values = {
            "member_code": f"MEM{counter['n']:03d}",
            "name": f"Resident {counter['n']}",
            "rent_type": RentType.LONG_TERM,
            "pg_id": pg.id,
            "room_id": room.id,
            "date_of_joining": date(2024, 1, 10),
            "is_active": True,
        }
        values.update(overrides)
        member = Member(**values)
        db_session.add(member)
        db_session.commit()
        return member

    return _make_member


@pytest.fixture
def member(make_member) -> Member:
    return make_member(name="Asha Rao", telegram_chat_id="555001")


@pytest.fixture
def make_payment(db_session):
    """Insert a payment record directly, bypassing the attempt tracker."""

    def _make_payment(member: Member, month: int, year: int, **overrides) -> PaymentRecord:
        values = {
            "member_id": member.id,
            "pg_id": member.pg_id,
            "month": month,
            "year": year,
            "attempt_number": 1,
            "amount": Decimal("6000.00"),
            "payment_method": PaymentMethod.ONLINE,
            "due_date": date(year, month, 10),
            "overdue_date": date(year, month, 17),
            "payment_status": PaymentStatus.PAID,
            "approval_status": ApprovalStatus.PENDING,
        }
        values.update(overrides)
        payment = PaymentRecord(**values)
        db_session.add(payment)
        db_session.commit()
        return payment

    return _make_payment


@pytest.fixture
def app():
    from pgmanager.main import create_app

    return create_app()


@pytest.fixture
def client(app, db_session, clock, storage, notifier):
    """FastAPI test client wired to the test session, clock and storage."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_notifier] = lambda: notifier

    # No context manager: the lifespan would create tables on the app engine
    yield TestClient(app)

    app.dependency_overrides.clear()

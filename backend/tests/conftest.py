"""
Shared fixtures: in-memory SQLite database, a controllable clock, and
court/slot/user factories.

Venue timezone is Africa/Dakar (UTC+0), so slot wall-clock times equal
UTC in every test.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("PUSH_PROVIDER", "console")

from datetime import date, datetime, time, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from arena.api.app import app
from arena.api.dependencies import get_clock, get_db
from arena.lib.db import build_engine, drop_db, init_db
from arena.lib.jwt import create_access_token
from arena.lib.metrics import reset_metrics
from arena.models import Booking, BookingStatus, Court, CourtType, PaymentStatus, TimeSlot, User, UserRole
from arena.services.notification_service import ConsolePushProvider, NotificationDispatcher
from arena.services.reservation_service import ReservationService


NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 10)
TOMORROW = date(2026, 3, 11)
YESTERDAY = date(2026, 3, 9)


class FrozenClock:
    """Callable returning a settable 'now'."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    drop_db(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def tomorrow():
    return TOMORROW


@pytest.fixture
def yesterday():
    return YESTERDAY


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make_user(role: UserRole = UserRole.USER, push_token=None, first_name="Awa") -> User:
        counter["n"] += 1
        user = User(
            phone=f"+22177000{counter['n']:04d}",
            first_name=first_name,
            last_name="Diop",
            role=role,
            push_token=push_token,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def other_customer(make_user):
    return make_user(first_name="Moussa")


@pytest.fixture
def manager(make_user):
    return make_user(role=UserRole.MANAGER, first_name="Fatou")


@pytest.fixture
def court(db_session):
    court = Court(
        name="Padel 1",
        slug="padel-1",
        type=CourtType.PADEL,
        price=10000,
    )
    db_session.add(court)
    db_session.commit()
    return court


@pytest.fixture
def slots(db_session):
    """Morning, evening and a late slot that ends at midnight."""
    morning = TimeSlot(start_time=time(10, 0), end_time=time(11, 0), slot_order=1)
    evening = TimeSlot(start_time=time(18, 0), end_time=time(19, 0), slot_order=2)
    late = TimeSlot(start_time=time(23, 0), end_time=time(0, 0), slot_order=3)
    db_session.add_all([morning, evening, late])
    db_session.commit()
    return {"morning": morning, "evening": evening, "late": late}


@pytest.fixture
def evening_slot(slots):
    return slots["evening"]


@pytest.fixture
def make_booking(db_session, court):
    """Insert a booking directly, bypassing the reservation rules."""

    def _make_booking(customer, time_slot, day=TOMORROW, status=BookingStatus.UNPAID, credit_used=0) -> Booking:
        booking = Booking(
            customer_id=customer.id,
            court_id=court.id,
            time_slot_id=time_slot.id,
            date=day,
            status=status,
            payment_status=PaymentStatus.COMPLETED if status == BookingStatus.PAID else PaymentStatus.PENDING,
            total_amount=court.price,
            credit_used=credit_used,
        )
        db_session.add(booking)
        db_session.commit()
        return booking

    return _make_booking


@pytest.fixture
def reservations(db_session, clock):
    return ReservationService(
        db_session,
        now_fn=clock,
        notifier=NotificationDispatcher(db_session, push_provider=ConsolePushProvider()),
    )


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        token = create_access_token(str(user.id), user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def client(db_session, clock):
    """TestClient bound to the test session and clock."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

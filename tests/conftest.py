import os
import uuid
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional

# Settle configuration before the application modules read it
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("TOKEN_PEPPER", "test-pepper")
os.environ.setdefault("EMAIL_PROVIDER", "dev")
os.environ.setdefault("DEFAULT_PHONE_COUNTRY", "TR")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from shopbook.database import Base, create_db_engine, get_db
from shopbook.domain.availability.router import availability_rate_limit
from shopbook.domain.bookings.router import booking_rate_limit
from shopbook.domain.manage.router import manage_rate_limit
from shopbook.email_service import EmailSendError, EmailTransport, get_transport
from shopbook.main import app
from shopbook.models import Booking, Customer, Service, Shop, Staff, WorkingHours
from shopbook.security_utils import create_jwt_token

# Monday; the bookable day in most tests is the following Tuesday
NOW = datetime(2030, 3, 4, 6, 0, tzinfo=timezone.utc)


class FakeTransport(EmailTransport):
    """Records sends; fails the next `fail_times` sends when asked to"""

    name = "fake"

    def __init__(self, fail_times: int = 0, error: str = "smtp down"):
        self.sent: list[dict] = []
        self.fail_times = fail_times
        self.error = error
        self.calls = 0

    async def send(self, to: str, subject: str, html: str, text: str) -> Optional[str]:
        self.calls += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise EmailSendError(self.error)
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return f"msg-{len(self.sent)}"


@dataclass
class SeededShop:
    shop_id: str
    slug: str
    timezone: str
    staff_ids: list[str]
    service_id: str


def seed_shop(
    db,
    slug: str = "demo-barber",
    tz: str = "UTC",
    staff_names: tuple = ("Ali",),
    duration_minutes: int = 30,
    hours: tuple = (time(9, 0), time(12, 0)),
    days: tuple = tuple(range(7)),
    industry_template: str = "barber",
    **shop_fields,
) -> SeededShop:
    shop = Shop(slug=slug, name=f"{slug.title()} Shop", timezone=tz, industry_template=industry_template, **shop_fields)
    db.add(shop)
    db.flush()

    staff_ids = []
    for name in staff_names:
        staff = Staff(shop_id=shop.id, name=name, active=True)
        db.add(staff)
        db.flush()
        staff_ids.append(staff.id)
        for day in days:
            db.add(
                WorkingHours(
                    shop_id=shop.id,
                    staff_id=staff.id,
                    day_of_week=day,
                    start_time=hours[0],
                    end_time=hours[1],
                )
            )

    service = Service(shop_id=shop.id, name="Haircut", duration_minutes=duration_minutes, active=True)
    db.add(service)
    db.flush()
    seeded = SeededShop(shop.id, slug, tz, staff_ids, service.id)
    # Read ids before commit: touching an expired row afterwards would reopen a
    # transaction and hold the SQLite write lock against other sessions
    db.commit()
    return seeded


def at(hour: int, minute: int = 0, day: int = 5) -> datetime:
    """UTC instant on 2030-03-<day>"""
    return datetime(2030, 3, day, hour, minute, tzinfo=timezone.utc)


def owner_headers(shop_id: str, role: str = "owner") -> dict:
    token = create_jwt_token({"sub": "user-1", "shop_id": shop_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def engine(tmp_path):
    # File-backed so sessions on different threads really contend for the lock
    engine = create_db_engine(f"sqlite:///{tmp_path / 'shopbook-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def shop(db) -> SeededShop:
    return seed_shop(db)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def client(session_factory, transport):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_transport] = lambda: transport
    for limiter in (availability_rate_limit, booking_rate_limit, manage_rate_limit):
        app.dependency_overrides[limiter] = no_rate_limit

    yield TestClient(app)
    app.dependency_overrides.clear()


def add_booking(db, seeded: SeededShop, start_at: datetime, minutes: int = 30, staff_index: int = 0,
                status: str = "confirmed", email: Optional[str] = "ayse@example.com") -> str:
    """Insert a booking row directly, bypassing the lifecycle"""
    customer = Customer(shop_id=seeded.shop_id, name="Ayse", phone_e164=f"+9053{uuid.uuid4().int % 10**9:09d}", email=email)
    db.add(customer)
    db.flush()
    booking = Booking(
        shop_id=seeded.shop_id,
        staff_id=seeded.staff_ids[staff_index],
        service_id=seeded.service_id,
        customer_id=customer.id,
        start_at=start_at,
        end_at=start_at + timedelta(minutes=minutes),
        status=status,
    )
    db.add(booking)
    db.flush()
    booking_id = booking.id
    db.commit()
    return booking_id

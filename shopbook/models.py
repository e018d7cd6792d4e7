import enum
import uuid
from datetime import time, timezone

from sqlalchemy import (
    DDL,
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    event,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ExcludeConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .database import Base
from .shared.timezones import ensure_utc, utcnow

# Name shared by the PostgreSQL exclusion constraint and the SQLite triggers;
# the booking repository matches on it to recognise an overlap conflict.
BOOKING_OVERLAP_CONSTRAINT = "bookings_no_overlap_confirmed"


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetimes on every dialect.

    PostgreSQL stores timestamptz. SQLite has no timezone support, so values are
    stored as naive UTC and re-tagged as UTC when loaded.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = ensure_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED_BY_CUSTOMER = "cancelled_by_customer"
    CANCELLED_BY_SHOP = "cancelled_by_shop"


CANCELLED_STATUSES = (BookingStatus.CANCELLED_BY_CUSTOMER.value, BookingStatus.CANCELLED_BY_SHOP.value)


class BookingSource(str, enum.Enum):
    CUSTOMER = "customer"
    WALK_IN = "walk_in"


class OutboxEventType(str, enum.Enum):
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_UPDATED = "BOOKING_UPDATED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    REMINDER_NEXT_DAY = "REMINDER_NEXT_DAY"


class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Shop(Base):
    __tablename__ = "shops"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")  # IANA name, e.g. Europe/Istanbul
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    # Presentation config: industry preset plus allow-listed overrides (see domain/branding)
    industry_template = Column(String(32), default="generic", nullable=False)
    template_overrides = Column(JSON, nullable=True)
    branding = Column(JSON, nullable=True)
    reminder_next_day_enabled = Column(Boolean, default=True, nullable=False)
    reminder_next_day_send_time_local = Column(Time, default=time(18, 0), nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    staff = relationship("Staff", back_populates="shop")
    services = relationship("Service", back_populates="shop")


class Staff(Base):
    __tablename__ = "staff"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    shop_id = Column(String(36), ForeignKey("shops.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    shop = relationship("Shop", back_populates="staff")
    working_hours = relationship("WorkingHours", back_populates="staff", cascade="all, delete-orphan")


class Service(Base):
    __tablename__ = "services"
    __table_args__ = (CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),)

    id = Column(String(36), primary_key=True, default=generate_public_id)
    shop_id = Column(String(36), ForeignKey("shops.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    shop = relationship("Shop", back_populates="services")


class WorkingHours(Base):
    __tablename__ = "working_hours"
    __table_args__ = (
        UniqueConstraint("staff_id", "day_of_week", name="uq_working_hours_staff_day"),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_working_hours_dow"),
        CheckConstraint("start_time < end_time", name="ck_working_hours_range"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    shop_id = Column(String(36), ForeignKey("shops.id", ondelete="CASCADE"), index=True, nullable=False)
    staff_id = Column(String(36), ForeignKey("staff.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    start_time = Column(Time, nullable=False)  # shop-local wall clock
    end_time = Column(Time, nullable=False)

    staff = relationship("Staff", back_populates="working_hours")


class Block(Base):
    __tablename__ = "blocks"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_blocks_range"),
        Index("ix_blocks_staff_range", "staff_id", "start_at", "end_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_public_id)
    shop_id = Column(String(36), ForeignKey("shops.id", ondelete="CASCADE"), index=True, nullable=False)
    staff_id = Column(String(36), ForeignKey("staff.id", ondelete="CASCADE"), nullable=False)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    note = Column(String(500), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("shop_id", "phone_e164", name="uq_customers_shop_phone"),)

    id = Column(String(36), primary_key=True, default=generate_public_id)
    shop_id = Column(String(36), ForeignKey("shops.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(200), nullable=False)
    phone_e164 = Column(String(64), nullable=False)
    email = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    shop_id = Column(String(36), ForeignKey("shops.id", ondelete="CASCADE"), index=True, nullable=False)
    staff_id = Column(String(36), ForeignKey("staff.id"), nullable=False)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    status = Column(String(32), default=BookingStatus.CONFIRMED.value, nullable=False)
    source = Column(String(16), default=BookingSource.CUSTOMER.value, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    shop = relationship("Shop")
    staff = relationship("Staff")
    service = relationship("Service")
    customer = relationship("Customer")

    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_bookings_range"),
        Index("ix_bookings_staff_range", "staff_id", "start_at", "end_at"),
        Index("ix_bookings_shop_status_start", "shop_id", "status", "start_at"),
        # Hard no-double-booking guarantee for confirmed rows (PostgreSQL + btree_gist)
        ExcludeConstraint(
            ("staff_id", "="),
            (func.tstzrange(start_at, end_at, text("'[)'")), "&&"),
            name=BOOKING_OVERLAP_CONSTRAINT,
            using="gist",
            where=text("status = 'confirmed'"),
        ).ddl_if(dialect="postgresql"),
    )


class ManageToken(Base):
    __tablename__ = "manage_tokens"

    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), primary_key=True)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)  # sha256 hex
    expires_at = Column(UTCDateTime, nullable=False)
    revoked_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)


class OutboxEntry(Base):
    __tablename__ = "notification_outbox"
    __table_args__ = (Index("ix_outbox_status_next_attempt", "status", "next_attempt_at"),)

    id = Column(String(36), primary_key=True, default=generate_public_id)
    shop_id = Column(String(36), ForeignKey("shops.id", ondelete="CASCADE"), index=True, nullable=False)
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), index=True, nullable=False)
    event_type = Column(String(32), nullable=False)
    channel = Column(String(16), default="email", nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    idempotency_key = Column(String(255), unique=True, nullable=False)
    status = Column(String(16), default=OutboxStatus.PENDING.value, nullable=False)
    attempt_count = Column(Integer, default=0, nullable=False)
    next_attempt_at = Column(UTCDateTime, default=utcnow, nullable=False)
    last_error = Column(Text, nullable=True)
    sent_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)


# PostgreSQL: the exclusion constraint above needs btree_gist for "staff_id WITH ="
event.listen(
    Base.metadata,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)

# SQLite: equivalent storage-level guarantee through triggers. Combined with
# BEGIN IMMEDIATE transactions (see database.py) the check and the write are atomic.
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        f"""
        CREATE TRIGGER IF NOT EXISTS {BOOKING_OVERLAP_CONSTRAINT}_insert
        BEFORE INSERT ON bookings
        WHEN NEW.status = 'confirmed'
        BEGIN
            SELECT RAISE(ABORT, '{BOOKING_OVERLAP_CONSTRAINT}')
            WHERE EXISTS (
                SELECT 1 FROM bookings b
                WHERE b.staff_id = NEW.staff_id
                  AND b.status = 'confirmed'
                  AND b.start_at < NEW.end_at
                  AND b.end_at > NEW.start_at
            );
        END
        """
    ).execute_if(dialect="sqlite"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        f"""
        CREATE TRIGGER IF NOT EXISTS {BOOKING_OVERLAP_CONSTRAINT}_update
        BEFORE UPDATE OF staff_id, start_at, end_at, status ON bookings
        WHEN NEW.status = 'confirmed'
        BEGIN
            SELECT RAISE(ABORT, '{BOOKING_OVERLAP_CONSTRAINT}')
            WHERE EXISTS (
                SELECT 1 FROM bookings b
                WHERE b.staff_id = NEW.staff_id
                  AND b.id != NEW.id
                  AND b.status = 'confirmed'
                  AND b.start_at < NEW.end_at
                  AND b.end_at > NEW.start_at
            );
        END
        """
    ).execute_if(dialect="sqlite"),
)

"""Booking repository - Database operations for bookings, customers and blocks"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import (
    BOOKING_OVERLAP_CONSTRAINT,
    Block,
    Booking,
    BookingStatus,
    Customer,
)

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for exclusion_violation
EXCLUSION_VIOLATION = "23P01"

WALK_IN_PHONE_PREFIX = "+walkin-"


def is_overlap_violation(error: IntegrityError) -> bool:
    """True when an IntegrityError comes from the no-overlap guarantee on confirmed bookings"""
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) == EXCLUSION_VIOLATION:
        return True
    return BOOKING_OVERLAP_CONSTRAINT in str(orig if orig is not None else error)


def walk_in_placeholder_phone() -> str:
    """Unique stand-in for walk-ins who left no phone number"""
    return f"{WALK_IN_PHONE_PREFIX}{uuid.uuid4().hex}"


def has_contact(customer: Optional[Customer]) -> bool:
    """True when the customer left an email or a real phone number"""
    if customer is None:
        return False
    return bool(customer.email) or not (customer.phone_e164 or "").startswith(WALK_IN_PHONE_PREFIX)


class BookingRepository:
    """Repository for booking rows. Never commits; callers own the transaction."""

    @staticmethod
    def get_for_shop(db: Session, booking_id: str, shop_id: str) -> Optional[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.shop_id == shop_id)
            .first()
        )

    @staticmethod
    def insert_booking(db: Session, booking: Booking) -> Booking:
        """Insert and flush; an overlap surfaces here as IntegrityError"""
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def move_booking(db: Session, booking_id: str, start_at: datetime, end_at: datetime) -> bool:
        """
        Conditional interval change: only a confirmed booking moves.

        Returns False when the booking was no longer confirmed. An overlap
        surfaces here as IntegrityError.
        """
        updated = (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED.value)
            .update({Booking.start_at: start_at, Booking.end_at: end_at}, synchronize_session="fetch")
        )
        return updated == 1

    @staticmethod
    def transition_from_confirmed(db: Session, booking_id: str, new_status: str) -> bool:
        """
        Conditional status change: only a confirmed booking moves.

        Returns False when the booking was no longer confirmed, e.g. a concurrent
        cancel got there first.
        """
        updated = (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED.value)
            .update({Booking.status: new_status}, synchronize_session="fetch")
        )
        return updated == 1

    # Customers

    @staticmethod
    def get_customer(db: Session, shop_id: str, phone_e164: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.shop_id == shop_id, Customer.phone_e164 == phone_e164)
            .first()
        )

    @staticmethod
    def upsert_customer(
        db: Session, shop_id: str, phone_e164: str, name: str, email: Optional[str]
    ) -> Customer:
        """
        Find-or-create by (shop_id, phone_e164) and refresh name / email.

        The insert runs in a SAVEPOINT so losing a race against a concurrent
        insert of the same customer falls back to updating the winner's row.
        """
        customer = BookingRepository.get_customer(db, shop_id, phone_e164)
        if customer is None:
            candidate = Customer(shop_id=shop_id, phone_e164=phone_e164, name=name, email=email)
            try:
                with db.begin_nested():
                    db.add(candidate)
                    db.flush()
                return candidate
            except IntegrityError:
                customer = BookingRepository.get_customer(db, shop_id, phone_e164)
                if customer is None:
                    raise

        customer.name = name
        if email:
            customer.email = email
        db.flush()
        return customer

    @staticmethod
    def create_placeholder_customer(
        db: Session, shop_id: str, name: str, email: Optional[str]
    ) -> Customer:
        customer = Customer(
            shop_id=shop_id,
            phone_e164=walk_in_placeholder_phone(),
            name=name,
            email=email,
        )
        db.add(customer)
        db.flush()
        return customer

    # Blocks

    @staticmethod
    def insert_block(db: Session, block: Block) -> Block:
        db.add(block)
        db.flush()
        return block

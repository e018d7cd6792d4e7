"""Booking service - Create, walk-in, reschedule, cancel and block operations"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import DEFAULT_PHONE_COUNTRY
from ...models import (
    CANCELLED_STATUSES,
    Block,
    Booking,
    BookingSource,
    BookingStatus,
    Customer,
    OutboxEventType,
    Service,
    Shop,
    Staff,
    generate_public_id,
)
from ...shared.errors import Conflict, NotFound, ValidationFailed
from ...shared.timezones import ensure_utc, is_on_grid, local_date_of, utcnow
from ...shared.validators import normalize_phone_e164, validate_email
from ...utils.sanitization import clean_text
from ..availability.service import AvailabilityService
from ..manage.service import ManageTokenService
from ..outbox.payloads import (
    build_booking_payload,
    cancelled_key,
    confirmed_key,
    iso_utc,
    updated_key,
)
from ..outbox.repository import OutboxRepository
from .repository import BookingRepository, has_contact, is_overlap_violation

logger = logging.getLogger(__name__)

ANY_STAFF = "any"
ACTOR_CUSTOMER = "customer"
ACTOR_SHOP = "shop"

_CANCELLED_STATUS_BY_ACTOR = {
    ACTOR_CUSTOMER: BookingStatus.CANCELLED_BY_CUSTOMER.value,
    ACTOR_SHOP: BookingStatus.CANCELLED_BY_SHOP.value,
}


@dataclass
class BookingResult:
    booking: Booking
    shop: Shop
    staff: Staff
    service: Service
    customer: Customer
    manage_token: Optional[str] = None


class BookingService:
    """
    Booking lifecycle. Each public operation is one database transaction:
    booking, customer, manage token and outbox rows commit together or not at all.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.outbox = OutboxRepository()
        self.availability = AvailabilityService(db)
        self.tokens = ManageTokenService(db)

    @contextmanager
    def _unit_of_work(self, action: str):
        """Commit on success; roll back on any error and translate overlap conflicts"""
        try:
            yield
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if is_overlap_violation(e):
                logger.info(f"⛔ {action}: slot already taken")
                raise Conflict("slot_taken", "That time was just booked. Please pick another slot.") from e
            logger.error(f"❌ {action} failed with integrity error: {str(e)}")
            raise
        except Exception:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_start(start_at: datetime, now: datetime, allow_past: bool = False) -> datetime:
        start_at = ensure_utc(start_at)
        if not is_on_grid(start_at):
            raise ValidationFailed("invalid_slot", "Start time must fall on the 15-minute grid")
        if not allow_past and start_at <= now:
            raise ValidationFailed("invalid_slot", "Start time is in the past")
        return start_at

    @staticmethod
    def _normalize_contact(
        phone: Optional[str], email: Optional[str]
    ) -> tuple[Optional[str], Optional[str]]:
        phone_e164 = None
        if phone and phone.strip():
            try:
                phone_e164 = normalize_phone_e164(phone, DEFAULT_PHONE_COUNTRY)
            except ValueError as e:
                raise ValidationFailed("invalid_phone", str(e)) from e

        clean_email = None
        if email and email.strip():
            try:
                clean_email = validate_email(email)
            except ValueError as e:
                raise ValidationFailed("invalid_email", str(e)) from e
        return phone_e164, clean_email

    @staticmethod
    def _clean_name(name: Optional[str], default: str) -> str:
        try:
            return clean_text(name, max_length=200) or default
        except ValueError as e:
            raise ValidationFailed("invalid_name", str(e)) from e

    def _ensure_not_blocked(self, staff: Staff, start_at: datetime, end_at: datetime) -> None:
        blocks = self.availability.repo.get_overlapping_blocks(self.db, staff.id, start_at, end_at)
        if blocks:
            raise Conflict("blocked", "That time is blocked for this staff member")

    def _ensure_within_working_hours(
        self, shop: Shop, staff: Staff, start_at: datetime, end_at: datetime
    ) -> None:
        window = self.availability.working_window(shop, staff, local_date_of(start_at, shop.timezone))
        if window is None or start_at < window[0] or end_at > window[1]:
            raise ValidationFailed("outside_working_hours", "Time is outside working hours")

    def _enqueue(
        self,
        booking: Booking,
        event_type: OutboxEventType,
        key: str,
        payload: dict,
        now: datetime,
    ) -> None:
        self.outbox.enqueue(
            self.db,
            shop_id=booking.shop_id,
            booking_id=booking.id,
            event_type=event_type.value,
            idempotency_key=key,
            payload=payload,
            next_attempt_at=now,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_booking(
        self,
        shop_slug: str,
        staff_id: str,
        service_id: str,
        start_at: datetime,
        name: str,
        phone: str,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """
        Public booking.

        Raises:
            NotFound: shop_not_found
            ValidationFailed: invalid_staff, invalid_service, invalid_slot, invalid_phone,
                invalid_email, outside_working_hours
            Conflict: blocked, slot_taken
        """
        now = now or utcnow()
        shop = self.availability.get_shop_by_slug(shop_slug)
        service = self.availability.get_service(shop, service_id)
        start_at = self._validate_start(start_at, now)
        end_at = start_at + timedelta(minutes=service.duration_minutes)

        if not phone or not phone.strip():
            raise ValidationFailed("invalid_phone", "Phone number is required")
        phone_e164, clean_email = self._normalize_contact(phone, email)
        customer_name = self._clean_name(name, "Customer")

        if staff_id == ANY_STAFF:
            staff = self.availability.pick_staff_for_any(shop, service, start_at)
            if staff is None:
                raise Conflict("slot_taken", "No staff member is free at that time")
        else:
            staff = self.availability.get_staff(shop, staff_id)
            self._ensure_within_working_hours(shop, staff, start_at, end_at)
            self._ensure_not_blocked(staff, start_at, end_at)

        with self._unit_of_work(f"Create booking for shop {shop.id}"):
            customer = self.repo.upsert_customer(self.db, shop.id, phone_e164, customer_name, clean_email)
            booking = self.repo.insert_booking(
                self.db,
                Booking(
                    id=generate_public_id(),
                    shop_id=shop.id,
                    staff_id=staff.id,
                    service_id=service.id,
                    customer_id=customer.id,
                    start_at=start_at,
                    end_at=end_at,
                    status=BookingStatus.CONFIRMED.value,
                    source=BookingSource.CUSTOMER.value,
                ),
            )
            raw_token = self.tokens.issue(booking.id, now)
            self._enqueue(
                booking,
                OutboxEventType.BOOKING_CONFIRMED,
                confirmed_key(booking.id),
                build_booking_payload(booking, shop, staff, service, customer, raw_token),
                now,
            )

        logger.info(f"✅ Booking {booking.id} confirmed for staff {staff.id} at {start_at.isoformat()}")
        return BookingResult(booking, shop, staff, service, customer, raw_token)

    def create_walk_in(
        self,
        shop_id: str,
        staff_id: str,
        service_id: str,
        start_at: datetime,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """
        Owner-entered booking. Phone is optional; without phone or email no
        manage token or confirmation email is produced.
        """
        now = now or utcnow()
        shop = self.availability.repo.get_shop_by_id(self.db, shop_id)
        if not shop:
            raise NotFound("shop_not_found", "Shop not found")
        staff = self.availability.get_staff(shop, staff_id)
        service = self.availability.get_service(shop, service_id)
        start_at = self._validate_start(start_at, now, allow_past=True)
        end_at = start_at + timedelta(minutes=service.duration_minutes)

        phone_e164, clean_email = self._normalize_contact(phone, email)
        has_contact = bool(phone_e164 or clean_email)
        self._ensure_not_blocked(staff, start_at, end_at)

        raw_token = None
        with self._unit_of_work(f"Create walk-in for shop {shop.id}"):
            if phone_e164:
                customer = self.repo.upsert_customer(
                    self.db, shop.id, phone_e164, self._clean_name(name, "Customer"), clean_email
                )
            else:
                customer = self.repo.create_placeholder_customer(
                    self.db, shop.id, self._clean_name(name, "Walk-in"), clean_email
                )

            booking = self.repo.insert_booking(
                self.db,
                Booking(
                    id=generate_public_id(),
                    shop_id=shop.id,
                    staff_id=staff.id,
                    service_id=service.id,
                    customer_id=customer.id,
                    start_at=start_at,
                    end_at=end_at,
                    status=BookingStatus.CONFIRMED.value,
                    source=BookingSource.WALK_IN.value,
                ),
            )
            if has_contact:
                raw_token = self.tokens.issue(booking.id, now)
                self._enqueue(
                    booking,
                    OutboxEventType.BOOKING_CONFIRMED,
                    confirmed_key(booking.id, walk_in=True),
                    build_booking_payload(booking, shop, staff, service, customer, raw_token),
                    now,
                )

        logger.info(f"✅ Walk-in {booking.id} recorded for staff {staff.id} at {start_at.isoformat()}")
        return BookingResult(booking, shop, staff, service, customer, raw_token)

    # ------------------------------------------------------------------
    # Reschedule / cancel
    # ------------------------------------------------------------------

    def reschedule(
        self,
        booking: Booking,
        new_start_at: datetime,
        actor: str = ACTOR_CUSTOMER,
        raw_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Move a confirmed booking to a new start.

        Moving to the current start is a no-op and emits nothing. A customer
        reschedule must stay inside working hours; the shop may move anywhere free.
        """
        now = now or utcnow()
        if booking.status != BookingStatus.CONFIRMED.value:
            raise ValidationFailed("not_reschedulable", "Only confirmed bookings can be rescheduled")

        new_start_at = self._validate_start(new_start_at, now)
        if new_start_at == booking.start_at:
            logger.info(f"ℹ️ Booking {booking.id} already starts at {new_start_at.isoformat()}, nothing to do")
            return booking

        shop = self.availability.repo.get_shop_by_id(self.db, booking.shop_id)
        staff = self.db.query(Staff).filter(Staff.id == booking.staff_id).first()
        service = self.db.query(Service).filter(Service.id == booking.service_id).first()
        customer = self.db.query(Customer).filter(Customer.id == booking.customer_id).first()
        if not (shop and staff and service):
            raise NotFound("booking_not_found", "Booking references missing rows")

        new_end_at = new_start_at + timedelta(minutes=service.duration_minutes)
        if actor == ACTOR_CUSTOMER:
            self._ensure_within_working_hours(shop, staff, new_start_at, new_end_at)
        self._ensure_not_blocked(staff, new_start_at, new_end_at)

        previous_start = booking.start_at
        with self._unit_of_work(f"Reschedule booking {booking.id}"):
            if not self.repo.move_booking(self.db, booking.id, new_start_at, new_end_at):
                # Cancelled since it was read
                raise ValidationFailed("not_reschedulable", "Only confirmed bookings can be rescheduled")
            cancelled = self.outbox.cancel_pending_reminders(self.db, booking.id)
            self._enqueue(
                booking,
                OutboxEventType.BOOKING_UPDATED,
                updated_key(booking.id, new_start_at),
                build_booking_payload(
                    booking,
                    shop,
                    staff,
                    service,
                    customer,
                    raw_token,
                    by=actor,
                    previousStartAt=iso_utc(previous_start),
                ),
                now,
            )

        logger.info(
            f"📅 Booking {booking.id} moved by {actor} to {new_start_at.isoformat()} "
            f"({cancelled} pending reminder(s) cancelled)"
        )
        return booking

    def cancel(
        self,
        booking: Booking,
        actor: str,
        raw_token: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Cancel a booking; returns the resulting status.

        Cancelling an already-cancelled booking returns its status with no side effects.
        """
        now = now or utcnow()
        if actor not in _CANCELLED_STATUS_BY_ACTOR:
            raise ValueError(f"Unknown cancel actor: {actor}")

        if booking.status in CANCELLED_STATUSES:
            return booking.status

        new_status = _CANCELLED_STATUS_BY_ACTOR[actor]
        with self._unit_of_work(f"Cancel booking {booking.id}"):
            if not self.repo.transition_from_confirmed(self.db, booking.id, new_status):
                # Lost a race against another cancel; report what won
                self.db.refresh(booking)
                return booking.status

            self.outbox.cancel_pending_reminders(self.db, booking.id)
            shop = self.availability.repo.get_shop_by_id(self.db, booking.shop_id)
            staff = self.db.query(Staff).filter(Staff.id == booking.staff_id).first()
            service = self.db.query(Service).filter(Service.id == booking.service_id).first()
            customer = self.db.query(Customer).filter(Customer.id == booking.customer_id).first()
            # Walk-ins who left no contact details have nobody to notify
            if has_contact(customer):
                self._enqueue(
                    booking,
                    OutboxEventType.BOOKING_CANCELLED,
                    cancelled_key(booking.id, actor),
                    build_booking_payload(booking, shop, staff, service, customer, raw_token, by=actor),
                    now,
                )

        self.db.refresh(booking)
        logger.info(f"🚫 Booking {booking.id} cancelled by {actor}")
        return booking.status

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def get_owned_booking(self, shop_id: str, booking_id: str) -> Booking:
        booking = self.repo.get_for_shop(self.db, booking_id, shop_id)
        if not booking:
            raise NotFound("booking_not_found", "Booking not found for this shop")
        return booking

    def owner_cancel(self, shop_id: str, booking_id: str, now: Optional[datetime] = None) -> str:
        booking = self.get_owned_booking(shop_id, booking_id)
        return self.cancel(booking, ACTOR_SHOP, now=now)

    def owner_move(
        self, shop_id: str, booking_id: str, new_start_at: datetime, now: Optional[datetime] = None
    ) -> Booking:
        booking = self.get_owned_booking(shop_id, booking_id)
        return self.reschedule(booking, new_start_at, actor=ACTOR_SHOP, now=now)

    def create_block(
        self,
        shop_id: str,
        staff_id: str,
        start_at: datetime,
        end_at: datetime,
        note: Optional[str] = None,
    ) -> Block:
        """
        Manually exclude time for a staff member.

        Raises:
            ValidationFailed: invalid_staff, invalid_range
            Conflict: block_overlaps_booking
        """
        staff = self.db.query(Staff).filter(Staff.id == staff_id, Staff.shop_id == shop_id).first()
        if not staff:
            raise ValidationFailed("invalid_staff", "Staff not found for this shop")

        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        if start_at >= end_at:
            raise ValidationFailed("invalid_range", "Block start must be before its end")

        try:
            clean_note = clean_text(note, max_length=500)
        except ValueError as e:
            raise ValidationFailed("invalid_note", str(e)) from e

        overlapping = self.availability.repo.get_overlapping_confirmed_bookings(
            self.db, staff.id, start_at, end_at
        )
        if overlapping:
            raise Conflict("block_overlaps_booking", "Block overlaps a confirmed booking")

        with self._unit_of_work(f"Create block for staff {staff.id}"):
            block = self.repo.insert_block(
                self.db,
                Block(shop_id=shop_id, staff_id=staff.id, start_at=start_at, end_at=end_at, note=clean_note),
            )

        logger.info(f"⛔ Block {block.id} created for staff {staff.id}")
        return block

"""Next-day reminder generation"""

import logging
from datetime import datetime, time
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking, BookingStatus, Customer, OutboxEventType, Service, Shop, Staff
from ...shared.timezones import day_range_utc, local_time_of, tomorrow_local, utcnow
from .payloads import build_booking_payload, reminder_key
from .repository import OutboxRepository

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIME = time(18, 0)


class ReminderGenerator:
    """
    Enqueues one REMINDER_NEXT_DAY row per confirmed booking of a shop's next
    local day, once the shop's local clock has passed its reminder send time.

    Safe to run as often as you like: the idempotency key carries the local
    date, so a second run the same evening inserts nothing.
    """

    def __init__(self, db: Session):
        self.db = db
        self.outbox = OutboxRepository()

    def due_shops(self, now: datetime) -> list[Shop]:
        shops = (
            self.db.query(Shop)
            .filter(Shop.is_active.is_(True), Shop.reminder_next_day_enabled.is_(True))
            .order_by(Shop.id.asc())
            .all()
        )
        due = []
        for shop in shops:
            send_time = shop.reminder_next_day_send_time_local or DEFAULT_SEND_TIME
            if local_time_of(now, shop.timezone) >= send_time:
                due.append(shop)
        return due

    def generate_for_shop(self, shop: Shop, now: datetime) -> int:
        target_day = tomorrow_local(now, shop.timezone)
        day_start, day_end = day_range_utc(target_day, shop.timezone)

        bookings = (
            self.db.query(Booking)
            .filter(
                Booking.shop_id == shop.id,
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.start_at >= day_start,
                Booking.end_at <= day_end,
            )
            .order_by(Booking.start_at.asc())
            .all()
        )

        inserted = 0
        for booking in bookings:
            staff = self.db.query(Staff).filter(Staff.id == booking.staff_id).first()
            service = self.db.query(Service).filter(Service.id == booking.service_id).first()
            customer = self.db.query(Customer).filter(Customer.id == booking.customer_id).first()

            entry = self.outbox.enqueue(
                self.db,
                shop_id=shop.id,
                booking_id=booking.id,
                event_type=OutboxEventType.REMINDER_NEXT_DAY.value,
                idempotency_key=reminder_key(booking.id, target_day),
                payload=build_booking_payload(booking, shop, staff, service, customer),
                next_attempt_at=now,
            )
            if entry is not None:
                inserted += 1

        if inserted:
            logger.info(f"⏰ Queued {inserted} reminder(s) for {shop.slug} on {target_day.isoformat()}")
        return inserted

    def generate(self, now: Optional[datetime] = None) -> int:
        """Returns the number of rows newly inserted across all shops."""
        now = now or utcnow()
        total = 0
        try:
            for shop in self.due_shops(now):
                total += self.generate_for_shop(shop, now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return total

"""Availability service - Bookable slot computation"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...models import Service, Shop, Staff
from ...shared.errors import NotFound, ValidationFailed
from ...shared.timezones import (
    ceil_to_grid,
    local_date_of,
    round_up_to_grid,
    utc_from_local,
    utcnow,
    weekday_index,
)
from .repository import AvailabilityRepository

logger = logging.getLogger(__name__)

Interval = tuple[datetime, datetime]


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap; touching boundaries do not overlap"""
    return a_start < b_end and b_start < a_end


def generate_slot_starts(
    window_start: datetime,
    window_end: datetime,
    duration_minutes: int,
    busy: Iterable[Interval] = (),
    not_after: Optional[datetime] = None,
) -> list[datetime]:
    """
    Slot starts inside a working window.

    Candidates begin at the first grid boundary at or after window_start and
    advance by the service duration rounded up to the slot grid. A candidate
    survives when [start, start + duration) fits in the window, overlaps no
    busy interval and (when not_after is given) starts strictly after not_after.
    """
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=round_up_to_grid(duration_minutes))
    busy = list(busy)

    slots = []
    start = ceil_to_grid(window_start)
    while start + duration <= window_end:
        end = start + duration
        if not_after is not None and start <= not_after:
            start += step
            continue
        if not any(overlaps(start, end, b_start, b_end) for b_start, b_end in busy):
            slots.append(start)
        start += step
    return slots


class AvailabilityService:
    """Service layer for slot computation. Every call recomputes from current rows."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AvailabilityRepository()

    # ------------------------------------------------------------------
    # Lookups shared with the booking lifecycle
    # ------------------------------------------------------------------

    def get_shop_by_slug(self, slug: str) -> Shop:
        shop = self.repo.get_active_shop_by_slug(self.db, slug)
        if not shop:
            raise NotFound("shop_not_found", f"Shop {slug!r} not found or inactive")
        return shop

    def get_staff(self, shop: Shop, staff_id: str) -> Staff:
        staff = self.repo.get_active_staff(self.db, shop.id, staff_id)
        if not staff:
            raise ValidationFailed("invalid_staff", "Staff not found or inactive for this shop")
        return staff

    def get_service(self, shop: Shop, service_id: str) -> Service:
        service = self.repo.get_active_service(self.db, shop.id, service_id)
        if not service:
            raise ValidationFailed("invalid_service", "Service not found or inactive for this shop")
        return service

    def working_window(self, shop: Shop, staff: Staff, local_date: date) -> Optional[Interval]:
        """UTC [start, end) of the staff member's working hours on a local date, None when closed"""
        hours = self.repo.get_working_hours(self.db, staff.id, weekday_index(local_date))
        if not hours:
            return None
        return (
            utc_from_local(local_date, hours.start_time, shop.timezone),
            utc_from_local(local_date, hours.end_time, shop.timezone),
        )

    def busy_intervals(
        self,
        staff: Staff,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> list[Interval]:
        """Blocks and confirmed bookings intersecting [start_at, end_at)"""
        busy = [
            (b.start_at, b.end_at)
            for b in self.repo.get_overlapping_blocks(self.db, staff.id, start_at, end_at)
        ]
        busy.extend(
            (b.start_at, b.end_at)
            for b in self.repo.get_overlapping_confirmed_bookings(
                self.db, staff.id, start_at, end_at, exclude_booking_id
            )
        )
        return busy

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def _slots_for(
        self, shop: Shop, staff: Staff, service: Service, local_date: date, now: datetime
    ) -> list[datetime]:
        window = self.working_window(shop, staff, local_date)
        if window is None:
            return []

        window_start, window_end = window
        not_after = now if local_date == local_date_of(now, shop.timezone) else None
        return generate_slot_starts(
            window_start,
            window_end,
            service.duration_minutes,
            busy=self.busy_intervals(staff, window_start, window_end),
            not_after=not_after,
        )

    def get_slots(
        self,
        shop: Shop,
        staff_id: str,
        service_id: str,
        local_date: date,
        now: Optional[datetime] = None,
    ) -> list[datetime]:
        """
        Ordered UTC slot starts for one staff member and service on a shop-local date.

        Raises:
            ValidationFailed: Inactive or foreign staff / service
        """
        staff = self.get_staff(shop, staff_id)
        service = self.get_service(shop, service_id)
        return self._slots_for(shop, staff, service, local_date, now or utcnow())

    def get_slots_any_staff(
        self,
        shop: Shop,
        service_id: str,
        local_date: date,
        now: Optional[datetime] = None,
    ) -> list[datetime]:
        """Sorted union of distinct slot starts across all active staff"""
        service = self.get_service(shop, service_id)
        now = now or utcnow()

        starts: set[datetime] = set()
        for staff in self.repo.list_active_staff(self.db, shop.id):
            starts.update(self._slots_for(shop, staff, service, local_date, now))
        return sorted(starts)

    def is_staff_free(
        self,
        shop: Shop,
        staff: Staff,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """Interval lies inside working hours and overlaps no block or confirmed booking"""
        window = self.working_window(shop, staff, local_date_of(start_at, shop.timezone))
        if window is None or start_at < window[0] or end_at > window[1]:
            return False
        return not self.busy_intervals(staff, start_at, end_at, exclude_booking_id)

    def pick_staff_for_any(
        self, shop: Shop, service: Service, start_at: datetime
    ) -> Optional[Staff]:
        """
        Staff member to fulfil an "any staff" booking.

        First active staff member in (name, id) order who is free for the whole
        interval. The choice is not stable across changes to the staff set.
        """
        end_at = start_at + timedelta(minutes=service.duration_minutes)
        for staff in self.repo.list_active_staff(self.db, shop.id):
            if self.is_staff_free(shop, staff, start_at, end_at):
                logger.info(f"👤 'Any staff' booking at {start_at.isoformat()} assigned to staff {staff.id}")
                return staff
        return None

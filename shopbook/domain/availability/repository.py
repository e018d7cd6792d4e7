"""Availability repository - Reads of shops, staff, services, hours and busy intervals"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Block, Booking, BookingStatus, Service, Shop, Staff, WorkingHours


class AvailabilityRepository:
    """Repository for the rows slot computation depends on"""

    @staticmethod
    def get_active_shop_by_slug(db: Session, slug: str) -> Optional[Shop]:
        return db.query(Shop).filter(Shop.slug == slug, Shop.is_active.is_(True)).first()

    @staticmethod
    def get_shop_by_id(db: Session, shop_id: str) -> Optional[Shop]:
        return db.query(Shop).filter(Shop.id == shop_id).first()

    @staticmethod
    def get_active_staff(db: Session, shop_id: str, staff_id: str) -> Optional[Staff]:
        """Active staff member owned by the shop"""
        return (
            db.query(Staff)
            .filter(Staff.id == staff_id, Staff.shop_id == shop_id, Staff.active.is_(True))
            .first()
        )

    @staticmethod
    def list_active_staff(db: Session, shop_id: str) -> list[Staff]:
        """Active staff in deterministic (name, id) order"""
        return (
            db.query(Staff)
            .filter(Staff.shop_id == shop_id, Staff.active.is_(True))
            .order_by(Staff.name.asc(), Staff.id.asc())
            .all()
        )

    @staticmethod
    def get_active_service(db: Session, shop_id: str, service_id: str) -> Optional[Service]:
        """Active service owned by the shop"""
        return (
            db.query(Service)
            .filter(Service.id == service_id, Service.shop_id == shop_id, Service.active.is_(True))
            .first()
        )

    @staticmethod
    def get_working_hours(db: Session, staff_id: str, day_of_week: int) -> Optional[WorkingHours]:
        return (
            db.query(WorkingHours)
            .filter(WorkingHours.staff_id == staff_id, WorkingHours.day_of_week == day_of_week)
            .first()
        )

    @staticmethod
    def get_overlapping_blocks(
        db: Session, staff_id: str, start_at: datetime, end_at: datetime
    ) -> list[Block]:
        """Blocks intersecting the half-open interval [start_at, end_at)"""
        return (
            db.query(Block)
            .filter(Block.staff_id == staff_id, Block.start_at < end_at, Block.end_at > start_at)
            .order_by(Block.start_at.asc())
            .all()
        )

    @staticmethod
    def get_overlapping_confirmed_bookings(
        db: Session,
        staff_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> list[Booking]:
        """Confirmed bookings intersecting the half-open interval [start_at, end_at)"""
        query = db.query(Booking).filter(
            Booking.staff_id == staff_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.start_at < end_at,
            Booking.end_at > start_at,
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_at.asc()).all()

"""Manage-token repository - Database operations for hashed manage tokens"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking, Customer, ManageToken, Service, Shop, Staff


class ManageTokenRepository:
    """Repository for manage tokens. Never commits; callers own the transaction."""

    @staticmethod
    def get_by_booking(db: Session, booking_id: str) -> Optional[ManageToken]:
        return db.query(ManageToken).filter(ManageToken.booking_id == booking_id).first()

    @staticmethod
    def get_by_hash(db: Session, token_hash: str) -> Optional[ManageToken]:
        return db.query(ManageToken).filter(ManageToken.token_hash == token_hash).first()

    @staticmethod
    def save(db: Session, token: ManageToken) -> ManageToken:
        db.add(token)
        db.flush()
        return token

    @staticmethod
    def load_booking_context(
        db: Session, booking_id: str
    ) -> tuple[Optional[Booking], Optional[Shop], Optional[Staff], Optional[Service], Optional[Customer]]:
        """Booking plus the rows it references; any of them may be missing"""
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            return None, None, None, None, None

        shop = db.query(Shop).filter(Shop.id == booking.shop_id).first()
        staff = db.query(Staff).filter(Staff.id == booking.staff_id).first()
        service = db.query(Service).filter(Service.id == booking.service_id).first()
        customer = db.query(Customer).filter(Customer.id == booking.customer_id).first()
        return booking, shop, staff, service, customer

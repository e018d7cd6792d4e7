"""Manage router - Customer self-service through the emailed manage link"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import BookingStatus
from ...rate_limiter import create_rate_limiter
from ...shared.errors import InvalidManageLink
from ...shared.timezones import format_local
from ..bookings.service import ACTOR_CUSTOMER, BookingService
from ..branding.service import resolve_template_for_shop
from .schemas import ManagedBookingResponse, ManageRescheduleRequest, ManageTokenRequest
from .service import ManageTokenService, ResolvedBooking

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/manage", tags=["Manage"])

manage_rate_limit = create_rate_limiter(limit=30, window_seconds=60, key_prefix="manage")


def get_manage_token_service(db: Session = Depends(get_db)) -> ManageTokenService:
    """Dependency injection for ManageTokenService"""
    return ManageTokenService(db)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


def resolve_or_404(tokens: ManageTokenService, raw_token: str) -> ResolvedBooking:
    resolved = tokens.resolve(raw_token)
    if resolved is None:
        raise InvalidManageLink()
    return resolved


def to_managed_response(resolved: ResolvedBooking) -> ManagedBookingResponse:
    booking, shop = resolved.booking, resolved.shop
    confirmed = booking.status == BookingStatus.CONFIRMED.value
    template = resolve_template_for_shop(shop).template
    return ManagedBookingResponse(
        bookingId=booking.id,
        status=booking.status,
        startAt=booking.start_at,
        endAt=booking.end_at,
        startLabelLocal=format_local(booking.start_at, shop.timezone),
        timezone=shop.timezone,
        shopName=shop.name,
        shopSlug=shop.slug,
        staffId=resolved.staff.id,
        staffName=resolved.staff.name,
        serviceId=resolved.service.id,
        serviceName=resolved.service.name,
        customerName=resolved.customer.name,
        canReschedule=confirmed,
        canCancel=confirmed,
        bookingNoun=template.labels.bookingNoun,
    )


@router.get("/{token}", response_model=ManagedBookingResponse)
async def get_managed_booking(
    token: str,
    tokens: ManageTokenService = Depends(get_manage_token_service),
    _: None = Depends(manage_rate_limit),
):
    """Booking behind a manage link; unknown and expired links look the same"""
    return to_managed_response(resolve_or_404(tokens, token))


@router.post("/reschedule", response_model=ManagedBookingResponse)
async def reschedule_managed_booking(
    data: ManageRescheduleRequest,
    tokens: ManageTokenService = Depends(get_manage_token_service),
    bookings: BookingService = Depends(get_booking_service),
    _: None = Depends(manage_rate_limit),
):
    resolved = resolve_or_404(tokens, data.token)
    resolved.booking = bookings.reschedule(
        resolved.booking, data.startAt, actor=ACTOR_CUSTOMER, raw_token=data.token
    )
    return to_managed_response(resolved)


@router.post("/cancel", response_model=ManagedBookingResponse)
async def cancel_managed_booking(
    data: ManageTokenRequest,
    tokens: ManageTokenService = Depends(get_manage_token_service),
    bookings: BookingService = Depends(get_booking_service),
    _: None = Depends(manage_rate_limit),
):
    resolved = resolve_or_404(tokens, data.token)
    bookings.cancel(resolved.booking, ACTOR_CUSTOMER, raw_token=data.token)
    return to_managed_response(resolved)

"""Booking router - Public booking and owner booking/block endpoints"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...auth import OwnerIdentity, get_current_owner
from ...database import get_db
from ...models import Block, Booking
from ...rate_limiter import create_rate_limiter
from ..outbox.payloads import manage_url
from .schemas import (
    BlockCreate,
    BlockResponse,
    BookingCreate,
    BookingCreatedResponse,
    BookingResponse,
    CancelResponse,
    MoveRequest,
    WalkInCreate,
)
from .service import BookingResult, BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])
owner_router = APIRouter(prefix="/owner", tags=["Owner"])

booking_rate_limit = create_rate_limiter(limit=10, window_seconds=60, key_prefix="booking")


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def to_booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        shopId=booking.shop_id,
        staffId=booking.staff_id,
        serviceId=booking.service_id,
        customerId=booking.customer_id,
        startAt=booking.start_at,
        endAt=booking.end_at,
        status=booking.status,
        source=booking.source,
    )


def to_created_response(result: BookingResult) -> BookingCreatedResponse:
    base = to_booking_response(result.booking)
    token = result.manage_token
    return BookingCreatedResponse(
        **base.model_dump(),
        manageToken=token,
        manageUrl=manage_url(token) if token else None,
    )


def to_block_response(block: Block) -> BlockResponse:
    return BlockResponse(
        id=block.id,
        staffId=block.staff_id,
        startAt=block.start_at,
        endAt=block.end_at,
        note=block.note,
    )


# ============================================================================
# PUBLIC
# ============================================================================


@router.post("", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(booking_rate_limit),
):
    """Book a slot. Returns the raw manage token exactly once."""
    if data.honeypot:
        logger.warning(f"🤖 Honeypot filled on booking for shop {data.shopSlug}, dropping silently")
        return JSONResponse(status_code=status.HTTP_200_OK, content={"ok": True})

    result = service.create_booking(
        shop_slug=data.shopSlug,
        staff_id=data.staffId,
        service_id=data.serviceId,
        start_at=data.startAt,
        name=data.name,
        phone=data.phone,
        email=data.email,
    )
    return to_created_response(result)


# ============================================================================
# OWNER
# ============================================================================


@owner_router.post("/walkins", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_walk_in(
    data: WalkInCreate,
    owner: OwnerIdentity = Depends(get_current_owner),
    service: BookingService = Depends(get_booking_service),
):
    result = service.create_walk_in(
        shop_id=owner.shop_id,
        staff_id=data.staffId,
        service_id=data.serviceId,
        start_at=data.startAt,
        name=data.name,
        phone=data.phone,
        email=data.email,
    )
    return to_created_response(result)


@owner_router.post("/bookings/{booking_id}/cancel", response_model=CancelResponse)
async def owner_cancel_booking(
    booking_id: str,
    owner: OwnerIdentity = Depends(get_current_owner),
    service: BookingService = Depends(get_booking_service),
):
    booking_status = service.owner_cancel(owner.shop_id, booking_id)
    return CancelResponse(bookingId=booking_id, status=booking_status)


@owner_router.post("/bookings/{booking_id}/move", response_model=BookingResponse)
async def owner_move_booking(
    booking_id: str,
    data: MoveRequest,
    owner: OwnerIdentity = Depends(get_current_owner),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.owner_move(owner.shop_id, booking_id, data.startAt)
    return to_booking_response(booking)


@owner_router.post("/blocks", response_model=BlockResponse, status_code=status.HTTP_201_CREATED)
async def create_block(
    data: BlockCreate,
    owner: OwnerIdentity = Depends(get_current_owner),
    service: BookingService = Depends(get_booking_service),
):
    block = service.create_block(
        shop_id=owner.shop_id,
        staff_id=data.staffId,
        start_at=data.startAt,
        end_at=data.endAt,
        note=data.note,
    )
    return to_block_response(block)

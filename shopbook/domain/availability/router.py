"""Availability router - Public slot lookup"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...rate_limiter import create_rate_limiter
from ...shared.errors import ValidationFailed
from ...shared.timezones import format_local, parse_local_date
from .schemas import AvailabilityResponse, SlotResponse
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])

ANY_STAFF = "any"

availability_rate_limit = create_rate_limiter(limit=60, window_seconds=60, key_prefix="availability")


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


@router.get("", response_model=AvailabilityResponse)
async def get_availability(
    shop: str = Query(..., min_length=1),
    staffId: str = Query(..., min_length=1),
    serviceId: str = Query(..., min_length=1),
    date: str = Query(..., pattern=r"^\d{4}-\d{2}-\d{2}$"),
    service: AvailabilityService = Depends(get_availability_service),
    _: None = Depends(availability_rate_limit),
):
    """Bookable slots for a staff member (or "any") and service on a shop-local date"""
    local_date = parse_local_date(date)
    if local_date is None:
        raise ValidationFailed("invalid_date", f"Invalid date: {date}")

    shop_row = service.get_shop_by_slug(shop)
    if staffId == ANY_STAFF:
        starts = service.get_slots_any_staff(shop_row, serviceId, local_date)
    else:
        starts = service.get_slots(shop_row, staffId, serviceId, local_date)

    return AvailabilityResponse(
        slots=[
            SlotResponse(startAt=start, labelLocal=format_local(start, shop_row.timezone, "%H:%M"))
            for start in starts
        ]
    )

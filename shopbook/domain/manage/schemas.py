"""Manage domain schemas - Customer self-service requests and views"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.timezones import ensure_utc


class ManageTokenRequest(BaseModel):
    token: str = Field(..., max_length=256)


class ManageRescheduleRequest(ManageTokenRequest):
    startAt: datetime

    @field_validator("startAt")
    @classmethod
    def to_utc(cls, v):
        return ensure_utc(v)


class ManagedBookingResponse(BaseModel):
    """What the customer sees on the manage page"""

    bookingId: str
    status: str
    startAt: datetime
    endAt: datetime
    startLabelLocal: str
    timezone: str
    shopName: str
    shopSlug: str
    staffId: str
    staffName: str
    serviceId: str
    serviceName: str
    customerName: str
    canReschedule: bool
    canCancel: bool
    bookingNoun: Optional[str] = None

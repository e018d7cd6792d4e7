"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.timezones import ensure_utc


class BookingCreate(BaseModel):
    """Public booking request"""

    shopSlug: str = Field(..., min_length=1, max_length=100)
    staffId: str = Field(..., min_length=1, max_length=36)  # staff id or "any"
    serviceId: str = Field(..., min_length=1, max_length=36)
    startAt: datetime
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=1, max_length=32)
    email: Optional[str] = Field(None, max_length=255)
    # Hidden form field; bots fill it, people don't
    honeypot: Optional[str] = None

    @field_validator("startAt")
    @classmethod
    def to_utc(cls, v):
        return ensure_utc(v)


class WalkInCreate(BaseModel):
    """Owner-entered walk-in"""

    staffId: str = Field(..., min_length=1, max_length=36)
    serviceId: str = Field(..., min_length=1, max_length=36)
    startAt: datetime
    name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=32)
    email: Optional[str] = Field(None, max_length=255)

    @field_validator("startAt")
    @classmethod
    def to_utc(cls, v):
        return ensure_utc(v)


class MoveRequest(BaseModel):
    startAt: datetime

    @field_validator("startAt")
    @classmethod
    def to_utc(cls, v):
        return ensure_utc(v)


class BlockCreate(BaseModel):
    staffId: str = Field(..., min_length=1, max_length=36)
    startAt: datetime
    endAt: datetime
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("startAt", "endAt")
    @classmethod
    def to_utc(cls, v):
        return ensure_utc(v)


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: str
    shopId: str
    staffId: str
    serviceId: str
    customerId: str
    startAt: datetime
    endAt: datetime
    status: str
    source: str


class BookingCreatedResponse(BookingResponse):
    manageToken: Optional[str] = None
    manageUrl: Optional[str] = None


class CancelResponse(BaseModel):
    bookingId: str
    status: str


class BlockResponse(BaseModel):
    id: str
    staffId: str
    startAt: datetime
    endAt: datetime
    note: Optional[str] = None

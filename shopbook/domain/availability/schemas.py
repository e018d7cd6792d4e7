"""Availability domain schemas - Pydantic models for responses"""

from datetime import datetime

from pydantic import BaseModel


class SlotResponse(BaseModel):
    """One bookable start instant"""

    startAt: datetime
    labelLocal: str


class AvailabilityResponse(BaseModel):
    slots: list[SlotResponse]

"""Outbox domain schemas - Operator views of notification rows"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class OutboxEntryResponse(BaseModel):
    id: str
    shopId: str
    bookingId: str
    eventType: str
    channel: str
    status: str
    attemptCount: int
    nextAttemptAt: datetime
    lastError: Optional[str] = None
    sentAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None
    idempotencyKey: str


class OutboxListResponse(BaseModel):
    entries: list[OutboxEntryResponse]
    total: int


class RetryResponse(BaseModel):
    ok: bool
    reason: Optional[str] = None


class NotificationCycleResponse(BaseModel):
    generated: int
    processed: int
    sent: int
    failed: int
    retried: int

    @classmethod
    def from_cycle(cls, result: dict[str, Any]) -> "NotificationCycleResponse":
        return cls(**{field: result.get(field, 0) for field in cls.model_fields})

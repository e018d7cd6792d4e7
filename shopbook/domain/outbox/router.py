"""Outbox router - Operator listing/retry and the HTTP-triggered notification cycle"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from ... import config
from ...auth import OwnerIdentity, require_admin
from ...database import get_db
from ...email_service import EmailTransport, get_transport
from ...models import OutboxEntry
from ...security_utils import constant_time_compare
from .repository import OutboxRepository
from .schemas import NotificationCycleResponse, OutboxEntryResponse, OutboxListResponse, RetryResponse
from .service import OutboxDispatcher, run_notification_cycle

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/admin/outbox", tags=["Admin"])
cron_router = APIRouter(prefix="/cron", tags=["Cron"])

OutboxStatusFilter = Literal["pending", "sent", "failed", "cancelled"]


def to_entry_response(entry: OutboxEntry) -> OutboxEntryResponse:
    return OutboxEntryResponse(
        id=entry.id,
        shopId=entry.shop_id,
        bookingId=entry.booking_id,
        eventType=entry.event_type,
        channel=entry.channel,
        status=entry.status,
        attemptCount=entry.attempt_count,
        nextAttemptAt=entry.next_attempt_at,
        lastError=entry.last_error,
        sentAt=entry.sent_at,
        createdAt=entry.created_at,
        idempotencyKey=entry.idempotency_key,
    )


# ============================================================================
# ADMIN
# ============================================================================


@admin_router.get("", response_model=OutboxListResponse)
async def list_outbox(
    status_filter: Optional[OutboxStatusFilter] = Query(None, alias="status"),
    booking_id: Optional[str] = Query(None, alias="bookingId"),
    limit: int = Query(100, ge=1, le=500),
    admin: OwnerIdentity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entries = OutboxRepository.list_entries(db, status=status_filter, booking_id=booking_id, limit=limit)
    return OutboxListResponse(entries=[to_entry_response(e) for e in entries], total=len(entries))


@admin_router.post("/{entry_id}/retry", response_model=RetryResponse)
async def retry_outbox_entry(
    entry_id: str,
    admin: OwnerIdentity = Depends(require_admin),
    db: Session = Depends(get_db),
    transport: EmailTransport = Depends(get_transport),
):
    result = OutboxDispatcher(db, transport).retry(entry_id)
    logger.info(f"🔁 Admin {admin.user_id} retried outbox {entry_id}: {result}")
    return RetryResponse(**result)


# ============================================================================
# CRON
# ============================================================================


def verify_cron_secret(x_cron_secret: Optional[str] = Header(None, alias="X-Cron-Secret")) -> None:
    if not config.CRON_SECRET:
        logger.error("❌ CRON_SECRET is not configured; refusing cron trigger")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Cron not configured")
    if not x_cron_secret or not constant_time_compare(x_cron_secret, config.CRON_SECRET):
        logger.warning("⚠️ Cron trigger with missing or wrong secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@cron_router.post("/send-reminders", response_model=NotificationCycleResponse)
async def send_reminders(
    _: None = Depends(verify_cron_secret),
    db: Session = Depends(get_db),
    transport: EmailTransport = Depends(get_transport),
):
    """Generate due reminders and deliver pending notifications"""
    result = await run_notification_cycle(db, transport)
    return NotificationCycleResponse.from_cycle(result)

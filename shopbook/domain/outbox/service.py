"""
Outbox delivery sweep

Pending rows are claimed one at a time, rendered from the booking's current
state and handed to the email transport. Each row's outcome is committed on
its own, so one bad row never rolls back the others. No database transaction
is held open while a send is in flight.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from ...config import EMAIL_SEND_TIMEOUT_SECONDS, OUTBOX_BATCH_SIZE
from ...email_service import EmailTransport
from ...email_templates import RenderedEmail, render_email
from ...models import BookingStatus, OutboxEntry, OutboxEventType, OutboxStatus
from ...shared.errors import NotFound
from ...shared.timezones import utcnow
from ..branding.schemas import ResolvedTemplate
from ..branding.service import resolve_template_for_shop
from ..manage.repository import ManageTokenRepository
from .payloads import iso_utc, manage_url, rebook_url
from .reminders import ReminderGenerator
from .repository import OutboxRepository

logger = logging.getLogger(__name__)

# Delay before attempt n+1 is BACKOFF_SCHEDULE[min(n, 4) - 1]
BACKOFF_SCHEDULE = (
    timedelta(minutes=5),
    timedelta(minutes=30),
    timedelta(hours=2),
    timedelta(hours=12),
)
MAX_ATTEMPTS = 5
LAST_ERROR_MAX_LEN = 2000

MISSING_RECIPIENT_ERROR = "No email for recipient"
MISSING_BOOKING_ERROR = "Shop or booking not found"

# A claimed row is invisible to other sweeps until this runs out
CLAIM_LEASE = timedelta(seconds=max(EMAIL_SEND_TIMEOUT_SECONDS * 3, 60))

# Events whose email links back to the manage page
TOKEN_EVENTS = (
    OutboxEventType.BOOKING_CONFIRMED.value,
    OutboxEventType.BOOKING_UPDATED.value,
    OutboxEventType.REMINDER_NEXT_DAY.value,
)

Renderer = Callable[[str, dict[str, Any], ResolvedTemplate], RenderedEmail]


def backoff_for(attempt: int) -> timedelta:
    """Delay after the given (1-based) failed attempt; non-decreasing, capped at the last step"""
    index = min(max(attempt, 1), len(BACKOFF_SCHEDULE)) - 1
    return BACKOFF_SCHEDULE[index]


def truncate_error(message: str) -> str:
    return (message or "")[:LAST_ERROR_MAX_LEN]


@dataclass
class SweepResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    retried: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "retried": self.retried,
        }


@dataclass
class PreparedDelivery:
    """Everything a send needs, detached from the session"""

    entry_id: str
    event_type: str
    to: Optional[str]
    context: dict[str, Any]
    branding: Optional[ResolvedTemplate]
    error: Optional[str] = None
    stale: bool = False


class OutboxDispatcher:
    """Delivers pending outbox rows through an EmailTransport"""

    def __init__(
        self,
        db: Session,
        transport: EmailTransport,
        renderer: Renderer = render_email,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.transport = transport
        self.renderer = renderer
        self.clock = clock
        self.repo = OutboxRepository()

    # ============================================
    # Sweep
    # ============================================

    async def run_delivery_sweep(
        self, now: Optional[datetime] = None, batch_size: int = OUTBOX_BATCH_SIZE
    ) -> SweepResult:
        """
        Process up to batch_size rows that are pending and due at `now`.

        Each row is claimed at the sweep's start plus the time elapsed since,
        so a lease taken late in a long sweep still runs its full length.
        """
        now = now or self.clock()
        started = self.clock()
        result = SweepResult()

        entry_ids = self.repo.get_due_ids(self.db, now, batch_size)
        self.db.commit()
        if not entry_ids:
            return result

        logger.info(f"📬 Outbox sweep: {len(entry_ids)} due row(s)")

        for entry_id in entry_ids:
            claimed_at = now + (self.clock() - started)
            outcome = await self.deliver(entry_id, claimed_at)
            if outcome is None:
                continue
            result.processed += 1
            if outcome == OutboxStatus.SENT.value:
                result.sent += 1
            elif outcome == OutboxStatus.FAILED.value:
                result.failed += 1
            elif outcome == OutboxStatus.PENDING.value:
                result.retried += 1

        logger.info(
            f"📬 Outbox sweep done: processed={result.processed} sent={result.sent} "
            f"failed={result.failed} retried={result.retried}"
        )
        return result

    async def deliver(self, entry_id: str, now: datetime) -> Optional[str]:
        """
        Claim, render and send one row. `now` is the claim time; the lease,
        the retry backoff and sent_at all run from it.

        Returns the row's resulting status ("sent", "failed", "pending" for a
        scheduled retry, "cancelled" for a stale reminder) or None when another
        sweep got to it first.
        """
        if not self.repo.claim(self.db, entry_id, now, now + CLAIM_LEASE):
            self.db.rollback()
            return None

        entry = self.repo.get_by_id(self.db, entry_id)
        prepared = self.prepare(entry)
        self.db.commit()

        if prepared.stale:
            return self._finish(entry_id, OutboxStatus.CANCELLED.value, now)
        if prepared.error:
            logger.warning(f"⚠️ Outbox {entry_id} failed permanently: {prepared.error}")
            return self._finish(entry_id, OutboxStatus.FAILED.value, now, error=prepared.error, count_attempt=True)

        try:
            rendered = self.renderer(prepared.event_type, prepared.context, prepared.branding)
            await self.transport.send(prepared.to, rendered.subject, rendered.html, rendered.text)
        except Exception as e:
            # Transport and render failures are both retried on the schedule
            logger.warning(f"⚠️ Outbox {entry_id} send failed: {str(e)}")
            return self._record_failure(entry_id, now, str(e) or e.__class__.__name__)

        logger.info(f"✅ Outbox {entry_id} ({prepared.event_type}) sent to {prepared.to}")
        return self._finish(entry_id, OutboxStatus.SENT.value, now, sent=True)

    # ============================================
    # Context
    # ============================================

    def prepare(self, entry: OutboxEntry) -> PreparedDelivery:
        """Merge the row's payload with the current booking, shop and customer."""
        payload = dict(entry.payload or {})
        booking, shop, staff, service, customer = ManageTokenRepository.load_booking_context(
            self.db, entry.booking_id
        )

        current_email = customer.email if customer else None
        to = (current_email or payload.get("toEmail") or payload.get("customerEmail") or "").strip() or None

        def failed(error: str) -> PreparedDelivery:
            return PreparedDelivery(entry.id, entry.event_type, to, payload, None, error=error)

        if not booking or not shop:
            return failed(MISSING_BOOKING_ERROR)

        # A reminder for a booking that no longer stands is dropped, recipient or not
        confirmed = booking.status == BookingStatus.CONFIRMED.value
        if entry.event_type == OutboxEventType.REMINDER_NEXT_DAY.value and not confirmed:
            return PreparedDelivery(entry.id, entry.event_type, to, payload, None, stale=True)

        if not to:
            return failed(MISSING_RECIPIENT_ERROR)

        context = dict(payload)
        context.update(
            {
                "bookingId": booking.id,
                "shopName": shop.name,
                "shopSlug": shop.slug,
                "shopPhone": shop.phone,
                "shopAddress": shop.address,
                "timezone": shop.timezone,
                "startAt": iso_utc(booking.start_at),
                "endAt": iso_utc(booking.end_at),
                "status": booking.status,
                "rebookUrl": rebook_url(shop.slug),
                "toEmail": to,
            }
        )
        if staff:
            context["staffName"] = staff.name
        if service:
            context["serviceName"] = service.name
        if customer:
            context["customerName"] = customer.name
            context["customerEmail"] = customer.email or context.get("customerEmail")

        context.pop("manageUrl", None)
        context.pop("manageToken", None)
        if entry.event_type in TOKEN_EVENTS and confirmed:
            raw_token = payload.get("manageToken") or self.repo.find_manage_token(self.db, booking.id)
            if raw_token:
                context["manageToken"] = raw_token
                context["manageUrl"] = manage_url(raw_token)

        return PreparedDelivery(
            entry.id,
            entry.event_type,
            to,
            context,
            resolve_template_for_shop(shop),
        )

    # ============================================
    # Outcomes
    # ============================================

    def _finish(
        self,
        entry_id: str,
        status: str,
        now: datetime,
        error: Optional[str] = None,
        sent: bool = False,
        count_attempt: bool = False,
    ) -> str:
        entry = self.repo.get_by_id(self.db, entry_id)
        entry.status = status
        if count_attempt:
            entry.attempt_count = (entry.attempt_count or 0) + 1
        if sent:
            entry.sent_at = now
            entry.last_error = None
        elif error is not None:
            entry.last_error = truncate_error(error)
        self.db.commit()
        return status

    def _record_failure(self, entry_id: str, now: datetime, error: str) -> str:
        entry = self.repo.get_by_id(self.db, entry_id)
        attempt = (entry.attempt_count or 0) + 1
        entry.attempt_count = attempt
        entry.last_error = truncate_error(error)
        entry.next_attempt_at = now + backoff_for(attempt)
        status = OutboxStatus.FAILED.value if attempt >= MAX_ATTEMPTS else OutboxStatus.PENDING.value
        entry.status = status
        if status == OutboxStatus.FAILED.value:
            logger.error(f"❌ Outbox {entry_id} gave up after {attempt} attempts")
        self.db.commit()
        return status

    # ============================================
    # Operator actions
    # ============================================

    def retry(self, entry_id: str, now: Optional[datetime] = None) -> dict[str, Any]:
        """
        Put a failed row back in the queue.

        Sent rows are left alone (reported as already_sent) and so are cancelled
        reminders, which would otherwise go out for a booking that no longer
        stands.
        """
        entry = self.repo.get_by_id(self.db, entry_id)
        if not entry:
            raise NotFound("outbox_entry_not_found", "Outbox entry not found")

        if entry.status == OutboxStatus.SENT.value:
            return {"ok": False, "reason": "already_sent"}
        if entry.status == OutboxStatus.CANCELLED.value:
            return {"ok": False, "reason": "cancelled"}

        entry.status = OutboxStatus.PENDING.value
        entry.next_attempt_at = now or utcnow()
        entry.last_error = None
        self.db.commit()
        logger.info(f"🔁 Outbox {entry_id} queued for retry")
        return {"ok": True}


async def run_notification_cycle(
    db: Session,
    transport: EmailTransport,
    renderer: Renderer = render_email,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    """Generate due reminders, then deliver. Shared by the cron route and the worker."""
    now = now or utcnow()
    generated = ReminderGenerator(db).generate(now)
    sweep = await OutboxDispatcher(db, transport, renderer).run_delivery_sweep(now)
    return {"generated": generated, **sweep.as_dict()}

"""Outbox repository - Database operations for notification outbox rows"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import OutboxEntry, OutboxEventType, OutboxStatus

logger = logging.getLogger(__name__)


class OutboxRepository:
    """Repository for outbox rows. Never commits; callers own the transaction."""

    @staticmethod
    def enqueue(
        db: Session,
        shop_id: str,
        booking_id: str,
        event_type: str,
        idempotency_key: str,
        payload: dict[str, Any],
        next_attempt_at: datetime,
    ) -> Optional[OutboxEntry]:
        """
        Insert a pending row inside a SAVEPOINT.

        A duplicate idempotency key is the dedup mechanism, not an error:
        the savepoint is rolled back and None is returned. Any other
        integrity failure propagates.
        """
        entry = OutboxEntry(
            shop_id=shop_id,
            booking_id=booking_id,
            event_type=event_type,
            channel="email",
            payload=payload,
            idempotency_key=idempotency_key,
            status=OutboxStatus.PENDING.value,
            attempt_count=0,
            next_attempt_at=next_attempt_at,
        )
        try:
            with db.begin_nested():
                db.add(entry)
                db.flush()
        except IntegrityError:
            exists = (
                db.query(OutboxEntry.id)
                .filter(OutboxEntry.idempotency_key == idempotency_key)
                .first()
            )
            if exists:
                logger.info(f"🔁 Outbox row already exists for {idempotency_key}, skipping")
                return None
            raise
        return entry

    @staticmethod
    def cancel_pending_reminders(db: Session, booking_id: str) -> int:
        """Pending REMINDER_NEXT_DAY rows for a booking become cancelled"""
        return (
            db.query(OutboxEntry)
            .filter(
                OutboxEntry.booking_id == booking_id,
                OutboxEntry.event_type == OutboxEventType.REMINDER_NEXT_DAY.value,
                OutboxEntry.status == OutboxStatus.PENDING.value,
            )
            .update({OutboxEntry.status: OutboxStatus.CANCELLED.value}, synchronize_session="fetch")
        )

    @staticmethod
    def get_due_ids(db: Session, now: datetime, limit: int) -> list[str]:
        """Ids of pending rows due at or before now, oldest first"""
        rows = (
            db.query(OutboxEntry.id)
            .filter(
                OutboxEntry.status == OutboxStatus.PENDING.value,
                OutboxEntry.next_attempt_at <= now,
            )
            .order_by(OutboxEntry.next_attempt_at.asc(), OutboxEntry.created_at.asc())
            .limit(limit)
            .all()
        )
        return [row.id for row in rows]

    @staticmethod
    def claim(db: Session, entry_id: str, now: datetime, lease_until: datetime) -> bool:
        """
        Take a due row for delivery by pushing next_attempt_at to lease_until.

        Conditional on the row still being pending and due, so of two concurrent
        sweeps only one wins. A sweep that dies mid-send leaves the row to be
        picked up again once the lease runs out.
        """
        updated = (
            db.query(OutboxEntry)
            .filter(
                OutboxEntry.id == entry_id,
                OutboxEntry.status == OutboxStatus.PENDING.value,
                OutboxEntry.next_attempt_at <= now,
            )
            .update({OutboxEntry.next_attempt_at: lease_until}, synchronize_session="fetch")
        )
        return updated == 1

    @staticmethod
    def find_manage_token(db: Session, booking_id: str) -> Optional[str]:
        """Raw manage token carried by an earlier row for the same booking, if any"""
        rows = (
            db.query(OutboxEntry.payload)
            .filter(OutboxEntry.booking_id == booking_id)
            .order_by(OutboxEntry.created_at.desc())
            .all()
        )
        for (payload,) in rows:
            if isinstance(payload, dict) and payload.get("manageToken"):
                return payload["manageToken"]
        return None

    @staticmethod
    def get_by_id(db: Session, entry_id: str) -> Optional[OutboxEntry]:
        return db.query(OutboxEntry).filter(OutboxEntry.id == entry_id).first()

    @staticmethod
    def list_entries(
        db: Session,
        status: Optional[str] = None,
        booking_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[OutboxEntry]:
        """Most recent rows first, for operators"""
        query = db.query(OutboxEntry)
        if status:
            query = query.filter(OutboxEntry.status == status)
        if booking_id:
            query = query.filter(OutboxEntry.booking_id == booking_id)
        return query.order_by(OutboxEntry.created_at.desc()).limit(limit).all()

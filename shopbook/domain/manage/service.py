"""Manage-token service - Issue, revoke and resolve customer self-service tokens"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...config import MANAGE_TOKEN_TTL_DAYS
from ...models import Booking, Customer, ManageToken, Service, Shop, Staff
from ...security_utils import (
    constant_time_compare,
    generate_manage_token,
    hash_manage_token,
    is_plausible_manage_token,
)
from ...shared.timezones import utcnow
from .repository import ManageTokenRepository

logger = logging.getLogger(__name__)

# Compared against when no row matched, so the miss path does the same work
_EMPTY_HASH = "0" * 64


@dataclass
class ResolvedBooking:
    booking: Booking
    shop: Shop
    staff: Staff
    service: Service
    customer: Customer


class ManageTokenService:
    """
    Per-booking bearer tokens for reschedule/cancel without a login session.

    Only sha256(raw + pepper) is stored. Issuing again replaces the stored hash,
    so the previous raw token stops resolving; links already delivered with the
    old token are not otherwise invalidated.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = ManageTokenRepository()

    def issue(self, booking_id: str, now: Optional[datetime] = None) -> str:
        """Create or replace the booking's token; returns the raw token. Does not commit."""
        now = now or utcnow()
        raw_token = generate_manage_token()

        token = self.repo.get_by_booking(self.db, booking_id)
        if token is None:
            token = ManageToken(booking_id=booking_id)
        token.token_hash = hash_manage_token(raw_token)
        token.expires_at = now + timedelta(days=MANAGE_TOKEN_TTL_DAYS)
        token.revoked_at = None
        self.repo.save(self.db, token)

        logger.info(f"🔑 Manage token issued for booking {booking_id}")
        return raw_token

    def revoke(self, booking_id: str, now: Optional[datetime] = None) -> bool:
        """Revoke the booking's token. Does not commit."""
        token = self.repo.get_by_booking(self.db, booking_id)
        if token is None or token.revoked_at is not None:
            return False
        token.revoked_at = now or utcnow()
        self.repo.save(self.db, token)
        logger.info(f"🔒 Manage token revoked for booking {booking_id}")
        return True

    def resolve(self, raw_token: Any, now: Optional[datetime] = None) -> Optional[ResolvedBooking]:
        """
        Resolve a raw token to its booking context.

        Returns None for unknown, mismatched, revoked, expired or malformed
        tokens alike; never raises on bad input.
        """
        now = now or utcnow()
        candidate = raw_token if isinstance(raw_token, str) else ""

        token_hash = hash_manage_token(candidate)
        token = self.repo.get_by_hash(self.db, token_hash)

        matched = constant_time_compare(token.token_hash if token else _EMPTY_HASH, token_hash)
        if not (matched and token is not None and is_plausible_manage_token(candidate)):
            return None
        if token.revoked_at is not None or token.expires_at <= now:
            return None

        booking, shop, staff, service, customer = self.repo.load_booking_context(self.db, token.booking_id)
        if not (booking and shop and staff and service and customer):
            logger.warning(f"⚠️ Manage token for booking {token.booking_id} references missing rows")
            return None

        return ResolvedBooking(booking=booking, shop=shop, staff=staff, service=service, customer=customer)

"""Outbox idempotency keys and event payloads"""

from datetime import date, datetime
from typing import Any, Optional

from ...config import APP_BASE_URL
from ...models import Booking, Customer, Service, Shop, Staff
from ...shared.timezones import ensure_utc


def confirmed_key(booking_id: str, walk_in: bool = False) -> str:
    suffix = "confirmed_walkin" if walk_in else "confirmed"
    return f"booking:{booking_id}:{suffix}"


def updated_key(booking_id: str, new_start_at: datetime) -> str:
    return f"booking:{booking_id}:updated:{iso_utc(new_start_at)}"


def cancelled_key(booking_id: str, actor: str) -> str:
    return f"booking:{booking_id}:cancelled_by_{actor}"


def reminder_key(booking_id: str, local_day: date) -> str:
    return f"booking:{booking_id}:reminder_next_day:{local_day.isoformat()}"


def iso_utc(instant: datetime) -> str:
    """ISO-8601 UTC with a Z suffix, e.g. 2025-03-01T09:00:00Z"""
    return ensure_utc(instant).strftime("%Y-%m-%dT%H:%M:%SZ")


def manage_url(raw_token: str, base_url: str = APP_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/m/{raw_token}"


def rebook_url(shop_slug: str, base_url: str = APP_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/{shop_slug}"


def build_booking_payload(
    booking: Booking,
    shop: Shop,
    staff: Optional[Staff],
    service: Optional[Service],
    customer: Optional[Customer],
    raw_token: Optional[str] = None,
    **extra: Any,
) -> dict[str, Any]:
    """
    Snapshot of a booking for an outbox row.

    The delivery sweep reloads shop, booking and customer before sending, so
    this snapshot only fills gaps (e.g. the raw manage token, which is never
    stored anywhere else).
    """
    payload: dict[str, Any] = {
        "bookingId": booking.id,
        "shopName": shop.name,
        "shopSlug": shop.slug,
        "timezone": shop.timezone,
        "startAt": iso_utc(booking.start_at),
        "endAt": iso_utc(booking.end_at),
        "staffName": staff.name if staff else None,
        "serviceName": service.name if service else None,
        "customerName": customer.name if customer else None,
        "customerEmail": customer.email if customer else None,
        "rebookUrl": rebook_url(shop.slug),
    }
    if raw_token:
        payload["manageToken"] = raw_token
        payload["manageUrl"] = manage_url(raw_token)
    payload.update(extra)
    return payload

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, FakeTransport, at
from shopbook.domain.bookings.service import ACTOR_CUSTOMER, BookingService
from shopbook.domain.outbox.repository import OutboxRepository
from shopbook.domain.outbox.service import (
    BACKOFF_SCHEDULE,
    LAST_ERROR_MAX_LEN,
    MAX_ATTEMPTS,
    MISSING_RECIPIENT_ERROR,
    OutboxDispatcher,
    backoff_for,
)
from shopbook.models import OutboxEntry, OutboxEventType, OutboxStatus
from shopbook.shared.errors import NotFound


def _book(db, seeded, start_at=None, email="ayse@example.com"):
    return BookingService(db).create_booking(
        shop_slug=seeded.slug,
        staff_id=seeded.staff_ids[0],
        service_id=seeded.service_id,
        start_at=start_at or at(9),
        name="Ayse",
        phone="05321234567",
        email=email,
        now=NOW,
    )


def _entries(db, booking_id, event_type=None):
    query = db.query(OutboxEntry).filter(OutboxEntry.booking_id == booking_id)
    if event_type:
        query = query.filter(OutboxEntry.event_type == event_type)
    return query.order_by(OutboxEntry.created_at.asc()).all()


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _sweep(db, transport, now=NOW):
    return asyncio.run(OutboxDispatcher(db, transport, clock=_Clock(now)).run_delivery_sweep(now=now))


def test_backoff_is_non_decreasing_and_capped() -> None:
    delays = [backoff_for(attempt) for attempt in range(1, 10)]
    assert delays == sorted(delays)
    assert delays[:4] == list(BACKOFF_SCHEDULE)
    assert backoff_for(4) == backoff_for(9) == timedelta(hours=12)


def test_enqueue_absorbs_duplicate_keys(db, shop) -> None:
    booking = _book(db, shop).booking
    key = f"booking:{booking.id}:confirmed"

    again = OutboxRepository.enqueue(
        db,
        shop_id=shop.shop_id,
        booking_id=booking.id,
        event_type=OutboxEventType.BOOKING_CONFIRMED.value,
        idempotency_key=key,
        payload={"other": True},
        next_attempt_at=NOW,
    )
    db.commit()

    assert again is None
    (entry,) = _entries(db, booking.id)
    assert "other" not in entry.payload


def test_sweep_sends_confirmation_with_manage_link(db, shop, transport) -> None:
    result = _book(db, shop)

    sweep = _sweep(db, transport)

    assert (sweep.processed, sweep.sent, sweep.failed, sweep.retried) == (1, 1, 0, 0)
    (entry,) = _entries(db, result.booking.id)
    assert entry.status == OutboxStatus.SENT.value
    assert entry.sent_at == NOW
    assert entry.last_error is None

    (message,) = transport.sent
    assert message["to"] == "ayse@example.com"
    assert "confirmed" in message["subject"].lower()
    assert f"/m/{result.manage_token}" in message["text"]
    assert "2030-03-05 09:00" in message["text"]

    # Nothing left to do
    assert _sweep(db, transport).processed == 0


def test_rows_not_yet_due_are_left_alone(db, shop, transport) -> None:
    _book(db, shop)
    assert _sweep(db, transport, now=NOW - timedelta(minutes=1)).processed == 0
    assert transport.calls == 0


def test_transient_failures_back_off_until_terminal_failure(db, shop) -> None:
    booking = _book(db, shop).booking
    transport = FakeTransport(fail_times=100)

    now = NOW
    gaps, outcomes = [], []
    for attempt in range(1, MAX_ATTEMPTS + 1):
        sweep = _sweep(db, transport, now=now)
        outcomes.append((sweep.retried, sweep.failed))
        (entry,) = _entries(db, booking.id)
        assert entry.attempt_count == attempt
        assert entry.last_error == "smtp down"
        gaps.append(entry.next_attempt_at - now)
        now = entry.next_attempt_at

    assert gaps == [
        timedelta(minutes=5),
        timedelta(minutes=30),
        timedelta(hours=2),
        timedelta(hours=12),
        timedelta(hours=12),
    ]
    assert outcomes == [(1, 0)] * (MAX_ATTEMPTS - 1) + [(0, 1)]
    assert entry.status == OutboxStatus.FAILED.value

    assert _sweep(db, transport, now=now + timedelta(days=1)).processed == 0
    assert transport.calls == MAX_ATTEMPTS


def test_a_retry_that_succeeds_clears_the_error(db, shop) -> None:
    booking = _book(db, shop).booking
    transport = FakeTransport(fail_times=1)

    _sweep(db, transport)
    _sweep(db, transport, now=NOW + timedelta(minutes=5))

    (entry,) = _entries(db, booking.id)
    assert entry.status == OutboxStatus.SENT.value
    assert entry.attempt_count == 1
    assert entry.last_error is None


def test_long_errors_are_truncated(db, shop) -> None:
    booking = _book(db, shop).booking
    _sweep(db, FakeTransport(fail_times=1, error="x" * 5000))

    (entry,) = _entries(db, booking.id)
    assert len(entry.last_error) == LAST_ERROR_MAX_LEN


def test_missing_recipient_fails_without_retry(db, shop, transport) -> None:
    booking = _book(db, shop, email=None).booking

    sweep = _sweep(db, transport)

    assert sweep.failed == 1
    (entry,) = _entries(db, booking.id)
    assert entry.status == OutboxStatus.FAILED.value
    assert entry.last_error == MISSING_RECIPIENT_ERROR
    assert entry.attempt_count == 1
    assert transport.calls == 0


def test_update_email_reuses_the_manage_token_from_earlier_rows(db, shop, transport) -> None:
    result = _book(db, shop)
    _sweep(db, transport)

    BookingService(db).owner_move(shop.shop_id, result.booking.id, at(10, 30), now=NOW)
    (updated,) = _entries(db, result.booking.id, OutboxEventType.BOOKING_UPDATED.value)
    assert "manageToken" not in updated.payload

    _sweep(db, transport)

    message = transport.sent[-1]
    assert "updated" in message["subject"].lower()
    assert f"/m/{result.manage_token}" in message["text"]
    assert "10:30" in message["text"]


def test_cancellation_email_has_no_manage_link(db, shop, transport) -> None:
    result = _book(db, shop)
    BookingService(db).cancel(result.booking, ACTOR_CUSTOMER, now=NOW)

    _sweep(db, transport)

    cancel_message = next(m for m in transport.sent if "cancelled" in m["subject"].lower())
    assert "/m/" not in cancel_message["text"]
    assert "cancelled as requested" in cancel_message["text"]


def test_reminder_for_a_cancelled_booking_is_dropped(db, shop, transport) -> None:
    result = _book(db, shop)
    booking_id = result.booking.id
    BookingService(db).cancel(result.booking, ACTOR_CUSTOMER, now=NOW)
    OutboxRepository.enqueue(
        db,
        shop_id=shop.shop_id,
        booking_id=booking_id,
        event_type=OutboxEventType.REMINDER_NEXT_DAY.value,
        idempotency_key=f"booking:{booking_id}:reminder_next_day:2030-03-05",
        payload={},
        next_attempt_at=NOW,
    )
    db.commit()

    _sweep(db, transport)

    (reminder,) = _entries(db, booking_id, OutboxEventType.REMINDER_NEXT_DAY.value)
    assert reminder.status == OutboxStatus.CANCELLED.value
    assert not any("reminder" in m["subject"].lower() for m in transport.sent)


def test_reminder_for_a_cancelled_booking_without_email_is_dropped_not_failed(db, shop, transport) -> None:
    result = _book(db, shop, email=None)
    booking_id = result.booking.id
    BookingService(db).cancel(result.booking, ACTOR_CUSTOMER, now=NOW)
    OutboxRepository.enqueue(
        db,
        shop_id=shop.shop_id,
        booking_id=booking_id,
        event_type=OutboxEventType.REMINDER_NEXT_DAY.value,
        idempotency_key=f"booking:{booking_id}:reminder_next_day:2030-03-05",
        payload={},
        next_attempt_at=NOW,
    )
    db.commit()

    _sweep(db, transport)

    (reminder,) = _entries(db, booking_id, OutboxEventType.REMINDER_NEXT_DAY.value)
    assert reminder.status == OutboxStatus.CANCELLED.value
    assert reminder.last_error is None
    assert reminder.attempt_count == 0


def test_claim_is_granted_once(db, shop) -> None:
    booking = _book(db, shop).booking
    (entry,) = _entries(db, booking.id)
    entry_id = entry.id

    lease = NOW + timedelta(minutes=1)
    assert OutboxRepository.claim(db, entry_id, NOW, lease) is True
    assert OutboxRepository.claim(db, entry_id, NOW, lease) is False
    db.commit()


def test_lease_runs_from_claim_time_in_a_slow_sweep(session_factory, shop) -> None:
    with session_factory() as s:
        booking_ids = [_book(s, shop, start_at=at(hour)).booking.id for hour in (9, 10, 11)]

    clock = _Clock(NOW)
    later = NOW + timedelta(seconds=90)
    other = FakeTransport()
    overlapping = []

    class SlowTransport(FakeTransport):
        async def send(self, to, subject, html, text):
            clock.now += timedelta(seconds=45)
            if self.calls == 1:
                # Another sweep starts while this one is still mailing the second row
                with session_factory() as second:
                    overlapping.append(
                        await OutboxDispatcher(second, other, clock=_Clock(later)).run_delivery_sweep(now=later)
                    )
            return await super().send(to, subject, html, text)

    slow = SlowTransport()
    with session_factory() as first:
        sweep = asyncio.run(OutboxDispatcher(first, slow, clock=clock).run_delivery_sweep(now=NOW))

    (other_sweep,) = overlapping
    assert (sweep.sent, other_sweep.sent) == (2, 1)
    assert len(slow.sent) + len(other.sent) == len(booking_ids)

    with session_factory() as s:
        for booking_id in booking_ids:
            (entry,) = _entries(s, booking_id)
            assert entry.status == OutboxStatus.SENT.value


def test_operator_retry(db, shop) -> None:
    booking = _book(db, shop, email=None).booking
    _sweep(db, FakeTransport())
    (entry,) = _entries(db, booking.id)
    entry_id = entry.id
    assert entry.status == OutboxStatus.FAILED.value

    later = NOW + timedelta(hours=1)
    assert OutboxDispatcher(db, FakeTransport()).retry(entry_id, now=later) == {"ok": True}
    entry = db.get(OutboxEntry, entry_id)
    assert entry.status == OutboxStatus.PENDING.value
    assert entry.next_attempt_at == later
    assert entry.last_error is None

    entry.status = OutboxStatus.SENT.value
    db.commit()
    assert OutboxDispatcher(db, FakeTransport()).retry(entry_id) == {"ok": False, "reason": "already_sent"}

    with pytest.raises(NotFound):
        OutboxDispatcher(db, FakeTransport()).retry("no-such-entry")

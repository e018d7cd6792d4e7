import asyncio
from datetime import time, timedelta

from conftest import NOW, FakeTransport, add_booking, at, seed_shop
from shopbook.domain.outbox.reminders import ReminderGenerator
from shopbook.domain.outbox.service import run_notification_cycle
from shopbook.models import BookingStatus, OutboxEntry, OutboxEventType, OutboxStatus

# 18:00 UTC on Monday 2030-03-04; reminders cover Tuesday
EVENING = NOW.replace(hour=18)


def _reminders(db):
    return (
        db.query(OutboxEntry)
        .filter(OutboxEntry.event_type == OutboxEventType.REMINDER_NEXT_DAY.value)
        .order_by(OutboxEntry.idempotency_key.asc())
        .all()
    )


def test_one_reminder_per_booking_and_runs_are_idempotent(db, shop) -> None:
    first = add_booking(db, shop, at(9))
    second = add_booking(db, shop, at(10))

    assert ReminderGenerator(db).generate(EVENING) == 2
    assert ReminderGenerator(db).generate(EVENING + timedelta(minutes=5)) == 0

    keys = sorted(r.idempotency_key for r in _reminders(db))
    assert keys == sorted(
        [
            f"booking:{first}:reminder_next_day:2030-03-05",
            f"booking:{second}:reminder_next_day:2030-03-05",
        ]
    )


def test_nothing_before_the_local_send_time(db, shop) -> None:
    add_booking(db, shop, at(9))

    assert ReminderGenerator(db).generate(EVENING - timedelta(minutes=1)) == 0
    assert _reminders(db) == []


def test_only_confirmed_bookings_inside_tomorrow(db, shop) -> None:
    add_booking(db, shop, at(9), status=BookingStatus.CANCELLED_BY_SHOP.value)
    add_booking(db, shop, at(9, day=6))
    add_booking(db, shop, at(23, 45, day=5), minutes=30)  # ends after local midnight
    add_booking(db, shop, at(9, day=4))

    assert ReminderGenerator(db).generate(EVENING) == 0


def test_send_time_and_tomorrow_follow_the_shop_zone(db) -> None:
    # Istanbul is UTC+3: 15:00 UTC is 18:00 local, tomorrow is 2030-03-05 local
    seeded = seed_shop(db, slug="istanbul", tz="Europe/Istanbul")
    booking_id = add_booking(db, seeded, at(6))  # 09:00 local

    assert ReminderGenerator(db).generate(NOW.replace(hour=14, minute=59)) == 0
    assert ReminderGenerator(db).generate(NOW.replace(hour=15)) == 1
    (reminder,) = _reminders(db)
    assert reminder.idempotency_key == f"booking:{booking_id}:reminder_next_day:2030-03-05"


def test_disabled_shops_and_custom_send_times(db) -> None:
    off = seed_shop(db, slug="quiet", reminder_next_day_enabled=False)
    early = seed_shop(db, slug="early", reminder_next_day_send_time_local=time(8, 0))
    add_booking(db, off, at(9))
    add_booking(db, early, at(9))

    assert ReminderGenerator(db).generate(NOW.replace(hour=8)) == 1
    (reminder,) = _reminders(db)
    assert reminder.shop_id == early.shop_id


def test_notification_cycle_generates_then_delivers(db, shop) -> None:
    add_booking(db, shop, at(9))
    transport = FakeTransport()

    summary = asyncio.run(run_notification_cycle(db, transport, now=EVENING))

    assert summary == {"generated": 1, "processed": 1, "sent": 1, "failed": 0, "retried": 0}
    (reminder,) = _reminders(db)
    assert reminder.status == OutboxStatus.SENT.value
    assert "reminder" in transport.sent[0]["subject"].lower()

    again = asyncio.run(run_notification_cycle(db, transport, now=EVENING + timedelta(minutes=5)))
    assert again["generated"] == 0
    assert len(transport.sent) == 1

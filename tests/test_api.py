from conftest import add_booking, at, owner_headers, seed_shop
from shopbook import config
from shopbook.models import Booking, OutboxEntry, OutboxStatus


def _booking_body(seeded, start="2030-03-05T09:00:00Z", **extra):
    body = {
        "shopSlug": seeded.slug,
        "staffId": seeded.staff_ids[0],
        "serviceId": seeded.service_id,
        "startAt": start,
        "name": "Ayse",
        "phone": "0532 123 45 67",
        "email": "ayse@example.com",
    }
    body.update(extra)
    return body


def test_shop_profile(client, shop) -> None:
    resp = client.get(f"/shops/{shop.slug}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["template"]["labels"]["providerLabel"] == "Barber"
    assert data["branding"]["accentColor"] == "#111827"
    assert [s["id"] for s in data["staff"]] == shop.staff_ids
    assert data["services"][0]["durationMinutes"] == 30

    assert client.get("/shops/nope").status_code == 404


def test_availability_endpoint(client, shop) -> None:
    params = {"shop": shop.slug, "staffId": shop.staff_ids[0], "serviceId": shop.service_id, "date": "2030-03-05"}

    resp = client.get("/availability", params=params)

    assert resp.status_code == 200
    slots = resp.json()["slots"]
    assert [s["labelLocal"] for s in slots] == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"]
    assert slots[0]["startAt"].startswith("2030-03-05T09:00:00")

    any_resp = client.get("/availability", params={**params, "staffId": "any"})
    assert len(any_resp.json()["slots"]) == 6


def test_availability_validation(client, shop) -> None:
    params = {"shop": shop.slug, "staffId": shop.staff_ids[0], "serviceId": shop.service_id}

    resp = client.get("/availability", params={**params, "date": "2030-02-30"})
    assert resp.status_code == 400
    assert resp.json() == {"detail": "invalid_date"}

    assert client.get("/availability", params={**params, "date": "05/03/2030"}).status_code == 422

    resp = client.get("/availability", params={**params, "date": "2030-03-05", "serviceId": "nope"})
    assert resp.status_code == 400
    assert resp.json() == {"detail": "invalid_service"}

    resp = client.get("/availability", params={**params, "date": "2030-03-05", "shop": "nope"})
    assert resp.status_code == 404


def test_booking_then_slot_taken(client, shop) -> None:
    first = client.post("/bookings", json=_booking_body(shop))
    assert first.status_code == 201
    data = first.json()
    assert data["status"] == "confirmed"
    assert len(data["manageToken"]) == 64
    assert data["manageUrl"].endswith(data["manageToken"])

    second = client.post("/bookings", json=_booking_body(shop, phone="05329876543"))
    assert second.status_code == 409
    assert second.json() == {"detail": "slot_taken"}

    off_grid = client.post("/bookings", json=_booking_body(shop, start="2030-03-05T10:10:00Z"))
    assert off_grid.status_code == 400
    assert off_grid.json() == {"detail": "invalid_slot"}


def test_honeypot_submissions_are_dropped_quietly(client, shop, session_factory) -> None:
    resp = client.post("/bookings", json=_booking_body(shop, honeypot="http://spam.example"))

    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    with session_factory() as s:
        assert s.query(Booking).count() == 0


def test_manage_link_view_reschedule_and_cancel(client, shop) -> None:
    token = client.post("/bookings", json=_booking_body(shop)).json()["manageToken"]

    view = client.get(f"/manage/{token}")
    assert view.status_code == 200
    assert view.json()["canCancel"] is True
    assert view.json()["startLabelLocal"] == "2030-03-05 09:00"

    moved = client.post("/manage/reschedule", json={"token": token, "startAt": "2030-03-05T10:30:00Z"})
    assert moved.status_code == 200
    assert moved.json()["startLabelLocal"] == "2030-03-05 10:30"

    outside = client.post("/manage/reschedule", json={"token": token, "startAt": "2030-03-05T16:00:00Z"})
    assert outside.status_code == 400
    assert outside.json() == {"detail": "outside_working_hours"}

    cancelled = client.post("/manage/cancel", json={"token": token})
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled_by_customer"
    assert cancelled.json()["canReschedule"] is False

    # Cancelling twice is harmless
    assert client.post("/manage/cancel", json={"token": token}).json()["status"] == "cancelled_by_customer"


def test_bad_manage_links_all_look_the_same(client, shop) -> None:
    for token in ("nope", "f" * 64):
        resp = client.get(f"/manage/{token}")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "invalid_manage_link"}

    resp = client.post("/manage/cancel", json={"token": "f" * 64})
    assert resp.status_code == 404


def test_owner_routes_require_a_shop_token(client, shop) -> None:
    body = {"staffId": shop.staff_ids[0], "serviceId": shop.service_id, "startAt": "2030-03-05T09:00:00Z"}

    assert client.post("/owner/walkins", json=body).status_code == 401
    bad = client.post("/owner/walkins", json=body, headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401
    unknown_shop = client.post("/owner/walkins", json=body, headers=owner_headers("no-such-shop"))
    assert unknown_shop.status_code == 403


def test_owner_walk_in_block_move_and_cancel(client, shop, session_factory) -> None:
    headers = owner_headers(shop.shop_id)

    walk_in = client.post(
        "/owner/walkins",
        json={"staffId": shop.staff_ids[0], "serviceId": shop.service_id, "startAt": "2030-03-05T09:00:00Z"},
        headers=headers,
    )
    assert walk_in.status_code == 201
    assert walk_in.json()["source"] == "walk_in"
    assert walk_in.json()["manageToken"] is None
    booking_id = walk_in.json()["id"]

    block = client.post(
        "/owner/blocks",
        json={"staffId": shop.staff_ids[0], "startAt": "2030-03-05T10:00:00Z", "endAt": "2030-03-05T11:00:00Z"},
        headers=headers,
    )
    assert block.status_code == 201

    onto_block = client.post(
        f"/owner/bookings/{booking_id}/move", json={"startAt": "2030-03-05T10:30:00Z"}, headers=headers
    )
    assert onto_block.status_code == 409
    assert onto_block.json() == {"detail": "blocked"}

    moved = client.post(
        f"/owner/bookings/{booking_id}/move", json={"startAt": "2030-03-05T11:30:00Z"}, headers=headers
    )
    assert moved.status_code == 200
    assert moved.json()["startAt"].startswith("2030-03-05T11:30:00")

    cancelled = client.post(f"/owner/bookings/{booking_id}/cancel", headers=headers)
    assert cancelled.json() == {"bookingId": booking_id, "status": "cancelled_by_shop"}

    with session_factory() as s:
        assert s.get(Booking, booking_id).status == "cancelled_by_shop"


def test_owner_cannot_reach_other_shops(client, shop, session_factory) -> None:
    with session_factory() as s:
        other = seed_shop(s, slug="other-shop")
        booking_id = add_booking(s, other, at(9))

    resp = client.post(f"/owner/bookings/{booking_id}/cancel", headers=owner_headers(shop.shop_id))
    assert resp.status_code == 404
    assert resp.json() == {"detail": "booking_not_found"}


def test_admin_outbox_listing_and_retry(client, shop) -> None:
    client.post("/bookings", json=_booking_body(shop, email=None))

    assert client.get("/admin/outbox", headers=owner_headers(shop.shop_id)).status_code == 403

    admin = owner_headers(shop.shop_id, role="admin")
    listing = client.get("/admin/outbox", params={"status": "pending"}, headers=admin)
    assert listing.status_code == 200
    (entry,) = listing.json()["entries"]
    assert entry["eventType"] == "BOOKING_CONFIRMED"

    retry = client.post(f"/admin/outbox/{entry['id']}/retry", headers=admin)
    assert retry.json() == {"ok": True, "reason": None}

    assert client.post("/admin/outbox/nope/retry", headers=admin).status_code == 404
    assert client.get("/admin/outbox", params={"status": "bogus"}, headers=admin).status_code == 422


def test_cron_trigger(client, shop, transport, session_factory, monkeypatch) -> None:
    client.post("/bookings", json=_booking_body(shop))

    monkeypatch.setattr(config, "CRON_SECRET", None)
    assert client.post("/cron/send-reminders").status_code == 503

    monkeypatch.setattr(config, "CRON_SECRET", "s3cret")
    assert client.post("/cron/send-reminders").status_code == 401
    assert client.post("/cron/send-reminders", headers={"X-Cron-Secret": "wrong"}).status_code == 401

    resp = client.post("/cron/send-reminders", headers={"X-Cron-Secret": "s3cret"})
    assert resp.status_code == 200
    assert resp.json()["sent"] == 1
    assert transport.sent[0]["to"] == "ayse@example.com"

    with session_factory() as s:
        assert s.query(OutboxEntry).one().status == OutboxStatus.SENT.value


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "healthy"}

from shopbook.domain.branding.registry import TEMPLATES
from shopbook.domain.branding.service import resolve_template
from shopbook.email_templates import render_email

CONTEXT = {
    "bookingId": "b-1",
    "shopName": "Kuafor Ali",
    "shopSlug": "kuafor-ali",
    "timezone": "Europe/Istanbul",
    "startAt": "2030-03-05T09:00:00Z",
    "endAt": "2030-03-05T09:30:00Z",
    "staffName": "Ali",
    "serviceName": "Haircut",
    "customerName": "Ayse",
    "customerEmail": "ayse@example.com",
    "manageUrl": "https://book.example.com/m/abc123",
    "rebookUrl": "https://book.example.com/kuafor-ali",
}


def test_overrides_replace_only_named_fields() -> None:
    resolved = resolve_template("barber", {"labels": {"bookingNoun": "Appointment"}})

    assert resolved.template.labels.bookingNoun == "Appointment"
    assert resolved.template.labels.providerLabel == "Barber"
    assert TEMPLATES["barber"].labels.bookingNoun == "Booking"


def test_unknown_template_key_falls_back_to_generic() -> None:
    assert resolve_template("florist").template.key == "generic"
    assert resolve_template(None).template.key == "generic"


def test_invalid_overrides_are_ignored_entirely() -> None:
    for overrides in (
        {"labels": {"bookingNoun": "x" * 41}},
        {"labels": {"unknownField": "x"}},
        {"theme": {"css": "body { display: none }"}},
        {"bookingCopy": {"microcopy": ["a", "b", "c", "d"]}},
    ):
        resolved = resolve_template("barber", overrides)
        assert resolved.template == TEMPLATES["barber"]


def test_branding_accent_defaults_to_the_template() -> None:
    assert resolve_template("dental").branding.accentColor == TEMPLATES["dental"].ui.accentColorDefault
    assert resolve_template("dental", branding={"accentColor": "#ff0000"}).branding.accentColor == "#ff0000"
    assert resolve_template("dental", branding={"logoUrl": "not a url"}).branding.logoUrl is None


def test_confirmation_renders_time_in_shop_zone_with_manage_link() -> None:
    email = render_email("BOOKING_CONFIRMED", CONTEXT, resolve_template("barber"))

    assert email.to == "ayse@example.com"
    assert email.subject == "Booking confirmed at Kuafor Ali"
    assert "2030-03-05 12:00–12:30 • Haircut • Ali" in email.text
    assert "https://book.example.com/m/abc123" in email.text
    assert "https://book.example.com/m/abc123" in email.html
    assert "<html" in email.html.lower()


def test_cancellation_variant_follows_who_cancelled() -> None:
    branding = resolve_template("barber")

    by_customer = render_email("BOOKING_CANCELLED", {**CONTEXT, "by": "customer"}, branding)
    by_shop = render_email("BOOKING_CANCELLED", {**CONTEXT, "by": "shop"}, branding)

    assert "cancelled as requested" in by_customer.text
    assert "had to cancel" in by_shop.text
    assert "/m/abc123" not in by_shop.text


def test_labels_flow_into_the_email() -> None:
    branding = resolve_template("barber", {"labels": {"bookingNoun": "Appointment"}})

    email = render_email("REMINDER_NEXT_DAY", CONTEXT, branding)

    assert email.subject == "Reminder: your appointment tomorrow at Kuafor Ali"


def test_customer_supplied_text_is_escaped_in_html() -> None:
    context = {**CONTEXT, "customerName": "<script>alert(1)</script>"}

    email = render_email("BOOKING_UPDATED", context, resolve_template("generic"))

    assert "<script>alert(1)" not in email.html
    assert "<script>alert(1)</script>" in email.text


def test_unknown_event_type_uses_fallback() -> None:
    email = render_email("SOMETHING_NEW", CONTEXT, resolve_template("generic"))
    assert email.subject == "[SOMETHING_NEW] from Kuafor Ali"

import pytest

from shopbook.shared.validators import normalize_phone_e164, validate_email
from shopbook.utils.sanitization import clean_text, sanitize_string


@pytest.mark.parametrize(
    "raw",
    ["05321234567", "5321234567", "+90 532 123 45 67", "90 (532) 123-45-67"],
)
def test_turkish_numbers_normalize_to_e164(raw) -> None:
    assert normalize_phone_e164(raw, "TR") == "+905321234567"


def test_us_numbers_normalize_to_e164() -> None:
    assert normalize_phone_e164("(415) 555-0132", "US") == "+14155550132"
    assert normalize_phone_e164("+44 20 7946 0958", "US") == "+442079460958"


def test_bad_phone_numbers_are_rejected() -> None:
    for raw in ("", "   ", "12", "+90 532"):
        with pytest.raises(ValueError):
            normalize_phone_e164(raw, "TR")


def test_email_is_lowercased_and_checked() -> None:
    assert validate_email(" Ayse@Example.COM ") == "ayse@example.com"
    with pytest.raises(ValueError):
        validate_email("not-an-email")


def test_clean_text_strips_control_characters() -> None:
    assert clean_text("  Ay\x00se  ") == "Ayse"
    assert clean_text("   ") is None
    with pytest.raises(ValueError):
        clean_text("x" * 11, max_length=10)


def test_sanitize_string_escapes_markup() -> None:
    assert sanitize_string('<b>"hi"</b>') == "&lt;b&gt;&quot;hi&quot;&lt;/b&gt;"
    assert sanitize_string(None) is None

"""Shared validation utilities"""

import re
from typing import Optional

_PHONE_SEPARATORS = re.compile(r"[\s()\-.]")
_TR_MOBILE = re.compile(r"^\+90\d{10}$")


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize US phone number to E.164 format.

    Args:
        phone: Phone number string in various formats

    Returns:
        Normalized phone number in E.164 format (+1XXXXXXXXXX)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    # Handle +1 prefix
    if digits.startswith("1") and len(digits) == 11:
        digits = digits[1:]

    # US phone numbers should have 10 digits
    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits for US numbers")

    return f"+1{digits}"


def _normalize_tr_phone(value: str) -> str:
    if value.startswith("+"):
        candidate = "+" + re.sub(r"\D", "", value[1:])
    else:
        digits = re.sub(r"\D", "", value)
        if digits.startswith("0") and len(digits) >= 10:
            digits = "90" + digits[1:]
        elif len(digits) == 10 and digits.startswith("5"):
            digits = "90" + digits
        elif not (len(digits) == 12 and digits.startswith("90")):
            digits = "90" + digits
        candidate = "+" + digits

    # TR mobile: +90 followed by 10 digits
    if not _TR_MOBILE.match(candidate):
        raise ValueError("Invalid TR mobile number")
    return candidate


def normalize_phone_e164(phone: Optional[str], default_country: str = "TR") -> str:
    """
    Normalize a customer phone number to E.164.

    Numbers starting with "+" are international. Anything else is read as a
    national number of default_country ("TR" or "US").

    Raises:
        ValueError: If the number cannot be normalized
    """
    if not phone or not phone.strip():
        raise ValueError("Phone number is required")

    value = _PHONE_SEPARATORS.sub("", phone.strip())

    if default_country == "TR":
        return _normalize_tr_phone(value)

    if value.startswith("+"):
        digits = re.sub(r"\D", "", value[1:])
        if len(digits) < 8 or len(digits) > 15:
            raise ValueError("Invalid international number")
        return f"+{digits}"

    if default_country == "US":
        return validate_us_phone(value)

    raise ValueError("Invalid phone number")


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email

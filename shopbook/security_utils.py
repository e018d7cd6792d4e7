"""
Security utilities: manage-link tokens, JWT helpers, constant-time comparison
"""

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Any, Optional

from jose import JWTError
from jose import jwt as jose_jwt

from .config import JWT_ALGORITHM, SECRET_KEY, TOKEN_PEPPER
from .shared.timezones import utcnow

logger = logging.getLogger(__name__)

# 32 random bytes, hex encoded
MANAGE_TOKEN_BYTES = 32
MANAGE_TOKEN_MIN_LENGTH = 20
MANAGE_TOKEN_MAX_LENGTH = 256


# ============================================================================
# MANAGE-LINK TOKENS
# ============================================================================


def generate_manage_token() -> str:
    """Generate a raw manage-link token (64 hex chars)"""
    return secrets.token_hex(MANAGE_TOKEN_BYTES)


def hash_manage_token(raw_token: str, pepper: Optional[str] = None) -> str:
    """
    SHA-256 of the raw token plus the server-side pepper, hex encoded.

    Only this hash is persisted; the raw token exists in the customer's link
    and in the outbox payload that delivers it.
    """
    value = f"{raw_token}{TOKEN_PEPPER if pepper is None else pepper}"
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def is_plausible_manage_token(raw_token: Any) -> bool:
    """Cheap shape check before any hashing or lookup"""
    return (
        isinstance(raw_token, str)
        and MANAGE_TOKEN_MIN_LENGTH <= len(raw_token) <= MANAGE_TOKEN_MAX_LENGTH
    )


# ============================================================================
# JWT (owner / admin identity)
# ============================================================================


def create_jwt_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT token

    Args:
        data: Data to encode in the token
        expires_delta: Token expiration time (default 15 minutes)
    """
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_jwt_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a JWT token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks

    Args:
        a: First string
        b: Second string

    Returns:
        True if strings are equal, False otherwise
    """
    return secrets.compare_digest(a.encode(), b.encode())

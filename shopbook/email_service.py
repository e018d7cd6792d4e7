"""
Email transports

Resend for production and a logging transport for development. The transport
is chosen once at startup by get_email_transport() and passed to whoever sends.
"""

import asyncio
import logging
from typing import Optional

import resend
from fastapi import Request

from .config import EMAIL_FROM_ADDRESS, EMAIL_PROVIDER, EMAIL_SEND_TIMEOUT_SECONDS, RESEND_API_KEY

logger = logging.getLogger(__name__)


class EmailSendError(Exception):
    """Transport-level failure; the outbox treats it as transient"""


class EmailTransport:
    """send(to, subject, html, text) -> provider message id; raises on failure"""

    name = "base"

    async def send(self, to: str, subject: str, html: str, text: str) -> Optional[str]:
        raise NotImplementedError


class ResendTransport(EmailTransport):
    name = "resend"

    def __init__(
        self,
        api_key: str,
        from_address: str = EMAIL_FROM_ADDRESS,
        timeout_seconds: float = EMAIL_SEND_TIMEOUT_SECONDS,
    ):
        if not api_key:
            raise ValueError("RESEND_API_KEY is required for the resend transport")
        resend.api_key = api_key
        self.from_address = from_address
        self.timeout_seconds = timeout_seconds

    async def send(self, to: str, subject: str, html: str, text: str) -> Optional[str]:
        email_data = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        }
        try:
            # The SDK is synchronous; bound it so one stuck send can't stall a sweep
            response = await asyncio.wait_for(
                asyncio.to_thread(resend.Emails.send, email_data),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise EmailSendError(f"Resend send timed out after {self.timeout_seconds:.0f}s") from e
        except Exception as e:
            raise EmailSendError(f"Failed to send email: {str(e)}") from e

        message_id = response.get("id") if isinstance(response, dict) else None
        logger.info(f"✅ Email sent via Resend to {to} (id={message_id})")
        return message_id


class DevTransport(EmailTransport):
    """Logs instead of sending; keeps the last messages for inspection"""

    name = "dev"

    def __init__(self, keep: int = 50):
        self.keep = keep
        self.sent: list[dict] = []

    async def send(self, to: str, subject: str, html: str, text: str) -> Optional[str]:
        logger.info(f"📧 [dev email] to={to} subject={subject!r}\n{text}")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        del self.sent[: -self.keep]
        return None


def get_email_transport(
    provider: Optional[str] = None, api_key: Optional[str] = None
) -> EmailTransport:
    """
    Build the process-wide transport.

    Explicit provider wins; otherwise Resend when an API key is configured,
    else the dev transport.
    """
    provider = (provider if provider is not None else EMAIL_PROVIDER) or ""
    api_key = api_key if api_key is not None else RESEND_API_KEY

    if provider == "resend" or (not provider and api_key):
        logger.info("📧 Email transport: Resend")
        return ResendTransport(api_key)
    if provider in ("", "dev"):
        logger.warning("⚠️ Email transport: dev (emails are logged, not sent)")
        return DevTransport()
    raise ValueError(f"Unknown EMAIL_PROVIDER: {provider}")


def get_transport(request: Request) -> EmailTransport:
    """FastAPI dependency: the transport built at startup (see main.lifespan)"""
    transport = getattr(request.app.state, "email_transport", None)
    if transport is None:
        transport = get_email_transport()
        request.app.state.email_transport = transport
    return transport

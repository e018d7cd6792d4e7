"""
MJML Email Templates
Booking notification emails using MJML for responsive, cross-client compatibility
"""

import io
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from mjml import mjml_to_html

from .config import APP_BASE_URL
from .domain.branding.schemas import ResolvedTemplate
from .models import OutboxEventType
from .shared.timezones import format_local
from .utils.sanitization import sanitize_string

logger = logging.getLogger(__name__)

# Neutral slate scheme; the accent comes from shop branding
THEME = {
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "danger": "#ef4444",
}

# Template variants of BOOKING_CANCELLED, chosen by the payload's "by"
BOOKING_CANCELLED_CUSTOMER = "BOOKING_CANCELLED_CUSTOMER"
BOOKING_CANCELLED_SHOP = "BOOKING_CANCELLED_SHOP"


@dataclass
class RenderedEmail:
    to: Optional[str]
    subject: str
    html: str
    text: str


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(io.StringIO(mjml_content))
        # mjml_to_html returns a dict-like object with 'html' and 'errors' keys
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise ValueError(f"Failed to compile MJML template: {str(e)}") from e


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    shop_name: str,
    accent_color: str,
    logo_url: Optional[str] = None,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails. Arguments must already be escaped."""

    header = f"""
        <mj-text align="center" font-size="20px" font-weight="700" color="{THEME['text_primary']}" padding="0">
          {shop_name}
        </mj-text>
    """
    if logo_url:
        header = f"""
        <mj-image src="{logo_url}" alt="{shop_name}" width="140px" padding="0" />
        """

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{accent_color}"
              color="#ffffff"
              font-weight="600"
              border-radius="6px"
              padding="10px 20px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="{THEME['card_bg']}" padding="32px 20px">
          <mj-column>
            {header}
          </mj-column>
        </mj-section>

        <mj-section background-color="{THEME['card_bg']}" padding="0 40px 40px 40px">
          <mj-column>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="0 0 32px 0" />
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              You're receiving this because you booked with {shop_name}.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


# ============================================
# Context helpers
# ============================================


def _parse_instant(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def format_booking_line(context: dict[str, Any]) -> str:
    """e.g. 2025-03-01 09:00–09:30 • Haircut • Ali"""
    start = _parse_instant(context.get("startAt"))
    end = _parse_instant(context.get("endAt"))
    if not start or not end:
        return ""

    tz = context.get("timezone") or "UTC"
    line = f"{format_local(start, tz, '%Y-%m-%d %H:%M')}–{format_local(end, tz, '%H:%M')}"
    if context.get("serviceName"):
        line += f" • {context['serviceName']}"
    if context.get("staffName"):
        line += f" • {context['staffName']}"
    return line


def template_event_type(event_type: str, context: dict[str, Any]) -> str:
    """Pick the cancellation variant from who cancelled"""
    if event_type == OutboxEventType.BOOKING_CANCELLED.value:
        return BOOKING_CANCELLED_SHOP if context.get("by") == "shop" else BOOKING_CANCELLED_CUSTOMER
    return event_type


def _urls(context: dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    base = APP_BASE_URL.rstrip("/")
    manage = context.get("manageUrl") or (
        f"{base}/m/{context['manageToken']}" if context.get("manageToken") else None
    )
    rebook = context.get("rebookUrl") or (f"{base}/{context['shopSlug']}" if context.get("shopSlug") else None)
    return manage, rebook


def _text_body(lines: list[str]) -> str:
    return "\n\n".join(line for line in lines if line)


def _paragraphs(lines: list[str]) -> str:
    return "\n".join(f"<mj-text>{line}</mj-text>" for line in lines if line)


# ============================================
# Renderer
# ============================================


def render_email(
    event_type: str,
    context: dict[str, Any],
    branding: ResolvedTemplate,
) -> RenderedEmail:
    """
    Render one notification. Pure function of its inputs, so retries re-render
    without drift.

    Args:
        event_type: Outbox event type
        context: Booking snapshot (payload merged with current rows)
        branding: Resolved industry template and shop branding
    """
    template = branding.template
    noun = template.labels.bookingNoun.lower()
    accent = branding.branding.accentColor or template.ui.accentColorDefault
    logo = str(branding.branding.logoUrl) if branding.branding.logoUrl else None

    shop_name = context.get("shopName") or "Shop"
    customer_name = context.get("customerName") or template.labels.customerLabel
    to = (context.get("toEmail") or context.get("customerEmail") or "").strip() or None
    booking_line = format_booking_line(context)
    manage_url, rebook_url = _urls(context)

    esc_shop = sanitize_string(shop_name)
    esc_line = sanitize_string(booking_line)
    greeting_html = f"Hi {sanitize_string(customer_name)},"
    greeting_text = f"Hi {customer_name},"
    rebook_html = (
        f'Book again: <a href="{sanitize_string(rebook_url)}">{sanitize_string(rebook_url)}</a>'
        if rebook_url
        else ""
    )
    manage_label = f"View or manage your {noun}"

    variant = template_event_type(event_type, context)
    cta_url = None

    if variant == OutboxEventType.BOOKING_CONFIRMED.value:
        subject = f"{template.labels.bookingNoun} confirmed at {shop_name}"
        title = f"Your {noun} is confirmed"
        html_lines = [
            greeting_html,
            f"Your {noun} at <strong>{esc_shop}</strong> is confirmed.",
            f"<strong>When:</strong> {esc_line}" if booking_line else "",
            rebook_html,
        ]
        text_lines = [
            greeting_text,
            f"Your {noun} at {shop_name} is confirmed.",
            f"When: {booking_line}" if booking_line else "",
            f"View or manage: {manage_url}" if manage_url else "",
            f"Book again: {rebook_url}" if rebook_url else "",
        ]
        cta_url = manage_url

    elif variant == OutboxEventType.BOOKING_UPDATED.value:
        subject = f"{template.labels.bookingNoun} updated at {shop_name}"
        title = f"Your {noun} has changed"
        html_lines = [
            greeting_html,
            f"Your {noun} at <strong>{esc_shop}</strong> has been updated.",
            f"<strong>New time:</strong> {esc_line}" if booking_line else "",
            rebook_html,
        ]
        text_lines = [
            greeting_text,
            f"Your {noun} at {shop_name} has been updated.",
            f"New time: {booking_line}" if booking_line else "",
            f"View or manage: {manage_url}" if manage_url else "",
            f"Book again: {rebook_url}" if rebook_url else "",
        ]
        cta_url = manage_url

    elif variant in (BOOKING_CANCELLED_CUSTOMER, BOOKING_CANCELLED_SHOP):
        subject = f"{template.labels.bookingNoun} cancelled at {shop_name}"
        if variant == BOOKING_CANCELLED_SHOP:
            title = f"{shop_name} cancelled your {noun}"
            reason_html = f"<strong>{esc_shop}</strong> had to cancel your {noun}. Sorry for the inconvenience."
            reason_text = f"{shop_name} had to cancel your {noun}. Sorry for the inconvenience."
        else:
            title = f"Your {noun} is cancelled"
            reason_html = f"Your {noun} at <strong>{esc_shop}</strong> has been cancelled as requested."
            reason_text = f"Your {noun} at {shop_name} has been cancelled as requested."
        html_lines = [
            greeting_html,
            reason_html,
            f"It was scheduled for {esc_line}." if booking_line else "",
            rebook_html,
        ]
        text_lines = [
            greeting_text,
            reason_text,
            f"It was scheduled for {booking_line}." if booking_line else "",
            f"Book again: {rebook_url}" if rebook_url else "",
        ]

    elif variant == OutboxEventType.REMINDER_NEXT_DAY.value:
        subject = f"Reminder: your {noun} tomorrow at {shop_name}"
        title = "See you tomorrow"
        html_lines = [
            greeting_html,
            f"A reminder of your {noun} at <strong>{esc_shop}</strong>.",
            f"<strong>When:</strong> {esc_line}" if booking_line else "",
        ]
        text_lines = [
            greeting_text,
            f"Reminder: your {noun} at {shop_name}.",
            f"When: {booking_line}" if booking_line else "",
            f"View or manage: {manage_url}" if manage_url else "",
        ]
        cta_url = manage_url

    else:
        logger.warning(f"⚠️ No template for event type {event_type}, using fallback")
        subject = f"[{event_type}] from {shop_name}"
        title = subject
        html_lines = [f"Event: {sanitize_string(event_type)}"]
        text_lines = [f"Event: {event_type}"]

    mjml_content = get_base_template(
        title=sanitize_string(title),
        preview_text=sanitize_string(subject),
        content_sections=_paragraphs(html_lines),
        shop_name=esc_shop,
        accent_color=sanitize_string(accent),
        logo_url=sanitize_string(logo),
        cta_url=sanitize_string(cta_url),
        cta_label=sanitize_string(manage_label) if cta_url else None,
    )

    return RenderedEmail(
        to=to,
        subject=subject,
        html=compile_mjml_to_html(mjml_content),
        text=_text_body(text_lines),
    )

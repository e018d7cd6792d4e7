"""Branding service - Resolve a shop's presentation template"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from ...models import Shop
from .registry import DEFAULT_TEMPLATE_KEY, TEMPLATES
from .schemas import Branding, IndustryTemplate, ResolvedTemplate, TemplateOverrides

logger = logging.getLogger(__name__)


def parse_overrides(raw: Optional[dict[str, Any]]) -> TemplateOverrides:
    """Validate stored overrides; anything outside the allow-list yields no overrides at all"""
    try:
        return TemplateOverrides.model_validate(raw or {})
    except ValidationError as e:
        logger.warning(f"⚠️ Ignoring invalid template overrides: {e.error_count()} error(s)")
        return TemplateOverrides()


def parse_branding(raw: Optional[dict[str, Any]]) -> Branding:
    try:
        return Branding.model_validate(raw or {})
    except ValidationError as e:
        logger.warning(f"⚠️ Ignoring invalid branding: {e.error_count()} error(s)")
        return Branding()


def apply_overrides(base: IndustryTemplate, overrides: TemplateOverrides) -> IndustryTemplate:
    """Section-by-section field replacement over a base template. Inputs are never mutated."""
    sections = {}
    for section in ("labels", "bookingCopy", "ui"):
        override = getattr(overrides, section)
        current = getattr(base, section)
        if override is None:
            sections[section] = current.model_copy(deep=True)
        else:
            sections[section] = current.model_copy(update=override.model_dump(exclude_none=True), deep=True)
    return base.model_copy(update=sections)


def resolve_template(
    base_key: Optional[str],
    overrides: Optional[dict[str, Any]] = None,
    branding: Optional[dict[str, Any]] = None,
) -> ResolvedTemplate:
    """
    (base template, overrides, branding) -> resolved template.

    Unknown keys fall back to the generic template. The branding accent colour
    defaults to the template's own.
    """
    base = TEMPLATES.get(base_key or DEFAULT_TEMPLATE_KEY) or TEMPLATES[DEFAULT_TEMPLATE_KEY]
    template = apply_overrides(base, parse_overrides(overrides))

    resolved_branding = parse_branding(branding)
    if not resolved_branding.accentColor:
        resolved_branding = resolved_branding.model_copy(
            update={"accentColor": template.ui.accentColorDefault}
        )
    return ResolvedTemplate(template=template, branding=resolved_branding)


def resolve_template_for_shop(shop: Shop) -> ResolvedTemplate:
    return resolve_template(shop.industry_template, shop.template_overrides, shop.branding)

"""Branding domain schemas - Industry template shape and allow-listed shop overrides"""

from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

IndustryTemplateKey = Literal["generic", "barber", "dental"]
MicrocopyLine = Annotated[str, Field(min_length=1, max_length=120)]


class TemplateLabels(BaseModel):
    providerLabel: str
    providersLabelPlural: str
    serviceLabel: str
    servicesLabelPlural: str
    customerLabel: str
    customersLabelPlural: str
    bookingNoun: str


class BookingCopy(BaseModel):
    heroTitle: str
    heroSubtitle: str
    microcopy: list[str]


class TemplateUI(BaseModel):
    ctaConfirm: str
    scheduleTitle: str
    accentColorDefault: str


class IndustryTemplate(BaseModel):
    key: IndustryTemplateKey
    labels: TemplateLabels
    bookingCopy: BookingCopy
    ui: TemplateUI


# ----------------------------------------------------------------------------
# Overrides: every field optional, unknown keys rejected, lengths bounded
# ----------------------------------------------------------------------------


class LabelOverrides(BaseModel):
    model_config = ConfigDict(extra="forbid")

    providerLabel: Optional[str] = Field(None, min_length=1, max_length=40)
    providersLabelPlural: Optional[str] = Field(None, min_length=1, max_length=40)
    serviceLabel: Optional[str] = Field(None, min_length=1, max_length=40)
    servicesLabelPlural: Optional[str] = Field(None, min_length=1, max_length=40)
    customerLabel: Optional[str] = Field(None, min_length=1, max_length=40)
    customersLabelPlural: Optional[str] = Field(None, min_length=1, max_length=40)
    bookingNoun: Optional[str] = Field(None, min_length=1, max_length=40)


class BookingCopyOverrides(BaseModel):
    model_config = ConfigDict(extra="forbid")

    heroTitle: Optional[str] = Field(None, min_length=1, max_length=80)
    heroSubtitle: Optional[str] = Field(None, min_length=1, max_length=120)
    microcopy: Optional[list[MicrocopyLine]] = Field(None, max_length=3)


class UIOverrides(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ctaConfirm: Optional[str] = Field(None, min_length=1, max_length=40)
    scheduleTitle: Optional[str] = Field(None, min_length=1, max_length=60)
    accentColorDefault: Optional[str] = Field(None, min_length=1, max_length=30)


class TemplateOverrides(BaseModel):
    model_config = ConfigDict(extra="forbid")

    labels: Optional[LabelOverrides] = None
    bookingCopy: Optional[BookingCopyOverrides] = None
    ui: Optional[UIOverrides] = None


class Branding(BaseModel):
    model_config = ConfigDict(extra="forbid")

    logoUrl: Optional[HttpUrl] = None
    accentColor: Optional[str] = Field(None, min_length=1, max_length=30)
    coverImageUrl: Optional[HttpUrl] = None


class ResolvedTemplate(BaseModel):
    template: IndustryTemplate
    branding: Branding

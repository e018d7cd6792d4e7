"""Shop profile router - Public data the booking page renders"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Service
from ..availability.service import AvailabilityService
from .schemas import Branding, IndustryTemplate
from .service import resolve_template_for_shop

router = APIRouter(prefix="/shops", tags=["Shops"])


class StaffSummary(BaseModel):
    id: str
    name: str


class ServiceSummary(BaseModel):
    id: str
    name: str
    durationMinutes: int


class ShopProfileResponse(BaseModel):
    slug: str
    name: str
    timezone: str
    phone: Optional[str] = None
    address: Optional[str] = None
    template: IndustryTemplate
    branding: Branding
    staff: list[StaffSummary]
    services: list[ServiceSummary]


@router.get("/{slug}", response_model=ShopProfileResponse)
async def get_shop_profile(slug: str, db: Session = Depends(get_db)):
    availability = AvailabilityService(db)
    shop = availability.get_shop_by_slug(slug)
    resolved = resolve_template_for_shop(shop)

    staff = availability.repo.list_active_staff(db, shop.id)
    services = (
        db.query(Service)
        .filter(Service.shop_id == shop.id, Service.active.is_(True))
        .order_by(Service.name.asc())
        .all()
    )
    return ShopProfileResponse(
        slug=shop.slug,
        name=shop.name,
        timezone=shop.timezone,
        phone=shop.phone,
        address=shop.address,
        template=resolved.template,
        branding=resolved.branding,
        staff=[StaffSummary(id=s.id, name=s.name) for s in staff],
        services=[ServiceSummary(id=s.id, name=s.name, durationMinutes=s.duration_minutes) for s in services],
    )

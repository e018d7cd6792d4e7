import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import Shop
from .security_utils import verify_jwt_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass
class OwnerIdentity:
    """Authenticated dashboard user, scoped to one shop"""

    user_id: str
    shop_id: Optional[str]
    role: str = "owner"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _decode_credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> dict:
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, length: {len(token)}")
        raise HTTPException(status_code=401, detail="Invalid token format. Expected a valid JWT token.")

    payload = verify_jwt_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return payload


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> OwnerIdentity:
    payload = _decode_credentials(credentials)
    return OwnerIdentity(
        user_id=str(payload["sub"]),
        shop_id=payload.get("shop_id"),
        role=payload.get("role", "owner"),
    )


async def get_current_owner(
    identity: OwnerIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> OwnerIdentity:
    """Owner of an existing shop; the shop id comes from the token, never the request body"""
    if not identity.shop_id:
        raise HTTPException(status_code=403, detail="No shop associated with this account")

    shop = db.query(Shop).filter(Shop.id == identity.shop_id).first()
    if not shop:
        logger.warning(f"⚠️ Token for user {identity.user_id} references missing shop {identity.shop_id}")
        raise HTTPException(status_code=403, detail="No shop associated with this account")

    return identity


async def require_admin(identity: OwnerIdentity = Depends(get_current_identity)) -> OwnerIdentity:
    if not identity.is_admin:
        logger.warning(f"⚠️ Non-admin user {identity.user_id} attempted an operator route")
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity

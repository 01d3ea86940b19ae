from dataclasses import dataclass
from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.db import get_db
from marketmate.core.security import hash_api_key, key_prefix
from marketmate.models.api_key import ApiKey
from marketmate.models.enums import UserRole, UserStatus
from marketmate.models.user import User
from marketmate.services.site_settings import SiteSettings, get_site_settings

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str  # "buyer" | "seller" | "admin"
    api_key_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_actor(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")

    prefix = key_prefix(api_key)
    if prefix is None:
        raise HTTPException(status_code=401, detail="Invalid API key")

    stmt = (
        select(ApiKey, User)
        .join(User, User.id == ApiKey.user_id)
        .where(
            ApiKey.key_prefix == prefix,
            ApiKey.key_hash == hash_api_key(api_key),
            ApiKey.is_active.is_(True),
        )
    )
    row = (await db.execute(stmt)).one_or_none()
    if not row:
        raise HTTPException(status_code=401, detail="Invalid API key")

    key, user = row
    if user.status != UserStatus.ACTIVE:
        raise HTTPException(status_code=403, detail=f"Account {user.status}")

    return Actor(user_id=user.id, role=user.role, api_key_id=key.id)


def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return actor


def require_writable(
    actor: Actor = Depends(get_actor),
    site: SiteSettings = Depends(get_site_settings),
) -> Actor:
    # maintenance mode freezes writes for everyone but admins
    if site.maintenance_mode and not actor.is_admin:
        raise HTTPException(status_code=503, detail="Site is in maintenance mode")
    return actor


async def get_optional_actor(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Actor | None:
    # anonymous browsing; a key that is sent must still be valid
    if not api_key:
        return None
    return await get_actor(api_key=api_key, db=db)

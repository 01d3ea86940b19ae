from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.db import get_db
from marketmate.schemas.settings import SiteSettingsOut, SiteSettingsUpdate
from marketmate.services.auth import Actor, require_admin
from marketmate.services.retry import run_atomic
from marketmate.services.site_settings import SiteSettings, get_site_settings, save_site_settings

router = APIRouter()


@router.get("/settings", response_model=SiteSettingsOut)
async def read_settings(site: SiteSettings = Depends(get_site_settings)) -> SiteSettingsOut:
    return SiteSettingsOut(**site.to_dict())


@router.put("/admin/settings", response_model=SiteSettingsOut)
async def update_settings(
    payload: SiteSettingsUpdate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> SiteSettingsOut:
    site = await run_atomic(db, lambda: save_site_settings(db, payload.values))
    return SiteSettingsOut(**site.to_dict())

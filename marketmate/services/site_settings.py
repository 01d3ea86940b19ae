from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.config import settings
from marketmate.core.db import get_db
from marketmate.core.errors import ValidationError
from marketmate.models.site_setting import SiteSetting


log = logging.getLogger(__name__)

MODERATION_MODES = ("auto", "manual")


@dataclass(frozen=True)
class SiteSettings:
    """Site-wide policy handed to each service at construction."""

    moderation_mode: str = "manual"
    max_listing_duration_days: int = 90
    allowed_listing_durations: tuple[int, ...] = (30, 60, 90)
    default_listing_duration: int = 30
    daily_renewal_quota: int = 5
    max_images_per_listing: int = 5
    maintenance_mode: bool = False

    @classmethod
    def defaults(cls) -> "SiteSettings":
        return cls(
            moderation_mode=settings.moderation_mode,
            max_listing_duration_days=settings.max_listing_duration_days,
            allowed_listing_durations=tuple(settings.allowed_listing_durations),
            default_listing_duration=settings.default_listing_duration,
            daily_renewal_quota=settings.daily_renewal_quota,
            max_images_per_listing=settings.max_images_per_listing,
            maintenance_mode=settings.maintenance_mode,
        )

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["allowed_listing_durations"] = list(self.allowed_listing_durations)
        return out


_KEYS = {f.name for f in fields(SiteSettings)}


def _coerce(key: str, value: Any) -> Any:
    if key == "allowed_listing_durations":
        return tuple(int(v) for v in value)
    if key == "maintenance_mode":
        return bool(value)
    if key == "moderation_mode":
        return str(value)
    return int(value)


def validate_site_settings(site: SiteSettings) -> None:
    errors: list[dict[str, Any]] = []
    if site.moderation_mode not in MODERATION_MODES:
        errors.append({"field": "moderation_mode", "message": f"must be one of {', '.join(MODERATION_MODES)}"})
    if site.max_listing_duration_days <= 0:
        errors.append({"field": "max_listing_duration_days", "message": "must be positive"})
    if not site.allowed_listing_durations or any(d <= 0 for d in site.allowed_listing_durations):
        errors.append({"field": "allowed_listing_durations", "message": "must be a non-empty list of positive days"})
    if site.default_listing_duration not in site.allowed_listing_durations:
        errors.append({"field": "default_listing_duration", "message": "must be one of allowed_listing_durations"})
    if site.daily_renewal_quota < 0:
        errors.append({"field": "daily_renewal_quota", "message": "must not be negative"})
    if site.max_images_per_listing < 0:
        errors.append({"field": "max_images_per_listing", "message": "must not be negative"})
    if errors:
        raise ValidationError("Invalid site settings", details=errors)


async def load_site_settings(db: AsyncSession) -> SiteSettings:
    """
    Process defaults overlaid with rows from site_settings.
    Unknown keys are ignored; each row stores {"value": ...}.
    """
    rows = (await db.execute(select(SiteSetting))).scalars().all()
    overrides = {
        r.key: _coerce(r.key, r.value.get("value"))
        for r in rows
        if r.key in _KEYS and "value" in (r.value or {})
    }
    return replace(SiteSettings.defaults(), **overrides)


async def save_site_settings(db: AsyncSession, updates: dict[str, Any]) -> SiteSettings:
    current = await load_site_settings(db)
    unknown = sorted(set(updates) - _KEYS)
    if unknown:
        raise ValidationError("Unknown site settings", details=[{"field": k} for k in unknown])

    try:
        coerced = {k: _coerce(k, v) for k, v in updates.items()}
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid site setting value: {e}") from e
    merged = replace(current, **coerced)
    validate_site_settings(merged)

    for key, value in coerced.items():
        stored = list(value) if isinstance(value, tuple) else value
        row = (await db.execute(select(SiteSetting).where(SiteSetting.key == key))).scalar_one_or_none()
        if row:
            row.value = {"value": stored}
        else:
            db.add(SiteSetting(key=key, value={"value": stored}))
    await db.flush()

    log.info("site settings updated: %s", ", ".join(sorted(coerced)))
    return merged


async def get_site_settings(db: AsyncSession = Depends(get_db)) -> SiteSettings:
    return await load_site_settings(db)

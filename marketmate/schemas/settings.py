from typing import Any

from pydantic import BaseModel, Field


class SiteSettingsOut(BaseModel):
    moderation_mode: str
    max_listing_duration_days: int
    allowed_listing_durations: list[int]
    default_listing_duration: int
    daily_renewal_quota: int
    max_images_per_listing: int
    maintenance_mode: bool


class SiteSettingsUpdate(BaseModel):
    # partial update; unknown keys are rejected by the service
    values: dict[str, Any] = Field(default_factory=dict)

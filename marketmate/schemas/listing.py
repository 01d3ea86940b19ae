from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from marketmate.models.enums import ListingCondition


class ListingCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    category_id: str
    condition: ListingCondition
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    negotiable: bool = False
    location: str = Field(min_length=1, max_length=200)
    location_lat: float
    location_lng: float
    listing_duration: int | None = None


class ListingStatusUpdate(BaseModel):
    status: Literal["active", "archived"]
    reason: str | None = Field(default=None, max_length=500)


class RenewRequest(BaseModel):
    duration_days: int


class ImageCreate(BaseModel):
    url: str = Field(min_length=1, max_length=2000)


class ImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    sort_order: int


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    title: str
    description: str
    category_id: str
    condition: str
    price: Decimal
    currency: str
    negotiable: bool
    location: str
    location_lat: float
    location_lng: float
    status: str
    listing_duration: int
    expires_at: datetime
    views_count: int
    favorites_count: int
    created_at: datetime
    updated_at: datetime


class RenewOut(BaseModel):
    listing: ListingOut
    renewal_id: str
    previous_expires_at: datetime
    renewals_remaining: int


class DeleteOut(BaseModel):
    id: str
    deleted: bool
    status: str | None


class FavoriteOut(BaseModel):
    listing_id: str
    favorited: bool
    favorites_count: int

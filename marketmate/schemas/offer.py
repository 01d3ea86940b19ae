from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from marketmate.models.enums import OfferType


class OfferCreate(BaseModel):
    listing_id: str | None = None
    amount: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)
    message: str | None = Field(default=None, max_length=1000)
    type: OfferType = OfferType.OFFER
    # set to counter an existing pending offer
    counter_offer_id: str | None = None


class OfferStatusUpdate(BaseModel):
    status: Literal["accepted", "declined"]


class OfferOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    sender_id: str
    amount: Decimal
    message: str | None
    type: str
    status: str
    counter_offer_id: str | None
    created_at: datetime
    updated_at: datetime

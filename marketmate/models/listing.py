from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from marketmate.core.ids import id_factory
from marketmate.models.base import AuditMixin, Base
from marketmate.models.enums import ListingCondition, ListingStatus, check_in


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint(check_in("condition", ListingCondition), name="chk_listings_condition"),
        CheckConstraint(check_in("status", ListingStatus), name="chk_listings_status"),
        CheckConstraint("price >= 0", name="chk_listings_price"),
        CheckConstraint("listing_duration > 0", name="chk_listings_duration"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_factory("lst"))
    owner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category_id: Mapped[str] = mapped_column(String, ForeignKey("categories.id"), nullable=False)
    condition: Mapped[str] = mapped_column(String(20), nullable=False)

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    negotiable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    location: Mapped[str] = mapped_column(String(200), nullable=False)
    location_lat: Mapped[float] = mapped_column(Float, nullable=False)
    location_lng: Mapped[float] = mapped_column(Float, nullable=False)

    # only marketmate.services.state_machine writes this column
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ListingStatus.DRAFT.value, index=True)

    listing_duration: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    views_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    favorites_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

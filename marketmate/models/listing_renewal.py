from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from marketmate.core.clock import utcnow
from marketmate.core.ids import id_factory
from marketmate.models.base import Base


class ListingRenewal(Base):
    __tablename__ = "listing_renewals"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_factory("rnw"))
    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    owner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    new_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # quota window is counted on this column
    renewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

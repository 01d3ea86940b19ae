from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from marketmate.core.ids import id_factory
from marketmate.models.base import AuditMixin, Base
from marketmate.models.enums import OfferStatus, OfferType, check_in


class Offer(AuditMixin, Base):
    __tablename__ = "offers"
    __table_args__ = (
        CheckConstraint(check_in("type", OfferType), name="chk_offers_type"),
        CheckConstraint(check_in("status", OfferStatus), name="chk_offers_status"),
        CheckConstraint("amount > 0", name="chk_offers_amount"),
        CheckConstraint("buyer_id <> seller_id", name="chk_offers_parties"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_factory("ofr"))
    listing_id: Mapped[str] = mapped_column(
        String, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    buyer_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # denormalised from listing owner at creation
    seller_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # whoever proposed this amount; the other party is the recipient
    sender_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    type: Mapped[str] = mapped_column(String(20), nullable=False, default=OfferType.OFFER.value)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OfferStatus.PENDING.value)

    # predecessor in the negotiation chain; never points forward
    counter_offer_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("offers.id", ondelete="SET NULL"), nullable=True, index=True
    )

    @property
    def recipient_id(self) -> str:
        return self.seller_id if self.sender_id == self.buyer_id else self.buyer_id

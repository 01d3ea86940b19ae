"""
Offers and counter-offer chains.

A chain is a set of Offer rows linked through counter_offer_id, which
always points at the predecessor. Only the head of a chain can be
pending. Resolution order is fixed: lock the listing row, then the
offer row, then act. Two accepts racing on one listing therefore
serialise on the listing, and the second sees it sold.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from marketmate.models.enums import ListingStatus, NotificationType, OfferStatus, OfferType
from marketmate.models.listing import Listing
from marketmate.models.offer import Offer
from marketmate.services.auth import Actor
from marketmate.services.listings import ListingLifecycle
from marketmate.services.outbox import emit
from marketmate.services.state_machine import transition_offer


log = logging.getLogger(__name__)


def _require_positive(amount: Decimal | None, field: str = "amount") -> None:
    if amount is None or amount <= 0:
        raise ValidationError("Offer amount must be greater than zero", details=[{"field": field}])


def order_chain(offers: list[Offer], member_id: str) -> list[Offer]:
    """
    Return the chain containing ``member_id`` ordered predecessor to
    successor. ``offers`` is an arena of candidate rows keyed by id; the
    walk back only follows counter_offer_id and the walk forward only
    follows the successor index built from it.
    """
    arena = {o.id: o for o in offers}
    if member_id not in arena:
        return []

    successor: dict[str, str] = {}
    for o in offers:
        if o.counter_offer_id and o.counter_offer_id in arena:
            successor[o.counter_offer_id] = o.id

    root_id = member_id
    for _ in range(len(arena)):
        parent = arena[root_id].counter_offer_id
        if not parent or parent not in arena:
            break
        root_id = parent

    chain = [arena[root_id]]
    while chain[-1].id in successor and len(chain) < len(arena):
        chain.append(arena[successor[chain[-1].id]])
    return chain


class OfferEngine:
    def __init__(self, db: AsyncSession, lifecycle: ListingLifecycle):
        self.db = db
        self.lifecycle = lifecycle

    async def get(self, offer_id: str) -> Offer:
        offer = (await self.db.execute(select(Offer).where(Offer.id == offer_id))).scalar_one_or_none()
        if not offer:
            raise NotFoundError("Offer not found")
        return offer

    async def get_for_party(self, offer_id: str, actor: Actor) -> Offer:
        offer = await self.get(offer_id)
        if actor.user_id not in (offer.buyer_id, offer.seller_id) and not actor.is_admin:
            raise NotFoundError("Offer not found")
        return offer

    async def _lock_offer(self, offer_id: str) -> Offer:
        stmt = (
            select(Offer)
            .where(Offer.id == offer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        offer = (await self.db.execute(stmt)).scalar_one_or_none()
        if not offer:
            raise NotFoundError("Offer not found")
        return offer

    async def _lock_for_resolution(self, offer_id: str) -> tuple[Offer, Listing]:
        # listing first, then offer: same lock order as every other path
        offer = await self.get(offer_id)
        listing = await self.lifecycle.lock(offer.listing_id)
        offer = await self._lock_offer(offer_id)
        return offer, listing

    @staticmethod
    def _require_recipient(offer: Offer, actor: Actor) -> None:
        if actor.user_id != offer.recipient_id:
            raise ForbiddenError("Only the recipient of an offer can respond to it")

    @staticmethod
    def _require_pending(offer: Offer) -> None:
        if offer.status != OfferStatus.PENDING:
            raise InvalidStateError(f"Offer is {offer.status}, not pending")

    @staticmethod
    def _require_active(listing: Listing) -> None:
        if listing.status != ListingStatus.ACTIVE:
            raise InvalidStateError(f"Listing is {listing.status}, not active")

    def _emit(self, offer: Offer, event_type: str, recipient: str, kind: NotificationType) -> None:
        emit(
            self.db,
            aggregate_type="offer",
            aggregate_id=offer.id,
            event_type=event_type,
            recipients=[recipient],
            notification_type=kind,
            data={
                "offer_id": offer.id,
                "listing_id": offer.listing_id,
                "amount": str(offer.amount),
                "status": offer.status,
            },
        )

    async def make_offer(
        self,
        listing_id: str,
        buyer: Actor,
        amount: Decimal,
        message: str | None = None,
    ) -> Offer:
        listing = await self.lifecycle.lock(listing_id)
        self._require_active(listing)
        if buyer.user_id == listing.owner_id:
            raise ValidationError("You cannot make an offer on your own listing")
        _require_positive(amount)

        live = (await self.db.execute(
            select(Offer.id).where(
                Offer.listing_id == listing.id,
                Offer.buyer_id == buyer.user_id,
                Offer.status == OfferStatus.PENDING.value,
            )
        )).first()
        if live:
            raise ValidationError(
                "You already have a pending offer on this listing; counter or wait for a response",
                details=[{"offer_id": live[0]}],
            )

        offer = Offer(
            listing_id=listing.id,
            buyer_id=buyer.user_id,
            seller_id=listing.owner_id,
            sender_id=buyer.user_id,
            amount=amount,
            message=message,
            type=OfferType.OFFER.value,
            status=OfferStatus.PENDING.value,
            updated_by=buyer.user_id,
        )
        self.db.add(offer)
        await self.db.flush()

        self._emit(offer, "offer.created", listing.owner_id, NotificationType.NEW_OFFER)
        log.info("offer %s: %s offered %s on listing %s", offer.id, buyer.user_id, amount, listing.id)
        return offer

    async def buy_now(self, listing_id: str, buyer: Actor) -> Offer:
        listing = await self.lifecycle.lock(listing_id)
        self._require_active(listing)
        if listing.negotiable:
            raise ValidationError("Buy now is only available on non-negotiable listings")
        if buyer.user_id == listing.owner_id:
            raise ValidationError("You cannot buy your own listing")
        if listing.price <= 0:
            raise ValidationError("Buy now needs a price above zero")

        offer = Offer(
            listing_id=listing.id,
            buyer_id=buyer.user_id,
            seller_id=listing.owner_id,
            sender_id=buyer.user_id,
            amount=listing.price,
            type=OfferType.BUY_NOW.value,
            # created resolved; never passes through pending
            status=OfferStatus.SOLD.value,
            updated_by=buyer.user_id,
        )
        self.db.add(offer)
        await self.db.flush()

        await self.lifecycle.close_as_sold(listing, buyer, winning_offer_id=offer.id)
        self._emit(offer, "offer.buy_now", listing.owner_id, NotificationType.NEW_OFFER)
        log.info("offer %s: buy now by %s on listing %s", offer.id, buyer.user_id, listing.id)
        return offer

    async def accept(self, offer_id: str, actor: Actor) -> Offer:
        offer, listing = await self._lock_for_resolution(offer_id)
        self._require_recipient(offer, actor)
        self._require_pending(offer)
        self._require_active(listing)

        transition_offer(offer, OfferStatus.ACCEPTED)
        offer.updated_by = actor.user_id
        await self.lifecycle.close_as_sold(listing, actor, winning_offer_id=offer.id)

        self._emit(offer, "offer.accepted", offer.sender_id, NotificationType.OFFER_UPDATE)
        log.info("offer %s: accepted by %s", offer.id, actor.user_id)
        return offer

    async def decline(self, offer_id: str, actor: Actor) -> Offer:
        offer, _ = await self._lock_for_resolution(offer_id)
        self._require_recipient(offer, actor)
        self._require_pending(offer)

        transition_offer(offer, OfferStatus.DECLINED)
        offer.updated_by = actor.user_id
        await self.db.flush()

        self._emit(offer, "offer.declined", offer.sender_id, NotificationType.OFFER_UPDATE)
        log.info("offer %s: declined by %s", offer.id, actor.user_id)
        return offer

    async def counter(
        self,
        offer_id: str,
        actor: Actor,
        new_amount: Decimal,
        message: str | None = None,
    ) -> Offer:
        offer, listing = await self._lock_for_resolution(offer_id)
        self._require_recipient(offer, actor)
        self._require_pending(offer)
        _require_positive(new_amount)
        self._require_active(listing)

        transition_offer(offer, OfferStatus.COUNTERED)
        offer.updated_by = actor.user_id

        successor = Offer(
            listing_id=offer.listing_id,
            buyer_id=offer.buyer_id,
            seller_id=offer.seller_id,
            sender_id=actor.user_id,
            amount=new_amount,
            message=message,
            type=OfferType.OFFER.value,
            status=OfferStatus.PENDING.value,
            counter_offer_id=offer.id,
            updated_by=actor.user_id,
        )
        self.db.add(successor)
        await self.db.flush()

        self._emit(successor, "offer.countered", successor.recipient_id, NotificationType.NEW_OFFER)
        log.info("offer %s: countered by %s with %s (%s)", offer.id, actor.user_id, new_amount, successor.id)
        return successor

    async def chain(self, offer_id: str, actor: Actor) -> list[Offer]:
        offer = await self.get_for_party(offer_id, actor)
        # a chain never leaves its (listing, buyer) pair
        stmt = select(Offer).where(
            Offer.listing_id == offer.listing_id,
            Offer.buyer_id == offer.buyer_id,
        )
        arena = list((await self.db.execute(stmt)).scalars().all())
        return order_chain(arena, offer.id)

    async def list_offers(
        self,
        actor: Actor,
        *,
        direction: str = "incoming",
        status: OfferStatus | None = None,
        listing_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Offer]:
        party = or_(Offer.buyer_id == actor.user_id, Offer.seller_id == actor.user_id)
        if direction == "incoming":
            cond = (Offer.sender_id != actor.user_id)
        elif direction == "outgoing":
            cond = (Offer.sender_id == actor.user_id)
        else:
            raise ValidationError("direction must be incoming or outgoing")

        stmt = select(Offer).where(party, cond)
        if status:
            stmt = stmt.where(Offer.status == status.value)
        if listing_id:
            stmt = stmt.where(Offer.listing_id == listing_id)
        stmt = stmt.order_by(Offer.created_at.desc(), Offer.id).limit(limit).offset(offset)
        return list((await self.db.execute(stmt)).scalars().all())

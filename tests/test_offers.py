from decimal import Decimal

import pytest
from sqlalchemy import select

from fixtures_seed import make_listing, reload
from marketmate.core.errors import (
    AlreadyResolvedError,
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from marketmate.models.enums import ListingStatus, OfferStatus, OfferType
from marketmate.models.listing import Listing
from marketmate.models.offer import Offer
from marketmate.models.outbox import OutboxEvent
from marketmate.services.offers import order_chain
from marketmate.services.retry import run_atomic


async def _active_listing(db_session, seed, **kwargs) -> str:
    listing = await make_listing(db_session, seed["seller"]["id"], seed["category_id"], **kwargs)
    listing_id = listing.id
    await db_session.commit()
    return listing_id


async def test_accept_sells_listing_and_declines_siblings(db_session, seed, offers):
    listing_id = await _active_listing(db_session, seed)
    seller = seed["seller"]["actor"]

    first = await run_atomic(db_session, lambda: offers.make_offer(listing_id, seed["buyer"]["actor"], Decimal("90")))
    second = await run_atomic(db_session, lambda: offers.make_offer(listing_id, seed["buyer2"]["actor"], Decimal("95")))
    first_id, second_id = first.id, second.id

    accepted = await run_atomic(db_session, lambda: offers.accept(second_id, seller))
    assert accepted.status == OfferStatus.ACCEPTED

    assert (await reload(db_session, Listing, listing_id)).status == ListingStatus.SOLD
    assert (await reload(db_session, Offer, first_id)).status == OfferStatus.DECLINED

    pending = (await db_session.execute(
        select(Offer).where(Offer.listing_id == listing_id, Offer.status == OfferStatus.PENDING.value)
    )).scalars().all()
    assert pending == []

    # the losing offer can no longer be accepted
    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: offers.accept(first_id, seller))


async def test_second_accept_on_sold_listing_fails(db_session, seed, offers, lifecycle):
    listing_id = await _active_listing(db_session, seed)
    seller = seed["seller"]["actor"]
    offer = await run_atomic(db_session, lambda: offers.make_offer(listing_id, seed["buyer"]["actor"], Decimal("90")))
    offer_id = offer.id

    await run_atomic(db_session, lambda: lifecycle.mark_sold(listing_id, seller))
    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: offers.accept(offer_id, seller))


async def test_buy_now_creates_sold_offer(db_session, seed, offers):
    listing_id = await _active_listing(db_session, seed, negotiable=False, price="250.00")
    other = await run_atomic(db_session, lambda: offers.make_offer(listing_id, seed["buyer2"]["actor"], Decimal("200")))
    other_id = other.id

    offer = await run_atomic(db_session, lambda: offers.buy_now(listing_id, seed["buyer"]["actor"]))
    assert offer.type == OfferType.BUY_NOW
    assert offer.status == OfferStatus.SOLD
    assert offer.amount == Decimal("250.00")

    assert (await reload(db_session, Listing, listing_id)).status == ListingStatus.SOLD
    assert (await reload(db_session, Offer, other_id)).status == OfferStatus.DECLINED

    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: offers.buy_now(listing_id, seed["buyer2"]["actor"]))


async def test_buy_now_requires_fixed_price(db_session, seed, offers):
    listing_id = await _active_listing(db_session, seed, negotiable=True)
    with pytest.raises(ValidationError):
        await run_atomic(db_session, lambda: offers.buy_now(listing_id, seed["buyer"]["actor"]))
    assert (await reload(db_session, Listing, listing_id)).status == ListingStatus.ACTIVE


async def test_buy_now_rejects_free_listing(db_session, seed, offers):
    listing_id = await _active_listing(db_session, seed, negotiable=False, price="0.00")
    with pytest.raises(ValidationError):
        await run_atomic(db_session, lambda: offers.buy_now(listing_id, seed["buyer"]["actor"]))

    assert (await reload(db_session, Listing, listing_id)).status == ListingStatus.ACTIVE
    rows = (await db_session.execute(select(Offer).where(Offer.listing_id == listing_id))).scalars().all()
    assert rows == []


async def test_counter_then_accept_round_trip(db_session, seed, offers):
    listing_id = await _active_listing(db_session, seed)
    buyer = seed["buyer"]["actor"]
    seller = seed["seller"]["actor"]

    opening = await run_atomic(db_session, lambda: offers.make_offer(listing_id, buyer, Decimal("70")))
    opening_id = opening.id

    # only the recipient (seller) may counter the buyer's offer
    with pytest.raises(ForbiddenError):
        await run_atomic(db_session, lambda: offers.counter(opening_id, buyer, Decimal("75")))

    seller_counter = await run_atomic(db_session, lambda: offers.counter(opening_id, seller, Decimal("90"), "meet me"))
    seller_counter_id = seller_counter.id
    assert seller_counter.sender_id == seller.user_id
    assert seller_counter.recipient_id == buyer.user_id
    assert seller_counter.counter_offer_id == opening_id

    buyer_counter = await run_atomic(db_session, lambda: offers.counter(seller_counter_id, buyer, Decimal("80")))
    buyer_counter_id = buyer_counter.id

    final = await run_atomic(db_session, lambda: offers.accept(buyer_counter_id, seller))
    assert final.status == OfferStatus.ACCEPTED
    assert (await reload(db_session, Listing, listing_id)).status == ListingStatus.SOLD

    chain = await offers.chain(opening_id, buyer)
    assert [o.id for o in chain] == [opening_id, seller_counter_id, buyer_counter_id]
    assert [o.status for o in chain] == [OfferStatus.COUNTERED, OfferStatus.COUNTERED, OfferStatus.ACCEPTED]
    assert [o.amount for o in chain] == [Decimal("70"), Decimal("90"), Decimal("80")]


async def test_offer_guards(db_session, seed, offers):
    listing_id = await _active_listing(db_session, seed)
    buyer = seed["buyer"]["actor"]
    seller = seed["seller"]["actor"]

    with pytest.raises(ValidationError):
        await run_atomic(db_session, lambda: offers.make_offer(listing_id, seller, Decimal("10")))
    with pytest.raises(ValidationError):
        await run_atomic(db_session, lambda: offers.make_offer(listing_id, buyer, Decimal("0")))

    offer = await run_atomic(db_session, lambda: offers.make_offer(listing_id, buyer, Decimal("50")))
    offer_id = offer.id

    # one live negotiation per buyer and listing
    with pytest.raises(ValidationError):
        await run_atomic(db_session, lambda: offers.make_offer(listing_id, buyer, Decimal("55")))

    with pytest.raises(ForbiddenError):
        await run_atomic(db_session, lambda: offers.accept(offer_id, buyer))
    with pytest.raises(ForbiddenError):
        await run_atomic(db_session, lambda: offers.decline(offer_id, seed["buyer2"]["actor"]))
    with pytest.raises(ValidationError):
        await run_atomic(db_session, lambda: offers.counter(offer_id, seller, Decimal("-5")))

    declined = await run_atomic(db_session, lambda: offers.decline(offer_id, seller))
    assert declined.status == OfferStatus.DECLINED
    assert (await reload(db_session, Listing, listing_id)).status == ListingStatus.ACTIVE

    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: offers.counter(offer_id, seller, Decimal("60")))


async def test_offer_on_inactive_listing(db_session, seed, offers):
    listing_id = await _active_listing(db_session, seed, status=ListingStatus.PENDING)
    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: offers.make_offer(listing_id, seed["buyer"]["actor"], Decimal("50")))


async def test_offer_events_reach_the_recipient(db_session, seed, offers):
    listing_id = await _active_listing(db_session, seed)
    offer = await run_atomic(db_session, lambda: offers.make_offer(listing_id, seed["buyer"]["actor"], Decimal("50")))

    event = (await db_session.execute(
        select(OutboxEvent).where(OutboxEvent.aggregate_id == offer.id)
    )).scalar_one()
    assert event.event_type == "offer.created"
    assert event.payload["recipients"] == [seed["seller"]["id"]]
    assert event.payload["notification_type"] == "new_offer"


async def test_list_offers_by_direction(db_session, seed, offers):
    listing_id = await _active_listing(db_session, seed)
    buyer = seed["buyer"]["actor"]
    seller = seed["seller"]["actor"]
    offer = await run_atomic(db_session, lambda: offers.make_offer(listing_id, buyer, Decimal("50")))

    assert [o.id for o in await offers.list_offers(seller, direction="incoming")] == [offer.id]
    assert await offers.list_offers(seller, direction="outgoing") == []
    assert [o.id for o in await offers.list_offers(buyer, direction="outgoing")] == [offer.id]
    with pytest.raises(ValidationError):
        await offers.list_offers(buyer, direction="sideways")


def test_order_chain_from_any_member():
    a = Offer(id="a", counter_offer_id=None)
    b = Offer(id="b", counter_offer_id="a")
    c = Offer(id="c", counter_offer_id="b")
    stray = Offer(id="x", counter_offer_id=None)
    arena = [c, stray, a, b]

    assert [o.id for o in order_chain(arena, "b")] == ["a", "b", "c"]
    assert [o.id for o in order_chain(arena, "c")] == ["a", "b", "c"]
    assert [o.id for o in order_chain(arena, "x")] == ["x"]
    assert order_chain(arena, "missing") == []


async def test_mark_sold_twice_through_accept_path(db_session, seed, offers, lifecycle):
    listing_id = await _active_listing(db_session, seed)
    offer = await run_atomic(db_session, lambda: offers.make_offer(listing_id, seed["buyer"]["actor"], Decimal("50")))
    offer_id = offer.id
    await run_atomic(db_session, lambda: offers.accept(offer_id, seed["seller"]["actor"]))

    with pytest.raises(AlreadyResolvedError):
        await run_atomic(db_session, lambda: lifecycle.mark_sold(listing_id, seed["seller"]["actor"]))

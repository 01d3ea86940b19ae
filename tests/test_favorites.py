import pytest
from sqlalchemy import select

from fixtures_seed import make_listing, reload
from marketmate.core.errors import InvalidStateError, NotFoundError
from marketmate.models.enums import ListingStatus
from marketmate.models.favorite import Favorite
from marketmate.models.listing import Listing
from marketmate.services.favorites import Favorites
from marketmate.services.retry import run_atomic


@pytest.fixture
def favorites(db_session, lifecycle):
    return Favorites(db_session, lifecycle)


async def _listing(db_session, seed, **kwargs) -> str:
    listing = await make_listing(db_session, seed["seller"]["id"], seed["category_id"], **kwargs)
    listing_id = listing.id
    await db_session.commit()
    return listing_id


async def test_save_and_unsave_keep_the_count(db_session, seed, favorites):
    listing_id = await _listing(db_session, seed)
    buyer = seed["buyer"]["actor"]

    await run_atomic(db_session, lambda: favorites.add(listing_id, buyer))
    # saving twice changes nothing
    await run_atomic(db_session, lambda: favorites.add(listing_id, buyer))
    await run_atomic(db_session, lambda: favorites.add(listing_id, seed["buyer2"]["actor"]))
    assert (await reload(db_session, Listing, listing_id)).favorites_count == 2

    mine = await favorites.list_mine(buyer)
    assert [listing.id for listing in mine] == [listing_id]

    listing = await run_atomic(db_session, lambda: favorites.remove(listing_id, buyer))
    assert listing.favorites_count == 1
    assert (await reload(db_session, Listing, listing_id)).favorites_count == 1
    assert await favorites.list_mine(buyer) == []

    with pytest.raises(NotFoundError):
        await run_atomic(db_session, lambda: favorites.remove(listing_id, buyer))
    assert (await reload(db_session, Listing, listing_id)).favorites_count == 1


async def test_only_visible_active_listings_can_be_saved(db_session, seed, favorites):
    draft_id = await _listing(db_session, seed, status=ListingStatus.DRAFT)
    sold_id = await _listing(db_session, seed, status=ListingStatus.SOLD)
    buyer = seed["buyer"]["actor"]

    with pytest.raises(NotFoundError):
        await run_atomic(db_session, lambda: favorites.add(draft_id, buyer))
    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: favorites.add(sold_id, buyer))
    assert (await db_session.execute(select(Favorite))).scalars().all() == []


async def test_off_market_listings_drop_out_of_my_favorites(db_session, seed, favorites, lifecycle):
    listing_id = await _listing(db_session, seed)
    buyer = seed["buyer"]["actor"]
    await run_atomic(db_session, lambda: favorites.add(listing_id, buyer))

    await run_atomic(db_session, lambda: lifecycle.delete(listing_id, seed["seller"]["actor"]))
    assert await favorites.list_mine(buyer) == []

    # the saved row survives, so it can still be removed
    await run_atomic(db_session, lambda: favorites.remove(listing_id, buyer))
    assert (await reload(db_session, Listing, listing_id)).favorites_count == 0


async def test_views_count_skips_the_owner(db_session, seed, lifecycle):
    listing_id = await _listing(db_session, seed)
    before = (await reload(db_session, Listing, listing_id)).updated_at

    await run_atomic(db_session, lambda: lifecycle.view(listing_id, seed["buyer"]["actor"]))
    await run_atomic(db_session, lambda: lifecycle.view(listing_id, None))
    listing = await run_atomic(db_session, lambda: lifecycle.view(listing_id, seed["seller"]["actor"]))
    assert listing.views_count == 2

    fresh = await reload(db_session, Listing, listing_id)
    assert fresh.views_count == 2
    assert fresh.updated_at == before

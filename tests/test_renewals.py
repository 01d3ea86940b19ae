from dataclasses import replace
from datetime import timedelta

import pytest
from sqlalchemy import select

from fixtures_seed import make_listing, reload
from marketmate.core.clock import as_utc, utcnow
from marketmate.core.errors import ForbiddenError, InvalidStateError, QuotaExceededError, ValidationError
from marketmate.models.enums import ListingStatus
from marketmate.models.listing import Listing
from marketmate.models.listing_renewal import ListingRenewal
from marketmate.services.renewals import RenewalPolicy
from marketmate.services.retry import run_atomic


async def _listing(db_session, seed, *, status=ListingStatus.ACTIVE, expires_in_days=10) -> str:
    listing = await make_listing(
        db_session, seed["seller"]["id"], seed["category_id"], status=status, expires_in_days=expires_in_days
    )
    listing_id = listing.id
    await db_session.commit()
    return listing_id


async def test_renew_extends_from_current_expiry(db_session, seed, renewals):
    listing_id = await _listing(db_session, seed, expires_in_days=10)
    current = as_utc((await reload(db_session, Listing, listing_id)).expires_at)
    now = utcnow()

    result = await run_atomic(db_session, lambda: renewals.renew(listing_id, seed["seller"]["actor"], 30, now=now))
    assert as_utc(result.listing.expires_at) == current + timedelta(days=30)
    assert result.listing.status == ListingStatus.ACTIVE
    assert result.renewals_remaining == 4

    renewal = (await db_session.execute(select(ListingRenewal))).scalar_one()
    assert renewal.listing_id == listing_id
    assert as_utc(renewal.previous_expires_at) == current


async def test_renew_is_capped_at_max_duration(db_session, seed, renewals):
    listing_id = await _listing(db_session, seed, expires_in_days=80)
    now = utcnow()

    result = await run_atomic(db_session, lambda: renewals.renew(listing_id, seed["seller"]["actor"], 30, now=now))
    assert as_utc(result.listing.expires_at) == now + timedelta(days=90)

    again = await run_atomic(db_session, lambda: renewals.renew(listing_id, seed["seller"]["actor"], 90, now=now))
    assert as_utc(again.listing.expires_at) == now + timedelta(days=90)


async def test_renew_reactivates_expired_listing(db_session, seed, renewals):
    listing_id = await _listing(db_session, seed, status=ListingStatus.EXPIRED, expires_in_days=-3)
    now = utcnow()

    result = await run_atomic(db_session, lambda: renewals.renew(listing_id, seed["seller"]["actor"], 30, now=now))
    assert result.listing.status == ListingStatus.ACTIVE
    assert as_utc(result.listing.expires_at) == now + timedelta(days=30)


async def test_daily_quota(db_session, seed, site, lifecycle):
    policy = RenewalPolicy(db_session, replace(site, daily_renewal_quota=2), lifecycle)
    seller = seed["seller"]["actor"]
    first = await _listing(db_session, seed, expires_in_days=1)
    second = await _listing(db_session, seed, expires_in_days=1)

    await run_atomic(db_session, lambda: policy.renew(first, seller, 30))
    last = await run_atomic(db_session, lambda: policy.renew(second, seller, 30))
    assert last.renewals_remaining == 0

    # the quota is per owner, across listings
    with pytest.raises(QuotaExceededError) as exc:
        await run_atomic(db_session, lambda: policy.renew(first, seller, 30))
    assert exc.value.details == [{"used": 2, "quota": 2}]

    # renewals older than a day no longer count
    later = utcnow() + timedelta(hours=25)
    assert await policy.renewals_remaining(seller.user_id, later) == 2
    await run_atomic(db_session, lambda: policy.renew(first, seller, 30, now=later))


async def test_renew_guards(db_session, seed, renewals):
    seller = seed["seller"]["actor"]
    active_id = await _listing(db_session, seed)
    sold_id = await _listing(db_session, seed, status=ListingStatus.SOLD)
    before = as_utc((await reload(db_session, Listing, active_id)).expires_at)

    with pytest.raises(ForbiddenError):
        await run_atomic(db_session, lambda: renewals.renew(active_id, seed["buyer"]["actor"], 30))
    with pytest.raises(ValidationError):
        await run_atomic(db_session, lambda: renewals.renew(active_id, seller, 45))
    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: renewals.renew(sold_id, seller, 30))

    # failed renewals change nothing
    assert as_utc((await reload(db_session, Listing, active_id)).expires_at) == before
    assert (await db_session.execute(select(ListingRenewal))).scalars().all() == []

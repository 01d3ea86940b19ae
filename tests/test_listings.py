from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from fixtures_seed import make_listing, reload
from marketmate.core.clock import as_utc, utcnow
from marketmate.core.errors import (
    AlreadyResolvedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from marketmate.models.enums import ListingStatus, ModerationAction, OfferStatus
from marketmate.models.listing import Listing
from marketmate.models.moderation_log import ModerationLog
from marketmate.models.offer import Offer
from marketmate.models.outbox import OutboxEvent
from marketmate.services.listings import DraftFields, ListingLifecycle
from marketmate.services.retry import run_atomic


def _fields(category_id: str, **overrides) -> DraftFields:
    base = dict(
        title="Vintage lamp",
        category_id=category_id,
        condition="like_new",
        price=Decimal("45.00"),
        currency="eur",
        location="Porto",
        location_lat=41.15,
        location_lng=-8.61,
        description="Brass, works fine",
    )
    base.update(overrides)
    return DraftFields(**base)


async def test_draft_review_approve_flow(db_session, seed, lifecycle):
    seller = seed["seller"]["actor"]
    admin = seed["admin"]["actor"]

    draft = await run_atomic(db_session, lambda: lifecycle.create_draft(seller, _fields(seed["category_id"])))
    assert draft.status == ListingStatus.DRAFT
    assert draft.currency == "EUR"
    assert draft.listing_duration == 30

    before = utcnow()
    pending = await run_atomic(db_session, lambda: lifecycle.submit_for_review(draft.id, seller))
    assert pending.status == ListingStatus.PENDING
    assert as_utc(pending.expires_at) >= before + timedelta(days=30)

    active = await run_atomic(db_session, lambda: lifecycle.approve(draft.id, admin))
    assert active.status == ListingStatus.ACTIVE
    assert as_utc(active.expires_at) >= before + timedelta(days=30)

    logs = (await db_session.execute(select(ModerationLog).where(ModerationLog.target_id == draft.id))).scalars().all()
    assert [log.action for log in logs] == [ModerationAction.APPROVE_LISTING]


async def test_approval_restarts_the_duration(db_session, seed, lifecycle):
    seller = seed["seller"]["actor"]
    draft = await run_atomic(db_session, lambda: lifecycle.create_draft(seller, _fields(seed["category_id"])))
    draft_id = draft.id

    submitted_at = utcnow() - timedelta(days=20)
    await run_atomic(db_session, lambda: lifecycle.submit_for_review(draft_id, seller, now=submitted_at))

    approved_at = utcnow()
    active = await run_atomic(db_session, lambda: lifecycle.approve(draft_id, seed["admin"]["actor"], now=approved_at))
    assert as_utc(active.expires_at) - approved_at == timedelta(days=30)


async def test_auto_moderation_activates_on_submit(db_session, seed, site):
    lifecycle = ListingLifecycle(db_session, replace(site, moderation_mode="auto"))
    seller = seed["seller"]["actor"]

    draft = await run_atomic(db_session, lambda: lifecycle.create_draft(seller, _fields(seed["category_id"])))
    listing = await run_atomic(db_session, lambda: lifecycle.submit_for_review(draft.id, seller))
    assert listing.status == ListingStatus.ACTIVE


async def test_create_draft_validation(db_session, seed, lifecycle):
    seller = seed["seller"]["actor"]

    with pytest.raises(ValidationError) as exc:
        await run_atomic(
            db_session,
            lambda: lifecycle.create_draft(seller, _fields(seed["category_id"], title=" ", price=Decimal("-1"))),
        )
    fields = {d["field"] for d in exc.value.details}
    assert {"title", "price"} <= fields

    with pytest.raises(ValidationError):
        await run_atomic(db_session, lambda: lifecycle.create_draft(seller, _fields("cat_missing")))

    with pytest.raises(ValidationError):
        await run_atomic(
            db_session, lambda: lifecycle.create_draft(seller, _fields(seed["category_id"], listing_duration=45))
        )

    count = (await db_session.execute(select(func.count()).select_from(Listing))).scalar_one()
    assert count == 0


async def test_only_owner_submits_and_only_admin_approves(db_session, seed, lifecycle):
    seller = seed["seller"]["actor"]
    buyer = seed["buyer"]["actor"]

    draft_id = (await run_atomic(db_session, lambda: lifecycle.create_draft(seller, _fields(seed["category_id"])))).id
    with pytest.raises(ForbiddenError):
        await run_atomic(db_session, lambda: lifecycle.submit_for_review(draft_id, buyer))

    await run_atomic(db_session, lambda: lifecycle.submit_for_review(draft_id, seller))
    with pytest.raises(ForbiddenError):
        await run_atomic(db_session, lambda: lifecycle.approve(draft_id, seller))
    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: lifecycle.submit_for_review(draft_id, seller))


async def test_reject_archives_and_logs_reason(db_session, seed, lifecycle):
    listing = await make_listing(db_session, seed["seller"]["id"], seed["category_id"], status=ListingStatus.PENDING)
    await db_session.commit()

    rejected = await run_atomic(db_session, lambda: lifecycle.reject(listing.id, seed["admin"]["actor"], "blurry photos"))
    assert rejected.status == ListingStatus.ARCHIVED

    entry = (await db_session.execute(select(ModerationLog))).scalar_one()
    assert entry.action == ModerationAction.REJECT_LISTING
    assert entry.details == {"reason": "blurry photos"}


async def test_mark_sold_is_idempotent_and_declines_offers(db_session, seed, lifecycle, offers):
    listing_id = (await make_listing(db_session, seed["seller"]["id"], seed["category_id"])).id
    await db_session.commit()
    offer = await run_atomic(db_session, lambda: offers.make_offer(listing_id, seed["buyer"]["actor"], Decimal("80")))
    offer_id = offer.id

    await run_atomic(db_session, lambda: lifecycle.mark_sold(listing_id, seed["seller"]["actor"]))
    with pytest.raises(AlreadyResolvedError):
        await run_atomic(db_session, lambda: lifecycle.mark_sold(listing_id, seed["seller"]["actor"]))

    assert (await reload(db_session, Listing, listing_id)).status == ListingStatus.SOLD
    assert (await reload(db_session, Offer, offer_id)).status == OfferStatus.DECLINED


async def test_mark_sold_from_expired_is_invalid(db_session, seed, lifecycle):
    listing = await make_listing(
        db_session, seed["seller"]["id"], seed["category_id"], status=ListingStatus.EXPIRED, expires_in_days=-1
    )
    listing_id = listing.id
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: lifecycle.mark_sold(listing_id, seed["seller"]["actor"]))
    assert (await reload(db_session, Listing, listing_id)).status == ListingStatus.EXPIRED


async def test_delete_draft_is_hard_delete(db_session, seed, lifecycle):
    seller = seed["seller"]["actor"]
    draft = await run_atomic(db_session, lambda: lifecycle.create_draft(seller, _fields(seed["category_id"])))
    await run_atomic(db_session, lambda: lifecycle.attach_image(draft.id, seller, "https://img.example/1.jpg"))

    assert await run_atomic(db_session, lambda: lifecycle.delete(draft.id, seller)) is None
    with pytest.raises(NotFoundError):
        await lifecycle.get(draft.id)


async def test_delete_active_archives_then_already_resolved(db_session, seed, lifecycle):
    seller = seed["seller"]["actor"]
    listing = await make_listing(db_session, seller.user_id, seed["category_id"])
    await db_session.commit()

    archived = await run_atomic(db_session, lambda: lifecycle.delete(listing.id, seller))
    assert archived.status == ListingStatus.ARCHIVED

    with pytest.raises(AlreadyResolvedError):
        await run_atomic(db_session, lambda: lifecycle.delete(listing.id, seller))


async def test_delete_sold_is_invalid(db_session, seed, lifecycle):
    seller = seed["seller"]["actor"]
    listing = await make_listing(db_session, seller.user_id, seed["category_id"], status=ListingStatus.SOLD)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await run_atomic(db_session, lambda: lifecycle.delete(listing.id, seller))


async def test_non_owner_cannot_delete(db_session, seed, lifecycle):
    listing = await make_listing(db_session, seed["seller"]["id"], seed["category_id"])
    await db_session.commit()

    with pytest.raises(ForbiddenError):
        await run_atomic(db_session, lambda: lifecycle.delete(listing.id, seed["buyer"]["actor"]))


async def test_expire_overdue_is_idempotent(db_session, seed, lifecycle):
    owner = seed["seller"]["id"]
    cat = seed["category_id"]
    overdue = await make_listing(db_session, owner, cat, expires_in_days=-1)
    overdue_pending = await make_listing(db_session, owner, cat, status=ListingStatus.PENDING, expires_in_days=-2)
    fresh = await make_listing(db_session, owner, cat, expires_in_days=5)
    old_draft = await make_listing(db_session, owner, cat, status=ListingStatus.DRAFT, expires_in_days=-3)
    await db_session.commit()

    first = await run_atomic(db_session, lifecycle.expire_overdue)
    assert set(first) == {overdue.id, overdue_pending.id}

    second = await run_atomic(db_session, lifecycle.expire_overdue)
    assert second == []

    assert (await reload(db_session, Listing, fresh.id)).status == ListingStatus.ACTIVE
    assert (await reload(db_session, Listing, old_draft.id)).status == ListingStatus.DRAFT

    events = (await db_session.execute(
        select(OutboxEvent).where(OutboxEvent.event_type == "listing.expired")
    )).scalars().all()
    assert len(events) == 2
    assert all(e.payload["recipients"] == [owner] for e in events)


async def test_visibility_hides_drafts_from_strangers(db_session, seed, lifecycle):
    listing = await make_listing(db_session, seed["seller"]["id"], seed["category_id"], status=ListingStatus.DRAFT)
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await lifecycle.get_visible(listing.id, seed["buyer"]["actor"])
    with pytest.raises(NotFoundError):
        await lifecycle.get_visible(listing.id, None)
    assert (await lifecycle.get_visible(listing.id, seed["seller"]["actor"])).id == listing.id
    assert (await lifecycle.get_visible(listing.id, seed["admin"]["actor"])).id == listing.id


async def test_image_limit(db_session, seed, site):
    lifecycle = ListingLifecycle(db_session, replace(site, max_images_per_listing=1))
    seller = seed["seller"]["actor"]
    listing_id = (await make_listing(db_session, seller.user_id, seed["category_id"])).id
    await db_session.commit()

    await run_atomic(db_session, lambda: lifecycle.attach_image(listing_id, seller, "https://img.example/a.jpg"))
    with pytest.raises(ValidationError):
        await run_atomic(db_session, lambda: lifecycle.attach_image(listing_id, seller, "https://img.example/b.jpg"))
    with pytest.raises(ForbiddenError):
        await run_atomic(
            db_session, lambda: lifecycle.attach_image(listing_id, seed["buyer"]["actor"], "https://img.example/c.jpg")
        )
    assert len(await lifecycle.images(listing_id)) == 1

from fastapi import APIRouter, Depends, Query, Request

from marketmate.api.v1.deps import get_favorites, get_lifecycle, get_renewal_policy
from marketmate.models.enums import ListingStatus
from marketmate.models.listing import Listing
from marketmate.schemas.listing import (
    DeleteOut,
    FavoriteOut,
    ImageCreate,
    ImageOut,
    ListingCreate,
    ListingOut,
    ListingStatusUpdate,
    RenewOut,
    RenewRequest,
)
from marketmate.services.auth import Actor, get_optional_actor, require_writable
from marketmate.services.favorites import Favorites
from marketmate.services.idempotency import optional_idempotency_key, run_idempotent
from marketmate.services.listings import DraftFields, ListingLifecycle
from marketmate.services.renewals import RenewalPolicy
from marketmate.services.retry import run_atomic

router = APIRouter()


@router.post("/listings", response_model=ListingOut, status_code=201)
async def create_listing(
    payload: ListingCreate,
    actor: Actor = Depends(require_writable),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingOut:
    fields = DraftFields(
        title=payload.title,
        description=payload.description,
        category_id=payload.category_id,
        condition=payload.condition.value,
        price=payload.price,
        currency=payload.currency,
        negotiable=payload.negotiable,
        location=payload.location,
        location_lat=payload.location_lat,
        location_lng=payload.location_lng,
        listing_duration=payload.listing_duration,
    )
    listing = await run_atomic(lifecycle.db, lambda: lifecycle.create_draft(actor, fields))
    return ListingOut.model_validate(listing)


@router.get("/listings", response_model=list[ListingOut])
async def list_listings(
    owner_id: str | None = None,
    status: ListingStatus | None = None,
    category_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: Actor | None = Depends(get_optional_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> list[ListingOut]:
    rows = await lifecycle.list_listings(
        actor=actor,
        owner_id=owner_id,
        status=status,
        category_id=category_id,
        limit=limit,
        offset=offset,
    )
    return [ListingOut.model_validate(r) for r in rows]


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def get_listing(
    listing_id: str,
    actor: Actor | None = Depends(get_optional_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingOut:
    listing = await run_atomic(lifecycle.db, lambda: lifecycle.view(listing_id, actor))
    return ListingOut.model_validate(listing)


@router.post("/listings/{listing_id}/submit", response_model=ListingOut)
async def submit_listing(
    listing_id: str,
    actor: Actor = Depends(require_writable),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingOut:
    listing = await run_atomic(lifecycle.db, lambda: lifecycle.submit_for_review(listing_id, actor))
    return ListingOut.model_validate(listing)


@router.put("/listings/{listing_id}/status", response_model=ListingOut)
async def set_listing_status(
    listing_id: str,
    payload: ListingStatusUpdate,
    actor: Actor = Depends(require_writable),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingOut:
    """
    ``active`` approves a pending listing (admin). ``archived`` rejects a
    pending listing (admin) or takes any other listing down.
    """
    async def work() -> Listing:
        if payload.status == ListingStatus.ACTIVE:
            return await lifecycle.approve(listing_id, actor)
        current = await lifecycle.get(listing_id)
        if current.status == ListingStatus.PENDING:
            return await lifecycle.reject(listing_id, actor, payload.reason)
        return await lifecycle.archive(await lifecycle.lock(listing_id), actor)

    return ListingOut.model_validate(await run_atomic(lifecycle.db, work))


@router.post("/listings/{listing_id}/mark-sold", response_model=ListingOut)
async def mark_listing_sold(
    listing_id: str,
    actor: Actor = Depends(require_writable),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ListingOut:
    listing = await run_atomic(lifecycle.db, lambda: lifecycle.mark_sold(listing_id, actor))
    return ListingOut.model_validate(listing)


@router.post("/listings/{listing_id}/renew", response_model=RenewOut)
async def renew_listing(
    listing_id: str,
    payload: RenewRequest,
    request: Request,
    actor: Actor = Depends(require_writable),
    idempotency_key: str | None = Depends(optional_idempotency_key),
    renewals: RenewalPolicy = Depends(get_renewal_policy),
) -> RenewOut:
    db = renewals.db

    async def work() -> dict:
        result = await renewals.renew(listing_id, actor, payload.duration_days)
        return RenewOut(
            listing=ListingOut.model_validate(result.listing),
            renewal_id=result.renewal.id,
            previous_expires_at=result.renewal.previous_expires_at,
            renewals_remaining=result.renewals_remaining,
        ).model_dump(mode="json")

    resp = await run_atomic(
        db,
        lambda: run_idempotent(
            db, actor, idempotency_key, path=request.url.path, body=payload.model_dump(), work=work
        ),
    )
    return RenewOut(**resp)


@router.post("/listings/{listing_id}/images", response_model=ImageOut, status_code=201)
async def add_listing_image(
    listing_id: str,
    payload: ImageCreate,
    actor: Actor = Depends(require_writable),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ImageOut:
    image = await run_atomic(lifecycle.db, lambda: lifecycle.attach_image(listing_id, actor, payload.url))
    return ImageOut.model_validate(image)


@router.get("/listings/{listing_id}/images", response_model=list[ImageOut])
async def list_listing_images(
    listing_id: str,
    actor: Actor | None = Depends(get_optional_actor),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> list[ImageOut]:
    await lifecycle.get_visible(listing_id, actor)
    return [ImageOut.model_validate(i) for i in await lifecycle.images(listing_id)]


@router.delete("/listings/{listing_id}", response_model=DeleteOut)
async def delete_listing(
    listing_id: str,
    actor: Actor = Depends(require_writable),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> DeleteOut:
    listing = await run_atomic(lifecycle.db, lambda: lifecycle.delete(listing_id, actor))
    if listing is None:
        return DeleteOut(id=listing_id, deleted=True, status=None)
    return DeleteOut(id=listing.id, deleted=False, status=listing.status)


@router.put("/listings/{listing_id}/favorite", response_model=FavoriteOut)
async def save_listing(
    listing_id: str,
    actor: Actor = Depends(require_writable),
    favorites: Favorites = Depends(get_favorites),
) -> FavoriteOut:
    listing = await run_atomic(favorites.db, lambda: favorites.add(listing_id, actor))
    return FavoriteOut(listing_id=listing.id, favorited=True, favorites_count=listing.favorites_count)


@router.delete("/listings/{listing_id}/favorite", response_model=FavoriteOut)
async def unsave_listing(
    listing_id: str,
    actor: Actor = Depends(require_writable),
    favorites: Favorites = Depends(get_favorites),
) -> FavoriteOut:
    listing = await run_atomic(favorites.db, lambda: favorites.remove(listing_id, actor))
    return FavoriteOut(listing_id=listing.id, favorited=False, favorites_count=listing.favorites_count)

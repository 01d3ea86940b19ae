from fastapi import APIRouter, Depends, Query

from marketmate.api.v1.deps import get_favorites, get_renewal_policy
from marketmate.schemas.listing import ListingOut
from marketmate.schemas.me import MeOut
from marketmate.services.auth import Actor, get_actor
from marketmate.services.favorites import Favorites
from marketmate.services.renewals import RenewalPolicy
from marketmate.services.users import get_user

router = APIRouter()

@router.get("/me", response_model=MeOut)
async def me(
    actor: Actor = Depends(get_actor),
    renewals: RenewalPolicy = Depends(get_renewal_policy),
) -> MeOut:
    user = await get_user(renewals.db, actor.user_id)
    return MeOut(
        user_id=actor.user_id,
        api_key_id=actor.api_key_id,
        role=actor.role,
        status=user.status,
        display_name=user.display_name,
        renewals_remaining=await renewals.renewals_remaining(actor.user_id),
    )


@router.get("/me/favorites", response_model=list[ListingOut])
async def my_favorites(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_actor),
    favorites: Favorites = Depends(get_favorites),
) -> list[ListingOut]:
    rows = await favorites.list_mine(actor, limit=limit, offset=offset)
    return [ListingOut.model_validate(r) for r in rows]

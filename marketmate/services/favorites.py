"""
Saved listings. Each (user, listing) pair is saved at most once, and the
listing's favorites_count moves in the same transaction as the row.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.errors import InvalidStateError, NotFoundError
from marketmate.models.enums import ListingStatus
from marketmate.models.favorite import Favorite
from marketmate.models.listing import Listing
from marketmate.services.auth import Actor
from marketmate.services.listings import PUBLIC_STATUSES, ListingLifecycle


log = logging.getLogger(__name__)


class Favorites:
    def __init__(self, db: AsyncSession, lifecycle: ListingLifecycle):
        self.db = db
        self.lifecycle = lifecycle

    async def add(self, listing_id: str, actor: Actor) -> Listing:
        """Save an active listing. Saving it again is a no-op."""
        await self.lifecycle.get_visible(listing_id, actor)
        listing = await self.lifecycle.lock(listing_id)
        if listing.status != ListingStatus.ACTIVE:
            raise InvalidStateError(f"Only active listings can be saved (listing is {listing.status})")

        existing = (await self.db.execute(
            select(Favorite.id).where(Favorite.user_id == actor.user_id, Favorite.listing_id == listing.id)
        )).first()
        if existing:
            return listing

        self.db.add(Favorite(user_id=actor.user_id, listing_id=listing.id))
        await self.db.flush()
        await self.lifecycle.adjust_counter(listing, "favorites_count", 1)
        log.info("listing %s: saved by %s", listing.id, actor.user_id)
        return listing

    async def remove(self, listing_id: str, actor: Actor) -> Listing:
        removed = (await self.db.execute(
            delete(Favorite)
            .where(Favorite.user_id == actor.user_id, Favorite.listing_id == listing_id)
            .returning(Favorite.id)
            .execution_options(synchronize_session="fetch")
        )).first()
        if removed is None:
            raise NotFoundError("Favorite not found")

        listing = await self.lifecycle.lock(listing_id)
        await self.lifecycle.adjust_counter(listing, "favorites_count", -1)
        log.info("listing %s: unsaved by %s", listing.id, actor.user_id)
        return listing

    async def list_mine(self, actor: Actor, *, limit: int = 50, offset: int = 0) -> list[Listing]:
        # listings that went off the market drop out of the list but keep the row
        stmt = (
            select(Listing)
            .join(Favorite, Favorite.listing_id == Listing.id)
            .where(Favorite.user_id == actor.user_id, Listing.status.in_(PUBLIC_STATUSES))
            .order_by(Favorite.created_at.desc(), Favorite.id)
            .limit(limit)
            .offset(offset)
        )
        return list((await self.db.execute(stmt)).scalars().all())

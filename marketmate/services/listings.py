"""
Listing lifecycle: draft -> pending/active -> sold/expired/archived.

Every status change goes through state_machine.transition_listing. Rows
are locked with SELECT ... FOR UPDATE before a transition so that two
requests racing on one listing serialise on the row; the loser re-reads
the committed status and fails with InvalidStateError.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from marketmate.core.clock import utcnow
from marketmate.core.errors import (
    AlreadyResolvedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from marketmate.models.category import Category
from marketmate.models.enums import (
    ListingCondition,
    ListingStatus,
    ModerationAction,
    NotificationType,
    OfferStatus,
    ReportTargetType,
)
from marketmate.models.listing import Listing
from marketmate.models.listing_image import ListingImage
from marketmate.models.offer import Offer
from marketmate.services.audit import record_moderation
from marketmate.services.auth import Actor
from marketmate.services.expiry import initial_expiry
from marketmate.services.outbox import emit
from marketmate.services.site_settings import SiteSettings
from marketmate.services.state_machine import (
    LISTING_TRANSITIONS,
    sources_of,
    transition_listing,
    transition_offer,
)


log = logging.getLogger(__name__)

SYSTEM_ACTOR_ID = "system"

# listings other people may look at
PUBLIC_STATUSES = (ListingStatus.ACTIVE.value, ListingStatus.SOLD.value)


@dataclass(frozen=True)
class DraftFields:
    title: str
    category_id: str
    condition: str
    price: Decimal
    currency: str
    location: str
    location_lat: float
    location_lng: float
    description: str = ""
    negotiable: bool = False
    listing_duration: int | None = None


def _validate_draft_fields(fields: DraftFields, site: SiteSettings) -> list[dict[str, Any]]:
    errors: list[dict[str, Any]] = []
    if not fields.title or not fields.title.strip():
        errors.append({"field": "title", "message": "required"})
    if not fields.category_id:
        errors.append({"field": "category_id", "message": "required"})
    if fields.condition not in {c.value for c in ListingCondition}:
        errors.append({"field": "condition", "message": "must be one of new, like_new, good, acceptable"})
    if fields.price is None or fields.price < 0:
        errors.append({"field": "price", "message": "must be zero or greater"})
    if not fields.currency or len(fields.currency) != 3 or not fields.currency.isalpha():
        errors.append({"field": "currency", "message": "must be a 3-letter currency code"})
    if not fields.location or not fields.location.strip():
        errors.append({"field": "location", "message": "required"})
    if not -90 <= fields.location_lat <= 90 or not -180 <= fields.location_lng <= 180:
        errors.append({"field": "location", "message": "coordinates out of range"})
    duration = fields.listing_duration
    if duration is not None and duration not in site.allowed_listing_durations:
        allowed = ", ".join(str(d) for d in site.allowed_listing_durations)
        errors.append({"field": "listing_duration", "message": f"must be one of {allowed}"})
    return errors


class ListingLifecycle:
    def __init__(self, db: AsyncSession, site: SiteSettings):
        self.db = db
        self.site = site

    # --- lookups ---

    async def get(self, listing_id: str) -> Listing:
        listing = (await self.db.execute(select(Listing).where(Listing.id == listing_id))).scalar_one_or_none()
        if not listing:
            raise NotFoundError("Listing not found")
        return listing

    async def get_visible(self, listing_id: str, actor: Actor | None) -> Listing:
        listing = await self.get(listing_id)
        if listing.status in PUBLIC_STATUSES:
            return listing
        if actor and (actor.is_admin or actor.user_id == listing.owner_id):
            return listing
        # hide drafts and moderation states from everyone else
        raise NotFoundError("Listing not found")

    async def view(self, listing_id: str, actor: Actor | None) -> Listing:
        """get_visible, counting the view unless the owner is looking."""
        listing = await self.get_visible(listing_id, actor)
        if actor is None or actor.user_id != listing.owner_id:
            await self.adjust_counter(listing, "views_count", 1)
        return listing

    async def adjust_counter(self, listing: Listing, column: str, delta: int) -> int:
        # in-SQL increment; counters do not touch updated_at
        counter = getattr(Listing, column)
        stmt = (
            update(Listing)
            .where(Listing.id == listing.id)
            .values({column: counter + delta, "updated_at": Listing.updated_at})
            .returning(counter)
            .execution_options(synchronize_session=False)
        )
        value = (await self.db.execute(stmt)).scalar_one()
        set_committed_value(listing, column, value)
        return value

    async def lock(self, listing_id: str) -> Listing:
        stmt = (
            select(Listing)
            .where(Listing.id == listing_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        listing = (await self.db.execute(stmt)).scalar_one_or_none()
        if not listing:
            raise NotFoundError("Listing not found")
        return listing

    async def list_listings(
        self,
        *,
        actor: Actor | None,
        owner_id: str | None = None,
        status: ListingStatus | None = None,
        category_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Listing]:
        stmt = select(Listing)
        if owner_id:
            stmt = stmt.where(Listing.owner_id == owner_id)
        if category_id:
            stmt = stmt.where(Listing.category_id == category_id)
        if status:
            stmt = stmt.where(Listing.status == status.value)

        sees_everything = actor is not None and (actor.is_admin or (owner_id and actor.user_id == owner_id))
        if not sees_everything:
            stmt = stmt.where(Listing.status.in_(PUBLIC_STATUSES))

        stmt = stmt.order_by(Listing.created_at.desc(), Listing.id).limit(limit).offset(offset)
        return list((await self.db.execute(stmt)).scalars().all())

    # --- guards ---

    @staticmethod
    def _require_owner(listing: Listing, actor: Actor) -> None:
        if listing.owner_id != actor.user_id:
            raise ForbiddenError("Only the listing owner can do this")

    @staticmethod
    def _require_owner_or_admin(listing: Listing, actor: Actor) -> None:
        if listing.owner_id != actor.user_id and not actor.is_admin:
            raise ForbiddenError("Only the listing owner or an admin can do this")

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if not actor.is_admin:
            raise ForbiddenError("Admin role required")

    # --- operations ---

    async def create_draft(self, owner: Actor, fields: DraftFields, *, now: datetime | None = None) -> Listing:
        now = now or utcnow()
        errors = _validate_draft_fields(fields, self.site)
        if not errors:
            category = await self.db.get(Category, fields.category_id)
            if category is None:
                errors.append({"field": "category_id", "message": "unknown category"})
        if errors:
            raise ValidationError("Invalid listing", details=errors)

        duration = fields.listing_duration or self.site.default_listing_duration
        listing = Listing(
            owner_id=owner.user_id,
            title=fields.title.strip(),
            description=fields.description or "",
            category_id=fields.category_id,
            condition=fields.condition,
            price=fields.price,
            currency=fields.currency.upper(),
            negotiable=fields.negotiable,
            location=fields.location.strip(),
            location_lat=fields.location_lat,
            location_lng=fields.location_lng,
            status=ListingStatus.DRAFT.value,
            listing_duration=duration,
            # provisional; recomputed when the listing is submitted
            expires_at=initial_expiry(now, duration, self.site.max_listing_duration_days),
            created_at=now,
            updated_at=now,
            updated_by=owner.user_id,
        )
        self.db.add(listing)
        await self.db.flush()
        log.info("listing %s: created draft for %s", listing.id, owner.user_id)
        return listing

    async def submit_for_review(self, listing_id: str, actor: Actor, *, now: datetime | None = None) -> Listing:
        now = now or utcnow()
        listing = await self.lock(listing_id)
        self._require_owner(listing, actor)
        if listing.status != ListingStatus.DRAFT:
            raise InvalidStateError(f"Only drafts can be submitted (listing is {listing.status})")

        target = ListingStatus.PENDING if self.site.moderation_mode == "manual" else ListingStatus.ACTIVE
        transition_listing(listing, target)
        listing.expires_at = initial_expiry(now, listing.listing_duration, self.site.max_listing_duration_days)
        listing.updated_by = actor.user_id
        await self.db.flush()

        log.info("listing %s: submitted -> %s", listing.id, listing.status)
        return listing

    async def approve(self, listing_id: str, admin: Actor, *, now: datetime | None = None) -> Listing:
        now = now or utcnow()
        self._require_admin(admin)
        listing = await self.lock(listing_id)
        if listing.status != ListingStatus.PENDING:
            raise InvalidStateError(f"Only pending listings can be approved (listing is {listing.status})")

        transition_listing(listing, ListingStatus.ACTIVE)
        # the full duration counts from activation, not from submission
        listing.expires_at = initial_expiry(now, listing.listing_duration, self.site.max_listing_duration_days)
        listing.updated_by = admin.user_id
        await record_moderation(
            self.db,
            admin_id=admin.user_id,
            action=ModerationAction.APPROVE_LISTING,
            target_type=ReportTargetType.LISTING,
            target_id=listing.id,
        )
        self._notify_owner(listing, "listing.approved")
        log.info("listing %s: approved by %s", listing.id, admin.user_id)
        return listing

    async def reject(self, listing_id: str, admin: Actor, reason: str | None = None) -> Listing:
        self._require_admin(admin)
        listing = await self.lock(listing_id)
        if listing.status != ListingStatus.PENDING:
            raise InvalidStateError(f"Only pending listings can be rejected (listing is {listing.status})")

        transition_listing(listing, ListingStatus.ARCHIVED)
        listing.updated_by = admin.user_id
        await record_moderation(
            self.db,
            admin_id=admin.user_id,
            action=ModerationAction.REJECT_LISTING,
            target_type=ReportTargetType.LISTING,
            target_id=listing.id,
            details={"reason": reason} if reason else {},
        )
        self._notify_owner(listing, "listing.rejected", {"reason": reason})
        log.info("listing %s: rejected by %s", listing.id, admin.user_id)
        return listing

    async def mark_sold(self, listing_id: str, actor: Actor) -> Listing:
        listing = await self.lock(listing_id)
        self._require_owner_or_admin(listing, actor)
        await self.close_as_sold(listing, actor)
        return listing

    async def close_as_sold(self, listing: Listing, actor: Actor, *, winning_offer_id: str | None = None) -> list[str]:
        """
        Move a locked listing to sold and decline every other pending offer
        on it. Returns the ids of the offers that were declined.
        """
        if listing.status == ListingStatus.SOLD:
            raise AlreadyResolvedError("Listing is already sold")
        transition_listing(listing, ListingStatus.SOLD)
        listing.updated_by = actor.user_id

        declined = await self.decline_pending_offers(listing, actor, keep_offer_id=winning_offer_id)
        self._notify_owner(listing, "listing.sold", {"offer_id": winning_offer_id})
        log.info("listing %s: sold (offer=%s, declined=%d)", listing.id, winning_offer_id, len(declined))
        return declined

    async def decline_pending_offers(
        self,
        listing: Listing,
        actor: Actor,
        *,
        keep_offer_id: str | None = None,
    ) -> list[str]:
        stmt = select(Offer).where(
            Offer.listing_id == listing.id,
            Offer.status == OfferStatus.PENDING.value,
        )
        if keep_offer_id:
            stmt = stmt.where(Offer.id != keep_offer_id)
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

        offers = (await self.db.execute(stmt)).scalars().all()
        for offer in offers:
            transition_offer(offer, OfferStatus.DECLINED)
            offer.updated_by = actor.user_id
            emit(
                self.db,
                aggregate_type="offer",
                aggregate_id=offer.id,
                event_type="offer.declined",
                recipients=[offer.sender_id],
                notification_type=NotificationType.OFFER_UPDATE,
                data={"offer_id": offer.id, "listing_id": listing.id, "status": offer.status},
            )
        await self.db.flush()
        return [o.id for o in offers]

    async def archive(self, listing: Listing, actor: Actor) -> Listing:
        """Archive a locked listing; pending offers against it are declined."""
        self._require_owner_or_admin(listing, actor)
        if listing.status == ListingStatus.ARCHIVED:
            raise AlreadyResolvedError("Listing is already archived")
        transition_listing(listing, ListingStatus.ARCHIVED)
        listing.updated_by = actor.user_id
        await self.decline_pending_offers(listing, actor)
        if actor.user_id != listing.owner_id:
            self._notify_owner(listing, "listing.archived")
        log.info("listing %s: archived by %s", listing.id, actor.user_id)
        return listing

    async def delete(self, listing_id: str, actor: Actor) -> Listing | None:
        """
        Drafts are removed outright (images go with them); anything else is
        archived. Returns the archived listing, or None for a hard delete.
        """
        listing = await self.lock(listing_id)
        self._require_owner_or_admin(listing, actor)

        if listing.status == ListingStatus.DRAFT:
            await self.db.execute(delete(ListingImage).where(ListingImage.listing_id == listing.id))
            await self.db.delete(listing)
            await self.db.flush()
            log.info("listing %s: draft deleted by %s", listing_id, actor.user_id)
            return None

        await self.archive(listing, actor)
        await self.db.flush()
        return listing

    async def expire_overdue(self, now: datetime | None = None) -> list[str]:
        """
        Expire every active/pending listing whose expires_at has passed.
        One conditional UPDATE: rows already expired (or sold in between)
        no longer match, so concurrent sweeps are harmless.
        """
        now = now or utcnow()
        sources = [s.value for s in sources_of(LISTING_TRANSITIONS, ListingStatus.EXPIRED)]
        stmt = (
            update(Listing)
            .where(Listing.status.in_(sources), Listing.expires_at < now)
            .values(status=ListingStatus.EXPIRED.value, updated_by=SYSTEM_ACTOR_ID, updated_at=now)
            .returning(Listing.id, Listing.owner_id)
            .execution_options(synchronize_session="fetch")
        )
        rows = (await self.db.execute(stmt)).all()
        for listing_id, owner_id in rows:
            emit(
                self.db,
                aggregate_type="listing",
                aggregate_id=listing_id,
                event_type="listing.expired",
                recipients=[owner_id],
                notification_type=NotificationType.LISTING_UPDATE,
                data={"listing_id": listing_id, "status": ListingStatus.EXPIRED.value},
            )
        await self.db.flush()

        if rows:
            log.info("expiry sweep: expired %d listings", len(rows))
        return [r[0] for r in rows]

    async def attach_image(self, listing_id: str, actor: Actor, url: str) -> ListingImage:
        listing = await self.lock(listing_id)
        self._require_owner(listing, actor)
        if listing.status in (ListingStatus.SOLD, ListingStatus.ARCHIVED):
            raise InvalidStateError(f"Cannot add images to a {listing.status} listing")
        if not url or not url.startswith(("http://", "https://")):
            raise ValidationError("Invalid image URL", details=[{"field": "url", "message": "must be http(s)"}])

        count = (await self.db.execute(
            select(func.count()).select_from(ListingImage).where(ListingImage.listing_id == listing.id)
        )).scalar_one()
        if count >= self.site.max_images_per_listing:
            raise ValidationError(f"A listing can have at most {self.site.max_images_per_listing} images")

        image = ListingImage(listing_id=listing.id, url=url, sort_order=count)
        self.db.add(image)
        await self.db.flush()
        return image

    async def images(self, listing_id: str) -> list[ListingImage]:
        stmt = select(ListingImage).where(ListingImage.listing_id == listing_id).order_by(ListingImage.sort_order)
        return list((await self.db.execute(stmt)).scalars().all())

    def _notify_owner(self, listing: Listing, event_type: str, extra: dict[str, Any] | None = None) -> None:
        emit(
            self.db,
            aggregate_type="listing",
            aggregate_id=listing.id,
            event_type=event_type,
            recipients=[listing.owner_id],
            notification_type=NotificationType.LISTING_UPDATE,
            data={"listing_id": listing.id, "status": listing.status, **(extra or {})},
        )

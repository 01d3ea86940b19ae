from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.clock import as_utc, utcnow
from marketmate.core.errors import ForbiddenError, InvalidStateError, QuotaExceededError, ValidationError
from marketmate.models.enums import ListingStatus, NotificationType
from marketmate.models.listing import Listing
from marketmate.models.listing_renewal import ListingRenewal
from marketmate.models.user import User
from marketmate.services.auth import Actor
from marketmate.services.expiry import renewed_expiry
from marketmate.services.listings import ListingLifecycle
from marketmate.services.outbox import emit
from marketmate.services.site_settings import SiteSettings
from marketmate.services.state_machine import transition_listing


log = logging.getLogger(__name__)

QUOTA_WINDOW = timedelta(hours=24)
RENEWABLE = (ListingStatus.ACTIVE.value, ListingStatus.EXPIRED.value)


@dataclass(frozen=True)
class RenewalResult:
    listing: Listing
    renewal: ListingRenewal
    renewals_remaining: int


class RenewalPolicy:
    def __init__(self, db: AsyncSession, site: SiteSettings, lifecycle: ListingLifecycle):
        self.db = db
        self.site = site
        self.lifecycle = lifecycle

    async def renewals_used(self, owner_id: str, now: datetime | None = None) -> int:
        now = now or utcnow()
        stmt = select(func.count()).select_from(ListingRenewal).where(
            ListingRenewal.owner_id == owner_id,
            ListingRenewal.renewed_at > now - QUOTA_WINDOW,
        )
        return int((await self.db.execute(stmt)).scalar_one())

    async def renewals_remaining(self, owner_id: str, now: datetime | None = None) -> int:
        used = await self.renewals_used(owner_id, now)
        return max(0, self.site.daily_renewal_quota - used)

    async def renew(
        self,
        listing_id: str,
        actor: Actor,
        duration_days: int,
        *,
        now: datetime | None = None,
    ) -> RenewalResult:
        """
        Extend a listing by ``duration_days`` from max(now, expires_at),
        never further than now + max_listing_duration_days. An expired
        listing comes back as active. Either everything applies or the
        error propagates and the caller rolls back.
        """
        now = now or utcnow()

        listing = await self.lifecycle.get(listing_id)
        if listing.owner_id != actor.user_id:
            raise ForbiddenError("Only the listing owner can renew it")

        # owner row serialises quota checks across that owner's listings
        await self.db.execute(
            select(User.id).where(User.id == actor.user_id).with_for_update()
        )
        listing = await self.lifecycle.lock(listing_id)

        if listing.status not in RENEWABLE:
            raise InvalidStateError(f"Only active or expired listings can be renewed (listing is {listing.status})")
        if duration_days not in self.site.allowed_listing_durations:
            allowed = ", ".join(str(d) for d in self.site.allowed_listing_durations)
            raise ValidationError(
                f"Renewal duration must be one of {allowed} days",
                details=[{"field": "duration_days", "allowed": list(self.site.allowed_listing_durations)}],
            )

        used = await self.renewals_used(actor.user_id, now)
        if used >= self.site.daily_renewal_quota:
            raise QuotaExceededError(
                f"Daily renewal limit of {self.site.daily_renewal_quota} reached",
                details=[{"used": used, "quota": self.site.daily_renewal_quota}],
            )

        previous = as_utc(listing.expires_at)
        new_expires_at = renewed_expiry(now, previous, duration_days, self.site.max_listing_duration_days)

        if listing.status == ListingStatus.EXPIRED:
            transition_listing(listing, ListingStatus.ACTIVE)
        listing.expires_at = new_expires_at
        listing.listing_duration = duration_days
        listing.updated_by = actor.user_id

        renewal = ListingRenewal(
            listing_id=listing.id,
            owner_id=actor.user_id,
            duration_days=duration_days,
            previous_expires_at=previous,
            new_expires_at=new_expires_at,
            renewed_at=now,
        )
        self.db.add(renewal)
        await self.db.flush()

        emit(
            self.db,
            aggregate_type="listing",
            aggregate_id=listing.id,
            event_type="listing.renewed",
            recipients=[listing.owner_id],
            notification_type=NotificationType.LISTING_UPDATE,
            data={"listing_id": listing.id, "status": listing.status, "expires_at": new_expires_at.isoformat()},
        )
        log.info("listing %s: renewed %dd until %s (%d/%d today)",
                 listing.id, duration_days, new_expires_at.isoformat(), used + 1, self.site.daily_renewal_quota)

        return RenewalResult(
            listing=listing,
            renewal=renewal,
            renewals_remaining=max(0, self.site.daily_renewal_quota - used - 1),
        )

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketmate.core.db import get_db
from marketmate.services.favorites import Favorites
from marketmate.services.listings import ListingLifecycle
from marketmate.services.offers import OfferEngine
from marketmate.services.renewals import RenewalPolicy
from marketmate.services.reports import ModerationWorkflow
from marketmate.services.site_settings import SiteSettings, get_site_settings


def get_lifecycle(
    db: AsyncSession = Depends(get_db),
    site: SiteSettings = Depends(get_site_settings),
) -> ListingLifecycle:
    return ListingLifecycle(db, site)


def get_offer_engine(
    db: AsyncSession = Depends(get_db),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> OfferEngine:
    return OfferEngine(db, lifecycle)


def get_renewal_policy(
    db: AsyncSession = Depends(get_db),
    site: SiteSettings = Depends(get_site_settings),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> RenewalPolicy:
    return RenewalPolicy(db, site, lifecycle)


def get_moderation(
    db: AsyncSession = Depends(get_db),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> ModerationWorkflow:
    return ModerationWorkflow(db, lifecycle)


def get_favorites(
    db: AsyncSession = Depends(get_db),
    lifecycle: ListingLifecycle = Depends(get_lifecycle),
) -> Favorites:
    return Favorites(db, lifecycle)

from marketmate.models.base import Base  # noqa: F401

from marketmate.models.user import User  # noqa: F401
from marketmate.models.api_key import ApiKey  # noqa: F401
from marketmate.models.category import Category  # noqa: F401
from marketmate.models.site_setting import SiteSetting  # noqa: F401
from marketmate.models.listing import Listing  # noqa: F401
from marketmate.models.listing_image import ListingImage  # noqa: F401
from marketmate.models.listing_renewal import ListingRenewal  # noqa: F401
from marketmate.models.favorite import Favorite  # noqa: F401
from marketmate.models.offer import Offer  # noqa: F401
from marketmate.models.report import Report  # noqa: F401
from marketmate.models.moderation_log import ModerationLog  # noqa: F401
from marketmate.models.notification import Notification  # noqa: F401
from marketmate.models.outbox import OutboxEvent  # noqa: F401
from marketmate.models.idempotency import IdempotencyKey  # noqa: F401

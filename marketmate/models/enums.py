from __future__ import annotations

from enum import StrEnum


class UserRole(StrEnum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class UserStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


class ListingCondition(StrEnum):
    NEW = "new"
    LIKE_NEW = "like_new"
    GOOD = "good"
    ACCEPTABLE = "acceptable"


class ListingStatus(StrEnum):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    SOLD = "sold"
    EXPIRED = "expired"
    ARCHIVED = "archived"


class OfferType(StrEnum):
    OFFER = "offer"
    BUY_NOW = "buy_now"


class OfferStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COUNTERED = "countered"
    SOLD = "sold"


class ReportTargetType(StrEnum):
    LISTING = "listing"
    USER = "user"


class ReportReason(StrEnum):
    SPAM = "spam"
    PROHIBITED = "prohibited"
    INAPPROPRIATE = "inappropriate"
    OTHER = "other"


class ReportStatus(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class ModerationAction(StrEnum):
    WARN = "warn"
    DELETE_LISTING = "delete_listing"
    SUSPEND_LISTING = "suspend_listing"
    BAN_USER = "ban_user"
    UNBAN_USER = "unban_user"
    APPROVE_LISTING = "approve_listing"
    REJECT_LISTING = "reject_listing"


class NotificationType(StrEnum):
    NEW_OFFER = "new_offer"
    OFFER_UPDATE = "offer_update"
    LISTING_UPDATE = "listing_update"
    REPORT_UPDATE = "report_update"


def check_in(column: str, enum_cls: type[StrEnum]) -> str:
    """SQL for a CHECK constraint restricting a column to an enum's values."""
    values = ",".join(f"'{m.value}'" for m in enum_cls)
    return f"{column} IN ({values})"

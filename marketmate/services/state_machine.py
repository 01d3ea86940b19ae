"""
Transition tables for listings, offers and reports.

The apply functions here are the only code that assigns ``status`` on
these rows. Callers decide idempotency (AlreadyResolvedError) before
asking for a transition; anything not in the table is InvalidStateError.
"""
from __future__ import annotations

from enum import StrEnum
from typing import Any

from marketmate.core.errors import InvalidStateError
from marketmate.models.enums import ListingStatus, OfferStatus, ReportStatus


LISTING_TRANSITIONS: dict[ListingStatus, frozenset[ListingStatus]] = {
    ListingStatus.DRAFT: frozenset({ListingStatus.PENDING, ListingStatus.ACTIVE}),
    ListingStatus.PENDING: frozenset({
        ListingStatus.ACTIVE,
        ListingStatus.SOLD,
        ListingStatus.EXPIRED,
        ListingStatus.ARCHIVED,
    }),
    ListingStatus.ACTIVE: frozenset({ListingStatus.SOLD, ListingStatus.EXPIRED, ListingStatus.ARCHIVED}),
    # expired -> active happens through renewal only
    ListingStatus.EXPIRED: frozenset({ListingStatus.ACTIVE, ListingStatus.ARCHIVED}),
    ListingStatus.SOLD: frozenset(),
    ListingStatus.ARCHIVED: frozenset(),
}

OFFER_TRANSITIONS: dict[OfferStatus, frozenset[OfferStatus]] = {
    OfferStatus.PENDING: frozenset({OfferStatus.ACCEPTED, OfferStatus.DECLINED, OfferStatus.COUNTERED}),
    OfferStatus.ACCEPTED: frozenset(),
    OfferStatus.DECLINED: frozenset(),
    OfferStatus.COUNTERED: frozenset(),
    OfferStatus.SOLD: frozenset(),
}

REPORT_TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.OPEN: frozenset({ReportStatus.CLOSED}),
    ReportStatus.CLOSED: frozenset(),
}


def sources_of(table: dict[StrEnum, frozenset[StrEnum]], target: StrEnum) -> list[StrEnum]:
    """States from which ``target`` is reachable in one step."""
    return [state for state, targets in table.items() if target in targets]


def is_terminal(table: dict[StrEnum, frozenset[StrEnum]], state: StrEnum) -> bool:
    return not table[state]


def _apply(table: dict, enum_cls: type[StrEnum], entity: Any, target: StrEnum, kind: str) -> None:
    current = enum_cls(entity.status)
    allowed = table[current]
    if target not in allowed:
        allowed_str = ", ".join(sorted(s.value for s in allowed)) or "none"
        raise InvalidStateError(
            f"Invalid {kind} transition: {current.value} -> {target.value}",
            details=[{"from": current.value, "to": target.value, "allowed": allowed_str}],
        )
    entity.status = target.value


def transition_listing(listing: Any, target: ListingStatus) -> None:
    _apply(LISTING_TRANSITIONS, ListingStatus, listing, target, "listing")


def transition_offer(offer: Any, target: OfferStatus) -> None:
    _apply(OFFER_TRANSITIONS, OfferStatus, offer, target, "offer")


def transition_report(report: Any, target: ReportStatus) -> None:
    _apply(REPORT_TRANSITIONS, ReportStatus, report, target, "report")

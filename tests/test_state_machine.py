import random
from types import SimpleNamespace

import pytest

from marketmate.core.errors import InvalidStateError
from marketmate.models.enums import ListingStatus, OfferStatus, ReportStatus
from marketmate.services.state_machine import (
    LISTING_TRANSITIONS,
    OFFER_TRANSITIONS,
    is_terminal,
    sources_of,
    transition_listing,
    transition_offer,
    transition_report,
)


def test_listing_graph_shape():
    assert LISTING_TRANSITIONS[ListingStatus.DRAFT] == {ListingStatus.PENDING, ListingStatus.ACTIVE}
    assert LISTING_TRANSITIONS[ListingStatus.EXPIRED] == {ListingStatus.ACTIVE, ListingStatus.ARCHIVED}
    assert is_terminal(LISTING_TRANSITIONS, ListingStatus.SOLD)
    assert is_terminal(LISTING_TRANSITIONS, ListingStatus.ARCHIVED)
    assert set(sources_of(LISTING_TRANSITIONS, ListingStatus.EXPIRED)) == {ListingStatus.ACTIVE, ListingStatus.PENDING}


@pytest.mark.parametrize("seed", range(25))
def test_random_listing_walks_respect_graph(seed):
    rng = random.Random(seed)
    listing = SimpleNamespace(status=ListingStatus.DRAFT.value)

    for _ in range(12):
        current = ListingStatus(listing.status)
        target = rng.choice(list(ListingStatus))
        if target in LISTING_TRANSITIONS[current]:
            transition_listing(listing, target)
            assert listing.status == target.value
        else:
            with pytest.raises(InvalidStateError) as exc:
                transition_listing(listing, target)
            # a rejected transition leaves the row untouched
            assert listing.status == current.value
            assert exc.value.details[0]["from"] == current.value


@pytest.mark.parametrize("seed", range(10))
def test_random_offer_walks_never_leave_terminal(seed):
    rng = random.Random(seed)
    offer = SimpleNamespace(status=OfferStatus.PENDING.value)
    for _ in range(6):
        before = OfferStatus(offer.status)
        target = rng.choice(list(OfferStatus))
        try:
            transition_offer(offer, target)
        except InvalidStateError:
            assert offer.status == before.value
        else:
            assert before == OfferStatus.PENDING
    assert offer.status == OfferStatus.PENDING or is_terminal(OFFER_TRANSITIONS, OfferStatus(offer.status))


def test_report_closes_once():
    report = SimpleNamespace(status=ReportStatus.OPEN.value)
    transition_report(report, ReportStatus.CLOSED)
    with pytest.raises(InvalidStateError):
        transition_report(report, ReportStatus.CLOSED)

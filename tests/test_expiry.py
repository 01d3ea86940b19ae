from datetime import datetime, timedelta, timezone

from marketmate.services.expiry import initial_expiry, renewed_expiry

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_initial_expiry_is_capped():
    assert initial_expiry(NOW, 30, 90) == NOW + timedelta(days=30)
    assert initial_expiry(NOW, 120, 90) == NOW + timedelta(days=90)


def test_renewal_extends_from_current_expiry():
    current = NOW + timedelta(days=10)
    assert renewed_expiry(NOW, current, 30, 90) == NOW + timedelta(days=40)


def test_renewal_of_expired_listing_counts_from_now():
    current = NOW - timedelta(days=5)
    assert renewed_expiry(NOW, current, 30, 90) == NOW + timedelta(days=30)


def test_renewal_never_exceeds_max_from_now():
    current = NOW + timedelta(days=80)
    assert renewed_expiry(NOW, current, 30, 90) == NOW + timedelta(days=90)
    # repeated renewals stay pinned at the cap
    again = renewed_expiry(NOW, NOW + timedelta(days=90), 60, 90)
    assert again == NOW + timedelta(days=90)

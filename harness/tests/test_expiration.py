from datetime import UTC, datetime, timedelta

import pytest

from harness.spec import (
    Expired,
    ExpirationPolicy,
    ExpiringImminently,
    ExpiringSoon,
    NoExpiration,
    Valid,
    describe_expiration,
    format_duration,
)

ANCHOR = datetime(2026, 1, 1, tzinfo=UTC)
POLICY = ExpirationPolicy(validity_days=30, anchor=ANCHOR)


def test_expired_thirty_five_days_after_a_thirty_day_baseline():
    status = POLICY.evaluate_at(ANCHOR + timedelta(days=35))

    assert isinstance(status, Expired)
    assert status.is_expired
    assert status.expired_ago == timedelta(days=5)


def test_twenty_nine_days_in_is_expiring_imminently_not_expired():
    status = POLICY.evaluate_at(ANCHOR + timedelta(days=29))

    assert isinstance(status, ExpiringImminently)
    assert not status.is_expired
    assert status.remaining == timedelta(days=1)


@pytest.mark.parametrize(
    ("elapsed_days", "expected"),
    [
        (1, Valid),
        (22, Valid),
        (23, ExpiringSoon),
        (26, ExpiringSoon),
        (27, ExpiringImminently),
        (30, Expired),
    ],
)
def test_status_thresholds(elapsed_days, expected):
    status = POLICY.evaluate_at(ANCHOR + timedelta(days=elapsed_days))

    assert type(status) is expected


def test_zero_day_policy_never_expires():
    policy = ExpirationPolicy.none()

    status = policy.evaluate_at(datetime(2100, 1, 1, tzinfo=UTC))

    assert isinstance(status, NoExpiration)
    assert not status.requires_warning
    assert policy.expires_at is None


def test_policy_requires_anchor_when_expiring():
    with pytest.raises(ValueError, match="anchor"):
        ExpirationPolicy(validity_days=3)


def test_describe_expiration_messages():
    expired = describe_expiration(POLICY.evaluate_at(ANCHOR + timedelta(days=35)), POLICY)
    imminent = describe_expiration(POLICY.evaluate_at(ANCHOR + timedelta(days=29)), POLICY)
    soon = describe_expiration(POLICY.evaluate_at(ANCHOR + timedelta(days=24)), POLICY)
    valid = describe_expiration(POLICY.evaluate_at(ANCHOR + timedelta(days=1)), POLICY)

    assert expired.startswith("BASELINE EXPIRED")
    assert "5 days ago" in expired
    assert "2026-01-31 00:00 UTC" in expired
    assert imminent.startswith("BASELINE EXPIRING IMMINENTLY")
    assert "1 day" in imminent
    assert soon.startswith("BASELINE EXPIRES SOON")
    assert valid == ""


def test_format_duration_picks_largest_unit():
    assert format_duration(timedelta(days=2, hours=3)) == "2 days"
    assert format_duration(timedelta(hours=1, minutes=5)) == "1 hour"
    assert format_duration(timedelta(minutes=7)) == "7 minutes"
    assert format_duration(timedelta(seconds=30)) == "less than a minute"
    assert format_duration(None) == "unknown"

"""Strike/Ban Rules — pure cancellation counter and suspension decisions.

Tests:
    - Only PENDING/ACCEPTED cancellations count
    - Reaching the threshold bans and resets the counter
    - active_ban honours expiry
"""

from datetime import datetime, timedelta, timezone

import pytest

from bloodmatch.core.domain_types import RequestStatus
from bloodmatch.core.strike_policy import (
    active_ban, counts_as_strike, evaluate_cancellation,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
BAN = timedelta(days=90)


@pytest.mark.parametrize("status, expected", [
    (RequestStatus.PENDING, True),
    (RequestStatus.ACCEPTED, True),
    (RequestStatus.WAITING_FOR_MATCH, False),
    (RequestStatus.MATCHED, False),
    (RequestStatus.REJECTED, False),
    (RequestStatus.CLOSED, False),
])
def test_counts_as_strike(status, expected):
    assert counts_as_strike(status) is expected


def test_first_strike_increments():
    outcome = evaluate_cancellation(0, None, RequestStatus.PENDING, NOW, 3, BAN)
    assert outcome.cancel_count == 1
    assert outcome.banned_until is None
    assert outcome.counted
    assert not outcome.newly_banned


def test_threshold_bans_and_resets_counter():
    outcome = evaluate_cancellation(2, None, RequestStatus.ACCEPTED, NOW, 3, BAN)
    assert outcome.cancel_count == 0
    assert outcome.banned_until == NOW + BAN
    assert outcome.newly_banned


def test_non_strike_leaves_counters_untouched():
    until = NOW + timedelta(days=3)
    outcome = evaluate_cancellation(2, until, RequestStatus.WAITING_FOR_MATCH, NOW, 3, BAN)
    assert outcome.cancel_count == 2
    assert outcome.banned_until == until
    assert not outcome.counted


def test_threshold_of_one_bans_immediately():
    outcome = evaluate_cancellation(0, None, RequestStatus.PENDING, NOW, 1, BAN)
    assert outcome.newly_banned
    assert outcome.cancel_count == 0


def test_active_ban():
    assert active_ban(None, NOW) is None
    assert active_ban(NOW + timedelta(days=1), NOW) == NOW + timedelta(days=1)
    assert active_ban(NOW - timedelta(seconds=1), NOW) is None
    assert active_ban(NOW, NOW) is None


def test_active_ban_accepts_naive_storage_value():
    stored = (NOW + timedelta(days=1)).replace(tzinfo=None)
    assert active_ban(stored, NOW) == NOW + timedelta(days=1)

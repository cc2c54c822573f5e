"""Strike/Ban Policy — persisted cancellation counters and suspensions."""

from datetime import timedelta
from uuid import uuid4

import pytest

from bloodmatch.core.clock import as_utc
from bloodmatch.core.domain_types import RequestStatus
from bloodmatch.core.errors import RequesterBannedError, ResourceNotFoundError
from bloodmatch.models import Requester
from bloodmatch.services.strike_policy import StrikePolicy


@pytest.fixture
def policy(test_db, settings):
    return StrikePolicy(test_db, settings)


async def test_strikes_accumulate_then_ban(policy, make_requester, clock, test_db):
    actor = await make_requester()

    first = await policy.record_cancellation(actor.id, RequestStatus.PENDING, clock())
    second = await policy.record_cancellation(actor.id, RequestStatus.ACCEPTED, clock())
    assert (first.cancel_count, second.cancel_count) == (1, 2)
    assert second.banned_until is None

    third = await policy.record_cancellation(actor.id, RequestStatus.PENDING, clock())
    await test_db.commit()
    assert third.newly_banned
    assert third.cancel_count == 0
    assert third.banned_until == clock() + timedelta(days=90)

    stored = await test_db.get(Requester, actor.id, populate_existing=True)
    assert stored.cancel_count == 0
    assert as_utc(stored.banned_until) == clock() + timedelta(days=90)


async def test_waiting_cancellation_is_not_a_strike(policy, make_requester, clock):
    actor = await make_requester()
    outcome = await policy.record_cancellation(
        actor.id, RequestStatus.WAITING_FOR_MATCH, clock(),
    )
    assert not outcome.counted
    assert outcome.cancel_count == 0


async def test_assert_not_banned(policy, make_requester, clock):
    actor = await make_requester(banned_until=clock() + timedelta(days=1))
    with pytest.raises(RequesterBannedError) as exc:
        await policy.assert_not_banned(actor.id, clock())
    assert exc.value.banned_until == clock() + timedelta(days=1)

    await policy.assert_not_banned(actor.id, clock() + timedelta(days=2))


async def test_manual_ban_keeps_counter(policy, make_requester, clock, test_db):
    actor = await make_requester(cancel_count=2)
    until = await policy.manual_ban(actor.id, clock())
    await test_db.commit()

    assert until == clock() + timedelta(days=90)
    stored = await test_db.get(Requester, actor.id, populate_existing=True)
    assert stored.cancel_count == 2


async def test_manual_ban_unknown_requester(policy, clock):
    with pytest.raises(ResourceNotFoundError):
        await policy.manual_ban(uuid4(), clock())

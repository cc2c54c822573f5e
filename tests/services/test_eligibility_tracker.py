"""Donor Eligibility Tracker — cooldown recording and busy detection."""

from datetime import timedelta
from uuid import uuid4

import pytest

from bloodmatch.core.clock import as_utc
from bloodmatch.core.errors import InvalidStateError, ResourceNotFoundError
from bloodmatch.services.eligibility_tracker import EligibilityTracker


@pytest.fixture
def tracker(test_db, settings):
    return EligibilityTracker(test_db, settings)


async def test_new_donor_is_eligible_and_free(tracker, make_donor, clock):
    donor = await make_donor()
    record = await tracker.get_donor(donor.id)
    assert tracker.is_eligible(record, clock())
    assert not await tracker.is_busy(donor.id)


async def test_record_donation_sets_cooldown(tracker, make_donor, clock, test_db):
    donor = await make_donor()
    updated = await tracker.record_donation(donor.id, clock())
    await test_db.commit()

    assert as_utc(updated.last_donation_date) == clock()
    assert as_utc(updated.next_eligible_date) == clock() + timedelta(days=56)
    assert not tracker.is_eligible(updated, clock() + timedelta(days=10))
    assert tracker.is_eligible(updated, clock() + timedelta(days=60))


async def test_record_donation_twice_in_cooldown_raises(tracker, make_donor, clock):
    donor = await make_donor()
    await tracker.record_donation(donor.id, clock())
    with pytest.raises(InvalidStateError):
        await tracker.record_donation(donor.id, clock() + timedelta(days=1))


async def test_record_donation_after_cooldown_succeeds(tracker, make_donor, clock):
    donor = await make_donor(
        last_donation_date=clock() - timedelta(days=60),
        next_eligible_date=clock() - timedelta(days=4),
    )
    updated = await tracker.record_donation(donor.id, clock())
    assert as_utc(updated.next_eligible_date) == clock() + timedelta(days=56)


async def test_cooldown_follows_settings(test_db, settings, make_donor, clock):
    tracker = EligibilityTracker(
        test_db, settings.model_copy(update={"donor_cooldown_days": 90}),
    )
    donor = await make_donor()
    updated = await tracker.record_donation(donor.id, clock())
    assert as_utc(updated.next_eligible_date) == clock() + timedelta(days=90)


async def test_unknown_donor(tracker):
    with pytest.raises(ResourceNotFoundError):
        await tracker.get_donor(uuid4())


async def test_busy_while_donor_fulfillment_outstanding(
    tracker, engine, make_requester, make_donor, make_main,
):
    requester = await make_requester()
    donor = await make_donor()
    await make_main(requester)
    await engine.create_donor_fulfillment(requester, donor.id)
    assert await tracker.is_busy(donor.id)

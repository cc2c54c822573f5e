"""Domain Types — verifies enum values and derived predicates."""

from dataclasses import FrozenInstanceError
from uuid import uuid4

import pytest

from bloodmatch.core.domain_types import (
    Actor, ActorRole, BloodGroup, DonorId, RequestId, RequestKind,
    RequestStatus, RequesterId, StockEntryId, TransitState,
)


def test_identity_types_wrap_uuid():
    uid = uuid4()
    assert RequesterId(uid) == uid
    assert DonorId(uid) == uid
    assert StockEntryId(uid) == uid
    assert RequestId(uid) == uid


def test_blood_group_values():
    assert [g.value for g in BloodGroup] == [
        "O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+",
    ]


def test_request_kind_fulfillment_flag():
    assert not RequestKind.MAIN.is_fulfillment
    assert RequestKind.STOCK_FULFILLMENT.is_fulfillment
    assert RequestKind.DONOR_FULFILLMENT.is_fulfillment


def test_terminal_and_outstanding_statuses():
    assert {s for s in RequestStatus if s.is_terminal} == {
        RequestStatus.REJECTED, RequestStatus.CLOSED,
    }
    assert {s for s in RequestStatus if s.is_outstanding} == {
        RequestStatus.PENDING, RequestStatus.ACCEPTED,
    }


def test_enums_compare_equal_to_their_values():
    assert RequestStatus.WAITING_FOR_MATCH == "waiting_for_match"
    assert TransitState.ARRIVED == "arrived"
    assert ActorRole("admin") is ActorRole.ADMIN


def test_actor_is_immutable():
    actor = Actor(id=uuid4(), role=ActorRole.DONOR)
    with pytest.raises(FrozenInstanceError):
        actor.role = ActorRole.ADMIN

"""Request State Machine — transition table, parent aggregation, allocation checks.

Tests:
    - Legal and illegal moves per kind
    - Terminal statuses have no outgoing edges
    - Aggregation rules (all rejected, all terminal, any live) and idempotence
    - Allocation cap on a Main
"""

import pytest

from bloodmatch.core.domain_types import RequestKind, RequestStatus
from bloodmatch.core.errors import FieldValidationError, InvalidStateError
from bloodmatch.core.request_lifecycle import (
    ALLOWED_TRANSITIONS, INITIAL_STATUS, aggregate_main_status, can_transition,
    check_allocation, check_main_open, check_transition, remaining_units,
)

S = RequestStatus
K = RequestKind


# ─── transitions ─────────────────────────────────────────────────

def test_initial_statuses():
    assert INITIAL_STATUS[K.MAIN] is S.WAITING_FOR_MATCH
    assert INITIAL_STATUS[K.STOCK_FULFILLMENT] is S.PENDING
    assert INITIAL_STATUS[K.DONOR_FULFILLMENT] is S.PENDING


@pytest.mark.parametrize("kind, current, target", [
    (K.MAIN, S.WAITING_FOR_MATCH, S.MATCHED),
    (K.MAIN, S.WAITING_FOR_MATCH, S.REJECTED),
    (K.MAIN, S.MATCHED, S.CLOSED),
    (K.MAIN, S.MATCHED, S.REJECTED),
    (K.STOCK_FULFILLMENT, S.PENDING, S.ACCEPTED),
    (K.STOCK_FULFILLMENT, S.ACCEPTED, S.CLOSED),
    (K.DONOR_FULFILLMENT, S.PENDING, S.REJECTED),
    (K.DONOR_FULFILLMENT, S.ACCEPTED, S.REJECTED),
])
def test_legal_transitions(kind, current, target):
    assert can_transition(kind, current, target)
    check_transition(kind, current, target)


@pytest.mark.parametrize("kind, current, target", [
    (K.MAIN, S.WAITING_FOR_MATCH, S.CLOSED),
    (K.MAIN, S.WAITING_FOR_MATCH, S.PENDING),
    (K.DONOR_FULFILLMENT, S.PENDING, S.CLOSED),
    (K.STOCK_FULFILLMENT, S.PENDING, S.MATCHED),
    (K.STOCK_FULFILLMENT, S.CLOSED, S.REJECTED),
    (K.DONOR_FULFILLMENT, S.REJECTED, S.ACCEPTED),
])
def test_illegal_transitions_raise(kind, current, target):
    assert not can_transition(kind, current, target)
    with pytest.raises(InvalidStateError) as exc:
        check_transition(kind, current, target)
    assert exc.value.current_status == current.value
    assert exc.value.http_status == 409


@pytest.mark.parametrize("kind", list(RequestKind))
def test_terminal_statuses_have_no_exits(kind):
    for status in (S.REJECTED, S.CLOSED):
        assert ALLOWED_TRANSITIONS[kind][status] == frozenset()


def test_status_foreign_to_kind_cannot_move():
    assert not can_transition(K.MAIN, S.PENDING, S.ACCEPTED)
    assert not can_transition(K.STOCK_FULFILLMENT, S.WAITING_FOR_MATCH, S.MATCHED)


def test_check_main_open():
    check_main_open(S.WAITING_FOR_MATCH)
    check_main_open(S.MATCHED)
    for closed in (S.REJECTED, S.CLOSED):
        with pytest.raises(InvalidStateError):
            check_main_open(closed)


# ─── aggregation ─────────────────────────────────────────────────

def test_no_children_keeps_status():
    assert aggregate_main_status(S.WAITING_FOR_MATCH, []) is S.WAITING_FOR_MATCH
    assert aggregate_main_status(S.MATCHED, []) is S.MATCHED


def test_all_children_rejected_rejects_main():
    assert aggregate_main_status(S.MATCHED, [S.REJECTED, S.REJECTED]) is S.REJECTED


def test_all_terminal_with_a_closed_child_closes_main():
    assert aggregate_main_status(S.MATCHED, [S.REJECTED, S.CLOSED]) is S.CLOSED
    assert aggregate_main_status(S.MATCHED, [S.CLOSED]) is S.CLOSED


@pytest.mark.parametrize("children", [
    [S.PENDING],
    [S.ACCEPTED, S.REJECTED],
    [S.CLOSED, S.PENDING],
])
def test_live_child_keeps_main_matched(children):
    assert aggregate_main_status(S.MATCHED, children) is S.MATCHED


def test_aggregation_is_idempotent():
    children = [S.ACCEPTED, S.REJECTED]
    first = aggregate_main_status(S.MATCHED, children)
    assert aggregate_main_status(first, children) is first


@pytest.mark.parametrize("terminal", [S.REJECTED, S.CLOSED])
def test_aggregating_terminal_main_raises(terminal):
    with pytest.raises(InvalidStateError):
        aggregate_main_status(terminal, [S.PENDING])


# ─── allocation ──────────────────────────────────────────────────

def test_remaining_units_never_negative():
    assert remaining_units(3, 1) == 2
    assert remaining_units(3, 5) == 0


def test_check_allocation_within_cap():
    check_allocation(3, 1, 2)


def test_check_allocation_over_cap():
    with pytest.raises(FieldValidationError) as exc:
        check_allocation(3, 2, 2)
    assert exc.value.field == "units"


def test_check_allocation_rejects_non_positive():
    with pytest.raises(FieldValidationError):
        check_allocation(3, 0, 0)

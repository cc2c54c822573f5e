"""Request State Machine — transition table, parent aggregation and allocation math.

Invariants:
    - ALLOWED_TRANSITIONS is the single source of truth for legal (kind, from, to) moves
    - Terminal statuses (REJECTED, CLOSED) have no outgoing transitions
    - aggregate_main_status is deterministic and idempotent on an unchanged child set
    - Aggregating an already-terminal Main is an InvalidStateError

Design Decisions:
    - One pure aggregation function called after every child-terminal transition,
      instead of recomputing the parent inline in each handler
    - Fulfillment kinds share one table: stock and donor children follow the same graph
"""

from typing import Iterable

from bloodmatch.core.domain_types import (
    RequestKind, RequestStatus, OPEN_MAIN_STATUSES,
)
from bloodmatch.core.errors import InvalidStateError, FieldValidationError

_S = RequestStatus

_MAIN_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    _S.WAITING_FOR_MATCH: frozenset({_S.MATCHED, _S.REJECTED}),
    _S.MATCHED: frozenset({_S.REJECTED, _S.CLOSED}),
    _S.REJECTED: frozenset(),
    _S.CLOSED: frozenset(),
}

_FULFILLMENT_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    _S.PENDING: frozenset({_S.ACCEPTED, _S.REJECTED}),
    _S.ACCEPTED: frozenset({_S.CLOSED, _S.REJECTED}),
    _S.REJECTED: frozenset(),
    _S.CLOSED: frozenset(),
}

ALLOWED_TRANSITIONS: dict[RequestKind, dict[RequestStatus, frozenset[RequestStatus]]] = {
    RequestKind.MAIN: _MAIN_TRANSITIONS,
    RequestKind.STOCK_FULFILLMENT: _FULFILLMENT_TRANSITIONS,
    RequestKind.DONOR_FULFILLMENT: _FULFILLMENT_TRANSITIONS,
}

INITIAL_STATUS: dict[RequestKind, RequestStatus] = {
    RequestKind.MAIN: _S.WAITING_FOR_MATCH,
    RequestKind.STOCK_FULFILLMENT: _S.PENDING,
    RequestKind.DONOR_FULFILLMENT: _S.PENDING,
}


def can_transition(
    kind: RequestKind, current: RequestStatus, target: RequestStatus,
) -> bool:
    return target in ALLOWED_TRANSITIONS[kind].get(current, frozenset())


def check_transition(
    kind: RequestKind, current: RequestStatus, target: RequestStatus,
) -> None:
    """Raise InvalidStateError unless current -> target is legal for kind."""
    if not can_transition(kind, current, target):
        raise InvalidStateError(
            f"Cannot move {kind.value} request from {current.value} to {target.value}",
            current_status=current.value,
        )


def check_main_open(status: RequestStatus) -> None:
    """Fulfillments may only be attached to a Main that is still collecting units."""
    if status not in OPEN_MAIN_STATUSES:
        raise InvalidStateError(
            f"Main request is {status.value}; no further fulfillment allowed",
            current_status=status.value,
        )


def aggregate_main_status(
    current: RequestStatus, child_statuses: Iterable[RequestStatus],
) -> RequestStatus:
    """Recompute a Main request's status from its children.

    - no children: unchanged
    - every child rejected: REJECTED
    - every child terminal and at least one closed: CLOSED
    - any child pending/accepted/closed: MATCHED
    """
    if current.is_terminal:
        raise InvalidStateError(
            f"Main request already {current.value}; cannot re-aggregate",
            current_status=current.value,
        )
    statuses = list(child_statuses)
    if not statuses:
        return current
    if all(s is _S.REJECTED for s in statuses):
        return _S.REJECTED
    if all(s.is_terminal for s in statuses):
        return _S.CLOSED
    return _S.MATCHED


def remaining_units(main_units: int, allocated_units: int) -> int:
    """Units still open on a Main; never negative."""
    return max(main_units - allocated_units, 0)


def check_allocation(main_units: int, allocated_units: int, requested: int) -> None:
    if requested < 1:
        raise FieldValidationError("units must be at least 1", "units")
    remaining = remaining_units(main_units, allocated_units)
    if requested > remaining:
        raise FieldValidationError(
            f"Requested {requested} unit(s) but only {remaining} remain on the requirement",
            "units",
        )

"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - RequesterId, DonorId, StockEntryId, RequestId wrap UUIDs
    - Request kind, status and transit state are closed Enums — no raw string matching
    - Actor carries an explicit role; the core never infers a role from an id

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders and store as plain
      VARCHAR (non-native SQL enum) so migrations stay portable
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

RequesterId = NewType("RequesterId", UUID)
DonorId = NewType("DonorId", UUID)
StockEntryId = NewType("StockEntryId", UUID)
RequestId = NewType("RequestId", UUID)


# ─── Enums ───────────────────────────────────────────────────────

class BloodGroup(str, Enum):
    """The 8 canonical ABO/Rh groups."""
    O_NEG = "O-"
    O_POS = "O+"
    A_NEG = "A-"
    A_POS = "A+"
    B_NEG = "B-"
    B_POS = "B+"
    AB_NEG = "AB-"
    AB_POS = "AB+"


class RequestKind(str, Enum):
    """Tagged variant of a request row — main requirement or a fulfillment attempt."""
    MAIN = "main"
    STOCK_FULFILLMENT = "stock_fulfillment"
    DONOR_FULFILLMENT = "donor_fulfillment"

    @property
    def is_fulfillment(self) -> bool:
        return self is not RequestKind.MAIN


class RequestStatus(str, Enum):
    """Request lifecycle states — legal membership depends on RequestKind."""
    WAITING_FOR_MATCH = "waiting_for_match"
    MATCHED = "matched"
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_outstanding(self) -> bool:
        """Pending or accepted — the fulfillment still holds units or a donor."""
        return self in OUTSTANDING_STATUSES


class TransitState(str, Enum):
    """Delivery progress of a fulfillment request."""
    IN_TRANSIT = "in_transit"
    ARRIVED = "arrived"


class ActorRole(str, Enum):
    """Roles asserted by the auth layer before the core is invoked."""
    REQUESTER = "requester"
    DONOR = "donor"
    ADMIN = "admin"


TERMINAL_STATUSES = frozenset({RequestStatus.REJECTED, RequestStatus.CLOSED})
OUTSTANDING_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.ACCEPTED})
OPEN_MAIN_STATUSES = frozenset({
    RequestStatus.WAITING_FOR_MATCH, RequestStatus.MATCHED,
})


# ─── Value Types ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Actor:
    """Authenticated caller identity, validated upstream."""
    id: UUID
    role: ActorRole

"""Matching Queries — read-side views that narrow stock and donors for a requirement.

Invariants:
    - The target requirement is the requester's latest open (waiting/matched) Main
    - Stock: compatible groups only, units > 0, in compatibility preference order
    - Donors: compatible, eligible now, not busy; same-city donors listed first
    - Donor history is the donor's ACCEPTED/CLOSED fulfillments only
    - Read-only: no method here writes or commits

Design Decisions:
    - Module-level lookups (get_request_or_404, latest_open_main) shared with the
      lifecycle engine so both resolve "the requirement" the same way
"""

import logging
from uuid import UUID

from sqlalchemy import select, func, not_
from sqlalchemy.ext.asyncio import AsyncSession

from bloodmatch.core.clock import Clock, utc_now
from bloodmatch.core.compatibility import compatible_sources, can_supply
from bloodmatch.core.domain_types import (
    Actor, ActorRole, BloodGroup, RequestKind, RequestStatus, OPEN_MAIN_STATUSES,
    OUTSTANDING_STATUSES,
)
from bloodmatch.core.eligibility import order_city_first, normalize_city
from bloodmatch.core.errors import ForbiddenError, ResourceNotFoundError
from bloodmatch.models.blood_request import BloodRequest
from bloodmatch.models.donor import Donor
from bloodmatch.models.stock_entry import StockEntry
from bloodmatch.services.eligibility_tracker import (
    EligibilityTracker, eligible_at_clause, outstanding_donor_request_clause,
)

logger = logging.getLogger(__name__)

_DONOR_HISTORY_STATUSES = (RequestStatus.ACCEPTED, RequestStatus.CLOSED)


def require_role(actor: Actor, role: ActorRole) -> None:
    if actor.role is not role:
        raise ForbiddenError(
            f"Operation requires role '{role.value}', got '{actor.role.value}'",
        )


async def get_request_or_404(db: AsyncSession, request_id: UUID) -> BloodRequest:
    """Fresh copy of a request row (bypasses stale identity-map state)."""
    request = await db.get(BloodRequest, request_id, populate_existing=True)
    if request is None:
        raise ResourceNotFoundError("Request", str(request_id))
    return request


async def latest_open_main(
    db: AsyncSession, requester_id: UUID,
) -> BloodRequest | None:
    result = await db.execute(
        select(BloodRequest)
        .where(BloodRequest.requester_id == requester_id)
        .where(BloodRequest.kind == RequestKind.MAIN)
        .where(BloodRequest.status.in_(OPEN_MAIN_STATUSES))
        .order_by(BloodRequest.created_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


class MatchingService:
    """Compatible stock / donor suggestions and per-actor request views."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def list_compatible_stock(self, actor: Actor) -> list[StockEntry]:
        require_role(actor, ActorRole.REQUESTER)
        main = await latest_open_main(self.db, actor.id)
        if main is None:
            return []
        sources = compatible_sources(main.blood_group)
        result = await self.db.execute(
            select(StockEntry)
            .where(StockEntry.blood_group.in_(sources))
            .where(StockEntry.units > 0)
            .execution_options(populate_existing=True)
        )
        preference = {group: i for i, group in enumerate(sources)}
        return sorted(
            result.scalars().all(),
            key=lambda s: (preference[s.blood_group], -s.units),
        )

    async def list_compatible_donors(self, actor: Actor) -> list[Donor]:
        require_role(actor, ActorRole.REQUESTER)
        main = await latest_open_main(self.db, actor.id)
        if main is None:
            return []
        result = await self.db.execute(
            select(Donor)
            .where(Donor.blood_group.in_(compatible_sources(main.blood_group)))
            .where(eligible_at_clause(self.clock()))
            .where(not_(outstanding_donor_request_clause(Donor.id)))
            .order_by(Donor.name, Donor.id)
            .execution_options(populate_existing=True)
        )
        return list(order_city_first(result.scalars().all(), main.city))

    async def requester_history(self, actor: Actor) -> list[BloodRequest]:
        require_role(actor, ActorRole.REQUESTER)
        result = await self.db.execute(
            select(BloodRequest)
            .where(BloodRequest.requester_id == actor.id)
            .order_by(BloodRequest.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def donor_assigned(self, actor: Actor) -> list[BloodRequest]:
        require_role(actor, ActorRole.DONOR)
        result = await self.db.execute(
            select(BloodRequest)
            .where(BloodRequest.kind == RequestKind.DONOR_FULFILLMENT)
            .where(BloodRequest.donor_id == actor.id)
            .where(BloodRequest.status.in_(OUTSTANDING_STATUSES))
            .order_by(BloodRequest.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def donor_history(self, actor: Actor) -> list[BloodRequest]:
        """Fulfillments the donor committed to (accepted or closed), latest activity first."""
        require_role(actor, ActorRole.DONOR)
        result = await self.db.execute(
            select(BloodRequest)
            .where(BloodRequest.kind == RequestKind.DONOR_FULFILLMENT)
            .where(BloodRequest.donor_id == actor.id)
            .where(BloodRequest.status.in_(_DONOR_HISTORY_STATUSES))
            .order_by(BloodRequest.updated_at.desc(), BloodRequest.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def donor_nearby(self, actor: Actor) -> list[BloodRequest]:
        """Open requirements in the donor's city that the donor could supply."""
        require_role(actor, ActorRole.DONOR)
        tracker = EligibilityTracker(self.db)
        donor = await tracker.get_donor(actor.id)
        if not tracker.is_eligible(donor, self.clock()):
            return []
        if await tracker.is_busy(donor.id):
            return []
        recipients = [g for g in BloodGroup if can_supply(donor.blood_group, g)]
        result = await self.db.execute(
            select(BloodRequest)
            .where(BloodRequest.kind == RequestKind.MAIN)
            .where(BloodRequest.status.in_(OPEN_MAIN_STATUSES))
            .where(BloodRequest.blood_group.in_(recipients))
            .where(BloodRequest.allocated_units < BloodRequest.units)
            .where(func.lower(func.trim(BloodRequest.city)) == normalize_city(donor.city))
            .order_by(BloodRequest.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

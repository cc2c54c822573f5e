"""Request Lifecycle Engine — creates Main requirements and drives fulfillment transitions.

Invariants:
    - Every public operation is one transaction: all effects commit together or none do
    - Every status change is a conditional UPDATE guarded on the expected pre-status
    - Σ units of non-rejected children never exceeds Main.units (allocated_units guard)
    - A stock debit and the child request it pays for are committed as one unit
    - Parent aggregation runs after every child-terminal transition, with the Main row locked
    - Guard violations raise typed BloodMatchError subclasses, never silent no-ops

Design Decisions:
    - Engine composes InventoryLedger, EligibilityTracker and StrikePolicy on the
      same AsyncSession, so they share the engine's transaction
    - Transaction rollback is the compensating action for a partial debit+create
    - Clock injected: tests pin time instead of patching datetime
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bloodmatch.config import Settings, get_settings
from bloodmatch.core.clock import Clock, utc_now, as_utc
from bloodmatch.core.compatibility import can_supply, parse_blood_group
from bloodmatch.core.domain_types import (
    Actor, ActorRole, RequestKind, RequestStatus, TransitState,
    OPEN_MAIN_STATUSES,
)
from bloodmatch.core.errors import (
    ConcurrencyError, DonorUnavailableError, FieldValidationError,
    ForbiddenError, InvalidStateError, ResourceNotFoundError,
)
from bloodmatch.core.request_lifecycle import (
    INITIAL_STATUS, aggregate_main_status, check_allocation,
    check_main_open, check_transition,
)
from bloodmatch.infrastructure.database import transaction
from bloodmatch.models.blood_request import BloodRequest
from bloodmatch.models.stock_entry import StockEntry
from bloodmatch.services.eligibility_tracker import EligibilityTracker
from bloodmatch.services.inventory_ledger import InventoryLedger
from bloodmatch.services.matching import (
    get_request_or_404, latest_open_main, require_role,
)
from bloodmatch.services.strike_policy import StrikePolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CancelOutcome:
    """Result of a requester cancellation."""
    request: BloodRequest
    cancel_count: int
    banned_until: datetime | None


class RequestLifecycleEngine:
    """State machine for Main requests and their stock/donor fulfillments."""

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock
        self.ledger = InventoryLedger(db, clock)
        self.eligibility = EligibilityTracker(db, self.settings)
        self.strikes = StrikePolicy(db, self.settings)

    # ─── Main requirement ────────────────────────────────────────

    async def create_main_request(
        self,
        actor: Actor,
        *,
        blood_group: str,
        units: int,
        city: str,
        required_date: datetime,
        hospital: str | None = None,
        patient_ref: str | None = None,
        contact: str | None = None,
    ) -> BloodRequest:
        require_role(actor, ActorRole.REQUESTER)
        group = parse_blood_group(blood_group)
        if units is None or units < 1:
            raise FieldValidationError("units must be at least 1", "units")
        if not city or not city.strip():
            raise FieldValidationError("city is required", "city")
        if required_date is None:
            raise FieldValidationError("required_date is required", "required_date")

        async with transaction(self.db):
            await self.strikes.assert_not_banned(actor.id, self.clock())
            main = BloodRequest(
                kind=RequestKind.MAIN,
                requester_id=actor.id,
                blood_group=group,
                units=units,
                allocated_units=0,
                city=city.strip(),
                hospital=hospital,
                patient_ref=patient_ref,
                contact=contact,
                required_date=as_utc(required_date),
                status=INITIAL_STATUS[RequestKind.MAIN],
                transit_state=TransitState.IN_TRANSIT,
            )
            self.db.add(main)
            await self.db.flush()
        logger.info(
            f"Main request created: {group.value} x{units}",
            extra={"request_id": main.id, "requester_id": actor.id},
        )
        return main

    # ─── Fulfillment creation ────────────────────────────────────

    async def create_stock_fulfillment(
        self,
        actor: Actor,
        stock_entry_id: UUID,
        units: int,
        parent_request_id: UUID | None = None,
    ) -> BloodRequest:
        """Reserve units on the Main, debit stock, insert the child — atomically."""
        require_role(actor, ActorRole.REQUESTER)
        async with transaction(self.db):
            main = await self._resolve_main(actor, parent_request_id)
            stock = await self.db.get(StockEntry, stock_entry_id, populate_existing=True)
            if stock is None:
                raise ResourceNotFoundError("StockEntry", str(stock_entry_id))
            if not can_supply(stock.blood_group, main.blood_group):
                raise FieldValidationError(
                    f"{stock.blood_group.value} stock cannot supply a "
                    f"{main.blood_group.value} requirement",
                    "stock_entry_id",
                )
            check_allocation(main.units, main.allocated_units, units)

            await self._reserve_units(main, units)
            await self.ledger.debit(stock.id, units)
            child = self._new_child(
                main, RequestKind.STOCK_FULFILLMENT, stock.blood_group, units,
                stock_entry_id=stock.id,
            )
            self.db.add(child)
            await self.db.flush()
        logger.info(
            f"Stock fulfillment created: {stock.blood_group.value} x{units}",
            extra={"request_id": child.id, "stock_entry_id": stock.id},
        )
        return child

    async def create_donor_fulfillment(
        self,
        actor: Actor,
        donor_id: UUID,
        parent_request_id: UUID | None = None,
    ) -> BloodRequest:
        """Assign one eligible, free donor to the requirement (1 unit)."""
        require_role(actor, ActorRole.REQUESTER)
        async with transaction(self.db):
            main = await self._resolve_main(actor, parent_request_id)
            child = await self._assign_donor(main, donor_id, "donor_id")
        logger.info(
            "Donor fulfillment created",
            extra={"request_id": child.id, "donor_id": donor_id},
        )
        return child

    # ─── Donor actions ───────────────────────────────────────────

    async def donor_volunteer(self, actor: Actor, main_id: UUID) -> BloodRequest:
        """Donor offers themself for an open requirement; lands PENDING like an assignment."""
        require_role(actor, ActorRole.DONOR)
        async with transaction(self.db):
            main = await get_request_or_404(self.db, main_id)
            if main.kind is not RequestKind.MAIN:
                raise FieldValidationError(
                    "Volunteering targets a main requirement", "request_id",
                )
            check_main_open(main.status)
            child = await self._assign_donor(main, actor.id, "request_id")
        logger.info(
            "Donor volunteered for requirement",
            extra={"request_id": child.id, "donor_id": actor.id},
        )
        return child

    async def donor_accept(self, actor: Actor, request_id: UUID) -> BloodRequest:
        require_role(actor, ActorRole.DONOR)
        async with transaction(self.db):
            child = await self._assigned_donor_request(actor, request_id)
            check_transition(child.kind, child.status, RequestStatus.ACCEPTED)
            now = self.clock()
            donor = await self.eligibility.get_donor(actor.id)
            if not self.eligibility.is_eligible(donor, now):
                raise DonorUnavailableError(
                    str(donor.id),
                    f"in cooldown until {as_utc(donor.next_eligible_date).isoformat()}",
                )
            main = await get_request_or_404(self.db, child.parent_request_id)
            requester = await self.strikes.get_requester(child.requester_id)

            await self.eligibility.record_donation(donor.id, now)
            await self._move(
                child, RequestStatus.ACCEPTED,
                arrival_date=main.required_date,
                donor_contact={"name": donor.name, "phone": donor.phone},
                requester_contact={"name": requester.name, "phone": requester.phone},
            )
            child = await get_request_or_404(self.db, request_id)
        logger.info(
            "Donor accepted fulfillment",
            extra={"request_id": request_id, "donor_id": actor.id},
        )
        return child

    async def donor_reject(self, actor: Actor, request_id: UUID) -> BloodRequest:
        require_role(actor, ActorRole.DONOR)
        async with transaction(self.db):
            child = await self._assigned_donor_request(actor, request_id)
            if child.status is not RequestStatus.PENDING:
                raise InvalidStateError(
                    f"Only pending requests can be declined (is {child.status.value})",
                    current_status=child.status.value,
                )
            await self._terminate_child(child, RequestStatus.REJECTED)
            child = await get_request_or_404(self.db, request_id)
        logger.info(
            "Donor declined fulfillment",
            extra={"request_id": request_id, "donor_id": actor.id},
        )
        return child

    # ─── Admin actions (stock fulfillments) ──────────────────────

    async def admin_accept(self, actor: Actor, request_id: UUID) -> BloodRequest:
        """Approve a stock fulfillment; inventory was already debited at creation."""
        require_role(actor, ActorRole.ADMIN)
        async with transaction(self.db):
            child = await self._stock_request(request_id)
            check_transition(child.kind, child.status, RequestStatus.ACCEPTED)
            main = await get_request_or_404(self.db, child.parent_request_id)
            requester = await self.strikes.get_requester(child.requester_id)
            await self._move(
                child, RequestStatus.ACCEPTED,
                arrival_date=main.required_date,
                requester_contact={"name": requester.name, "phone": requester.phone},
            )
            child = await get_request_or_404(self.db, request_id)
        logger.info("Stock fulfillment approved", extra={"request_id": request_id})
        return child

    async def admin_reject(self, actor: Actor, request_id: UUID) -> BloodRequest:
        require_role(actor, ActorRole.ADMIN)
        async with transaction(self.db):
            child = await self._stock_request(request_id)
            if child.status is not RequestStatus.PENDING:
                raise InvalidStateError(
                    f"Only pending requests can be rejected (is {child.status.value})",
                    current_status=child.status.value,
                )
            await self._terminate_child(child, RequestStatus.REJECTED)
            child = await get_request_or_404(self.db, request_id)
        logger.info("Stock fulfillment rejected", extra={"request_id": request_id})
        return child

    async def manual_ban(self, actor: Actor, requester_id: UUID) -> datetime:
        require_role(actor, ActorRole.ADMIN)
        async with transaction(self.db):
            banned_until = await self.strikes.manual_ban(requester_id, self.clock())
        return banned_until

    # ─── Requester cancellation ──────────────────────────────────

    async def cancel(self, actor: Actor, request_id: UUID) -> CancelOutcome:
        """Cancel a pending/accepted fulfillment, or a never-matched Main."""
        require_role(actor, ActorRole.REQUESTER)
        async with transaction(self.db):
            request = await get_request_or_404(self.db, request_id)
            if request.requester_id != actor.id:
                raise ForbiddenError("Request belongs to another requester")
            now = self.clock()
            if self.settings.ban_blocks_cancellation:
                await self.strikes.assert_not_banned(actor.id, now)

            previous = request.status
            if request.kind is RequestKind.MAIN:
                if previous is not RequestStatus.WAITING_FOR_MATCH:
                    raise InvalidStateError(
                        f"Main request is {previous.value}; cancel its fulfillments instead",
                        current_status=previous.value,
                    )
                await self._move(request, RequestStatus.REJECTED)
            else:
                if not previous.is_outstanding:
                    raise InvalidStateError(
                        f"Request already {previous.value}",
                        current_status=previous.value,
                    )
                await self._terminate_child(request, RequestStatus.REJECTED)

            outcome = await self.strikes.record_cancellation(actor.id, previous, now)
            request = await get_request_or_404(self.db, request_id)
        logger.info(
            f"Request cancelled from {previous.value}",
            extra={"request_id": request_id, "requester_id": actor.id},
        )
        return CancelOutcome(request, outcome.cancel_count, outcome.banned_until)

    # ─── Internals ───────────────────────────────────────────────

    async def _resolve_main(
        self, actor: Actor, parent_request_id: UUID | None,
    ) -> BloodRequest:
        if parent_request_id is None:
            main = await latest_open_main(self.db, actor.id)
            if main is None:
                raise ResourceNotFoundError("Main request", f"open requirement of {actor.id}")
        else:
            main = await get_request_or_404(self.db, parent_request_id)
            if main.kind is not RequestKind.MAIN:
                raise FieldValidationError(
                    "parent_request_id must reference a main request",
                    "parent_request_id",
                )
            if main.requester_id != actor.id:
                raise ForbiddenError("Requirement belongs to another requester")
        check_main_open(main.status)
        return main

    def _new_child(
        self, main: BloodRequest, kind: RequestKind, blood_group, units: int,
        **refs,
    ) -> BloodRequest:
        return BloodRequest(
            kind=kind,
            requester_id=main.requester_id,
            parent_request_id=main.id,
            blood_group=blood_group,
            units=units,
            allocated_units=0,
            city=main.city,
            hospital=main.hospital,
            patient_ref=main.patient_ref,
            contact=main.contact,
            required_date=main.required_date,
            status=INITIAL_STATUS[kind],
            transit_state=TransitState.IN_TRANSIT,
            **refs,
        )

    async def _assign_donor(
        self, main: BloodRequest, donor_id: UUID, field: str,
    ) -> BloodRequest:
        """Guard and insert a one-unit donor fulfillment under `main` (no commit)."""
        donor = await self.eligibility.get_donor(donor_id)
        if not can_supply(donor.blood_group, main.blood_group):
            raise FieldValidationError(
                f"{donor.blood_group.value} donor cannot supply a "
                f"{main.blood_group.value} requirement",
                field,
            )
        if not self.eligibility.is_eligible(donor, self.clock()):
            raise DonorUnavailableError(
                str(donor_id),
                f"in cooldown until {as_utc(donor.next_eligible_date).isoformat()}",
            )
        if await self.eligibility.is_busy(donor_id):
            raise DonorUnavailableError(str(donor_id), "already assigned")
        check_allocation(main.units, main.allocated_units, 1)

        await self._reserve_units(main, 1)
        child = self._new_child(
            main, RequestKind.DONOR_FULFILLMENT, donor.blood_group, 1,
            donor_id=donor.id,
        )
        self.db.add(child)
        try:
            await self.db.flush()
        except IntegrityError:
            # lost the race on uq_blood_requests_outstanding_donor
            raise DonorUnavailableError(str(donor_id), "already assigned") from None
        return child

    async def _assigned_donor_request(
        self, actor: Actor, request_id: UUID,
    ) -> BloodRequest:
        child = await get_request_or_404(self.db, request_id)
        if child.kind is not RequestKind.DONOR_FULFILLMENT or child.donor_id != actor.id:
            raise ForbiddenError("Request is not assigned to this donor")
        return child

    async def _stock_request(self, request_id: UUID) -> BloodRequest:
        child = await get_request_or_404(self.db, request_id)
        if child.kind is not RequestKind.STOCK_FULFILLMENT:
            raise InvalidStateError(
                f"{child.kind.value} requests are not reviewed by administrators",
            )
        return child

    async def _move(
        self, request: BloodRequest, target: RequestStatus, **values,
    ) -> None:
        """Conditional status update: applies only if the row is still in request.status."""
        check_transition(request.kind, request.status, target)
        result = await self.db.execute(
            update(BloodRequest)
            .where(BloodRequest.id == request.id)
            .where(BloodRequest.status == request.status)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyError(
                f"Request {request.id} left {request.status.value} concurrently",
            )

    async def _reserve_units(self, main: BloodRequest, units: int) -> None:
        """allocated_units += units and status -> MATCHED, if still open and within cap."""
        if main.status is RequestStatus.WAITING_FOR_MATCH:
            check_transition(main.kind, main.status, RequestStatus.MATCHED)
        result = await self.db.execute(
            update(BloodRequest)
            .where(BloodRequest.id == main.id)
            .where(BloodRequest.status.in_(OPEN_MAIN_STATUSES))
            .where(BloodRequest.allocated_units + units <= BloodRequest.units)
            .values(
                allocated_units=BloodRequest.allocated_units + units,
                status=RequestStatus.MATCHED,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            fresh = await get_request_or_404(self.db, main.id)
            check_main_open(fresh.status)
            check_allocation(fresh.units, fresh.allocated_units, units)
            raise ConcurrencyError(f"Requirement {main.id} changed concurrently")

    async def _release_units(self, main_id: UUID, units: int) -> None:
        await self.db.execute(
            update(BloodRequest)
            .where(BloodRequest.id == main_id)
            .where(BloodRequest.allocated_units >= units)
            .values(allocated_units=BloodRequest.allocated_units - units)
            .execution_options(synchronize_session=False)
        )

    async def _terminate_child(
        self, child: BloodRequest, target: RequestStatus,
    ) -> None:
        """Reject a fulfillment: give back stock and allocation, then re-aggregate."""
        await self._move(child, target)
        if child.kind is RequestKind.STOCK_FULFILLMENT:
            await self.ledger.credit(child.stock_entry_id, child.units)
        await self._release_units(child.parent_request_id, child.units)
        await aggregate_parent(self.db, child.parent_request_id)


async def aggregate_parent(db: AsyncSession, main_id: UUID) -> RequestStatus:
    """Recompute and persist a Main's status from its children (no commit).

    The Main row is locked before the children are read, so two transactions
    terminating sibling children aggregate one after the other and the later
    one sees both terminal statuses.
    """
    main = (await db.execute(
        select(BloodRequest)
        .where(BloodRequest.id == main_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if main is None:
        raise ResourceNotFoundError("Request", str(main_id))
    statuses = (await db.execute(
        select(BloodRequest.status).where(BloodRequest.parent_request_id == main_id),
    )).scalars().all()
    new_status = aggregate_main_status(main.status, statuses)
    if new_status is main.status:
        return new_status

    check_transition(RequestKind.MAIN, main.status, new_status)
    result = await db.execute(
        update(BloodRequest)
        .where(BloodRequest.id == main_id)
        .where(BloodRequest.status == main.status)
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyError(f"Requirement {main_id} aggregated concurrently")
    logger.info(
        f"Requirement {main.status.value} -> {new_status.value}",
        extra={"request_id": main_id},
    )
    return new_status

"""Requester Routes — blood requirements, suggestions, fulfillments and cancellation.

Invariants:
    - Every handler requires an Actor; role checks happen in the services
    - Guard violations propagate as BloodMatchError to the global handlers
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from bloodmatch.api.dependencies import get_actor, get_engine, get_matching
from bloodmatch.core.domain_types import Actor
from bloodmatch.schemas.requests import (
    CancelResponse, DonorFulfillmentCreate, DonorResponse, MainRequestCreate,
    RequestResponse, StockEntryResponse, StockFulfillmentCreate,
)
from bloodmatch.services.matching import MatchingService
from bloodmatch.services.request_lifecycle import RequestLifecycleEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/requests", tags=["requests"])


@router.post(
    "", response_model=RequestResponse, status_code=status.HTTP_201_CREATED,
)
async def create_main_request(
    body: MainRequestCreate,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    """Create a blood requirement (Main request)."""
    return await engine.create_main_request(
        actor,
        blood_group=body.blood_group.value,
        units=body.units,
        city=body.city,
        hospital=body.hospital,
        required_date=body.required_date,
        patient_ref=body.patient_ref,
        contact=body.contact,
    )


@router.get("/mine", response_model=list[RequestResponse])
async def my_requests(
    actor: Actor = Depends(get_actor),
    matching: MatchingService = Depends(get_matching),
):
    return await matching.requester_history(actor)


@router.get("/compatible-stock", response_model=list[StockEntryResponse])
async def compatible_stock(
    actor: Actor = Depends(get_actor),
    matching: MatchingService = Depends(get_matching),
):
    return await matching.list_compatible_stock(actor)


@router.get("/compatible-donors", response_model=list[DonorResponse])
async def compatible_donors(
    actor: Actor = Depends(get_actor),
    matching: MatchingService = Depends(get_matching),
):
    """Eligible, free donors for the latest open requirement, same city first."""
    return await matching.list_compatible_donors(actor)


@router.post(
    "/stock-fulfillments", response_model=RequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_stock_fulfillment(
    body: StockFulfillmentCreate,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    return await engine.create_stock_fulfillment(
        actor, body.stock_entry_id, body.units, body.parent_request_id,
    )


@router.post(
    "/donor-fulfillments", response_model=RequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_donor_fulfillment(
    body: DonorFulfillmentCreate,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    return await engine.create_donor_fulfillment(
        actor, body.donor_id, body.parent_request_id,
    )


@router.post("/{request_id}/cancel", response_model=CancelResponse)
async def cancel_request(
    request_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    """Cancel a fulfillment (counts as a strike if it was pending/accepted)."""
    outcome = await engine.cancel(actor, request_id)
    return CancelResponse(
        request=RequestResponse.model_validate(outcome.request),
        cancel_count=outcome.cancel_count,
        banned_until=outcome.banned_until,
    )

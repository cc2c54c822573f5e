"""Donor Routes — assignments, nearby needs, volunteering, accept/decline and history."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from bloodmatch.api.dependencies import get_actor, get_engine, get_matching
from bloodmatch.core.domain_types import Actor
from bloodmatch.schemas.requests import RequestResponse
from bloodmatch.services.matching import MatchingService
from bloodmatch.services.request_lifecycle import RequestLifecycleEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/donor", tags=["donor"])


@router.get("/assigned", response_model=list[RequestResponse])
async def assigned_requests(
    actor: Actor = Depends(get_actor),
    matching: MatchingService = Depends(get_matching),
):
    return await matching.donor_assigned(actor)


@router.get("/nearby", response_model=list[RequestResponse])
async def nearby_requirements(
    actor: Actor = Depends(get_actor),
    matching: MatchingService = Depends(get_matching),
):
    """Open requirements in the donor's city the donor could supply."""
    return await matching.donor_nearby(actor)


@router.get("/history", response_model=list[RequestResponse])
async def donation_history(
    actor: Actor = Depends(get_actor),
    matching: MatchingService = Depends(get_matching),
):
    return await matching.donor_history(actor)


@router.post(
    "/volunteer/{request_id}",
    response_model=RequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def volunteer(
    request_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    """Offer to donate for an open requirement listed under /nearby."""
    return await engine.donor_volunteer(actor, request_id)


@router.post("/requests/{request_id}/accept", response_model=RequestResponse)
async def accept_request(
    request_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    return await engine.donor_accept(actor, request_id)


@router.post("/requests/{request_id}/reject", response_model=RequestResponse)
async def reject_request(
    request_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    return await engine.donor_reject(actor, request_id)

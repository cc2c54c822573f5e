"""Admin Routes — stock fulfillment review, manual bans, on-demand sweep.

Invariants:
    - Admin role is checked by the engine (ForbiddenError), not by URL prefix
    - POST /sweep runs the same ArrivalSweeper as the background scheduler
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bloodmatch.api.dependencies import get_actor, get_engine
from bloodmatch.core.clock import utc_now
from bloodmatch.core.domain_types import Actor, ActorRole
from bloodmatch.infrastructure.database import get_db
from bloodmatch.schemas.requests import BanResponse, RequestResponse, SweepResponse
from bloodmatch.services.arrival_sweeper import ArrivalSweeper
from bloodmatch.services.matching import require_role
from bloodmatch.services.request_lifecycle import RequestLifecycleEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.post("/requests/{request_id}/accept", response_model=RequestResponse)
async def approve_request(
    request_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    return await engine.admin_accept(actor, request_id)


@router.post("/requests/{request_id}/reject", response_model=RequestResponse)
async def reject_request(
    request_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    """Reject a pending stock fulfillment and return its units to stock."""
    return await engine.admin_reject(actor, request_id)


@router.post("/requesters/{requester_id}/ban", response_model=BanResponse)
async def ban_requester(
    requester_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: RequestLifecycleEngine = Depends(get_engine),
):
    banned_until = await engine.manual_ban(actor, requester_id)
    return BanResponse(requester_id=requester_id, banned_until=banned_until)


@router.post("/sweep", response_model=SweepResponse)
async def sweep_now(
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    require_role(actor, ActorRole.ADMIN)
    transitioned = await ArrivalSweeper(db).sweep_arrivals(utc_now())
    return SweepResponse(transitioned=transitioned)

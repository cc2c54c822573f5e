"""Arrival Sweeper — closes accepted fulfillments whose arrival date has passed.

Invariants:
    - Only ACCEPTED rows with arrival_date <= now are touched
    - Each row moves with a conditional UPDATE (status still ACCEPTED), so a row
      already moved by a concurrent sweep or a cancellation is left untouched
    - Idempotent: a second run with the same `now` transitions nothing
    - One transaction per row: a failure on one request does not undo the others

Design Decisions:
    - Explicit scheduled component instead of closing requests opportunistically on read
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bloodmatch.core.clock import as_utc
from bloodmatch.core.domain_types import RequestKind, RequestStatus, TransitState
from bloodmatch.core.request_lifecycle import check_transition
from bloodmatch.infrastructure.database import transaction
from bloodmatch.models.blood_request import BloodRequest
from bloodmatch.services.request_lifecycle import aggregate_parent

logger = logging.getLogger(__name__)


class ArrivalSweeper:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def sweep_arrivals(self, now: datetime) -> int:
        """Transition every due ACCEPTED request to CLOSED/ARRIVED. Returns the count."""
        now = as_utc(now)
        due = (await self.db.execute(
            select(BloodRequest.id, BloodRequest.kind, BloodRequest.parent_request_id)
            .where(BloodRequest.status == RequestStatus.ACCEPTED)
            .where(BloodRequest.arrival_date.is_not(None))
            .where(BloodRequest.arrival_date <= now)
            .order_by(BloodRequest.arrival_date)
        )).all()
        await self.db.commit()

        transitioned = 0
        for request_id, kind, parent_id in due:
            if await self._close(request_id, kind, parent_id):
                transitioned += 1
        if transitioned:
            logger.info(
                f"Sweeper closed {transitioned} arrived request(s)",
                extra={"transitioned": transitioned},
            )
        return transitioned

    async def _close(self, request_id, kind: RequestKind, parent_id) -> bool:
        check_transition(kind, RequestStatus.ACCEPTED, RequestStatus.CLOSED)
        async with transaction(self.db):
            result = await self.db.execute(
                update(BloodRequest)
                .where(BloodRequest.id == request_id)
                .where(BloodRequest.status == RequestStatus.ACCEPTED)
                .values(
                    status=RequestStatus.CLOSED,
                    transit_state=TransitState.ARRIVED,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.debug(
                    "Request already moved by another path",
                    extra={"request_id": request_id},
                )
                return False
            if parent_id is not None:
                await aggregate_parent(self.db, parent_id)
        return True

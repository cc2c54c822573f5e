"""Strike/Ban Policy — applies cancellation strikes and suspensions to requesters.

Invariants:
    - cancel_count / banned_until are mutated only here
    - Updates are optimistic: applied only if cancel_count is unchanged since read,
      otherwise ConcurrencyError (no silent retry)
    - The policy never commits: callers own the transaction
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from bloodmatch.config import Settings, get_settings
from bloodmatch.core.domain_types import RequestStatus
from bloodmatch.core.errors import (
    ConcurrencyError, RequesterBannedError, ResourceNotFoundError,
)
from bloodmatch.core.strike_policy import (
    StrikeOutcome, active_ban, evaluate_cancellation,
)
from bloodmatch.core.clock import as_utc
from bloodmatch.models.requester import Requester

logger = logging.getLogger(__name__)


class StrikePolicy:
    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    async def get_requester(self, requester_id: UUID) -> Requester:
        requester = await self.db.get(Requester, requester_id, populate_existing=True)
        if requester is None:
            raise ResourceNotFoundError("Requester", str(requester_id))
        return requester

    async def assert_not_banned(self, requester_id: UUID, as_of: datetime) -> Requester:
        requester = await self.get_requester(requester_id)
        until = active_ban(requester.banned_until, as_of)
        if until is not None:
            raise RequesterBannedError(until)
        return requester

    async def record_cancellation(
        self, requester_id: UUID, previous_status: RequestStatus, now: datetime,
    ) -> StrikeOutcome:
        requester = await self.get_requester(requester_id)
        outcome = evaluate_cancellation(
            requester.cancel_count,
            requester.banned_until,
            previous_status,
            now,
            self.settings.strike_threshold,
            self.settings.ban_duration,
        )
        if not outcome.counted:
            return StrikeOutcome(
                requester.cancel_count, as_utc(requester.banned_until),
            )

        result = await self.db.execute(
            update(Requester)
            .where(Requester.id == requester_id)
            .where(Requester.cancel_count == requester.cancel_count)
            .values(
                cancel_count=outcome.cancel_count,
                banned_until=outcome.banned_until,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyError(
                "Requester strike counter changed concurrently",
            )
        if outcome.newly_banned:
            logger.warning(
                f"Strike threshold reached, banned until {outcome.banned_until.isoformat()}",
                extra={"requester_id": requester_id},
            )
        else:
            logger.info(
                f"Cancellation strike recorded ({outcome.cancel_count})",
                extra={"requester_id": requester_id},
            )
        return outcome

    async def manual_ban(self, requester_id: UUID, now: datetime) -> datetime:
        """Administrative override; leaves cancel_count untouched."""
        banned_until = as_utc(now) + self.settings.ban_duration
        result = await self.db.execute(
            update(Requester)
            .where(Requester.id == requester_id)
            .values(banned_until=banned_until)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ResourceNotFoundError("Requester", str(requester_id))
        logger.warning(
            f"Requester manually banned until {banned_until.isoformat()}",
            extra={"requester_id": requester_id},
        )
        return banned_until

"""Donor Eligibility Tracker — cooldown state and busy/free status of donors.

Invariants:
    - record_donation writes last_donation_date and next_eligible_date together,
      exactly once per accepted donation
    - Re-recording while the donor is still in cooldown is an InvalidStateError
    - is_busy is derived from outstanding DONOR_FULFILLMENT rows, never stored

Design Decisions:
    - record_donation is a conditional UPDATE (eligible at donation_date), so two
      concurrent acceptances for the same donor can not both record
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update, or_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from bloodmatch.config import Settings, get_settings
from bloodmatch.core.domain_types import RequestKind, OUTSTANDING_STATUSES
from bloodmatch.core.eligibility import compute_next_eligible_date, is_eligible
from bloodmatch.core.errors import InvalidStateError, ResourceNotFoundError
from bloodmatch.models.blood_request import BloodRequest
from bloodmatch.models.donor import Donor

logger = logging.getLogger(__name__)


def outstanding_donor_request_clause(donor_id_column):
    """EXISTS(...) for a pending/accepted donor fulfillment targeting the donor."""
    return exists().where(
        BloodRequest.kind == RequestKind.DONOR_FULFILLMENT,
        BloodRequest.donor_id == donor_id_column,
        BloodRequest.status.in_(OUTSTANDING_STATUSES),
    )


def eligible_at_clause(as_of: datetime):
    return or_(
        Donor.next_eligible_date.is_(None),
        Donor.next_eligible_date <= as_of,
    )


class EligibilityTracker:
    """Cooldown bookkeeping for donors; never commits."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    async def get_donor(self, donor_id: UUID) -> Donor:
        donor = await self.db.get(Donor, donor_id, populate_existing=True)
        if donor is None:
            raise ResourceNotFoundError("Donor", str(donor_id))
        return donor

    def is_eligible(self, donor: Donor, as_of: datetime) -> bool:
        return is_eligible(donor.next_eligible_date, as_of)

    async def is_busy(self, donor_id: UUID) -> bool:
        return bool(await self.db.scalar(
            select(outstanding_donor_request_clause(donor_id)),
        ))

    async def record_donation(self, donor_id: UUID, donation_date: datetime) -> Donor:
        """Stamp a donation and start the cooldown."""
        next_date = compute_next_eligible_date(
            donation_date, self.settings.donor_cooldown,
        )
        result = await self.db.execute(
            update(Donor)
            .where(Donor.id == donor_id)
            .where(eligible_at_clause(donation_date))
            .values(
                last_donation_date=donation_date, next_eligible_date=next_date,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            donor = await self.get_donor(donor_id)
            raise InvalidStateError(
                f"Donation already recorded; donor in cooldown until "
                f"{donor.next_eligible_date.isoformat()}",
            )
        logger.info(
            f"Recorded donation, next eligible {next_date.isoformat()}",
            extra={"donor_id": donor_id},
        )
        return await self.get_donor(donor_id)

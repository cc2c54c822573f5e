"""Donor ORM — a volunteer who can fulfill donor-type child requests.

Invariants:
    - blood_group is one of the 8 canonical groups
    - last_donation_date / next_eligible_date are written only by
      services/eligibility_tracker.py, once per accepted donation
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from bloodmatch.core.domain_types import BloodGroup
from bloodmatch.db.base import Base, str_enum


class Donor(Base):
    """Donor entity."""
    __tablename__ = "donors"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    blood_group: Mapped[BloodGroup] = mapped_column(
        str_enum(BloodGroup, length=3), nullable=False, index=True,
    )
    city: Mapped[str] = mapped_column(String(80), nullable=False)
    last_donation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    next_eligible_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

"""BloodRequest ORM — Main requirements and their fulfillment attempts in one table.

Invariants:
    - kind is a tagged variant: MAIN has no parent; fulfillments always have one
    - donor_id set only for DONOR_FULFILLMENT, stock_entry_id only for STOCK_FULFILLMENT
    - units >= 1; allocated_units (MAIN only) is in [0, units]
    - At most one PENDING/ACCEPTED row per donor_id (partial unique index)
    - Contact snapshots written once, at acceptance

Design Decisions:
    - Single-table request model: parent/child share every descriptive field
      (hospital, city, required_date) and the sweeper scans one table
    - allocated_units denormalized on the Main row: a conditional UPDATE on it
      serializes concurrent fulfillments of the same requirement
    - No ORM relationships: services load children explicitly so every state
      change stays a visible, guarded UPDATE
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Integer, DateTime, JSON, ForeignKey, CheckConstraint, Index, text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from bloodmatch.core.domain_types import (
    BloodGroup, RequestKind, RequestStatus, TransitState,
)
from bloodmatch.db.base import Base, str_enum

_OUTSTANDING_SQL = "status IN ('pending', 'accepted')"


class BloodRequest(Base):
    """Request entity — Main requirement or a stock/donor fulfillment."""
    __tablename__ = "blood_requests"
    __table_args__ = (
        CheckConstraint("units >= 1", name="ck_blood_requests_units_positive"),
        CheckConstraint(
            "allocated_units >= 0 AND allocated_units <= units",
            name="ck_blood_requests_allocation_bounds",
        ),
        CheckConstraint(
            "(kind = 'main' AND parent_request_id IS NULL) "
            "OR (kind <> 'main' AND parent_request_id IS NOT NULL)",
            name="ck_blood_requests_parent_by_kind",
        ),
        Index(
            "uq_blood_requests_outstanding_donor", "donor_id", unique=True,
            postgresql_where=text(_OUTSTANDING_SQL),
            sqlite_where=text(_OUTSTANDING_SQL),
        ),
        Index("ix_blood_requests_status_arrival", "status", "arrival_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    kind: Mapped[RequestKind] = mapped_column(
        str_enum(RequestKind), nullable=False,
    )
    requester_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("requesters.id"), nullable=False, index=True,
    )
    donor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("donors.id"), nullable=True,
    )
    stock_entry_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stock_entries.id"), nullable=True,
    )
    parent_request_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("blood_requests.id"), nullable=True, index=True,
    )
    blood_group: Mapped[BloodGroup] = mapped_column(
        str_enum(BloodGroup, length=3), nullable=False,
    )
    units: Mapped[int] = mapped_column(Integer, nullable=False)
    allocated_units: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    city: Mapped[str] = mapped_column(String(80), nullable=False)
    hospital: Mapped[str | None] = mapped_column(String(200), nullable=True)
    patient_ref: Mapped[str | None] = mapped_column(String(120), nullable=True)
    contact: Mapped[str | None] = mapped_column(String(120), nullable=True)
    required_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    arrival_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    status: Mapped[RequestStatus] = mapped_column(
        str_enum(RequestStatus), nullable=False,
    )
    transit_state: Mapped[TransitState] = mapped_column(
        str_enum(TransitState), nullable=False, default=TransitState.IN_TRANSIT,
    )
    donor_contact: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    requester_contact: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

"""StockEntry ORM — units on hand for one blood group.

Invariants:
    - units >= 0 (CHECK constraint backs the ledger's conditional debit)
    - units mutated only through services/inventory_ledger.py
    - Created/deleted by the inventory-management collaborator, never by the core
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Integer, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from bloodmatch.core.domain_types import BloodGroup
from bloodmatch.db.base import Base, str_enum


class StockEntry(Base):
    """Inventory ledger row."""
    __tablename__ = "stock_entries"
    __table_args__ = (
        CheckConstraint("units >= 0", name="ck_stock_entries_units_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    blood_group: Mapped[BloodGroup] = mapped_column(
        str_enum(BloodGroup, length=3), nullable=False, index=True,
    )
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

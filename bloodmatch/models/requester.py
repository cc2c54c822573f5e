"""Requester ORM — the party that owns Main requests.

Invariants:
    - cancel_count >= 0 (CHECK constraint)
    - cancel_count / banned_until are written only by services/strike_policy.py
    - Never deleted by the core
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from bloodmatch.db.base import Base


class Requester(Base):
    """Requester entity — registered by the identity collaborator."""
    __tablename__ = "requesters"
    __table_args__ = (
        CheckConstraint("cancel_count >= 0", name="ck_requesters_cancel_count"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    city: Mapped[str | None] = mapped_column(String(80), nullable=True)
    cancel_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    banned_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

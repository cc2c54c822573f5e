"""Initial schema — requesters, donors, stock_entries, blood_requests.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_OUTSTANDING_SQL = "status IN ('pending', 'accepted')"


def upgrade() -> None:
    op.create_table(
        "requesters",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("city", sa.String(80), nullable=True),
        sa.Column("cancel_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("banned_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("cancel_count >= 0", name="ck_requesters_cancel_count"),
    )

    op.create_table(
        "donors",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("blood_group", sa.String(3), nullable=False),
        sa.Column("city", sa.String(80), nullable=False),
        sa.Column("last_donation_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_eligible_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_donors_blood_group", "donors", ["blood_group"])

    op.create_table(
        "stock_entries",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("blood_group", sa.String(3), nullable=False),
        sa.Column("units", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("units >= 0", name="ck_stock_entries_units_non_negative"),
    )
    op.create_index("ix_stock_entries_blood_group", "stock_entries", ["blood_group"])

    op.create_table(
        "blood_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("requester_id", UUID(as_uuid=True), sa.ForeignKey("requesters.id"), nullable=False),
        sa.Column("donor_id", UUID(as_uuid=True), sa.ForeignKey("donors.id"), nullable=True),
        sa.Column("stock_entry_id", UUID(as_uuid=True), sa.ForeignKey("stock_entries.id"), nullable=True),
        sa.Column("parent_request_id", UUID(as_uuid=True), sa.ForeignKey("blood_requests.id"), nullable=True),
        sa.Column("blood_group", sa.String(3), nullable=False),
        sa.Column("units", sa.Integer, nullable=False),
        sa.Column("allocated_units", sa.Integer, nullable=False, server_default="0"),
        sa.Column("city", sa.String(80), nullable=False),
        sa.Column("hospital", sa.String(200), nullable=True),
        sa.Column("patient_ref", sa.String(120), nullable=True),
        sa.Column("contact", sa.String(120), nullable=True),
        sa.Column("required_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("arrival_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("transit_state", sa.String(20), nullable=False, server_default="in_transit"),
        sa.Column("donor_contact", sa.JSON, nullable=True),
        sa.Column("requester_contact", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("units >= 1", name="ck_blood_requests_units_positive"),
        sa.CheckConstraint(
            "allocated_units >= 0 AND allocated_units <= units",
            name="ck_blood_requests_allocation_bounds",
        ),
        sa.CheckConstraint(
            "(kind = 'main' AND parent_request_id IS NULL) "
            "OR (kind <> 'main' AND parent_request_id IS NOT NULL)",
            name="ck_blood_requests_parent_by_kind",
        ),
    )
    op.create_index("ix_blood_requests_requester_id", "blood_requests", ["requester_id"])
    op.create_index("ix_blood_requests_parent_request_id", "blood_requests", ["parent_request_id"])
    op.create_index("ix_blood_requests_status_arrival", "blood_requests", ["status", "arrival_date"])
    op.create_index(
        "uq_blood_requests_outstanding_donor", "blood_requests", ["donor_id"],
        unique=True,
        postgresql_where=sa.text(_OUTSTANDING_SQL),
        sqlite_where=sa.text(_OUTSTANDING_SQL),
    )


def downgrade() -> None:
    op.drop_index("uq_blood_requests_outstanding_donor", table_name="blood_requests")
    op.drop_table("blood_requests")
    op.drop_table("stock_entries")
    op.drop_table("donors")
    op.drop_table("requesters")

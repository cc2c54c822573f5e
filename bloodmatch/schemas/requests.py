"""Request Schemas — Pydantic models with field-level validation for API boundaries.

Invariants:
    - MainRequestCreate.blood_group normalized to a canonical BloodGroup
    - units >= 1 everywhere a caller supplies units
    - Response models read straight from ORM rows (from_attributes)

Design Decisions:
    - field_validator for side-effect-free transforms (strip, upper) — keeps models pure
    - Enums exposed as their string values for JSON clients
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bloodmatch.core.domain_types import (
    BloodGroup, RequestKind, RequestStatus, TransitState,
)


class MainRequestCreate(BaseModel):
    """New blood requirement."""
    blood_group: BloodGroup
    units: int = Field(ge=1)
    city: str = Field(min_length=1, max_length=80)
    hospital: str | None = Field(None, max_length=200)
    required_date: datetime
    patient_ref: str | None = Field(None, max_length=120)
    contact: str | None = Field(None, max_length=120)

    @field_validator("blood_group", mode="before")
    @classmethod
    def normalize_blood_group(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("city")
    @classmethod
    def strip_city(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("city cannot be empty or whitespace")
        return v


class StockFulfillmentCreate(BaseModel):
    stock_entry_id: UUID
    units: int = Field(ge=1)
    parent_request_id: UUID | None = None


class DonorFulfillmentCreate(BaseModel):
    donor_id: UUID
    parent_request_id: UUID | None = None


class ContactSnapshot(BaseModel):
    name: str | None = None
    phone: str | None = None


class RequestResponse(BaseModel):
    """Public view of a Main or fulfillment request."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: RequestKind
    requester_id: UUID
    donor_id: UUID | None = None
    stock_entry_id: UUID | None = None
    parent_request_id: UUID | None = None
    blood_group: BloodGroup
    units: int
    city: str
    hospital: str | None = None
    patient_ref: str | None = None
    required_date: datetime
    arrival_date: datetime | None = None
    status: RequestStatus
    transit_state: TransitState
    donor_contact: ContactSnapshot | None = None
    requester_contact: ContactSnapshot | None = None
    created_at: datetime


class StockEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    blood_group: BloodGroup
    units: int
    last_updated: datetime


class DonorResponse(BaseModel):
    """Donor suggestion — contact details are only shared after acceptance."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    blood_group: BloodGroup
    city: str
    last_donation_date: datetime | None = None
    next_eligible_date: datetime | None = None


class CancelResponse(BaseModel):
    request: RequestResponse
    cancel_count: int
    banned_until: datetime | None = None


class BanResponse(BaseModel):
    requester_id: UUID
    banned_until: datetime


class SweepResponse(BaseModel):
    transitioned: int

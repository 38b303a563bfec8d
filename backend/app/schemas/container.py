"""Pydantic schemas for container registration, correction and reads."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


# ── Create ───────────────────────────────────────────────────

class ContainerCreate(BaseModel):
    """Payload for POST /api/containers/.

    Dates stay strings here; the ledger service parses them strictly as
    YYYY-MM-DD and reports every bad field at once.
    """
    container_number: str | None = Field(None, max_length=50)
    size: str | None = None
    container_type: str | None = None
    owner_type: str | None = None  # owned | hired (soc | coc accepted)
    location: str | None = None
    availability: str | None = None
    remarks: str | None = None

    # Owned
    manufacture_date: str | None = None
    purchase_date: str | None = None
    purchase_price: Any = None
    purchased_from: str | None = None
    owned_by: str | None = None
    available_at: str | None = None
    currency: str | None = None

    # Hired
    hire_start_date: str | None = None
    hire_end_date: str | None = None
    hired_by: str | None = None
    return_date: str | None = None
    free_days: Any = None
    place_of_loading: str | None = None
    place_of_destination: str | None = None


# ── Update ───────────────────────────────────────────────────

class ContainerUpdate(BaseModel):
    """Payload for PATCH /api/containers/{id}.  Only sent fields change."""
    container_number: str | None = Field(None, max_length=50)
    size: str | None = None
    container_type: str | None = None
    remarks: str | None = None
    status_override: str | None = None
    owner_type: str | None = None  # rejected if it differs

    location: str | None = None
    availability: str | None = None
    derived_status: str | None = None

    manufacture_date: str | None = None
    purchase_date: str | None = None
    purchase_price: Any = None
    purchased_from: str | None = None
    owned_by: str | None = None
    available_at: str | None = None
    currency: str | None = None

    hire_start_date: str | None = None
    hire_end_date: str | None = None
    hired_by: str | None = None
    return_date: str | None = None
    free_days: Any = None
    place_of_loading: str | None = None
    place_of_destination: str | None = None


class ContainerEventCreate(BaseModel):
    """Payload for POST /api/containers/{id}/events."""
    location: str | None = None
    availability: str | None = None
    note: str = Field(..., min_length=1)


# ── Reads ────────────────────────────────────────────────────

class ContainerEventOut(BaseModel):
    sequence: int
    location: str | None
    availability: str | None
    note: str | None
    actor: str | None
    recorded_at: datetime

    model_config = {"from_attributes": True}


class PurchaseDetailOut(BaseModel):
    manufacture_date: date | None
    purchase_date: date | None
    purchase_price: float | None
    purchased_from: str | None
    owned_by: str | None
    available_at: str | None
    currency: str

    model_config = {"from_attributes": True}


class HireDetailOut(BaseModel):
    hire_start_date: date | None
    hire_end_date: date | None
    hired_by: str | None
    return_date: date | None
    free_days: int
    place_of_loading: str | None
    place_of_destination: str | None

    model_config = {"from_attributes": True}


class ContainerSummary(BaseModel):
    id: str
    container_number: str
    size: str
    container_type: str
    owner_type: str
    derived_status: str
    location: str | None = None
    is_active: bool
    created_at: datetime


class ContainerDetail(ContainerSummary):
    remarks: str | None = None
    status_override: str | None = None
    purchase: PurchaseDetailOut | None = None
    hire: HireDetailOut | None = None
    location_history: list[ContainerEventOut] = []


class UsageOrderRef(BaseModel):
    order_id: str
    booking_ref: str
    order_status: str
    receiver_id: str
    receiver_name: str
    receiver_status: str


class ContainerUsage(BaseModel):
    container_number: str
    derived_status: str
    events: list[ContainerEventOut]
    orders: list[UsageOrderRef]


class ContainerOptions(BaseModel):
    sizes: list[str]
    types: list[str]
    owner_types: list[str]
    availability: list[dict]

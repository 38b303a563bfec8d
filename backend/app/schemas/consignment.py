"""Pydantic schemas for consignments."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel


class ConsignmentCreate(BaseModel):
    """Payload for POST /api/consignments/.

    Kept loose on purpose: the workflow service validates every field and
    returns all problems in one response.
    """
    consignment_number: str | None = None
    status: str | None = None
    shipper: str | None = None
    consignee: str | None = None
    origin: str | None = None
    destination: str | None = None
    eform: str | None = None
    eform_date: str | None = None
    bank: str | None = None
    consignment_value: Any = None
    currency: str | None = None
    payment_type: str | None = None
    voyage: str | None = None
    vessel: str | None = None
    shipping_line: str | None = None
    seal_no: str | None = None
    eta: str | None = None
    net_weight: Any = None
    gross_weight: Any = None
    remarks: str | None = None
    containers: list[dict[str, Any]] = []
    orders: list[Any] = []


class ConsignmentUpdate(ConsignmentCreate):
    """Payload for PUT /api/consignments/{id}; the full record is revalidated."""


class ConsignmentSummary(BaseModel):
    id: str
    consignment_number: str
    status: str
    shipper: str
    consignee: str
    origin: str
    destination: str
    eta: date | None
    gross_weight: float
    created_at: datetime

    model_config = {"from_attributes": True}


class ConsignmentOut(ConsignmentSummary):
    eform: str
    eform_date: date
    bank: str | None
    consignment_value: float
    currency: str
    payment_type: str
    voyage: str
    vessel: str | None
    shipping_line: str
    seal_no: str | None
    net_weight: float
    remarks: str | None
    containers: list[dict[str, Any]]
    orders: list[Any]
    updated_at: datetime

    status_color: str = "default"
    delivered_qty: int = 0
    pending_qty: int = 0
    days_until_eta: int | None = None


class ConsignmentTrackingOut(BaseModel):
    sequence: int
    consignment_id: str
    action: str
    old_status: str | None
    new_status: str | None
    actor: str | None
    recorded_at: datetime

    model_config = {"from_attributes": True}

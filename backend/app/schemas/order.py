"""Pydantic schemas for orders, receivers, items and transport.

Party and item entries arrive loosely structured (plain dicts) because
their shape depends on `sender_type` and on the client generation; the
order builder validates them field by field and reports every problem in
one response.  The *update* models, on the other hand, are the fixed sets
of fields a PATCH may touch.
"""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


# ── Create ───────────────────────────────────────────────────

class OrderCreate(BaseModel):
    """Payload for POST /api/orders/."""
    booking_ref: str | None = None
    rgl_booking_number: str | None = None
    point_of_origin: str | None = None
    place_of_loading: str | None = None
    final_destination: str | None = None
    place_of_delivery: str | None = None
    order_remarks: str | None = None
    attachments: list[str] = []
    sender_type: Literal["sender", "receiver"] = "sender"

    # Owner; sender_* keys (receiver_* when sender_type == "receiver")
    sender: dict[str, Any] = {}
    parties: list[dict[str, Any]] = []
    items: list[dict[str, Any]] = []
    transport: dict[str, Any] | None = None


# ── Update ───────────────────────────────────────────────────

class SenderPatch(BaseModel):
    sender_name: str | None = None
    sender_contact: str | None = None
    sender_address: str | None = None
    sender_email: str | None = None
    sender_ref: str | None = None
    sender_remarks: str | None = None


class TransportPatch(BaseModel):
    transport_mode: Literal["drop_off", "collection", "third_party"] | None = None
    drop_off_location: str | None = None
    drop_off_date: str | None = None
    driver_name: str | None = None
    driver_contact: str | None = None
    driver_nic: str | None = None
    truck_number: str | None = None
    collection_address: str | None = None
    collection_date: str | None = None
    third_party_company: str | None = None
    third_party_contact: str | None = None
    gate_pass_number: str | None = None
    clearing_agent: str | None = None
    associated_containers: list[str] | None = None
    remarks: str | None = None


class OrderUpdate(BaseModel):
    """Payload for PATCH /api/orders/{id}.

    Omitted fields are left alone.  Sending `parties` replaces every
    receiver, item and tracking row of the order.
    """
    booking_ref: str | None = None
    rgl_booking_number: str | None = None
    point_of_origin: str | None = None
    place_of_loading: str | None = None
    final_destination: str | None = None
    place_of_delivery: str | None = None
    order_remarks: str | None = None
    attachments: list[str] | None = None

    sender: dict[str, Any] | None = None
    parties: list[dict[str, Any]] | None = None
    items: list[dict[str, Any]] | None = None
    transport: dict[str, Any] | None = None


class ReceiverStatusUpdate(BaseModel):
    """Payload for PATCH /api/orders/{id}/receivers/{receiver_id}/status."""
    status: str = Field(..., min_length=1)
    note: str | None = None


# ── Assignment ───────────────────────────────────────────────

class AssignmentSlot(BaseModel):
    containers: list[str] = []
    qty: int = Field(0, ge=0)


class AssignContainersRequest(BaseModel):
    """Payload for POST /api/orders/assign-containers.

    `assignments` nests order id → receiver id → item index → slot.
    """
    order_ids: list[str] = Field(..., min_length=1)
    assignments: dict[str, dict[str, dict[int, AssignmentSlot]]]


# ── Reads ────────────────────────────────────────────────────

class OrderItemOut(BaseModel):
    id: str
    item_ref: str
    item_seq: int
    category: str | None
    subcategory: str | None
    type: str | None
    pickup_location: str | None
    delivery_address: str | None
    total_number: int
    weight: float
    assigned_qty: int

    model_config = {"from_attributes": True}


class ReceiverOut(BaseModel):
    id: str
    party_seq: int
    receiver_name: str
    receiver_contact: str | None
    receiver_address: str | None
    receiver_email: str | None
    eta: date | None
    etd: date | None
    full_partial: str
    total_number: int
    total_weight: float
    qty_delivered: int
    status: str
    remarks: str | None
    containers: list[str]
    items: list[OrderItemOut] = []

    model_config = {"from_attributes": True}


class SenderOut(BaseModel):
    sender_name: str
    sender_contact: str | None
    sender_address: str | None
    sender_email: str | None
    sender_ref: str | None
    sender_remarks: str | None

    model_config = {"from_attributes": True}


class TransportOut(BaseModel):
    transport_mode: str
    drop_off_location: str | None
    drop_off_date: date | None
    driver_name: str | None
    driver_contact: str | None
    driver_nic: str | None
    truck_number: str | None
    collection_address: str | None
    collection_date: date | None
    third_party_company: str | None
    third_party_contact: str | None
    gate_pass_number: str | None
    clearing_agent: str | None
    associated_containers: list[str]
    remarks: str | None

    model_config = {"from_attributes": True}


class OrderSummary(BaseModel):
    id: str
    booking_ref: str
    rgl_booking_number: str | None
    status: str
    sender_type: str
    place_of_loading: str
    final_destination: str
    place_of_delivery: str
    total_assigned_qty: int
    created_at: datetime

    model_config = {"from_attributes": True}


class OrderOut(OrderSummary):
    point_of_origin: str | None
    order_remarks: str | None
    attachments: list[str]
    sender: SenderOut | None = None
    receivers: list[ReceiverOut] = []
    transport: TransportOut | None = None
    updated_at: datetime


class TrackingEventOut(BaseModel):
    sequence: int
    order_id: str
    receiver_id: str | None
    status: str
    note: str | None
    actor: str | None
    recorded_at: datetime

    model_config = {"from_attributes": True}


class AssignContainersResponse(BaseModel):
    updated_orders: list[OrderOut]
    tracking_events: list[TrackingEventOut]

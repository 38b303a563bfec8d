"""Receiver — one shipping party (delivery destination) within an Order.

`total_number` / `total_weight` are always the sums over the receiver's
items and are rewritten whenever the items are.  `containers` holds the
container numbers bound by the assignment allocator.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class ReceiverStatus(str, enum.Enum):
    CREATED = "Created"
    ORDER_CONFIRMED = "Order Confirmed"
    AWAITING_COLLECTION = "Awaiting Collection"
    ON_HOLD = "On Hold"
    COLLECTED = "Collected"
    AT_ORIGIN_WAREHOUSE = "At Origin Warehouse"
    LOADED = "Loaded"
    SHIPPED = "Shipped"
    IN_TRANSIT = "In Transit"
    ARRIVED_AT_PORT = "Arrived at Port"
    CUSTOMS_CLEARANCE = "Customs Clearance"
    OUT_FOR_DELIVERY = "Out for Delivery"
    PARTIALLY_DELIVERED = "Partially Delivered"
    DELIVERED = "Delivered"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class FullPartial(str, enum.Enum):
    FULL = "full"
    PARTIAL = "partial"


class Receiver(Base):
    __tablename__ = "receivers"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    # Party-local sequence id issued at submission (0-based)
    party_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Contact ──────────────────────────────────────────────
    receiver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    receiver_contact: Mapped[str | None] = mapped_column(String(50))
    receiver_address: Mapped[str | None] = mapped_column(Text)
    receiver_email: Mapped[str | None] = mapped_column(String(255))

    # ── Schedule ─────────────────────────────────────────────
    eta: Mapped[date | None] = mapped_column(Date)
    etd: Mapped[date | None] = mapped_column(Date)

    # ── Quantities ───────────────────────────────────────────
    full_partial: Mapped[str] = mapped_column(String(10), default=FullPartial.FULL.value)
    total_number: Mapped[int] = mapped_column(Integer, default=0)
    total_weight: Mapped[float] = mapped_column(Float, default=0.0)
    qty_delivered: Mapped[int] = mapped_column(Integer, default=0)

    # ── Status ───────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(30), default=ReceiverStatus.CREATED.value, index=True
    )
    remarks: Mapped[str | None] = mapped_column(Text)
    # Container numbers assigned to this receiver, deduplicated, in assignment order
    containers: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    order = relationship("Order", back_populates="receivers")
    items = relationship(
        "OrderItem", back_populates="receiver",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="OrderItem.item_seq",
    )

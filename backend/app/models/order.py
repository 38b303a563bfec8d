"""Order — a shipment booking with one owner and one or more receivers.

The order's `status` is never set directly by clients: it is the reduction
of its receivers' statuses (see services/order_status.py), except for the
explicit cancel operation.

Orders are never deleted; cancellation moves them to "Cancelled".
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class OrderStatus(str, enum.Enum):
    CREATED = "Created"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class SenderType(str, enum.Enum):
    # Which role the owner row plays; "receiver" swaps sender_* / receiver_* keys
    SENDER = "sender"
    RECEIVER = "receiver"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    booking_ref: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    rgl_booking_number: Mapped[str | None] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(
        String(30), default=OrderStatus.CREATED.value, index=True
    )
    sender_type: Mapped[str] = mapped_column(
        String(20), default=SenderType.SENDER.value
    )

    # ── Route ────────────────────────────────────────────────
    point_of_origin: Mapped[str | None] = mapped_column(String(255))
    place_of_loading: Mapped[str] = mapped_column(String(255), nullable=False)
    final_destination: Mapped[str] = mapped_column(String(255), nullable=False)
    place_of_delivery: Mapped[str] = mapped_column(String(255), nullable=False)

    order_remarks: Mapped[str | None] = mapped_column(Text)
    # Reference strings into the external document store
    attachments: Mapped[list] = mapped_column(JSON, default=list)

    # Σ receivers.qty_delivered
    total_assigned_qty: Mapped[int] = mapped_column(Integer, default=0)

    created_by: Mapped[str | None] = mapped_column(String(100))
    updated_by: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    sender = relationship(
        "Sender", back_populates="order", uselist=False,
        cascade="all, delete-orphan", lazy="selectin",
    )
    receivers = relationship(
        "Receiver", back_populates="order",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="Receiver.party_seq",
    )
    transport = relationship(
        "TransportDetail", back_populates="order", uselist=False,
        cascade="all, delete-orphan", lazy="selectin",
    )


class Sender(Base):
    """The order owner. Exactly one per order."""

    __tablename__ = "senders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False, unique=True, index=True,
    )
    sender_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sender_contact: Mapped[str | None] = mapped_column(String(50))
    sender_address: Mapped[str | None] = mapped_column(Text)
    sender_email: Mapped[str | None] = mapped_column(String(255))
    sender_ref: Mapped[str | None] = mapped_column(String(100))
    sender_remarks: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="sender")

"""TransportDetail — how cargo reaches the loading point. One per Order.

Which fields are required depends on `transport_mode` and on whether the
order's route touches one of the configured hub ports; the rules live in
services/order_builder.py.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class TransportMode(str, enum.Enum):
    DROP_OFF = "drop_off"
    COLLECTION = "collection"
    THIRD_PARTY = "third_party"


class TransportDetail(Base):
    __tablename__ = "transport_details"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False, unique=True, index=True,
    )
    transport_mode: Mapped[str] = mapped_column(String(20), nullable=False)

    # ── Drop-off ─────────────────────────────────────────────
    drop_off_location: Mapped[str | None] = mapped_column(String(255))
    drop_off_date: Mapped[date | None] = mapped_column(Date)

    # ── Collection ───────────────────────────────────────────
    driver_name: Mapped[str | None] = mapped_column(String(255))
    driver_contact: Mapped[str | None] = mapped_column(String(50))
    driver_nic: Mapped[str | None] = mapped_column(String(50))
    truck_number: Mapped[str | None] = mapped_column(String(50))
    collection_address: Mapped[str | None] = mapped_column(Text)
    collection_date: Mapped[date | None] = mapped_column(Date)

    # ── Third party ──────────────────────────────────────────
    third_party_company: Mapped[str | None] = mapped_column(String(255))
    third_party_contact: Mapped[str | None] = mapped_column(String(50))

    # ── Hub ports ────────────────────────────────────────────
    gate_pass_number: Mapped[str | None] = mapped_column(String(100))
    clearing_agent: Mapped[str | None] = mapped_column(String(255))

    # Container numbers moved by this transport leg
    associated_containers: Mapped[list] = mapped_column(JSON, default=list)
    remarks: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    order = relationship("Order", back_populates="transport")

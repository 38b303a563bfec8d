"""Consignment — an independently tracked shipping record.

Status moves along Draft → Submitted → In Transit → Delivered via
`advance`; Cancelled is a separate explicit transition.  Container and
order references are denormalized JSON for display only.

ConsignmentTracking rows outlive the consignment they describe (no FK), so
a deletion is still visible in the log.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ConsignmentStatus(str, enum.Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class Consignment(Base):
    __tablename__ = "consignments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    consignment_number: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=ConsignmentStatus.DRAFT.value, index=True
    )

    # ── Parties & route ──────────────────────────────────────
    shipper: Mapped[str] = mapped_column(String(255), nullable=False)
    consignee: Mapped[str] = mapped_column(String(255), nullable=False)
    origin: Mapped[str] = mapped_column(String(255), nullable=False)
    destination: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Export paperwork ─────────────────────────────────────
    eform: Mapped[str] = mapped_column(String(20), nullable=False)
    eform_date: Mapped[date] = mapped_column(Date, nullable=False)
    bank: Mapped[str | None] = mapped_column(String(255))
    consignment_value: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    payment_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # ── Voyage ───────────────────────────────────────────────
    voyage: Mapped[str] = mapped_column(String(100), nullable=False)
    vessel: Mapped[str | None] = mapped_column(String(255))
    shipping_line: Mapped[str] = mapped_column(String(255), nullable=False)
    seal_no: Mapped[str | None] = mapped_column(String(100))
    eta: Mapped[date | None] = mapped_column(Date)

    net_weight: Mapped[float] = mapped_column(Float, default=0.0)
    gross_weight: Mapped[float] = mapped_column(Float, default=0.0)
    remarks: Mapped[str | None] = mapped_column(Text)

    # [{"container_no", "size", "owner", "number_of_days"}, ...]
    containers: Mapped[list] = mapped_column(JSON, default=list)
    # [{"order_id", "booking_ref", "quantity"}, ...] or bare order ids
    orders: Mapped[list] = mapped_column(JSON, default=list)

    created_by: Mapped[str | None] = mapped_column(String(100))
    updated_by: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ConsignmentTracking(Base):
    __tablename__ = "consignment_tracking"

    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    consignment_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # created | updated | status_advanced | cancelled | deleted
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(20))
    new_status: Mapped[str | None] = mapped_column(String(20))
    actor: Mapped[str | None] = mapped_column(String(100))
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class EtaConfig(Base):
    """Days added to today to estimate arrival when a consignment enters `status`."""

    __tablename__ = "eta_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    days_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

"""ContainerMaster — identity record for a physical shipping container.

A container is either owned (purchase detail) or hired (hire detail);
`owner_type` picks which and cannot change after creation.

There is no writable status column.  Current status is derived from the
latest ContainerStatusEvent, the hire record and `status_override`
(see services/container_ledger.py).
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class OwnerType(str, enum.Enum):
    OWNED = "owned"
    HIRED = "hired"


class ContainerMaster(Base):
    __tablename__ = "containers"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    container_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    size: Mapped[str] = mapped_column(String(20), nullable=False)
    # "Dry Standard", "Reefer High", "Tank", ...
    container_type: Mapped[str] = mapped_column(String(50), nullable=False)
    owner_type: Mapped[str] = mapped_column(String(10), nullable=False)

    # Administrative override; wins over every derived rule when set
    status_override: Mapped[str | None] = mapped_column(String(30))
    remarks: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_by: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    purchase = relationship(
        "ContainerPurchaseDetail", back_populates="container", uselist=False,
        cascade="all, delete-orphan", lazy="selectin",
    )
    hire = relationship(
        "ContainerHireDetail", back_populates="container", uselist=False,
        cascade="all, delete-orphan", lazy="selectin",
    )


class ContainerPurchaseDetail(Base):
    """Purchase record of an owned container."""

    __tablename__ = "container_purchase_details"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    container_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("containers.id", ondelete="CASCADE"),
        nullable=False, unique=True, index=True,
    )
    manufacture_date: Mapped[date | None] = mapped_column(Date)
    purchase_date: Mapped[date | None] = mapped_column(Date)
    purchase_price: Mapped[float | None] = mapped_column(Float)
    purchased_from: Mapped[str | None] = mapped_column(String(255))
    owned_by: Mapped[str | None] = mapped_column(String(255))
    available_at: Mapped[str | None] = mapped_column(String(255))
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    container = relationship("ContainerMaster", back_populates="purchase")


class ContainerHireDetail(Base):
    """Hire record of a hired container.  `hire_end_date` NULL = open-ended."""

    __tablename__ = "container_hire_details"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    container_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("containers.id", ondelete="CASCADE"),
        nullable=False, unique=True, index=True,
    )
    hire_start_date: Mapped[date | None] = mapped_column(Date)
    hire_end_date: Mapped[date | None] = mapped_column(Date)
    hired_by: Mapped[str | None] = mapped_column(String(255))
    return_date: Mapped[date | None] = mapped_column(Date)
    free_days: Mapped[int] = mapped_column(Integer, default=0)
    place_of_loading: Mapped[str | None] = mapped_column(String(255))
    place_of_destination: Mapped[str | None] = mapped_column(String(255))

    container = relationship("ContainerMaster", back_populates="hire")

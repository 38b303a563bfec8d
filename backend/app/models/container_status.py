"""ContainerStatusEvent — append-only container status ledger.

Every location/availability change of a container is a new row; rows are
never updated or deleted.  `sequence` is the insertion order and the only
ordering used to find the latest event.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Availability(str, enum.Enum):
    AVAILABLE = "Available"
    HIRED = "Hired"
    OCCUPIED = "Occupied"
    IN_TRANSIT = "In Transit"
    LOADED = "Loaded"
    ASSIGNED_TO_JOB = "Assigned to Job"
    ARRIVED = "Arrived"
    DE_LINKED = "De-Linked"
    UNDER_REPAIR = "Under Repair"
    RETURNED = "Returned"
    CLEARED = "Cleared"


class ContainerStatusEvent(Base):
    __tablename__ = "container_status_events"

    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    container_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("containers.id"), nullable=False, index=True
    )
    location: Mapped[str | None] = mapped_column(String(255))
    availability: Mapped[str | None] = mapped_column(String(30))
    note: Mapped[str | None] = mapped_column(Text)
    actor: Mapped[str | None] = mapped_column(String(100))
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )

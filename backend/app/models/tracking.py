"""OrderTrackingEvent — immutable log of receiver status changes.

One row per status change per receiver (receiver_id is NULL for
order-level events such as cancellation).  Rows are only ever inserted.
Replacing an order's parties removes the tracking rows of the replaced
receivers together with them.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class OrderTrackingEvent(Base):
    __tablename__ = "order_tracking_events"

    # Insertion sequence doubles as the ordering key
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    receiver_id: Mapped[str | None] = mapped_column(String(36), index=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    actor: Mapped[str | None] = mapped_column(String(100))
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )

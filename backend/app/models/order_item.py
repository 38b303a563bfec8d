"""OrderItem — one line of cargo belonging to exactly one Receiver.

`party_seq` / `item_seq` are the typed identifiers that link a flat item
submission to its party.  `item_ref` is the canonical display form
(`REF-{party}-{item}`) and is derived from them, never parsed back.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    receiver_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("receivers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    party_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    item_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    item_ref: Mapped[str] = mapped_column(String(50), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100))
    subcategory: Mapped[str | None] = mapped_column(String(100))
    type: Mapped[str | None] = mapped_column(String(100))
    pickup_location: Mapped[str | None] = mapped_column(Text)
    delivery_address: Mapped[str | None] = mapped_column(Text)

    total_number: Mapped[int] = mapped_column(Integer, default=0)
    weight: Mapped[float] = mapped_column(Float, default=0.0)
    assigned_qty: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    receiver = relationship("Receiver", back_populates="items")

"""Aggregate model imports for Alembic auto-detection."""

# ── Orders ───────────────────────────────────────────────────
from app.models.order import Order, OrderStatus, Sender, SenderType  # noqa: F401
from app.models.receiver import FullPartial, Receiver, ReceiverStatus  # noqa: F401
from app.models.order_item import OrderItem  # noqa: F401
from app.models.transport import TransportDetail, TransportMode  # noqa: F401
from app.models.tracking import OrderTrackingEvent  # noqa: F401

# ── Containers ───────────────────────────────────────────────
from app.models.container import (  # noqa: F401
    ContainerHireDetail,
    ContainerMaster,
    ContainerPurchaseDetail,
    OwnerType,
)
from app.models.container_status import Availability, ContainerStatusEvent  # noqa: F401

# ── Consignments ─────────────────────────────────────────────
from app.models.consignment import (  # noqa: F401
    Consignment,
    ConsignmentStatus,
    ConsignmentTracking,
    EtaConfig,
)

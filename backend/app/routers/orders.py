"""Shipment order router.

Endpoints:
    POST   /api/orders/                                     Create order (sender, parties, items, transport)
    GET    /api/orders/                                     List orders (status, search)
    GET    /api/orders/statuses                             Order and receiver status vocabularies
    POST   /api/orders/assign-containers                    Batch container/quantity assignment
    GET    /api/orders/{order_id}                           Full order
    PATCH  /api/orders/{order_id}                           Partial update
    POST   /api/orders/{order_id}/cancel                    Cancel and release containers
    PATCH  /api/orders/{order_id}/receivers/{receiver_id}/status   Receiver status change
    GET    /api/orders/{order_id}/tracking                  Tracking log
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor
from app.database import get_db
from app.models.order import OrderStatus
from app.schemas.common import PaginatedResponse, StatusOption
from app.schemas.order import (
    AssignContainersRequest,
    AssignContainersResponse,
    OrderCreate,
    OrderOut,
    OrderSummary,
    OrderUpdate,
    ReceiverStatusUpdate,
    TrackingEventOut,
)
from app.services import notifications, order_builder
from app.services.assignment import assign_containers
from app.services.notifications import NotificationSink, get_notification_sink
from app.services.order_status import (
    ORDER_STATUS_COLORS,
    RECEIVER_STATUS_BUCKET,
    RECEIVER_STATUSES,
    set_receiver_status,
)

router = APIRouter()


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class OrderStatusOptions(BaseModel):
    order_statuses: list[StatusOption]
    receiver_statuses: list[StatusOption]


def _dispatch(db: AsyncSession, background_tasks: BackgroundTasks, sink: NotificationSink) -> None:
    pending = notifications.drain(db)
    if pending:
        background_tasks.add_task(sink.deliver, pending)


# ── POST /api/orders/ ────────────────────────────────────────

@router.post("/", response_model=OrderOut, status_code=201)
async def create_order(
    body: OrderCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    sink: NotificationSink = Depends(get_notification_sink),
):
    order = await order_builder.create_order(db, body, actor)
    _dispatch(db, background_tasks, sink)
    return order


# ── GET /api/orders/ ─────────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[OrderSummary])
async def list_orders(
    status: str | None = Query(None),
    search: str | None = Query(None, description="Booking reference contains"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_builder.list_orders(
        db, status=status, search=search, limit=limit, offset=offset
    )
    return PaginatedResponse(
        items=[OrderSummary.model_validate(o) for o in orders],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── GET /api/orders/statuses ─────────────────────────────────

@router.get("/statuses", response_model=OrderStatusOptions)
async def order_statuses():
    return OrderStatusOptions(
        order_statuses=[
            StatusOption(value=s.value, color=ORDER_STATUS_COLORS[s.value]) for s in OrderStatus
        ],
        receiver_statuses=[
            StatusOption(value=s, color=ORDER_STATUS_COLORS[RECEIVER_STATUS_BUCKET[s]])
            for s in RECEIVER_STATUSES
        ],
    )


# ── POST /api/orders/assign-containers ───────────────────────

@router.post("/assign-containers", response_model=AssignContainersResponse)
async def assign_containers_to_orders(
    body: AssignContainersRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    sink: NotificationSink = Depends(get_notification_sink),
):
    """All-or-nothing: any rejected slot fails the whole batch."""
    result = await assign_containers(db, body.order_ids, body.assignments, actor)
    _dispatch(db, background_tasks, sink)
    return AssignContainersResponse(
        updated_orders=[OrderOut.model_validate(o) for o in result.updated_orders],
        tracking_events=[TrackingEventOut.model_validate(e) for e in result.tracking_events],
    )


# ── GET /api/orders/{order_id} ───────────────────────────────

@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await order_builder.get_order(db, order_id)


# ── PATCH /api/orders/{order_id} ─────────────────────────────

@router.patch("/{order_id}", response_model=OrderOut)
async def update_order(
    order_id: str,
    body: OrderUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    sink: NotificationSink = Depends(get_notification_sink),
):
    order = await order_builder.update_order(db, order_id, body, actor)
    _dispatch(db, background_tasks, sink)
    return order


# ── POST /api/orders/{order_id}/cancel ───────────────────────

@router.post("/{order_id}/cancel", response_model=OrderOut)
async def cancel_order(
    order_id: str,
    background_tasks: BackgroundTasks,
    body: CancelOrderRequest | None = None,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    sink: NotificationSink = Depends(get_notification_sink),
):
    order = await order_builder.cancel_order(
        db, order_id, actor, reason=body.reason if body else None
    )
    _dispatch(db, background_tasks, sink)
    return order


# ── PATCH /api/orders/{order_id}/receivers/{receiver_id}/status

@router.patch("/{order_id}/receivers/{receiver_id}/status", response_model=OrderOut)
async def update_receiver_status(
    order_id: str,
    receiver_id: str,
    body: ReceiverStatusUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    sink: NotificationSink = Depends(get_notification_sink),
):
    order, _ = await set_receiver_status(db, order_id, receiver_id, body.status, body.note, actor)
    _dispatch(db, background_tasks, sink)
    return order


# ── GET /api/orders/{order_id}/tracking ──────────────────────

@router.get("/{order_id}/tracking", response_model=list[TrackingEventOut])
async def get_order_tracking(
    order_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await order_builder.order_tracking(db, order_id)

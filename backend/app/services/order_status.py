"""Order status aggregation.

An order has no status of its own: it is the reduction of its receivers'
statuses.  Any cancelled receiver cancels the order; otherwise the most
advanced receiver wins on the scale

    Created < In Transit < Delivered < Completed

Every receiver status belongs to exactly one step of that scale.  An order
with no receivers is Created.
"""

import logging
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    BusinessLogicError,
    ConstraintViolationError,
    ResourceNotFoundError,
)
from app.models.order import Order, OrderStatus
from app.models.receiver import Receiver, ReceiverStatus
from app.models.tracking import OrderTrackingEvent
from app.services import container_ledger, notifications

logger = logging.getLogger(__name__)

SEVERITY = {
    OrderStatus.CREATED.value: 0,
    OrderStatus.IN_TRANSIT.value: 1,
    OrderStatus.DELIVERED.value: 2,
    OrderStatus.COMPLETED.value: 3,
}

RECEIVER_STATUS_BUCKET = {
    ReceiverStatus.CREATED.value: OrderStatus.CREATED.value,
    ReceiverStatus.ORDER_CONFIRMED.value: OrderStatus.CREATED.value,
    ReceiverStatus.AWAITING_COLLECTION.value: OrderStatus.CREATED.value,
    ReceiverStatus.ON_HOLD.value: OrderStatus.CREATED.value,
    ReceiverStatus.COLLECTED.value: OrderStatus.IN_TRANSIT.value,
    ReceiverStatus.AT_ORIGIN_WAREHOUSE.value: OrderStatus.IN_TRANSIT.value,
    ReceiverStatus.LOADED.value: OrderStatus.IN_TRANSIT.value,
    ReceiverStatus.SHIPPED.value: OrderStatus.IN_TRANSIT.value,
    ReceiverStatus.IN_TRANSIT.value: OrderStatus.IN_TRANSIT.value,
    ReceiverStatus.ARRIVED_AT_PORT.value: OrderStatus.IN_TRANSIT.value,
    ReceiverStatus.CUSTOMS_CLEARANCE.value: OrderStatus.IN_TRANSIT.value,
    ReceiverStatus.OUT_FOR_DELIVERY.value: OrderStatus.IN_TRANSIT.value,
    ReceiverStatus.PARTIALLY_DELIVERED.value: OrderStatus.DELIVERED.value,
    ReceiverStatus.DELIVERED.value: OrderStatus.DELIVERED.value,
    ReceiverStatus.COMPLETED.value: OrderStatus.COMPLETED.value,
    ReceiverStatus.CANCELLED.value: OrderStatus.CANCELLED.value,
}

RECEIVER_STATUSES = [s.value for s in ReceiverStatus]

ORDER_STATUS_COLORS = {
    OrderStatus.CREATED.value: "info",
    OrderStatus.IN_TRANSIT.value: "warning",
    OrderStatus.DELIVERED.value: "success",
    OrderStatus.COMPLETED.value: "success",
    OrderStatus.CANCELLED.value: "error",
}


def aggregate_status(statuses: Iterable[str]) -> str:
    """Reduce receiver statuses to the order status."""
    result = OrderStatus.CREATED.value
    for status in statuses:
        bucket = RECEIVER_STATUS_BUCKET.get(status, OrderStatus.CREATED.value)
        if bucket == OrderStatus.CANCELLED.value:
            return OrderStatus.CANCELLED.value
        if SEVERITY[bucket] > SEVERITY[result]:
            result = bucket
    return result


def receiver_by_id(order: Order, receiver_id: str) -> Receiver | None:
    return next((r for r in order.receivers if r.id == receiver_id), None)


def order_containers(order: Order) -> list[str]:
    """Every container number the order uses, receivers first, deduplicated."""
    numbers: list[str] = []
    for receiver in order.receivers:
        numbers.extend(receiver.containers or [])
    if order.transport is not None:
        numbers.extend(order.transport.associated_containers or [])
    return list(dict.fromkeys(numbers))


async def recompute_order_status(
    db: AsyncSession,
    order: Order,
    actor: str | None = None,
) -> str:
    """Persist the aggregated status; on change, move the order's containers along.

    Uses the receivers already loaded on `order`, so callers that changed
    receivers in this session must have flushed them first.
    """
    new_status = aggregate_status(r.status for r in order.receivers)
    if new_status == order.status:
        return new_status

    old_status = order.status
    order.status = new_status
    order.updated_by = actor

    numbers = order_containers(order)
    if numbers:
        await container_ledger.touch_containers(
            db, numbers,
            availability=container_ledger.availability_for_order_status(new_status),
            note=f"Order {order.booking_ref} status {old_status} -> {new_status}",
            actor=actor,
            strict=False,
        )
    await db.flush()
    notifications.queue(db, notifications.plan_order_status(order, old_status, new_status))

    logger.info(f"Order {order.booking_ref} status {old_status} -> {new_status}")
    return new_status


async def set_receiver_status(
    db: AsyncSession,
    order_id: str,
    receiver_id: str,
    status: str,
    note: str | None = None,
    actor: str | None = None,
) -> tuple[Order, OrderTrackingEvent]:
    """Change one receiver's status, log it, and recompute the order."""
    if status not in RECEIVER_STATUS_BUCKET:
        raise ConstraintViolationError(f"Unknown receiver status: {status}", field="status")

    order = await db.get(Order, order_id)
    if order is None:
        raise ResourceNotFoundError("Order", order_id)
    if order.status == OrderStatus.CANCELLED.value:
        raise BusinessLogicError("Cancelled orders cannot be modified", error_code="ORDER_CANCELLED")
    receiver = receiver_by_id(order, receiver_id)
    if receiver is None:
        raise ResourceNotFoundError("Receiver", receiver_id)

    receiver.status = status
    event = OrderTrackingEvent(
        order_id=order.id,
        receiver_id=receiver.id,
        status=status,
        note=note or f"Status changed to {status}",
        actor=actor,
    )
    db.add(event)
    await db.flush()

    await recompute_order_status(db, order, actor)
    return order, event

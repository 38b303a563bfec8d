"""Container assignment allocator.

Binds physical containers and delivered quantities to receivers' items
across a batch of orders:

    assignments = {
        order_id: {
            receiver_id: {
                item_index: {"containers": ["MSCU1234567"], "qty": 10},
            },
        },
    }

The batch is all-or-nothing.  Every check runs before the first mutation:

  - every order exists, is listed once in `order_ids` and is not cancelled
  - every receiver belongs to its order, every item index exists
  - every newly requested container exists, is active and derives to
    Available, and is requested by only one receiver in the batch
  - no item and no receiver ends up with more assigned than ordered

Containers a receiver already holds are skipped (set union), so retrying a
batch does not fail on its own earlier assignments.  Just before writing,
the ledger head of every container is re-read under a row lock; a change
since validation aborts the batch.
"""

import logging
from dataclasses import dataclass, field

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import AssignmentError
from app.models.container import ContainerMaster
from app.models.container_status import Availability, ContainerStatusEvent
from app.models.order import Order, OrderStatus
from app.models.receiver import Receiver
from app.models.tracking import OrderTrackingEvent
from app.schemas.order import AssignmentSlot
from app.services import container_ledger
from app.services.order_status import receiver_by_id, recompute_order_status

logger = logging.getLogger(__name__)


@dataclass
class _ReceiverPlan:
    order_index: int
    order: Order
    receiver: Receiver
    slots: dict[int, AssignmentSlot]
    new_containers: list[str] = field(default_factory=list)

    @property
    def quantity(self) -> int:
        return sum(slot.qty for slot in self.slots.values())


@dataclass
class AssignmentResult:
    updated_orders: list[Order]
    tracking_events: list[OrderTrackingEvent]


async def _load_orders(
    db: AsyncSession,
    order_ids: list[str],
    assignments: dict[str, dict],
) -> list[Order]:
    orders = []
    for index, order_id in enumerate(order_ids):
        if order_id in order_ids[:index]:
            raise AssignmentError(
                f"Order {order_id} is listed more than once in the batch",
                order_index=index, status_code=status.HTTP_400_BAD_REQUEST,
            )
        order = await db.get(Order, order_id)
        if order is None:
            raise AssignmentError(
                f"Order not found: {order_id}",
                order_index=index, status_code=status.HTTP_404_NOT_FOUND,
            )
        if order.status == OrderStatus.CANCELLED.value:
            raise AssignmentError(
                f"Order {order.booking_ref} is cancelled", order_index=index,
            )
        orders.append(order)

    stray = [oid for oid in assignments if oid not in order_ids]
    if stray:
        raise AssignmentError(
            f"Assignments reference an order outside the batch: {stray[0]}",
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    return orders


async def check_available(
    db: AsyncSession,
    wanted: list[tuple[str, int | None]],
) -> tuple[dict[str, ContainerMaster], dict[str, ContainerStatusEvent]]:
    """Resolve container numbers that must currently derive to Available.

    `wanted` pairs each number with the order index reported on failure.
    Returns the containers by number and their ledger heads by id.
    """
    found = await container_ledger.find_by_numbers(db, [n for n, _ in wanted])
    for number, index in wanted:
        if number not in found:
            raise AssignmentError(
                f"Container not found: {number}",
                container=number, order_index=index, status_code=status.HTTP_404_NOT_FOUND,
            )

    heads = await container_ledger.latest_events(db, [c.id for c in found.values()])
    for number, index in wanted:
        container = found[number]
        derived = container_ledger.derive_for(container, heads.get(container.id))
        if derived != Availability.AVAILABLE.value:
            raise AssignmentError(
                f"Container {number} is not available (status: {derived})",
                container=number, order_index=index,
            )
    return found, heads


def _plan(
    orders: list[Order],
    assignments: dict[str, dict[str, dict[int, AssignmentSlot]]],
) -> list[_ReceiverPlan]:
    """Resolve receivers/items and check quantities; no I/O."""
    plans = []
    claimed: dict[str, int] = {}
    for index, order in enumerate(orders):
        for receiver_id, slots in assignments.get(order.id, {}).items():
            receiver = receiver_by_id(order, receiver_id)
            if receiver is None:
                raise AssignmentError(
                    f"Receiver {receiver_id} does not belong to order {order.booking_ref}",
                    order_index=index, status_code=status.HTTP_404_NOT_FOUND,
                )
            plan = _ReceiverPlan(order_index=index, order=order, receiver=receiver, slots=slots)

            held = set(receiver.containers or [])
            for item_index, slot in sorted(slots.items()):
                if not 0 <= item_index < len(receiver.items):
                    raise AssignmentError(
                        f"Receiver {receiver.receiver_name} has no item {item_index}",
                        order_index=index, status_code=status.HTTP_404_NOT_FOUND,
                    )
                item = receiver.items[item_index]
                if item.assigned_qty + slot.qty > item.total_number:
                    raise AssignmentError(
                        f"Item {item.item_ref} of {receiver.receiver_name}: assigning {slot.qty} "
                        f"exceeds remaining quantity {item.total_number - item.assigned_qty}",
                        order_index=index, status_code=status.HTTP_400_BAD_REQUEST,
                    )
                for number in slot.containers:
                    if number in held or number in plan.new_containers:
                        continue
                    if number in claimed:
                        raise AssignmentError(
                            f"Container {number} is requested more than once in this batch",
                            container=number, order_index=index,
                            status_code=status.HTTP_400_BAD_REQUEST,
                        )
                    claimed[number] = index
                    plan.new_containers.append(number)

            if receiver.qty_delivered + plan.quantity > receiver.total_number:
                raise AssignmentError(
                    f"Receiver {receiver.receiver_name}: assigned quantity would exceed "
                    f"the ordered total of {receiver.total_number}",
                    order_index=index, status_code=status.HTTP_400_BAD_REQUEST,
                )
            plans.append(plan)
    return plans


async def assign_containers(
    db: AsyncSession,
    order_ids: list[str],
    assignments: dict[str, dict[str, dict[int, AssignmentSlot]]],
    actor: str | None = None,
) -> AssignmentResult:
    """Validate the whole batch, then bind containers and quantities."""
    orders = await _load_orders(db, order_ids, assignments)
    plans = _plan(orders, assignments)

    # ── Container availability ────────────────────────────────
    wanted = [(n, p.order_index) for p in plans for n in p.new_containers]
    found, heads = await check_available(db, wanted)

    # ── Re-check under lock ───────────────────────────────────
    if found:
        ids = [c.id for c in found.values()]
        await db.execute(
            select(ContainerMaster.id).where(ContainerMaster.id.in_(ids)).with_for_update()
        )
        fresh = await container_ledger.latest_events(db, ids)
        for number, index in wanted:
            container_id = found[number].id
            before = heads.get(container_id)
            after = fresh.get(container_id)
            if (before.sequence if before else None) != (after.sequence if after else None):
                raise AssignmentError(
                    f"Container {number} changed while assigning; retry the batch",
                    container=number, order_index=index,
                )

    # ── Mutations ─────────────────────────────────────────────
    events: list[OrderTrackingEvent] = []
    for plan in plans:
        receiver, order = plan.receiver, plan.order
        quantity = plan.quantity

        for item_index, slot in plan.slots.items():
            receiver.items[item_index].assigned_qty += slot.qty
        # Reassign so the JSON column registers the change
        receiver.containers = list(receiver.containers or []) + plan.new_containers
        receiver.qty_delivered += quantity
        order.total_assigned_qty += quantity
        order.updated_by = actor

        for number in plan.new_containers:
            await container_ledger.record_event(
                db, found[number].id,
                availability=Availability.ASSIGNED_TO_JOB.value,
                note=f"Assigned to order {order.booking_ref} ({receiver.receiver_name})",
                actor=actor,
            )

        added = ", ".join(plan.new_containers) or "no new containers"
        event = OrderTrackingEvent(
            order_id=order.id,
            receiver_id=receiver.id,
            status=receiver.status,
            note=f"Assigned {added}; qty {quantity}",
            actor=actor,
        )
        db.add(event)
        events.append(event)

    await db.flush()

    updated = []
    for order in orders:
        if order.id in assignments:
            await recompute_order_status(db, order, actor)
            updated.append(order)

    logger.info(
        f"Assigned {len(wanted)} containers across {len(updated)} orders",
        extra={"order_ids": [o.id for o in updated]},
    )
    return AssignmentResult(updated_orders=updated, tracking_events=events)

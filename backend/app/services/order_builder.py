"""Order aggregate builder.

Creates and updates an Order together with its Sender, Receivers, Items,
tracking rows and TransportDetail.  Everything happens in the caller's
session: nothing is committed here, and any exception leaves the session
for `get_db()` to roll back, ledger events included.

Validation runs before the first write and collects every field error into
one ValidationFailedError, so a rejected request never touches the store.

Update semantics:
  - `parties` sent   → all receivers, items and tracking rows of the order
                       are deleted and rebuilt from the submission
  - `parties` absent → only the order/sender/transport fields that were
                       sent are patched in place

Containers listed on a party that the order does not hold yet must exist
and derive to Available, the same precondition the allocator applies;
they then get a ledger event like the transport containers do.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import (
    BusinessLogicError,
    ConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.container_status import Availability
from app.models.order import Order, OrderStatus, Sender
from app.models.order_item import OrderItem
from app.models.receiver import FullPartial, Receiver, ReceiverStatus
from app.models.tracking import OrderTrackingEvent
from app.models.transport import TransportDetail, TransportMode
from app.schemas.order import OrderCreate, OrderUpdate, SenderPatch, TransportPatch
from app.schemas.validators import (
    check,
    field_error,
    is_blank,
    non_negative_int,
    non_negative_number,
    parse_optional_date,
    require,
    validate_booking_code,
    validate_email,
    validate_phone,
)
from app.services import container_ledger, notifications
from app.services.assignment import check_available
from app.services.order_status import (
    RECEIVER_STATUS_BUCKET,
    aggregate_status,
    order_containers,
    recompute_order_status,
)
from app.services.party_grouper import GroupedParty, group_parties, normalize_owner

logger = logging.getLogger(__name__)

# ── Field sets ───────────────────────────────────────────────

ORDER_FIELDS = (
    "booking_ref", "rgl_booking_number", "point_of_origin", "place_of_loading",
    "final_destination", "place_of_delivery", "order_remarks", "attachments",
)
REQUIRED_ORDER_FIELDS = ["booking_ref", "place_of_loading", "final_destination", "place_of_delivery"]
ROUTE_FIELDS = ("point_of_origin", "place_of_loading", "final_destination", "place_of_delivery")

SENDER_FIELDS = tuple(SenderPatch.model_fields)
TRANSPORT_FIELDS = tuple(TransportPatch.model_fields)
TRANSPORT_DATE_FIELDS = ("drop_off_date", "collection_date")

TRANSPORT_REQUIREMENTS = {
    TransportMode.DROP_OFF.value: ["drop_off_location", "drop_off_date"],
    TransportMode.COLLECTION.value: ["driver_name", "driver_contact", "truck_number", "collection_date"],
    TransportMode.THIRD_PARTY.value: ["third_party_company", "third_party_contact"],
}


@dataclass
class OrderDraft:
    """A fully validated submission, ready to be written."""
    order: dict[str, Any]
    owner: dict[str, Any]
    parties: list[tuple[GroupedParty, dict[str, Any]]] = field(default_factory=list)
    transport: dict[str, Any] | None = None


# ── Validation ───────────────────────────────────────────────

def touches_hub(place: str | None) -> bool:
    """True if a route field names one of the configured hub ports."""
    if not place:
        return False
    lowered = place.lower()
    return any(port.lower() in lowered for port in settings.hub_port_list)


def validate_order_fields(data: dict, errors: list[dict], partial: bool = False) -> None:
    if partial:
        for name in REQUIRED_ORDER_FIELDS:
            if name in data and is_blank(data[name]):
                errors.append(field_error(name, "cannot be blank"))
    else:
        require(errors, data, REQUIRED_ORDER_FIELDS)
    if not is_blank(data.get("rgl_booking_number")):
        check(errors, "rgl_booking_number", validate_booking_code, data["rgl_booking_number"])


def validate_owner(owner: dict, errors: list[dict], partial: bool = False) -> dict:
    if partial:
        if "sender_name" in owner and is_blank(owner["sender_name"]):
            errors.append(field_error("sender.sender_name", "cannot be blank"))
    else:
        require(errors, owner, ["sender_name"], prefix="sender.")
    cleaned = {k: owner.get(k) for k in SENDER_FIELDS if k in owner or not partial}
    if not is_blank(owner.get("sender_email")):
        cleaned["sender_email"] = check(
            errors, "sender.sender_email", validate_email, owner["sender_email"]
        )
    if not is_blank(owner.get("sender_contact")):
        check(errors, "sender.sender_contact", validate_phone, owner["sender_contact"])
    return cleaned


def validate_parties(grouped: list[GroupedParty], errors: list[dict]) -> list[dict]:
    """Validate each party and its items; return Receiver column values per party."""
    rows = []
    listed: set[str] = set()
    for party in grouped:
        p = party.fields
        prefix = f"parties[{party.index}]."
        require(errors, p, ["receiver_name"], prefix)

        email = p.get("receiver_email")
        if not is_blank(email):
            email = check(errors, prefix + "receiver_email", validate_email, email)
        if not is_blank(p.get("receiver_contact")):
            check(errors, prefix + "receiver_contact", validate_phone, p["receiver_contact"])

        eta = check(errors, prefix + "eta", parse_optional_date, p.get("eta"))
        etd = check(errors, prefix + "etd", parse_optional_date, p.get("etd"))
        if eta and etd and eta < etd:
            errors.append(field_error(prefix + "eta", "must not be before etd"))

        full_partial = str(p.get("full_partial") or FullPartial.FULL.value).lower()
        if full_partial not in (FullPartial.FULL.value, FullPartial.PARTIAL.value):
            errors.append(field_error(prefix + "full_partial", "must be 'full' or 'partial'"))

        status = p.get("status") or ReceiverStatus.CREATED.value
        if status not in RECEIVER_STATUS_BUCKET:
            errors.append(field_error(prefix + "status", f"unknown status: {status}"))

        containers = p.get("containers") or []
        if not isinstance(containers, list) or not all(isinstance(c, str) for c in containers):
            errors.append(field_error(prefix + "containers", "must be a list of container numbers"))
            containers = []

        qty_delivered = check(
            errors, prefix + "qty_delivered", non_negative_int, p.get("qty_delivered") or 0
        )

        for item in party.items:
            iprefix = f"{prefix}items[{item.item_index}]."
            fields = item.fields
            quantity = check(
                errors, iprefix + "total_number", non_negative_int, fields.get("total_number") or 0
            )
            check(errors, iprefix + "weight", non_negative_number, fields.get("weight") or 0)
            assigned = check(
                errors, iprefix + "assigned_qty", non_negative_int, fields.get("assigned_qty") or 0
            )
            if quantity is not None and assigned is not None and assigned > quantity:
                errors.append(field_error(iprefix + "assigned_qty", "exceeds item quantity"))

        if qty_delivered is not None and qty_delivered > party.total_number:
            errors.append(field_error(prefix + "qty_delivered", "exceeds the party's total quantity"))

        for number in dict.fromkeys(containers):
            if number in listed:
                errors.append(field_error(
                    prefix + "containers", f"container {number} is already listed for another party"
                ))
            listed.add(number)

        rows.append({
            "party_seq": party.index,
            "receiver_name": p.get("receiver_name"),
            "receiver_contact": p.get("receiver_contact"),
            "receiver_address": p.get("receiver_address"),
            "receiver_email": email,
            "eta": eta,
            "etd": etd,
            "full_partial": full_partial,
            "status": status,
            "remarks": p.get("remarks"),
            "containers": list(dict.fromkeys(containers)),
            "qty_delivered": qty_delivered or 0,
        })
    return rows


def validate_transport(
    transport: dict | None,
    route: dict,
    errors: list[dict],
) -> dict | None:
    """Mode- and hub-dependent checks; returns TransportDetail column values."""
    loading_hub = touches_hub(route.get("place_of_loading"))
    destination_hub = touches_hub(route.get("final_destination"))

    if transport is None:
        if loading_hub or destination_hub:
            errors.append(field_error("transport", "is required when the route touches a hub port"))
        return None

    mode = transport.get("transport_mode")
    if is_blank(mode):
        errors.append(field_error("transport.transport_mode", "is required"))
    elif mode not in TRANSPORT_REQUIREMENTS:
        errors.append(field_error("transport.transport_mode", f"unknown transport mode: {mode}"))
    else:
        require(errors, transport, TRANSPORT_REQUIREMENTS[mode], prefix="transport.")

    if loading_hub:
        require(errors, transport, ["gate_pass_number"], prefix="transport.")
    if destination_hub:
        require(errors, transport, ["clearing_agent"], prefix="transport.")

    for name in ("driver_contact", "third_party_contact"):
        if not is_blank(transport.get(name)):
            check(errors, f"transport.{name}", validate_phone, transport[name])

    cleaned = {name: transport.get(name) for name in TRANSPORT_FIELDS}
    for name in TRANSPORT_DATE_FIELDS:
        cleaned[name] = check(errors, f"transport.{name}", parse_optional_date, transport.get(name))

    containers = transport.get("associated_containers") or []
    if not isinstance(containers, list) or not all(isinstance(c, str) for c in containers):
        errors.append(field_error(
            "transport.associated_containers", "must be a list of container numbers"
        ))
        containers = []
    cleaned["associated_containers"] = list(dict.fromkeys(containers))
    return cleaned


def validate_order_payload(payload: OrderCreate) -> OrderDraft:
    """Validate a full submission; raise ValidationFailedError listing every problem."""
    errors: list[dict] = []
    data = payload.model_dump()

    order_fields = {name: data.get(name) for name in ORDER_FIELDS}
    validate_order_fields(order_fields, errors)

    owner = validate_owner(normalize_owner(payload.sender, payload.sender_type), errors)

    grouped = group_parties(payload.parties, payload.items, payload.sender_type)
    rows = validate_parties(grouped, errors)

    transport = _transport_dict(payload.transport) if payload.transport is not None else None
    transport = validate_transport(transport, order_fields, errors)

    if errors:
        raise ValidationFailedError(errors)

    order_fields["attachments"] = list(payload.attachments)
    return OrderDraft(
        order=order_fields,
        owner=owner,
        parties=list(zip(grouped, rows)),
        transport=transport,
    )


def _transport_dict(raw: dict) -> dict:
    """Keep only the fixed transport fields."""
    unknown = sorted(set(raw) - set(TRANSPORT_FIELDS))
    if unknown:
        logger.debug(f"Ignoring unknown transport fields: {unknown}")
    return {k: v for k, v in raw.items() if k in TRANSPORT_FIELDS}


# ── Writes ───────────────────────────────────────────────────

def _build_receiver(party: GroupedParty, row: dict) -> Receiver:
    receiver = Receiver(
        **row,
        total_number=party.total_number,
        total_weight=party.total_weight,
    )
    receiver.items = [
        OrderItem(
            party_seq=party.index,
            item_seq=item.item_index,
            item_ref=item.item_ref,
            category=item.fields.get("category"),
            subcategory=item.fields.get("subcategory"),
            type=item.fields.get("type"),
            pickup_location=item.fields.get("pickup_location"),
            delivery_address=item.fields.get("delivery_address"),
            total_number=item.quantity,
            weight=item.weight,
            assigned_qty=non_negative_int(item.fields.get("assigned_qty") or 0),
        )
        for item in party.items
    ]
    return receiver


def _party_containers(rows) -> list[str]:
    return list(dict.fromkeys(n for row in rows for n in row["containers"]))


def _track_receivers(db: AsyncSession, order: Order, note: str, actor: str | None) -> None:
    for receiver in order.receivers:
        db.add(OrderTrackingEvent(
            order_id=order.id,
            receiver_id=receiver.id,
            status=receiver.status,
            note=note,
            actor=actor,
        ))


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig) if getattr(exc, "orig", None) is not None else str(exc)
    return "unique" in message.lower() or "duplicate" in message.lower()


async def _ensure_booking_ref_free(
    db: AsyncSession, booking_ref: str, exclude_id: str | None = None
) -> None:
    stmt = select(Order.id).where(Order.booking_ref == booking_ref)
    if exclude_id:
        stmt = stmt.where(Order.id != exclude_id)
    if (await db.execute(stmt)).scalar_one_or_none():
        raise ConflictError("Booking reference already exists", field="booking_ref")


async def _flush_order(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError as e:
        if _is_unique_violation(e):
            raise ConflictError("Booking reference already exists", field="booking_ref") from e
        raise


async def create_order(
    db: AsyncSession,
    payload: OrderCreate,
    actor: str | None = None,
) -> Order:
    """Create an order with its owner, parties, items and transport."""
    draft = validate_order_payload(payload)
    await _ensure_booking_ref_free(db, draft.order["booking_ref"])
    bound = _party_containers(row for _, row in draft.parties)
    await check_available(db, [(number, None) for number in bound])

    # Order → Sender → Receivers → Items → Transport, one flush
    order = Order(
        **draft.order,
        sender_type=payload.sender_type,
        status=aggregate_status(row["status"] for _, row in draft.parties),
        total_assigned_qty=sum(row["qty_delivered"] for _, row in draft.parties),
        created_by=actor,
        updated_by=actor,
    )
    order.sender = Sender(**draft.owner)
    order.receivers = [_build_receiver(party, row) for party, row in draft.parties]
    order.transport = TransportDetail(**draft.transport) if draft.transport is not None else None
    db.add(order)
    await _flush_order(db)

    _track_receivers(db, order, "Order created", actor)
    await db.flush()

    transport_containers = order.transport.associated_containers if order.transport is not None else []
    joined = list(dict.fromkeys([*bound, *transport_containers]))
    if joined:
        await container_ledger.touch_containers(
            db, joined,
            availability=container_ledger.availability_for_order_status(order.status),
            note=f"Assigned to order {order.booking_ref} ({order.status})",
            actor=actor,
        )

    logger.info(
        f"Order created: {order.booking_ref} with {len(order.receivers)} receivers "
        f"and {sum(len(r.items) for r in order.receivers)} items"
    )
    return order


async def update_order(
    db: AsyncSession,
    order_id: str,
    payload: OrderUpdate,
    actor: str | None = None,
) -> Order:
    """Patch an order in place, or replace its parties when `parties` is sent."""
    order = await get_order(db, order_id)
    if order.status == OrderStatus.CANCELLED.value:
        raise BusinessLogicError("Cancelled orders cannot be modified", error_code="ORDER_CANCELLED")

    data = payload.model_dump(exclude_unset=True)
    errors: list[dict] = []

    order_changes = {k: data[k] for k in ORDER_FIELDS if k in data}
    if "attachments" in order_changes and order_changes["attachments"] is None:
        order_changes["attachments"] = []
    validate_order_fields(order_changes, errors, partial=True)

    sender_changes: dict = {}
    if data.get("sender") is not None:
        patch = SenderPatch.model_validate(normalize_owner(data["sender"], order.sender_type))
        sender_changes = validate_owner(patch.model_dump(exclude_unset=True), errors, partial=True)

    rows = grouped = None
    if data.get("parties") is not None:
        grouped = group_parties(data["parties"], data.get("items") or [], order.sender_type)
        rows = validate_parties(grouped, errors)
    elif data.get("items"):
        errors.append(field_error("items", "items can only be replaced together with parties"))

    route = {name: getattr(order, name) for name in ROUTE_FIELDS}
    route.update({k: v for k, v in order_changes.items() if k in ROUTE_FIELDS})
    current_transport = _transport_columns(order.transport)
    transport_values = None
    if data.get("transport") is not None:
        patch = TransportPatch.model_validate(data["transport"])
        merged = {**(current_transport or {}), **patch.model_dump(exclude_unset=True)}
        transport_values = validate_transport(merged, route, errors)
    elif any(k in ROUTE_FIELDS for k in order_changes):
        # Route changed: the existing transport must still satisfy the hub rules
        validate_transport(current_transport, route, errors)

    if errors:
        raise ValidationFailedError(errors)

    if "booking_ref" in order_changes and order_changes["booking_ref"] != order.booking_ref:
        await _ensure_booking_ref_free(db, order_changes["booking_ref"], exclude_id=order.id)

    bound: list[str] = []
    if rows is not None:
        # Containers the order already holds keep their place; new ones must be free
        held = set(order_containers(order))
        bound = [n for n in _party_containers(rows) if n not in held]
        await check_available(db, [(number, None) for number in bound])

    # ── Order / sender fields ─────────────────────────────────
    for name, value in order_changes.items():
        setattr(order, name, value)
    if sender_changes:
        if order.sender is None:
            order.sender = Sender(**sender_changes)
        else:
            for name, value in sender_changes.items():
                setattr(order.sender, name, value)

    # ── Parties (replace) ─────────────────────────────────────
    if grouped is not None:
        held_before = {n for r in order.receivers for n in (r.containers or [])}
        await db.execute(
            delete(OrderTrackingEvent).where(OrderTrackingEvent.order_id == order.id)
        )
        order.receivers = [_build_receiver(party, row) for party, row in zip(grouped, rows)]
        order.total_assigned_qty = sum(row["qty_delivered"] for row in rows)
        await _flush_order(db)
        _track_receivers(db, order, "Parties replaced", actor)

        held_after = {n for r in order.receivers for n in (r.containers or [])}
        dropped = sorted(held_before - held_after)
        if dropped:
            await container_ledger.touch_containers(
                db, dropped,
                availability=Availability.AVAILABLE.value,
                note=f"Released from order {order.booking_ref}",
                actor=actor,
                strict=False,
            )
        if bound:
            await container_ledger.touch_containers(
                db, bound,
                availability=container_ledger.availability_for_order_status(order.status),
                note=f"Assigned to order {order.booking_ref} ({order.status})",
                actor=actor,
            )

    # ── Transport ─────────────────────────────────────────────
    if transport_values is not None:
        before = set(current_transport["associated_containers"]) if current_transport else set()
        if order.transport is None:
            order.transport = TransportDetail(**transport_values)
        else:
            for name, value in transport_values.items():
                setattr(order.transport, name, value)
        after = transport_values["associated_containers"]
        released = [n for n in (current_transport or {}).get("associated_containers", []) if n not in after]
        added = [n for n in after if n not in before]
        if released:
            await container_ledger.touch_containers(
                db, released,
                availability=Availability.AVAILABLE.value,
                note=f"Released from order {order.booking_ref}",
                actor=actor,
                strict=False,
            )
        if added:
            await container_ledger.touch_containers(
                db, added,
                availability=container_ledger.availability_for_order_status(order.status),
                note=f"Assigned to order {order.booking_ref} ({order.status})",
                actor=actor,
            )

    order.updated_by = actor
    await _flush_order(db)
    await recompute_order_status(db, order, actor)

    logger.info(f"Order updated: {order.booking_ref} (replace parties: {grouped is not None})")
    return order


def _transport_columns(transport: TransportDetail | None) -> dict | None:
    if transport is None:
        return None
    values = {name: getattr(transport, name) for name in TRANSPORT_FIELDS}
    values["associated_containers"] = list(transport.associated_containers or [])
    return values


async def cancel_order(
    db: AsyncSession,
    order_id: str,
    actor: str | None = None,
    reason: str | None = None,
) -> Order:
    """Cancel every receiver and release the order's containers."""
    order = await get_order(db, order_id)
    if order.status == OrderStatus.CANCELLED.value:
        raise BusinessLogicError("Order is already cancelled", error_code="ORDER_CANCELLED")

    note = reason or "Order cancelled"
    for receiver in order.receivers:
        if receiver.status != ReceiverStatus.CANCELLED.value:
            receiver.status = ReceiverStatus.CANCELLED.value
            db.add(OrderTrackingEvent(
                order_id=order.id, receiver_id=receiver.id,
                status=ReceiverStatus.CANCELLED.value, note=note, actor=actor,
            ))
    if not order.receivers:
        db.add(OrderTrackingEvent(
            order_id=order.id, receiver_id=None,
            status=OrderStatus.CANCELLED.value, note=note, actor=actor,
        ))

    previous = order.status
    order.status = OrderStatus.CANCELLED.value
    order.updated_by = actor

    numbers = order_containers(order)
    if numbers:
        await container_ledger.touch_containers(
            db, numbers,
            availability=Availability.AVAILABLE.value,
            note=f"Released: order {order.booking_ref} cancelled",
            actor=actor,
            strict=False,
        )
    await db.flush()
    notifications.queue(
        db, notifications.plan_order_status(order, previous, OrderStatus.CANCELLED.value)
    )

    logger.info(f"Order cancelled: {order.booking_ref} (was {previous})")
    return order


# ── Reads ────────────────────────────────────────────────────

async def get_order(db: AsyncSession, order_id: str) -> Order:
    order = await db.get(Order, order_id)
    if order is None:
        raise ResourceNotFoundError("Order", order_id)
    return order


async def list_orders(
    db: AsyncSession,
    *,
    status: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    stmt = select(Order)
    count_stmt = select(func.count(Order.id))
    if status:
        stmt = stmt.where(Order.status == status)
        count_stmt = count_stmt.where(Order.status == status)
    if search:
        stmt = stmt.where(Order.booking_ref.ilike(f"%{search}%"))
        count_stmt = count_stmt.where(Order.booking_ref.ilike(f"%{search}%"))

    total = (await db.execute(count_stmt)).scalar() or 0
    result = await db.execute(
        stmt.order_by(Order.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total


async def order_tracking(db: AsyncSession, order_id: str) -> list[OrderTrackingEvent]:
    await get_order(db, order_id)
    result = await db.execute(
        select(OrderTrackingEvent)
        .where(OrderTrackingEvent.order_id == order_id)
        .order_by(OrderTrackingEvent.sequence)
    )
    return list(result.scalars().all())

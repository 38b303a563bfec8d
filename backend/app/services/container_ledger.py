"""Container status ledger.

Each container has an append-only list of ContainerStatusEvent rows.  The
current status is never stored; `derive_status()` computes it from

  1. the administrative override, if set
  2. hire ended in the past + latest availability "Cleared"   → Returned
  3. hire started and has no end date                        → Hired
  4. hire ends in the future                                 → Occupied
  5. latest availability in the transit vocabulary           → as recorded
  6. anything else (including no events at all)              → Available

Rule order matters: the administrative and hire rules must run before the
availability vocabulary is consulted.

Also hosts container registration (master + purchase/hire detail + initial
event), administrative correction and soft deactivation.
"""

import logging
from datetime import date
from typing import Iterable

from sqlalchemy import String, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    ConflictError,
    ConstraintViolationError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.container import (
    ContainerHireDetail,
    ContainerMaster,
    ContainerPurchaseDetail,
    OwnerType,
)
from app.models.container_status import Availability, ContainerStatusEvent
from app.models.order import Order, OrderStatus
from app.models.receiver import Receiver
from app.schemas.container import ContainerCreate, ContainerUpdate
from app.schemas.validators import (
    check,
    field_error,
    is_blank,
    non_negative_int,
    non_negative_number,
    parse_optional_date,
    require,
    validate_currency,
)

logger = logging.getLogger(__name__)

TRANSIT_VOCABULARY = frozenset({
    Availability.IN_TRANSIT.value,
    Availability.LOADED.value,
    Availability.ASSIGNED_TO_JOB.value,
    Availability.ARRIVED.value,
    Availability.DE_LINKED.value,
    Availability.UNDER_REPAIR.value,
    Availability.RETURNED.value,
    Availability.CLEARED.value,
})

AVAILABILITY_VALUES = frozenset(a.value for a in Availability)

CONTAINER_SIZES = ["20ft", "40ft", "45ft"]

CONTAINER_TYPES = [
    "Dry High",
    "Dry Standard",
    "Flat High",
    "Flat Standard",
    "Open Top",
    "Open Top High",
    "Reefer High",
    "Reefer Standard",
    "Tank",
]

AVAILABILITY_COLORS = {
    Availability.AVAILABLE.value: "success",
    Availability.RETURNED.value: "success",
    Availability.IN_TRANSIT.value: "warning",
    Availability.LOADED.value: "warning",
    Availability.OCCUPIED.value: "warning",
    Availability.HIRED.value: "warning",
    Availability.ASSIGNED_TO_JOB.value: "warning",
    Availability.ARRIVED.value: "error",
    Availability.UNDER_REPAIR.value: "error",
    Availability.DE_LINKED.value: "info",
    Availability.CLEARED.value: "info",
}

OWNER_TYPE_ALIASES = {
    "owned": OwnerType.OWNED.value,
    "soc": OwnerType.OWNED.value,
    "hired": OwnerType.HIRED.value,
    "coc": OwnerType.HIRED.value,
}

# Availability a container takes when the order using it reaches a status
_ORDER_STATUS_AVAILABILITY = {
    OrderStatus.CREATED.value: Availability.ASSIGNED_TO_JOB.value,
    OrderStatus.IN_TRANSIT.value: Availability.IN_TRANSIT.value,
}

# Fixed updatable field sets
MASTER_FIELDS = ("container_number", "size", "container_type", "remarks", "status_override")
PURCHASE_FIELDS = (
    "manufacture_date", "purchase_date", "purchase_price", "purchased_from",
    "owned_by", "available_at", "currency",
)
HIRE_FIELDS = (
    "hire_start_date", "hire_end_date", "hired_by", "return_date", "free_days",
    "place_of_loading", "place_of_destination",
)
_DATE_FIELDS = frozenset({
    "manufacture_date", "purchase_date", "hire_start_date", "hire_end_date", "return_date",
})


def availability_for_order_status(order_status: str) -> str:
    """Map an order status to the availability of the containers it uses."""
    return _ORDER_STATUS_AVAILABILITY.get(order_status, Availability.AVAILABLE.value)


def normalize_owner_type(value: str | None) -> str | None:
    if value is None:
        return None
    return OWNER_TYPE_ALIASES.get(str(value).strip().lower())


# ── Derivation ───────────────────────────────────────────────

def derive_status(
    latest_availability: str | None,
    hire: ContainerHireDetail | None,
    owner_type: str,
    override: str | None = None,
    today: date | None = None,
) -> str:
    """Current status of a container from its ledger head and hire record."""
    today = today or date.today()

    if override:
        return override

    if owner_type == OwnerType.HIRED.value and hire is not None:
        start, end = hire.hire_start_date, hire.hire_end_date
        if end is not None and end < today and latest_availability == Availability.CLEARED.value:
            return Availability.RETURNED.value
        if start is not None and end is None:
            return Availability.HIRED.value
        if end is not None and end > today:
            return Availability.OCCUPIED.value

    if latest_availability in TRANSIT_VOCABULARY:
        return latest_availability

    return Availability.AVAILABLE.value


def derive_for(
    container: ContainerMaster,
    latest: ContainerStatusEvent | None,
    today: date | None = None,
) -> str:
    return derive_status(
        latest.availability if latest else None,
        container.hire,
        container.owner_type,
        container.status_override,
        today,
    )


async def latest_event(db: AsyncSession, container_id: str) -> ContainerStatusEvent | None:
    result = await db.execute(
        select(ContainerStatusEvent)
        .where(ContainerStatusEvent.container_id == container_id)
        .order_by(ContainerStatusEvent.sequence.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def latest_events(
    db: AsyncSession, container_ids: Iterable[str]
) -> dict[str, ContainerStatusEvent]:
    """Latest ledger event per container, keyed by container id."""
    ids = list(container_ids)
    if not ids:
        return {}
    head = (
        select(func.max(ContainerStatusEvent.sequence))
        .where(ContainerStatusEvent.container_id.in_(ids))
        .group_by(ContainerStatusEvent.container_id)
    )
    result = await db.execute(
        select(ContainerStatusEvent).where(ContainerStatusEvent.sequence.in_(head))
    )
    return {ev.container_id: ev for ev in result.scalars().all()}


async def get_container(db: AsyncSession, container_id: str) -> ContainerMaster:
    container = await db.get(ContainerMaster, container_id)
    if container is None:
        raise ResourceNotFoundError("Container", container_id)
    return container


async def get_derived_status(
    db: AsyncSession, container_id: str, today: date | None = None
) -> str:
    container = await get_container(db, container_id)
    return derive_for(container, await latest_event(db, container_id), today)


# ── Ledger writes ────────────────────────────────────────────

async def record_event(
    db: AsyncSession,
    container_id: str,
    *,
    location: str | None = None,
    availability: str | None = None,
    note: str,
    actor: str | None = None,
) -> ContainerStatusEvent:
    """Append one event to the container's ledger.

    A missing location or availability carries forward from the previous
    event, so the ledger head always holds the container's full position.
    """
    if availability is not None and availability not in AVAILABILITY_VALUES:
        raise ConstraintViolationError(
            f"Unknown availability: {availability}", field="availability"
        )
    await get_container(db, container_id)

    previous = await latest_event(db, container_id)
    if previous is not None:
        location = location if location is not None else previous.location
        availability = availability if availability is not None else previous.availability

    event = ContainerStatusEvent(
        container_id=container_id,
        location=location,
        availability=availability,
        note=note,
        actor=actor,
    )
    db.add(event)
    await db.flush()
    return event


async def find_by_numbers(
    db: AsyncSession, numbers: Iterable[str]
) -> dict[str, ContainerMaster]:
    numbers = list(dict.fromkeys(numbers))
    if not numbers:
        return {}
    result = await db.execute(
        select(ContainerMaster).where(
            ContainerMaster.container_number.in_(numbers),
            ContainerMaster.is_active == True,  # noqa: E712
        )
    )
    return {c.container_number: c for c in result.scalars().all()}


async def touch_containers(
    db: AsyncSession,
    numbers: Iterable[str],
    *,
    availability: str,
    note: str,
    actor: str | None = None,
    strict: bool = True,
) -> list[ContainerStatusEvent]:
    """Append the same availability event to each container by number.

    With `strict`, a number that does not resolve to an active container
    fails the whole operation; otherwise it is skipped with a warning.
    """
    numbers = list(dict.fromkeys(numbers))
    found = await find_by_numbers(db, numbers)
    missing = [n for n in numbers if n not in found]
    if missing and strict:
        raise ResourceNotFoundError("Container", missing[0])
    for number in missing:
        logger.warning(f"Skipping ledger event for unknown or inactive container {number}")

    events = []
    for number in numbers:
        if number not in found:
            continue
        events.append(await record_event(
            db, found[number].id, availability=availability, note=note, actor=actor,
        ))
    return events


# ── Registration ─────────────────────────────────────────────

def _validate_details(payload: dict, owner_type: str, errors: list[dict]) -> dict:
    """Validate the owner-specific detail fields and return cleaned values."""
    cleaned = {}
    if owner_type == OwnerType.OWNED.value:
        require(errors, payload, ["purchase_date", "purchase_price", "purchased_from", "owned_by"])
        for name in PURCHASE_FIELDS:
            cleaned[name] = payload.get(name)
        if not is_blank(payload.get("purchase_price")):
            cleaned["purchase_price"] = check(
                errors, "purchase_price", non_negative_number, payload["purchase_price"]
            )
        cleaned["currency"] = check(
            errors, "currency", validate_currency, payload.get("currency") or "USD"
        )
    else:
        require(errors, payload, ["hire_start_date", "hired_by"])
        for name in HIRE_FIELDS:
            cleaned[name] = payload.get(name)
        cleaned["free_days"] = check(
            errors, "free_days", non_negative_int, payload.get("free_days") or 0
        )

    for name in _DATE_FIELDS & cleaned.keys():
        cleaned[name] = check(errors, name, parse_optional_date, cleaned[name])

    if (
        owner_type == OwnerType.HIRED.value
        and cleaned.get("hire_start_date")
        and cleaned.get("hire_end_date")
        and cleaned["hire_end_date"] < cleaned["hire_start_date"]
    ):
        errors.append(field_error("hire_end_date", "must not be before hire_start_date"))
    return cleaned


async def create_container(
    db: AsyncSession,
    payload: ContainerCreate,
    actor: str | None = None,
) -> ContainerMaster:
    """Register a container with its purchase or hire detail and first event."""
    data = payload.model_dump()
    errors: list[dict] = []

    require(errors, data, ["container_number", "size", "container_type", "owner_type"])
    owner_type = normalize_owner_type(data.get("owner_type"))
    if data.get("owner_type") and owner_type is None:
        errors.append(field_error("owner_type", "must be 'owned' or 'hired'"))
    if data.get("availability") and data["availability"] not in AVAILABILITY_VALUES:
        errors.append(field_error("availability", f"unknown availability: {data['availability']}"))

    details = _validate_details(data, owner_type, errors) if owner_type else {}
    if errors:
        raise ValidationFailedError(errors)

    number = data["container_number"].strip()
    existing = await db.execute(
        select(ContainerMaster.id).where(ContainerMaster.container_number == number)
    )
    if existing.scalar_one_or_none():
        raise ConflictError(f"Container number already exists: {number}", field="container_number")

    container = ContainerMaster(
        container_number=number,
        size=data["size"],
        container_type=data["container_type"],
        owner_type=owner_type,
        remarks=data.get("remarks"),
        created_by=actor,
    )
    if owner_type == OwnerType.OWNED.value:
        container.purchase, container.hire = ContainerPurchaseDetail(**details), None
    else:
        container.purchase, container.hire = None, ContainerHireDetail(**details)
    db.add(container)
    await db.flush()

    db.add(ContainerStatusEvent(
        container_id=container.id,
        location=data.get("location") or "Unknown",
        availability=data.get("availability") or Availability.AVAILABLE.value,
        note="Initial creation",
        actor=actor,
    ))
    await db.flush()

    logger.info(f"Container registered: {number} ({owner_type})")
    return container


async def update_container(
    db: AsyncSession,
    container_id: str,
    payload: ContainerUpdate,
    actor: str | None = None,
) -> ContainerMaster:
    """Administrative correction of a container.

    Only the fixed field sets above can change.  A new location or
    availability is recorded as a ledger event, never written in place.
    """
    container = await get_container(db, container_id)
    data = payload.model_dump(exclude_unset=True)

    if "owner_type" in data and data["owner_type"] is not None:
        requested = normalize_owner_type(data["owner_type"])
        if requested != container.owner_type:
            raise ConstraintViolationError(
                "Cannot change owner_type; manual migration required", field="owner_type"
            )

    # Older clients send the derived status back as the new availability
    if "derived_status" in data and "availability" not in data:
        data["availability"] = data.pop("derived_status")
    availability = data.get("availability")
    if availability is not None and availability not in AVAILABILITY_VALUES:
        raise ConstraintViolationError(f"Unknown availability: {availability}", field="availability")
    if data.get("status_override") and data["status_override"] not in AVAILABILITY_VALUES:
        raise ConstraintViolationError(
            f"Unknown status override: {data['status_override']}", field="status_override"
        )

    if "container_number" in data and data["container_number"] != container.container_number:
        clash = await db.execute(
            select(ContainerMaster.id).where(
                ContainerMaster.container_number == data["container_number"]
            )
        )
        if clash.scalar_one_or_none():
            raise ConflictError(
                f"Container number already exists: {data['container_number']}",
                field="container_number",
            )

    for name in MASTER_FIELDS:
        if name in data and (data[name] is not None or name in ("remarks", "status_override")):
            setattr(container, name, data[name])

    detail, allowed = (
        (container.purchase, PURCHASE_FIELDS)
        if container.owner_type == OwnerType.OWNED.value
        else (container.hire, HIRE_FIELDS)
    )
    errors: list[dict] = []
    if detail is not None:
        for name in allowed:
            if name not in data:
                continue
            value = data[name]
            if name in _DATE_FIELDS:
                value = check(errors, name, parse_optional_date, value)
            elif name in ("purchase_price",) and value is not None:
                value = check(errors, name, non_negative_number, value)
            elif name == "free_days" and value is not None:
                value = check(errors, name, non_negative_int, value)
            elif name == "currency" and value is not None:
                value = check(errors, name, validate_currency, value)
            setattr(detail, name, value)
    if errors:
        raise ValidationFailedError(errors)

    location = data.get("location")
    if location is not None or availability is not None:
        parts = ["Status updated"]
        if availability is not None:
            parts.append(f"availability to {availability}")
        if location is not None:
            parts.append(f"location to {location}")
        await record_event(
            db, container.id,
            location=location, availability=availability,
            note=" ".join(parts), actor=actor,
        )

    await db.flush()
    return container


async def deactivate_container(
    db: AsyncSession, container_id: str, actor: str | None = None
) -> ContainerMaster:
    """Soft delete; the ledger is kept."""
    container = await get_container(db, container_id)
    container.is_active = False
    await db.flush()
    logger.info(f"Container deactivated: {container.container_number} by {actor}")
    return container


# ── Reads ────────────────────────────────────────────────────

async def location_history(db: AsyncSession, container_id: str) -> list[ContainerStatusEvent]:
    """All ledger events, newest first."""
    result = await db.execute(
        select(ContainerStatusEvent)
        .where(ContainerStatusEvent.container_id == container_id)
        .order_by(ContainerStatusEvent.sequence.desc())
    )
    return list(result.scalars().all())


async def list_containers(
    db: AsyncSession,
    *,
    status: str | None = None,
    size: str | None = None,
    container_type: str | None = None,
    owner_type: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
    limit: int = 50,
    offset: int = 0,
    today: date | None = None,
) -> tuple[list[tuple[ContainerMaster, ContainerStatusEvent | None, str]], int]:
    """Containers with their ledger head and derived status.

    The derived-status filter is applied after derivation, so paging
    happens in memory when `status` is given.
    """
    stmt = select(ContainerMaster)
    if not include_inactive:
        stmt = stmt.where(ContainerMaster.is_active == True)  # noqa: E712
    if size:
        stmt = stmt.where(ContainerMaster.size == size)
    if container_type:
        stmt = stmt.where(ContainerMaster.container_type == container_type)
    if owner_type:
        stmt = stmt.where(ContainerMaster.owner_type == normalize_owner_type(owner_type))
    if search:
        stmt = stmt.where(ContainerMaster.container_number.ilike(f"%{search}%"))
    stmt = stmt.order_by(ContainerMaster.created_at.desc(), ContainerMaster.container_number)

    containers = list((await db.execute(stmt)).scalars().all())
    heads = await latest_events(db, [c.id for c in containers])
    rows = [(c, heads.get(c.id), derive_for(c, heads.get(c.id), today)) for c in containers]
    if status:
        rows = [r for r in rows if r[2] == status]
    return rows[offset:offset + limit], len(rows)


async def usage_history(db: AsyncSession, container_id: str) -> dict:
    """Ledger plus every order whose receivers hold the container."""
    container = await get_container(db, container_id)
    events = await location_history(db, container_id)

    number = container.container_number
    result = await db.execute(
        select(Receiver, Order)
        .join(Order, Order.id == Receiver.order_id)
        .where(cast(Receiver.containers, String).like(f'%"{number}"%'))
        .order_by(Order.created_at.desc())
    )
    orders = [
        {
            "order_id": order.id,
            "booking_ref": order.booking_ref,
            "order_status": order.status,
            "receiver_id": receiver.id,
            "receiver_name": receiver.receiver_name,
            "receiver_status": receiver.status,
        }
        for receiver, order in result.all()
        if number in (receiver.containers or [])
    ]
    return {
        "container": container,
        "derived_status": derive_for(container, events[0] if events else None),
        "events": events,
        "orders": orders,
    }

"""Consignment workflow.

Validation, CRUD, and the linear status machine

    Draft → Submitted → In Transit → Delivered

driven by `advance_consignment`.  Cancelled is reached only through
`cancel_consignment`, from any status that is not terminal.  A full update
may set any open status but cannot cancel, and cannot reopen a Delivered
or Cancelled consignment.  Every change writes a ConsignmentTracking row;
deletion leaves its row behind.

When the status changes and no ETA is supplied, the ETA becomes today plus
the `eta_config` offset for the new status (today when Delivered or when no
offset is configured).
"""

import logging
from datetime import date, timedelta
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    BusinessLogicError,
    ConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.consignment import (
    Consignment,
    ConsignmentStatus,
    ConsignmentTracking,
    EtaConfig,
)
from app.models.order import Order
from app.schemas.consignment import ConsignmentCreate
from app.schemas.validators import (
    check,
    field_error,
    is_blank,
    non_negative_number,
    parse_date,
    positive_int,
    require,
    validate_currency,
    validate_eform,
)
from app.services import notifications

logger = logging.getLogger(__name__)

NEXT_STATUS = {
    ConsignmentStatus.DRAFT.value: ConsignmentStatus.SUBMITTED.value,
    ConsignmentStatus.SUBMITTED.value: ConsignmentStatus.IN_TRANSIT.value,
    ConsignmentStatus.IN_TRANSIT.value: ConsignmentStatus.DELIVERED.value,
}
TERMINAL_STATUSES = {ConsignmentStatus.DELIVERED.value, ConsignmentStatus.CANCELLED.value}
CONSIGNMENT_STATUSES = [s.value for s in ConsignmentStatus]

CONSIGNMENT_STATUS_COLORS = {
    ConsignmentStatus.DRAFT.value: "info",
    ConsignmentStatus.SUBMITTED.value: "warning",
    ConsignmentStatus.IN_TRANSIT.value: "warning",
    ConsignmentStatus.DELIVERED.value: "success",
    ConsignmentStatus.CANCELLED.value: "error",
}

REQUIRED_FIELDS = [
    "consignment_number", "status", "shipper", "consignee",
    "origin", "destination", "payment_type", "shipping_line",
]
TEXT_FIELDS = [
    "shipper", "consignee", "origin", "destination", "bank",
    "payment_type", "voyage", "vessel", "shipping_line", "seal_no", "remarks",
]


# ── Validation ───────────────────────────────────────────────

def _min_length(length: int):
    def validator(value: Any) -> str:
        text = str(value).strip()
        if len(text) < length:
            raise ValueError(f"must be at least {length} characters (got: {value!r})")
        return text
    return validator


def _validate_containers(containers: Any, errors: list[dict]) -> None:
    if not isinstance(containers, list) or not containers:
        errors.append(field_error("containers", "at least one container is required"))
        return
    for index, entry in enumerate(containers):
        prefix = f"containers[{index}]."
        if not isinstance(entry, dict):
            errors.append(field_error(f"containers[{index}]", "must be an object"))
            continue
        require(errors, entry, ["container_no", "size"], prefix=prefix)
        if entry.get("number_of_days") is not None:
            check(errors, f"{prefix}number_of_days", non_negative_number, entry["number_of_days"])


def _validate_orders(orders: Any, errors: list[dict]) -> None:
    if not isinstance(orders, list) or not orders:
        errors.append(field_error("orders", "at least one order is required"))
        return
    for index, entry in enumerate(orders):
        # Bare entries are order ids
        if isinstance(entry, dict):
            check(errors, f"orders[{index}].quantity", positive_int, entry.get("quantity"))
        elif is_blank(entry) or isinstance(entry, bool):
            errors.append(field_error(f"orders[{index}]", "must be an order id or an object"))


def validate_consignment(fields: dict) -> list[dict]:
    """Every problem with a consignment payload, as field errors."""
    errors: list[dict] = []
    require(errors, fields, REQUIRED_FIELDS)

    status = fields.get("status")
    if not is_blank(status) and status not in CONSIGNMENT_STATUSES:
        errors.append(field_error("status", f"unknown status: {status}"))

    check(errors, "eform", validate_eform, fields.get("eform") or "")
    check(errors, "eform_date", parse_date, fields.get("eform_date"))
    check(errors, "voyage", _min_length(3), fields.get("voyage") or "")
    if not is_blank(fields.get("seal_no")):
        check(errors, "seal_no", _min_length(3), fields["seal_no"])
    if not is_blank(fields.get("eta")):
        check(errors, "eta", parse_date, fields["eta"])
    if not is_blank(fields.get("currency")):
        check(errors, "currency", validate_currency, fields["currency"])

    for name in ("consignment_value", "net_weight", "gross_weight"):
        check(errors, name, non_negative_number, fields.get(name))

    _validate_containers(fields.get("containers"), errors)
    _validate_orders(fields.get("orders"), errors)
    return errors


def _columns(fields: dict) -> dict:
    """Column values from an already validated payload."""
    values = {name: fields.get(name) for name in TEXT_FIELDS}
    values.update(
        consignment_number=fields["consignment_number"].strip(),
        status=fields["status"],
        eform=fields["eform"].strip(),
        eform_date=parse_date(fields["eform_date"]),
        currency=validate_currency(fields["currency"]) if fields.get("currency") else "USD",
        consignment_value=non_negative_number(fields["consignment_value"]),
        net_weight=non_negative_number(fields["net_weight"]),
        gross_weight=non_negative_number(fields["gross_weight"]),
        containers=list(fields["containers"]),
        orders=list(fields["orders"]),
    )
    return values


# ── ETA ──────────────────────────────────────────────────────

async def compute_eta(db: AsyncSession, status: str, today: date | None = None) -> date:
    today = today or date.today()
    if status == ConsignmentStatus.DELIVERED.value:
        return today
    result = await db.execute(select(EtaConfig.days_offset).where(EtaConfig.status == status))
    offset = result.scalar_one_or_none()
    if offset is None:
        logger.debug(f"No ETA offset configured for {status}")
        return today
    return today + timedelta(days=offset)


# ── Helpers ──────────────────────────────────────────────────

def _track(
    db: AsyncSession,
    consignment_id: str,
    action: str,
    old_status: str | None,
    new_status: str | None,
    actor: str | None,
) -> None:
    db.add(ConsignmentTracking(
        consignment_id=consignment_id,
        action=action,
        old_status=old_status,
        new_status=new_status,
        actor=actor,
    ))


async def _ensure_number_free(
    db: AsyncSession, number: str, exclude_id: str | None = None
) -> None:
    stmt = select(Consignment.id).where(Consignment.consignment_number == number)
    if exclude_id:
        stmt = stmt.where(Consignment.id != exclude_id)
    if (await db.execute(stmt)).scalar_one_or_none():
        raise ConflictError(
            f"Consignment number already exists: {number}", field="consignment_number"
        )


async def _flush(db: AsyncSession, number: str) -> None:
    try:
        await db.flush()
    except IntegrityError as e:
        if "unique" in str(e.orig).lower():
            raise ConflictError(
                f"Consignment number already exists: {number}", field="consignment_number"
            ) from e
        raise


async def get_consignment(db: AsyncSession, consignment_id: str) -> Consignment:
    consignment = await db.get(Consignment, consignment_id)
    if consignment is None:
        raise ResourceNotFoundError("Consignment", consignment_id)
    return consignment


# ── Writes ───────────────────────────────────────────────────

def _check_status_change(old_status: str | None, new_status: str) -> None:
    """Edits move between open statuses only; cancelling has its own operation."""
    if new_status == old_status:
        return
    if new_status == ConsignmentStatus.CANCELLED.value:
        raise BusinessLogicError(
            "Consignments are cancelled through the cancel operation",
            error_code="INVALID_TRANSITION",
        )
    if old_status in TERMINAL_STATUSES:
        raise BusinessLogicError(
            f"Cannot change the status of a consignment that is {old_status}",
            error_code="INVALID_TRANSITION",
        )


async def create_consignment(
    db: AsyncSession,
    payload: ConsignmentCreate,
    actor: str | None = None,
) -> Consignment:
    fields = payload.model_dump()
    errors = validate_consignment(fields)
    if errors:
        raise ValidationFailedError(errors)

    values = _columns(fields)
    _check_status_change(None, values["status"])
    await _ensure_number_free(db, values["consignment_number"])

    eta = parse_date(fields["eta"]) if not is_blank(fields.get("eta")) else None
    values["eta"] = eta or await compute_eta(db, values["status"])

    consignment = Consignment(**values, created_by=actor, updated_by=actor)
    db.add(consignment)
    await _flush(db, values["consignment_number"])

    _track(db, consignment.id, "created", None, consignment.status, actor)
    await db.flush()
    notifications.queue(db, notifications.plan_consignment(consignment, "created"))

    logger.info(f"Consignment created: {consignment.consignment_number} ({consignment.status})")
    return consignment


async def update_consignment(
    db: AsyncSession,
    consignment_id: str,
    payload: ConsignmentCreate,
    actor: str | None = None,
) -> Consignment:
    """Replace every field; the payload is validated as a whole."""
    consignment = await get_consignment(db, consignment_id)

    fields = payload.model_dump()
    errors = validate_consignment(fields)
    if errors:
        raise ValidationFailedError(errors)

    values = _columns(fields)
    _check_status_change(consignment.status, values["status"])
    if values["consignment_number"] != consignment.consignment_number:
        await _ensure_number_free(db, values["consignment_number"], exclude_id=consignment.id)

    old_status = consignment.status
    if not is_blank(fields.get("eta")):
        values["eta"] = parse_date(fields["eta"])
    elif values["status"] != old_status:
        values["eta"] = await compute_eta(db, values["status"])

    for name, value in values.items():
        setattr(consignment, name, value)
    consignment.updated_by = actor
    await _flush(db, values["consignment_number"])

    _track(db, consignment.id, "updated", old_status, consignment.status, actor)
    await db.flush()
    notifications.queue(db, notifications.plan_consignment(consignment, "updated", old_status))

    logger.info(f"Consignment updated: {consignment.consignment_number}")
    return consignment


async def advance_consignment(
    db: AsyncSession,
    consignment_id: str,
    actor: str | None = None,
) -> Consignment:
    """Move one step along the workflow and refresh the ETA."""
    consignment = await get_consignment(db, consignment_id)
    old_status = consignment.status
    next_status = NEXT_STATUS.get(old_status)
    if next_status is None:
        raise BusinessLogicError("No next status available", error_code="NO_NEXT_STATUS")

    consignment.status = next_status
    consignment.eta = await compute_eta(db, next_status)
    consignment.updated_by = actor
    _track(db, consignment.id, "status_advanced", old_status, next_status, actor)
    await db.flush()
    notifications.queue(db, notifications.plan_consignment(consignment, "status_advanced", old_status))

    logger.info(
        f"Consignment {consignment.consignment_number} advanced {old_status} -> {next_status}"
    )
    return consignment


async def cancel_consignment(
    db: AsyncSession,
    consignment_id: str,
    actor: str | None = None,
) -> Consignment:
    consignment = await get_consignment(db, consignment_id)
    old_status = consignment.status
    if old_status in TERMINAL_STATUSES:
        raise BusinessLogicError(
            f"Cannot cancel a consignment that is {old_status}",
            error_code="INVALID_TRANSITION",
        )

    consignment.status = ConsignmentStatus.CANCELLED.value
    consignment.updated_by = actor
    _track(db, consignment.id, "cancelled", old_status, consignment.status, actor)
    await db.flush()
    notifications.queue(db, notifications.plan_consignment(consignment, "cancelled", old_status))

    logger.info(f"Consignment cancelled: {consignment.consignment_number} (was {old_status})")
    return consignment


async def delete_consignment(
    db: AsyncSession,
    consignment_id: str,
    actor: str | None = None,
) -> None:
    consignment = await get_consignment(db, consignment_id)
    _track(db, consignment.id, "deleted", consignment.status, None, actor)
    await db.delete(consignment)
    await db.flush()
    logger.info(f"Consignment deleted: {consignment.consignment_number} by {actor}")


# ── Reads ────────────────────────────────────────────────────

def _order_refs(entries: list) -> tuple[list[str], list[str]]:
    """(order ids, booking refs) named by a consignment's `orders` list."""
    ids: list[str] = []
    refs: list[str] = []
    for entry in entries or []:
        if isinstance(entry, dict):
            if entry.get("order_id") or entry.get("id"):
                ids.append(str(entry.get("order_id") or entry.get("id")))
            elif entry.get("booking_ref"):
                refs.append(str(entry["booking_ref"]))
        elif not is_blank(entry):
            ids.append(str(entry))
    return ids, refs


async def consignment_figures(
    db: AsyncSession,
    consignment: Consignment,
    today: date | None = None,
) -> dict:
    """Display figures computed at read time.

    delivered_qty sums what has been assigned on the referenced orders;
    pending_qty is what those orders still lack.  days_until_eta never
    goes below zero.
    """
    delivered = pending = 0
    ids, refs = _order_refs(consignment.orders)
    if ids or refs:
        result = await db.execute(
            select(Order).where(or_(Order.id.in_(ids), Order.booking_ref.in_(refs)))
        )
        for order in result.scalars().all():
            ordered = sum(r.total_number for r in order.receivers)
            delivered += order.total_assigned_qty
            pending += max(0, ordered - order.total_assigned_qty)

    days_until_eta = None
    if consignment.eta is not None:
        days_until_eta = max(0, (consignment.eta - (today or date.today())).days)

    return {
        "status_color": CONSIGNMENT_STATUS_COLORS.get(consignment.status, "default"),
        "delivered_qty": delivered,
        "pending_qty": pending,
        "days_until_eta": days_until_eta,
    }


async def list_consignments(
    db: AsyncSession,
    status: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Consignment], int]:
    stmt = select(Consignment)
    if status:
        stmt = stmt.where(Consignment.status == status)
    if search:
        stmt = stmt.where(Consignment.consignment_number.ilike(f"%{search.strip()}%"))

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    result = await db.execute(
        stmt.order_by(Consignment.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total


async def consignment_tracking(db: AsyncSession, consignment_id: str) -> list[ConsignmentTracking]:
    """Tracking log, oldest first; available after deletion too."""
    result = await db.execute(
        select(ConsignmentTracking)
        .where(ConsignmentTracking.consignment_id == consignment_id)
        .order_by(ConsignmentTracking.sequence)
    )
    return list(result.scalars().all())

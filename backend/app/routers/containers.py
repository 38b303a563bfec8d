"""Container inventory router.

Endpoints:
    POST    /api/containers/                     Register container (+ purchase/hire detail)
    GET     /api/containers/                     List with derived status (filters)
    GET     /api/containers/options              Sizes, types, owner types, availability
    GET     /api/containers/{container_id}       Detail with location history
    PATCH   /api/containers/{container_id}       Administrative correction
    DELETE  /api/containers/{container_id}       Deactivate (soft delete)
    POST    /api/containers/{container_id}/events  Append a ledger event
    GET     /api/containers/{container_id}/usage   Ledger plus orders using it
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor
from app.database import get_db
from app.models.container import ContainerMaster, OwnerType
from app.models.container_status import Availability, ContainerStatusEvent
from app.schemas.common import PaginatedResponse
from app.schemas.container import (
    ContainerCreate,
    ContainerDetail,
    ContainerEventCreate,
    ContainerEventOut,
    ContainerOptions,
    ContainerSummary,
    ContainerUpdate,
    ContainerUsage,
    HireDetailOut,
    PurchaseDetailOut,
    UsageOrderRef,
)
from app.services import container_ledger

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def _summary(
    container: ContainerMaster,
    head: ContainerStatusEvent | None,
    derived: str,
) -> ContainerSummary:
    return ContainerSummary(
        id=container.id,
        container_number=container.container_number,
        size=container.size,
        container_type=container.container_type,
        owner_type=container.owner_type,
        derived_status=derived,
        location=head.location if head else None,
        is_active=container.is_active,
        created_at=container.created_at,
    )


async def _detail(db: AsyncSession, container: ContainerMaster) -> ContainerDetail:
    history = await container_ledger.location_history(db, container.id)
    head = history[0] if history else None
    summary = _summary(container, head, container_ledger.derive_for(container, head))
    return ContainerDetail(
        **summary.model_dump(),
        remarks=container.remarks,
        status_override=container.status_override,
        purchase=PurchaseDetailOut.model_validate(container.purchase) if container.purchase else None,
        hire=HireDetailOut.model_validate(container.hire) if container.hire else None,
        location_history=[ContainerEventOut.model_validate(e) for e in history],
    )


# ── POST /api/containers/ ────────────────────────────────────

@router.post("/", response_model=ContainerDetail, status_code=201)
async def create_container(
    body: ContainerCreate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
):
    container = await container_ledger.create_container(db, body, actor)
    return await _detail(db, container)


# ── GET /api/containers/ ─────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[ContainerSummary])
async def list_containers(
    status: str | None = Query(None, description="Filter by derived status"),
    size: str | None = Query(None),
    container_type: str | None = Query(None),
    owner_type: str | None = Query(None),
    search: str | None = Query(None, description="Container number contains"),
    include_inactive: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await container_ledger.list_containers(
        db,
        status=status,
        size=size,
        container_type=container_type,
        owner_type=owner_type,
        search=search,
        include_inactive=include_inactive,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[_summary(c, head, derived) for c, head, derived in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── GET /api/containers/options ──────────────────────────────

@router.get("/options", response_model=ContainerOptions)
async def container_options():
    return ContainerOptions(
        sizes=container_ledger.CONTAINER_SIZES,
        types=container_ledger.CONTAINER_TYPES,
        owner_types=[o.value for o in OwnerType],
        availability=[
            {"value": a.value, "color": container_ledger.AVAILABILITY_COLORS.get(a.value, "default")}
            for a in Availability
        ],
    )


# ── GET /api/containers/{container_id} ───────────────────────

@router.get("/{container_id}", response_model=ContainerDetail)
async def get_container(
    container_id: str,
    db: AsyncSession = Depends(get_db),
):
    container = await container_ledger.get_container(db, container_id)
    return await _detail(db, container)


# ── PATCH /api/containers/{container_id} ─────────────────────

@router.patch("/{container_id}", response_model=ContainerDetail)
async def update_container(
    container_id: str,
    body: ContainerUpdate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
):
    container = await container_ledger.update_container(db, container_id, body, actor)
    return await _detail(db, container)


# ── DELETE /api/containers/{container_id} ────────────────────

@router.delete("/{container_id}", response_model=ContainerDetail)
async def deactivate_container(
    container_id: str,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
):
    container = await container_ledger.deactivate_container(db, container_id, actor)
    return await _detail(db, container)


# ── POST /api/containers/{container_id}/events ───────────────

@router.post("/{container_id}/events", response_model=ContainerEventOut, status_code=201)
async def record_container_event(
    container_id: str,
    body: ContainerEventCreate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
):
    """Append a ledger event; omitted location/availability carry forward."""
    return await container_ledger.record_event(
        db, container_id,
        location=body.location,
        availability=body.availability,
        note=body.note,
        actor=actor,
    )


# ── GET /api/containers/{container_id}/usage ─────────────────

@router.get("/{container_id}/usage", response_model=ContainerUsage)
async def container_usage(
    container_id: str,
    db: AsyncSession = Depends(get_db),
):
    usage = await container_ledger.usage_history(db, container_id)
    return ContainerUsage(
        container_number=usage["container"].container_number,
        derived_status=usage["derived_status"],
        events=[ContainerEventOut.model_validate(e) for e in usage["events"]],
        orders=[UsageOrderRef(**o) for o in usage["orders"]],
    )

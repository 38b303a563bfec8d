"""Consignment router.

Endpoints:
    POST    /api/consignments/                          Create consignment
    GET     /api/consignments/                          List (status, search)
    GET     /api/consignments/statuses                  Status vocabulary with colours
    GET     /api/consignments/{consignment_id}          Detail with delivered/pending figures
    PUT     /api/consignments/{consignment_id}          Full update
    DELETE  /api/consignments/{consignment_id}          Delete (tracking log kept)
    POST    /api/consignments/{consignment_id}/advance  Next workflow status
    POST    /api/consignments/{consignment_id}/cancel   Cancel
    GET     /api/consignments/{consignment_id}/tracking Tracking log
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor
from app.database import get_db
from app.models.consignment import Consignment
from app.schemas.common import PaginatedResponse, StatusOption
from app.schemas.consignment import (
    ConsignmentCreate,
    ConsignmentOut,
    ConsignmentSummary,
    ConsignmentTrackingOut,
    ConsignmentUpdate,
)
from app.services import consignment as workflow
from app.services import notifications
from app.services.notifications import NotificationSink, get_notification_sink

router = APIRouter()


async def _out(db: AsyncSession, consignment: Consignment) -> ConsignmentOut:
    figures = await workflow.consignment_figures(db, consignment)
    return ConsignmentOut.model_validate(consignment).model_copy(update=figures)


def _dispatch(db: AsyncSession, background_tasks: BackgroundTasks, sink: NotificationSink) -> None:
    pending = notifications.drain(db)
    if pending:
        background_tasks.add_task(sink.deliver, pending)


# ── POST /api/consignments/ ──────────────────────────────────

@router.post("/", response_model=ConsignmentOut, status_code=201)
async def create_consignment(
    body: ConsignmentCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    sink: NotificationSink = Depends(get_notification_sink),
):
    consignment = await workflow.create_consignment(db, body, actor)
    _dispatch(db, background_tasks, sink)
    return await _out(db, consignment)


# ── GET /api/consignments/ ───────────────────────────────────

@router.get("/", response_model=PaginatedResponse[ConsignmentSummary])
async def list_consignments(
    status: str | None = Query(None),
    search: str | None = Query(None, description="Consignment number contains"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    items, total = await workflow.list_consignments(
        db, status=status, search=search, limit=limit, offset=offset
    )
    return PaginatedResponse(
        items=[ConsignmentSummary.model_validate(c) for c in items],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── GET /api/consignments/statuses ───────────────────────────

@router.get("/statuses", response_model=list[StatusOption])
async def consignment_statuses():
    return [
        StatusOption(value=s, color=workflow.CONSIGNMENT_STATUS_COLORS[s])
        for s in workflow.CONSIGNMENT_STATUSES
    ]


# ── GET /api/consignments/{consignment_id} ───────────────────

@router.get("/{consignment_id}", response_model=ConsignmentOut)
async def get_consignment(
    consignment_id: str,
    db: AsyncSession = Depends(get_db),
):
    consignment = await workflow.get_consignment(db, consignment_id)
    return await _out(db, consignment)


# ── PUT /api/consignments/{consignment_id} ───────────────────

@router.put("/{consignment_id}", response_model=ConsignmentOut)
async def update_consignment(
    consignment_id: str,
    body: ConsignmentUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    sink: NotificationSink = Depends(get_notification_sink),
):
    consignment = await workflow.update_consignment(db, consignment_id, body, actor)
    _dispatch(db, background_tasks, sink)
    return await _out(db, consignment)


# ── DELETE /api/consignments/{consignment_id} ────────────────

@router.delete("/{consignment_id}", status_code=204)
async def delete_consignment(
    consignment_id: str,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
):
    await workflow.delete_consignment(db, consignment_id, actor)


# ── POST /api/consignments/{consignment_id}/advance ──────────

@router.post("/{consignment_id}/advance", response_model=ConsignmentOut)
async def advance_consignment(
    consignment_id: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    sink: NotificationSink = Depends(get_notification_sink),
):
    consignment = await workflow.advance_consignment(db, consignment_id, actor)
    _dispatch(db, background_tasks, sink)
    return await _out(db, consignment)


# ── POST /api/consignments/{consignment_id}/cancel ───────────

@router.post("/{consignment_id}/cancel", response_model=ConsignmentOut)
async def cancel_consignment(
    consignment_id: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    sink: NotificationSink = Depends(get_notification_sink),
):
    consignment = await workflow.cancel_consignment(db, consignment_id, actor)
    _dispatch(db, background_tasks, sink)
    return await _out(db, consignment)


# ── GET /api/consignments/{consignment_id}/tracking ──────────

@router.get("/{consignment_id}/tracking", response_model=list[ConsignmentTrackingOut])
async def get_consignment_tracking(
    consignment_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await workflow.consignment_tracking(db, consignment_id)

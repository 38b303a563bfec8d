"""Consignment workflow: validation, status machine, ETA and figures."""

from datetime import date, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    BusinessLogicError,
    ConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.consignment import EtaConfig
from app.schemas.consignment import ConsignmentCreate
from app.schemas.order import AssignmentSlot
from app.services import consignment as workflow
from app.services import notifications
from app.services.assignment import assign_containers

from factories import add_container, add_order, consignment_payload


async def _create(db: AsyncSession, **overrides):
    return await workflow.create_consignment(
        db, ConsignmentCreate(**consignment_payload(**overrides)), actor="clerk"
    )


@pytest.mark.unit
class TestValidateConsignment:
    def test_valid_payload(self):
        assert workflow.validate_consignment(consignment_payload()) == []

    def test_eform_format(self):
        errors = workflow.validate_consignment(consignment_payload(eform="ABC-12345"))
        assert errors == [{"field": "eform", "message": "E-Form must match format ABC-123456"}]

    def test_collects_every_problem(self):
        errors = workflow.validate_consignment(consignment_payload(
            voyage="V1",
            gross_weight=-1,
            eform_date="05/01/2026",
            containers=[{"container_no": "MSCU1234567"}],
            orders=[],
        ))
        fields = [e["field"] for e in errors]
        assert fields == ["eform_date", "voyage", "gross_weight", "containers[0].size", "orders"]

    def test_malformed_date_is_tagged(self):
        errors = workflow.validate_consignment(consignment_payload(eform_date="2026-02-30"))
        assert errors == [{
            "field": "eform_date",
            "message": "invalid format (got: 2026-02-30)",
            "code": "MALFORMED_DATE",
        }]

    def test_order_entries(self):
        errors = workflow.validate_consignment(consignment_payload(
            orders=["3f0c-order-id", {"booking_ref": "BK-1", "quantity": 0}],
        ))
        assert [e["field"] for e in errors] == ["orders[1].quantity"]

    def test_unknown_status(self):
        errors = workflow.validate_consignment(consignment_payload(status="Lost"))
        assert errors == [{"field": "status", "message": "unknown status: Lost"}]


@pytest.mark.integration
@pytest.mark.asyncio
class TestConsignmentWorkflow:
    async def test_create_defaults_eta_to_today(self, db_session: AsyncSession):
        consignment = await _create(db_session)

        assert consignment.status == "Draft"
        assert consignment.eta == date.today()
        assert consignment.eform_date == date(2026, 1, 5)
        tracking = await workflow.consignment_tracking(db_session, consignment.id)
        assert [(t.action, t.old_status, t.new_status) for t in tracking] == [("created", None, "Draft")]
        assert notifications.drain(db_session) == []

    async def test_create_rejects_invalid_payload(self, db_session: AsyncSession):
        with pytest.raises(ValidationFailedError) as exc:
            await _create(db_session, eform="ABC-12345")
        assert exc.value.details == {
            "errors": [{"field": "eform", "message": "E-Form must match format ABC-123456"}]
        }

    async def test_duplicate_number(self, db_session: AsyncSession):
        await _create(db_session)
        with pytest.raises(ConflictError):
            await _create(db_session)

    async def test_submitted_on_create_notifies(self, db_session: AsyncSession):
        await _create(db_session, status="Submitted")
        assert [n.event for n in notifications.drain(db_session)] == ["consignment.submitted"]

    async def test_advance_uses_eta_offset(self, db_session: AsyncSession):
        db_session.add(EtaConfig(status="Submitted", days_offset=30))
        consignment = await _create(db_session)

        advanced = await workflow.advance_consignment(db_session, consignment.id, actor="clerk")

        assert advanced.status == "Submitted"
        assert advanced.eta == date.today() + timedelta(days=30)

    async def test_advance_through_to_delivered(self, db_session: AsyncSession):
        consignment = await _create(db_session)
        for expected in ("Submitted", "In Transit", "Delivered"):
            consignment = await workflow.advance_consignment(db_session, consignment.id)
            assert consignment.status == expected
        assert consignment.eta == date.today()

        with pytest.raises(BusinessLogicError) as exc:
            await workflow.advance_consignment(db_session, consignment.id)
        assert exc.value.error_code == "NO_NEXT_STATUS"
        assert exc.value.status_code == 422

        events = [n.event for n in notifications.drain(db_session)]
        assert events == ["consignment.status_changed", "consignment.status_changed"]

    async def test_cancel(self, db_session: AsyncSession):
        consignment = await _create(db_session, status="Submitted")

        cancelled = await workflow.cancel_consignment(db_session, consignment.id)
        assert cancelled.status == "Cancelled"

        with pytest.raises(BusinessLogicError) as exc:
            await workflow.cancel_consignment(db_session, consignment.id)
        assert exc.value.error_code == "INVALID_TRANSITION"

        with pytest.raises(BusinessLogicError) as exc:
            await workflow.advance_consignment(db_session, consignment.id)
        assert exc.value.error_code == "NO_NEXT_STATUS"

    async def test_update_recomputes_eta_on_status_change(self, db_session: AsyncSession):
        db_session.add(EtaConfig(status="In Transit", days_offset=20))
        consignment = await _create(db_session)

        updated = await workflow.update_consignment(
            db_session, consignment.id,
            ConsignmentCreate(**consignment_payload(status="In Transit", vessel="MSC Sola")),
        )

        assert updated.vessel == "MSC Sola"
        assert updated.eta == date.today() + timedelta(days=20)
        tracking = await workflow.consignment_tracking(db_session, consignment.id)
        assert [t.action for t in tracking] == ["created", "updated"]

    async def test_update_cannot_cancel_or_reopen(self, db_session: AsyncSession):
        consignment = await _create(db_session)

        with pytest.raises(BusinessLogicError) as exc:
            await workflow.update_consignment(
                db_session, consignment.id,
                ConsignmentCreate(**consignment_payload(status="Cancelled")),
            )
        assert exc.value.error_code == "INVALID_TRANSITION"
        assert consignment.status == "Draft"

        delivered = await workflow.update_consignment(
            db_session, consignment.id,
            ConsignmentCreate(**consignment_payload(status="Delivered")),
        )
        assert delivered.status == "Delivered"

        with pytest.raises(BusinessLogicError) as exc:
            await workflow.update_consignment(
                db_session, consignment.id,
                ConsignmentCreate(**consignment_payload(status="Draft")),
            )
        assert exc.value.error_code == "INVALID_TRANSITION"
        assert consignment.status == "Delivered"

        same = await workflow.update_consignment(
            db_session, consignment.id,
            ConsignmentCreate(**consignment_payload(status="Delivered", vessel="MSC Sola")),
        )
        assert same.vessel == "MSC Sola"

    async def test_create_cannot_start_cancelled(self, db_session: AsyncSession):
        with pytest.raises(BusinessLogicError) as exc:
            await _create(db_session, status="Cancelled")
        assert exc.value.error_code == "INVALID_TRANSITION"

    async def test_update_keeps_explicit_eta(self, db_session: AsyncSession):
        consignment = await _create(db_session)
        updated = await workflow.update_consignment(
            db_session, consignment.id,
            ConsignmentCreate(**consignment_payload(status="Submitted", eta="2026-12-01")),
        )
        assert updated.eta == date(2026, 12, 1)

    async def test_delete_keeps_tracking(self, db_session: AsyncSession):
        consignment = await _create(db_session)
        consignment_id = consignment.id

        await workflow.delete_consignment(db_session, consignment_id, actor="clerk")

        with pytest.raises(ResourceNotFoundError):
            await workflow.get_consignment(db_session, consignment_id)
        tracking = await workflow.consignment_tracking(db_session, consignment_id)
        assert [t.action for t in tracking] == ["created", "deleted"]

    async def test_list_filters(self, db_session: AsyncSession):
        await _create(db_session)
        await _create(db_session, consignment_number="CN-2026-002", status="Submitted")

        rows, total = await workflow.list_consignments(db_session, status="Submitted")
        assert total == 1 and rows[0].consignment_number == "CN-2026-002"

        rows, total = await workflow.list_consignments(db_session, search="cn-2026")
        assert total == 2


@pytest.mark.integration
@pytest.mark.asyncio
class TestConsignmentFigures:
    async def test_quantities_come_from_referenced_orders(self, db_session: AsyncSession):
        order = await add_order(db_session)
        await add_container(db_session, "FIGS0000001")
        a = order.receivers[0]
        await assign_containers(
            db_session, [order.id],
            {order.id: {a.id: {0: AssignmentSlot(containers=["FIGS0000001"], qty=10)}}},
        )
        consignment = await _create(db_session, eta="2030-01-01")

        figures = await workflow.consignment_figures(db_session, consignment, today=date(2029, 12, 27))

        assert figures == {
            "status_color": "info",
            "delivered_qty": 10,
            "pending_qty": 5,
            "days_until_eta": 5,
        }

    async def test_past_eta_floors_at_zero(self, db_session: AsyncSession):
        consignment = await _create(db_session, eta="2026-01-01", orders=["no-such-order"])

        figures = await workflow.consignment_figures(db_session, consignment, today=date(2026, 2, 1))

        assert figures["days_until_eta"] == 0
        assert (figures["delivered_qty"], figures["pending_qty"]) == (0, 0)

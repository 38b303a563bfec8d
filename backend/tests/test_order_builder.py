"""Order aggregate builder: create, update, cancel."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    AssignmentError,
    BusinessLogicError,
    ConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.order import Order
from app.models.receiver import Receiver
from app.schemas.order import AssignmentSlot, OrderUpdate
from app.services import container_ledger, notifications, order_builder
from app.services.assignment import assign_containers

from factories import add_container, add_order

JEBEL_ALI_TRANSPORT = {
    "transport_mode": "drop_off",
    "drop_off_location": "Gate 4",
    "drop_off_date": "2026-02-01",
}


async def _count(db: AsyncSession, column) -> int:
    return (await db.execute(select(func.count(column)))).scalar()


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateOrder:
    async def test_receiver_totals_are_item_sums(self, db_session: AsyncSession):
        order = await add_order(db_session)

        a, b = order.receivers
        assert (a.receiver_name, a.total_number, a.total_weight) == ("A", 10, 100.0)
        assert (b.receiver_name, b.total_number, b.total_weight) == ("B", 5, 250.5)
        assert a.items[0].item_ref == "REF-0-0"
        assert b.items[0].item_ref == "REF-1-0"
        assert order.status == "Created"
        assert order.sender.sender_name == "Indus Textiles"

    async def test_writes_one_tracking_row_per_receiver(self, db_session: AsyncSession):
        order = await add_order(db_session)

        events = await order_builder.order_tracking(db_session, order.id)
        assert [(e.receiver_id, e.note) for e in events] == [
            (r.id, "Order created") for r in order.receivers
        ]

    async def test_validation_collects_errors_and_writes_nothing(self, db_session: AsyncSession):
        with pytest.raises(ValidationFailedError) as exc:
            await add_order(
                db_session,
                booking_ref="",
                parties=[{"receiver_name": "A", "receiver_email": "not-an-email"}],
                items=[{"party_index": 0, "item_index": 0, "total_number": -2}],
            )

        fields = {e["field"] for e in exc.value.errors}
        assert "booking_ref" in fields
        assert "parties[0].receiver_email" in fields
        assert "parties[0].items[0].total_number" in fields
        assert await _count(db_session, Order.id) == 0
        assert await _count(db_session, Receiver.id) == 0

    async def test_duplicate_booking_ref(self, db_session: AsyncSession):
        await add_order(db_session)
        with pytest.raises(ConflictError) as exc:
            await add_order(db_session)
        assert exc.value.message == "Booking reference already exists"

    async def test_hub_destination_requires_transport(self, db_session: AsyncSession):
        with pytest.raises(ValidationFailedError) as exc:
            await add_order(db_session, final_destination="Jebel Ali")
        assert {"field": "transport", "message": "is required when the route touches a hub port"} in exc.value.errors

    async def test_hub_destination_requires_clearing_agent(self, db_session: AsyncSession):
        with pytest.raises(ValidationFailedError) as exc:
            await add_order(db_session, final_destination="Jebel Ali", transport=JEBEL_ALI_TRANSPORT)
        assert [e["field"] for e in exc.value.errors] == ["transport.clearing_agent"]

        order = await add_order(
            db_session,
            final_destination="Jebel Ali",
            transport={**JEBEL_ALI_TRANSPORT, "clearing_agent": "Gulf Clearing LLC"},
        )
        assert order.transport.clearing_agent == "Gulf Clearing LLC"

    async def test_hub_loading_requires_gate_pass(self, db_session: AsyncSession):
        with pytest.raises(ValidationFailedError) as exc:
            await add_order(db_session, place_of_loading="Port Qasim", transport=JEBEL_ALI_TRANSPORT)
        assert [e["field"] for e in exc.value.errors] == ["transport.gate_pass_number"]

    async def test_transport_containers_join_the_job(self, db_session: AsyncSession):
        container = await add_container(db_session, "TRNS0000001")
        await add_order(
            db_session,
            transport={**JEBEL_ALI_TRANSPORT, "associated_containers": ["TRNS0000001"]},
        )
        assert await container_ledger.get_derived_status(db_session, container.id) == "Assigned to Job"

    async def test_party_containers_must_be_available(self, db_session: AsyncSession):
        await add_container(db_session, "PRTY0000001", availability="Under Repair")

        with pytest.raises(AssignmentError) as exc:
            await add_order(
                db_session,
                parties=[{"receiver_name": "A", "containers": ["PRTY0000001"]}],
                items=[{"party_index": 0, "item_index": 0, "total_number": 1}],
            )
        assert exc.value.status_code == 409
        assert exc.value.container == "PRTY0000001"
        assert await _count(db_session, Order.id) == 0

        with pytest.raises(AssignmentError) as exc:
            await add_order(
                db_session,
                parties=[{"receiver_name": "A", "containers": ["GONE0000001"]}],
            )
        assert exc.value.status_code == 404

    async def test_party_containers_join_the_job(self, db_session: AsyncSession):
        container = await add_container(db_session, "PRTY0000002")

        order = await add_order(
            db_session,
            parties=[{"receiver_name": "A", "containers": ["PRTY0000002"]}, {"receiver_name": "B"}],
        )

        assert order.receivers[0].containers == ["PRTY0000002"]
        assert await container_ledger.get_derived_status(db_session, container.id) == "Assigned to Job"

    async def test_container_listed_for_two_parties(self, db_session: AsyncSession):
        with pytest.raises(ValidationFailedError) as exc:
            await add_order(
                db_session,
                parties=[
                    {"receiver_name": "A", "containers": ["PRTY0000003"]},
                    {"receiver_name": "B", "containers": ["PRTY0000003"]},
                ],
            )
        assert exc.value.errors == [{
            "field": "parties[1].containers",
            "message": "container PRTY0000003 is already listed for another party",
        }]

    async def test_receiver_owned_order_swaps_roles(self, db_session: AsyncSession):
        order = await add_order(
            db_session,
            sender_type="receiver",
            sender={"receiver_name": "Hamburg Handels GmbH"},
            parties=[{"sender_name": "Indus Mill"}],
            items=[{"party_index": 0, "item_index": 0, "total_number": 2}],
        )
        assert order.sender.sender_name == "Hamburg Handels GmbH"
        assert order.receivers[0].receiver_name == "Indus Mill"


@pytest.mark.integration
@pytest.mark.asyncio
class TestUpdateOrder:
    async def test_patch_leaves_parties_alone(self, db_session: AsyncSession):
        order = await add_order(db_session)
        receiver_ids = [r.id for r in order.receivers]

        updated = await order_builder.update_order(
            db_session, order.id, OrderUpdate(order_remarks="Fragile"), actor="ops"
        )

        assert updated.order_remarks == "Fragile"
        assert [r.id for r in updated.receivers] == receiver_ids
        assert updated.updated_by == "ops"

    async def test_parties_replace_everything(self, db_session: AsyncSession):
        order = await add_order(db_session)

        updated = await order_builder.update_order(
            db_session, order.id,
            OrderUpdate(
                parties=[{"receiver_name": "C"}],
                items=[
                    {"party_index": 0, "item_index": 0, "total_number": 3, "weight": 1.5},
                    {"party_index": 0, "item_index": 1, "total_number": 4, "weight": 2},
                ],
            ),
        )

        assert [r.receiver_name for r in updated.receivers] == ["C"]
        assert updated.receivers[0].total_number == 7
        assert updated.receivers[0].total_weight == 3.5
        assert await _count(db_session, Receiver.id) == 1
        events = await order_builder.order_tracking(db_session, order.id)
        assert [e.note for e in events] == ["Parties replaced"]

    async def test_replace_keeps_held_and_checks_new_containers(self, db_session: AsyncSession):
        order = await add_order(db_session)
        await add_container(db_session, "HELD0000001")
        await add_container(db_session, "BUSY0000001", availability="Under Repair")
        fresh = await add_container(db_session, "FREE0000001")
        await assign_containers(
            db_session, [order.id],
            {order.id: {order.receivers[0].id: {0: AssignmentSlot(containers=["HELD0000001"], qty=3)}}},
        )

        with pytest.raises(AssignmentError) as exc:
            await order_builder.update_order(
                db_session, order.id,
                OrderUpdate(parties=[{"receiver_name": "A", "containers": ["HELD0000001", "BUSY0000001"]}]),
            )
        assert exc.value.container == "BUSY0000001"

        updated = await order_builder.update_order(
            db_session, order.id,
            OrderUpdate(parties=[{"receiver_name": "A", "containers": ["HELD0000001", "FREE0000001"]}]),
        )

        assert updated.receivers[0].containers == ["HELD0000001", "FREE0000001"]
        assert await container_ledger.get_derived_status(db_session, fresh.id) == "Assigned to Job"

    async def test_blank_required_field_rejected(self, db_session: AsyncSession):
        order = await add_order(db_session)
        with pytest.raises(ValidationFailedError) as exc:
            await order_builder.update_order(db_session, order.id, OrderUpdate(place_of_delivery=" "))
        assert exc.value.errors == [{"field": "place_of_delivery", "message": "cannot be blank"}]

    async def test_route_change_rechecks_hub_rules(self, db_session: AsyncSession):
        order = await add_order(db_session)
        with pytest.raises(ValidationFailedError) as exc:
            await order_builder.update_order(
                db_session, order.id, OrderUpdate(final_destination="Jebel Ali Free Zone")
            )
        assert exc.value.errors[0]["field"] == "transport"

    async def test_booking_ref_must_stay_unique(self, db_session: AsyncSession):
        await add_order(db_session)
        other = await add_order(db_session, booking_ref="BK-2002")
        with pytest.raises(ConflictError):
            await order_builder.update_order(db_session, other.id, OrderUpdate(booking_ref="BK-1001"))

    async def test_unknown_order(self, db_session: AsyncSession):
        with pytest.raises(ResourceNotFoundError):
            await order_builder.update_order(db_session, "missing", OrderUpdate(order_remarks="x"))


@pytest.mark.integration
@pytest.mark.asyncio
class TestCancelOrder:
    async def test_cancel_releases_containers(self, db_session: AsyncSession):
        order = await add_order(db_session)
        container = await add_container(db_session, "CANC0000001")
        a = order.receivers[0]
        await assign_containers(
            db_session, [order.id],
            {order.id: {a.id: {0: AssignmentSlot(containers=["CANC0000001"], qty=10)}}},
        )
        notifications.drain(db_session)

        cancelled = await order_builder.cancel_order(db_session, order.id, "ops", reason="Client withdrew")

        assert cancelled.status == "Cancelled"
        assert {r.status for r in cancelled.receivers} == {"Cancelled"}
        assert await container_ledger.get_derived_status(db_session, container.id) == "Available"

        queued = notifications.drain(db_session)
        assert [n.subject for n in queued] == ["Order BK-1001 is Cancelled"]
        assert queued[0].recipients == ["ops@indus.example.com", "a@example.com"]

    async def test_cancel_twice_fails(self, db_session: AsyncSession):
        order = await add_order(db_session)
        await order_builder.cancel_order(db_session, order.id)
        with pytest.raises(BusinessLogicError):
            await order_builder.cancel_order(db_session, order.id)

    async def test_cancelled_order_is_read_only(self, db_session: AsyncSession):
        order = await add_order(db_session)
        await order_builder.cancel_order(db_session, order.id)
        with pytest.raises(BusinessLogicError) as exc:
            await order_builder.update_order(db_session, order.id, OrderUpdate(order_remarks="x"))
        assert exc.value.error_code == "ORDER_CANCELLED"


@pytest.mark.integration
@pytest.mark.asyncio
class TestListOrders:
    async def test_search_and_status_filter(self, db_session: AsyncSession):
        await add_order(db_session)
        second = await add_order(db_session, booking_ref="BK-2002")
        await order_builder.cancel_order(db_session, second.id)

        orders, total = await order_builder.list_orders(db_session, search="2002")
        assert total == 1 and orders[0].id == second.id

        orders, total = await order_builder.list_orders(db_session, status="Created")
        assert [o.booking_ref for o in orders] == ["BK-1001"]

"""Order status aggregation and receiver status changes."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    BusinessLogicError,
    ConstraintViolationError,
    ResourceNotFoundError,
)
from app.schemas.order import AssignmentSlot
from app.services import container_ledger, notifications
from app.services.assignment import assign_containers
from app.services.order_builder import cancel_order, order_tracking
from app.services.order_status import RECEIVER_STATUS_BUCKET, aggregate_status, set_receiver_status

from factories import add_container, add_order


@pytest.mark.unit
class TestAggregateStatus:
    def test_no_receivers_is_created(self):
        assert aggregate_status([]) == "Created"

    def test_most_advanced_receiver_wins(self):
        assert aggregate_status(["Created", "Shipped"]) == "In Transit"
        assert aggregate_status(["Collected", "Partially Delivered", "On Hold"]) == "Delivered"
        assert aggregate_status(["Delivered", "Completed"]) == "Completed"

    def test_any_cancelled_receiver_cancels(self):
        assert aggregate_status(["Completed", "Cancelled"]) == "Cancelled"
        assert aggregate_status(["Cancelled", "Completed"]) == "Cancelled"

    def test_every_receiver_status_has_a_bucket(self):
        buckets = set(RECEIVER_STATUS_BUCKET.values())
        assert buckets == {"Created", "In Transit", "Delivered", "Completed", "Cancelled"}

    def test_order_of_statuses_does_not_matter(self):
        statuses = ["Loaded", "Created", "Delivered", "Awaiting Collection"]
        assert aggregate_status(statuses) == aggregate_status(reversed(statuses)) == "Delivered"


@pytest.mark.integration
@pytest.mark.asyncio
class TestSetReceiverStatus:
    async def test_receiver_change_moves_order_and_containers(self, db_session: AsyncSession):
        order = await add_order(db_session)
        container = await add_container(db_session, "STAT0000001")
        a = order.receivers[0]
        await assign_containers(
            db_session, [order.id],
            {order.id: {a.id: {0: AssignmentSlot(containers=["STAT0000001"], qty=4)}}},
        )
        notifications.drain(db_session)

        order, event = await set_receiver_status(
            db_session, order.id, a.id, "Shipped", note="Sailed on MSC Aurora", actor="ops"
        )

        assert order.status == "In Transit"
        assert event.note == "Sailed on MSC Aurora"
        assert await container_ledger.get_derived_status(db_session, container.id) == "In Transit"
        queued = notifications.drain(db_session)
        assert [n.event for n in queued] == ["order.status_changed"]
        assert queued[0].message == "Order BK-1001 moved from Created to In Transit."

    async def test_same_bucket_change_sends_nothing(self, db_session: AsyncSession):
        order = await add_order(db_session)

        order, event = await set_receiver_status(
            db_session, order.id, order.receivers[1].id, "On Hold"
        )

        assert order.status == "Created"
        assert event.note == "Status changed to On Hold"
        assert notifications.drain(db_session) == []

    async def test_cancelling_one_receiver_cancels_order(self, db_session: AsyncSession):
        order = await add_order(db_session)
        await set_receiver_status(db_session, order.id, order.receivers[0].id, "Completed")

        order, _ = await set_receiver_status(db_session, order.id, order.receivers[1].id, "Cancelled")

        assert order.status == "Cancelled"
        events = await order_tracking(db_session, order.id)
        assert [e.status for e in events][-2:] == ["Completed", "Cancelled"]

    async def test_unknown_status_rejected(self, db_session: AsyncSession):
        order = await add_order(db_session)
        with pytest.raises(ConstraintViolationError):
            await set_receiver_status(db_session, order.id, order.receivers[0].id, "Teleported")

    async def test_receiver_must_belong_to_order(self, db_session: AsyncSession):
        order = await add_order(db_session)
        other = await add_order(db_session, booking_ref="BK-2002")
        with pytest.raises(ResourceNotFoundError):
            await set_receiver_status(db_session, order.id, other.receivers[0].id, "Shipped")

    async def test_cancelled_order_keeps_its_status(self, db_session: AsyncSession):
        order = await add_order(db_session)
        container = await add_container(db_session, "STAT0000002")
        a = order.receivers[0]
        await assign_containers(
            db_session, [order.id],
            {order.id: {a.id: {0: AssignmentSlot(containers=["STAT0000002"], qty=10)}}},
        )
        await cancel_order(db_session, order.id)
        notifications.drain(db_session)

        with pytest.raises(BusinessLogicError) as exc:
            await set_receiver_status(db_session, order.id, a.id, "In Transit")

        assert exc.value.error_code == "ORDER_CANCELLED"
        assert order.status == "Cancelled"
        assert a.status == "Cancelled"
        assert await container_ledger.get_derived_status(db_session, container.id) == "Available"
        assert notifications.drain(db_session) == []

"""Container status ledger: derivation rules, registration and corrections."""

from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    ConflictError,
    ConstraintViolationError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.container import ContainerMaster
from app.models.container_status import ContainerStatusEvent
from app.schemas.container import ContainerCreate, ContainerUpdate
from app.services import container_ledger
from app.services.container_ledger import derive_status

from factories import add_container

TODAY = date(2026, 3, 15)


def _hire(start=None, end=None):
    return SimpleNamespace(hire_start_date=start, hire_end_date=end)


@pytest.mark.unit
class TestDeriveStatus:
    def test_no_events_is_available(self):
        assert derive_status(None, None, "owned", today=TODAY) == "Available"

    def test_override_wins(self):
        hire = _hire(start=TODAY - timedelta(days=5))
        assert derive_status("Loaded", hire, "hired", override="Under Repair", today=TODAY) == "Under Repair"

    def test_open_hire_is_hired_regardless_of_ledger(self):
        hire = _hire(start=TODAY - timedelta(days=5))
        for latest in (None, "Available", "Loaded", "In Transit", "Cleared"):
            assert derive_status(latest, hire, "hired", today=TODAY) == "Hired"

    def test_expired_hire_and_cleared_is_returned(self):
        hire = _hire(start=TODAY - timedelta(days=30), end=TODAY - timedelta(days=1))
        assert derive_status("Cleared", hire, "hired", today=TODAY) == "Returned"

    def test_future_hire_end_is_occupied(self):
        hire = _hire(start=TODAY - timedelta(days=30), end=TODAY + timedelta(days=10))
        assert derive_status("Loaded", hire, "hired", today=TODAY) == "Occupied"

    def test_transit_vocabulary_passes_through(self):
        for value in ("In Transit", "Loaded", "Assigned to Job", "Arrived", "De-Linked"):
            assert derive_status(value, None, "owned", today=TODAY) == value

    def test_other_availability_falls_back_to_available(self):
        assert derive_status("Hired", None, "owned", today=TODAY) == "Available"

    def test_hire_rules_ignored_for_owned(self):
        hire = _hire(start=TODAY - timedelta(days=5))
        assert derive_status(None, hire, "owned", today=TODAY) == "Available"

    def test_owner_type_aliases(self):
        assert container_ledger.normalize_owner_type("SOC") == "owned"
        assert container_ledger.normalize_owner_type("coc") == "hired"
        assert container_ledger.normalize_owner_type("leased") is None


def _owned_payload(**overrides) -> ContainerCreate:
    data = {
        "container_number": "MSCU1234567",
        "size": "40ft",
        "container_type": "Dry High",
        "owner_type": "owned",
        "purchase_date": "2024-01-10",
        "purchase_price": 3200,
        "purchased_from": "CIMC",
        "owned_by": "FreightDesk",
    }
    data.update(overrides)
    return ContainerCreate(**data)


@pytest.mark.integration
@pytest.mark.asyncio
class TestLedger:
    async def test_create_writes_initial_event(self, db_session: AsyncSession):
        container = await container_ledger.create_container(db_session, _owned_payload(), "ops")

        history = await container_ledger.location_history(db_session, container.id)
        assert len(history) == 1
        assert history[0].note == "Initial creation"
        assert history[0].location == "Unknown"
        assert history[0].availability == "Available"
        assert container.purchase.purchase_date == date(2024, 1, 10)

    async def test_create_collects_all_errors(self, db_session: AsyncSession):
        payload = ContainerCreate(owner_type="owned", purchase_date="10/01/2024")
        with pytest.raises(ValidationFailedError) as exc:
            await container_ledger.create_container(db_session, payload)

        fields = {e["field"] for e in exc.value.errors}
        assert {"container_number", "size", "container_type", "purchase_date"} <= fields
        count = await db_session.execute(select(func.count(ContainerMaster.id)))
        assert count.scalar() == 0

    async def test_duplicate_number_conflicts(self, db_session: AsyncSession):
        await container_ledger.create_container(db_session, _owned_payload())
        with pytest.raises(ConflictError):
            await container_ledger.create_container(db_session, _owned_payload())

    async def test_record_event_carries_forward(self, db_session: AsyncSession):
        container = await add_container(db_session, "TGHU0000001", location="Port Qasim")

        event = await container_ledger.record_event(
            db_session, container.id, availability="Loaded", note="Loaded on truck"
        )
        assert event.location == "Port Qasim"
        assert event.availability == "Loaded"
        assert await container_ledger.get_derived_status(db_session, container.id) == "Loaded"

    async def test_sequence_is_increasing(self, db_session: AsyncSession):
        container = await add_container(db_session, "TGHU0000002")
        for availability in ("Loaded", "In Transit", "Arrived"):
            await container_ledger.record_event(
                db_session, container.id, availability=availability, note=availability
            )

        history = await container_ledger.location_history(db_session, container.id)
        sequences = [e.sequence for e in reversed(history)]
        assert sequences == sorted(sequences)
        assert history[0].availability == "Arrived"

    async def test_unknown_availability_rejected(self, db_session: AsyncSession):
        container = await add_container(db_session, "TGHU0000003")
        with pytest.raises(ConstraintViolationError):
            await container_ledger.record_event(
                db_session, container.id, availability="Lost at sea", note="?"
            )

    async def test_zero_event_container_is_available(self, db_session: AsyncSession):
        container = await add_container(db_session, "TGHU0000004", availability=None)
        assert await container_ledger.get_derived_status(db_session, container.id) == "Available"

    async def test_expired_hire_cleared_is_returned(self, db_session: AsyncSession):
        container = await add_container(
            db_session, "HIRE0000001", owner_type="hired",
            hire_end=date.today() - timedelta(days=1), availability="Cleared",
        )
        assert await container_ledger.get_derived_status(db_session, container.id) == "Returned"

    async def test_owner_type_is_immutable(self, db_session: AsyncSession):
        container = await container_ledger.create_container(db_session, _owned_payload())
        with pytest.raises(ConstraintViolationError) as exc:
            await container_ledger.update_container(
                db_session, container.id, ContainerUpdate(owner_type="hired")
            )
        assert "manual migration" in exc.value.message

    async def test_update_records_status_event(self, db_session: AsyncSession):
        container = await container_ledger.create_container(db_session, _owned_payload())
        await container_ledger.update_container(
            db_session, container.id,
            ContainerUpdate(derived_status="Under Repair", location="Workshop 2", remarks="dent"),
            actor="ops",
        )

        head = await container_ledger.latest_event(db_session, container.id)
        assert head.availability == "Under Repair"
        assert head.location == "Workshop 2"
        assert head.note == "Status updated availability to Under Repair location to Workshop 2"
        assert container.remarks == "dent"

    async def test_touch_strict_fails_on_unknown(self, db_session: AsyncSession):
        await add_container(db_session, "TGHU0000005")
        with pytest.raises(ResourceNotFoundError):
            await container_ledger.touch_containers(
                db_session, ["TGHU0000005", "NOPE0000000"], availability="Loaded", note="x"
            )

    async def test_touch_lenient_skips_unknown(self, db_session: AsyncSession):
        container = await add_container(db_session, "TGHU0000006")
        events = await container_ledger.touch_containers(
            db_session, ["TGHU0000006", "NOPE0000000"],
            availability="Loaded", note="x", strict=False,
        )
        assert [e.container_id for e in events] == [container.id]

    async def test_deactivated_container_hidden_from_list(self, db_session: AsyncSession):
        kept = await add_container(db_session, "TGHU0000007")
        gone = await add_container(db_session, "TGHU0000008")
        await container_ledger.deactivate_container(db_session, gone.id, "ops")

        rows, total = await container_ledger.list_containers(db_session)
        assert total == 1
        assert rows[0][0].id == kept.id

        events = await db_session.execute(
            select(func.count(ContainerStatusEvent.sequence)).where(
                ContainerStatusEvent.container_id == gone.id
            )
        )
        assert events.scalar() == 1

    async def test_list_filters_by_derived_status(self, db_session: AsyncSession):
        await add_container(db_session, "TGHU0000009", availability="Loaded")
        await add_container(db_session, "TGHU0000010")

        rows, total = await container_ledger.list_containers(db_session, status="Loaded")
        assert total == 1
        assert rows[0][0].container_number == "TGHU0000009"
        assert rows[0][2] == "Loaded"

"""Test data helpers shared by the service and API tests."""

from datetime import date, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.container import ContainerHireDetail, ContainerMaster, ContainerPurchaseDetail
from app.models.container_status import ContainerStatusEvent
from app.schemas.order import OrderCreate
from app.services.order_builder import create_order


async def add_container(
    db: AsyncSession,
    number: str,
    *,
    availability: str | None = "Available",
    owner_type: str = "owned",
    hire_end: date | None = None,
    location: str = "Karachi Yard",
) -> ContainerMaster:
    """Insert a container with one ledger event (none when availability is None)."""
    container = ContainerMaster(
        container_number=number,
        size="40ft",
        container_type="Dry Standard",
        owner_type=owner_type,
    )
    container.purchase = container.hire = None
    if owner_type == "hired":
        container.hire = ContainerHireDetail(
            hire_start_date=date.today() - timedelta(days=30),
            hire_end_date=hire_end,
            hired_by="Maersk",
        )
    else:
        container.purchase = ContainerPurchaseDetail(currency="USD")
    db.add(container)
    await db.flush()

    if availability is not None:
        db.add(ContainerStatusEvent(
            container_id=container.id,
            location=location,
            availability=availability,
            note="Initial creation",
        ))
        await db.flush()
    return container


def order_payload(**overrides) -> dict:
    """Two receivers: A with one 10-piece item, B with one 5-piece item."""
    payload = {
        "booking_ref": "BK-1001",
        "place_of_loading": "Lahore Dry Port",
        "final_destination": "Hamburg",
        "place_of_delivery": "Hamburg Warehouse 4",
        "sender": {"sender_name": "Indus Textiles", "sender_email": "ops@indus.example.com"},
        "parties": [
            {"receiver_name": "A", "receiver_email": "a@example.com"},
            {"receiver_name": "B"},
        ],
        "items": [
            {"party_index": 0, "item_index": 0, "category": "Textiles", "total_number": 10, "weight": 100},
            {"party_index": 1, "item_index": 0, "category": "Rice", "total_number": 5, "weight": 250.5},
        ],
    }
    payload.update(overrides)
    return payload


async def add_order(db: AsyncSession, **overrides):
    return await create_order(db, OrderCreate(**order_payload(**overrides)), actor="tester")




def consignment_payload(**overrides) -> dict:
    payload = {
        "consignment_number": "CN-2026-001",
        "status": "Draft",
        "shipper": "Indus Textiles",
        "consignee": "Hamburg Handels GmbH",
        "origin": "Karachi",
        "destination": "Hamburg",
        "eform": "KHI-123456",
        "eform_date": "2026-01-05",
        "consignment_value": 125000,
        "currency": "USD",
        "payment_type": "LC",
        "voyage": "V-221",
        "vessel": "MSC Aurora",
        "shipping_line": "MSC",
        "net_weight": 18000,
        "gross_weight": 18500,
        "containers": [
            {"container_no": "MSCU1234567", "size": "40ft", "owner": "MSC", "number_of_days": 14},
        ],
        "orders": [{"booking_ref": "BK-1001", "quantity": 10}],
    }
    payload.update(overrides)
    return payload

"""Management CLI.

Usage:
    python -m app.cli init-db      # Create every table (development / first run)
    python -m app.cli seed-eta     # Insert default ETA offsets if missing

Production schemas are managed with Alembic (`alembic upgrade head`).
"""

import asyncio
import sys

from sqlalchemy import select

from app.database import Base, async_session, engine
from app.models import EtaConfig
from app.models.consignment import ConsignmentStatus

DEFAULT_ETA_OFFSETS = {
    ConsignmentStatus.SUBMITTED.value: 30,
    ConsignmentStatus.IN_TRANSIT.value: 20,
}


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"  Created {len(Base.metadata.tables)} tables")


async def seed_eta():
    """Insert the default offsets; existing rows are left untouched."""
    async with async_session() as session:
        result = await session.execute(select(EtaConfig.status))
        existing = set(result.scalars().all())
        added = 0
        for status, days in DEFAULT_ETA_OFFSETS.items():
            if status not in existing:
                session.add(EtaConfig(status=status, days_offset=days))
                added += 1
        await session.commit()
    print(f"  Seeded {added} ETA offset(s)")


async def _run(command) -> None:
    try:
        await command()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "init-db":
        asyncio.run(_run(init_db))
    elif cmd == "seed-eta":
        asyncio.run(_run(seed_eta))
    else:
        print("Usage: python -m app.cli [init-db|seed-eta]")

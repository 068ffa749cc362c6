from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from haccp.domain.models import Observation, Tenant, Zone


async def seed_tenant(
    session_factory: async_sessionmaker[AsyncSession],
    tenant_id: str,
    *,
    name: str | None = None,
    created_at: datetime | None = None,
) -> None:
    async with session_factory() as session:
        tenant = Tenant(id=tenant_id, name=name or tenant_id)
        if created_at is not None:
            tenant.created_at = created_at
        session.add(tenant)
        await session.commit()


async def seed_zone(
    session_factory: async_sessionmaker[AsyncSession],
    tenant_id: str,
    *,
    name: str,
    zone_type: str | None = None,
) -> int:
    async with session_factory() as session:
        zone = Zone(tenant_id=tenant_id, name=name, zone_type=zone_type)
        session.add(zone)
        await session.commit()
        return zone.id


async def seed_observation(
    session_factory: async_sessionmaker[AsyncSession],
    tenant_id: str,
    *,
    observed_at: datetime,
    kind: str = "temperature",
    zone_id: int | None = None,
    value: float | None = None,
    responsible: str | None = "Alice",
    product: str | None = None,
    supplier: str | None = None,
    conforme: bool = True,
) -> int:
    # Direct insert for synthesis tests; bypasses intake so malformed rows can be staged.
    async with session_factory() as session:
        row = Observation(
            tenant_id=tenant_id,
            kind=kind,
            zone_id=zone_id,
            observed_at=observed_at,
            value=value,
            responsible=responsible,
            product=product,
            supplier=supplier,
            conforme=conforme,
        )
        session.add(row)
        await session.commit()
        return row.id

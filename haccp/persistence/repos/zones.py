from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from haccp.domain.models import Zone
from haccp.persistence.guards import tenant_predicate


async def get_zone(session: AsyncSession, *, tenant_id: str | None, zone_id: int) -> Zone | None:
    # A zone from another tenant resolves the same as a missing one.
    stmt = select(Zone).where(Zone.id == zone_id)
    if tenant_id is not None:
        stmt = stmt.where(tenant_predicate(Zone, tenant_id))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def zones_by_id(session: AsyncSession, *, tenant_id: str) -> dict[int, Zone]:
    result = await session.execute(select(Zone).where(tenant_predicate(Zone, tenant_id)))
    return {zone.id: zone for zone in result.scalars().all()}

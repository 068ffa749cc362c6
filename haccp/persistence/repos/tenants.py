from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from haccp.domain.models import Tenant


async def get_tenant(session: AsyncSession, tenant_id: str) -> Tenant | None:
    return await session.get(Tenant, tenant_id)


async def list_tenant_starts(session: AsyncSession) -> list[tuple[str, datetime | None]]:
    # Tenant ids with their registration time, so backfills never predate the tenant.
    result = await session.execute(select(Tenant.id, Tenant.created_at).order_by(Tenant.id))
    return [(row[0], row[1]) for row in result.all()]

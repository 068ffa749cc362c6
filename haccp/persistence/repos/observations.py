from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from haccp.core.errors import ConflictError
from haccp.domain.models import Observation
from haccp.persistence.guards import tenant_predicate


async def get_by_client_ref(
    session: AsyncSession,
    *,
    tenant_id: str | None,
    client_ref: str,
) -> Observation | None:
    stmt = select(Observation).where(Observation.client_ref == client_ref)
    if tenant_id is None:
        stmt = stmt.where(Observation.tenant_id.is_(None))
    else:
        stmt = stmt.where(tenant_predicate(Observation, tenant_id))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def append_observation(session: AsyncSession, observation: Observation) -> Observation:
    # Append exactly one row and commit; a failed insert leaves nothing behind.
    if observation.client_ref is not None:
        existing = await get_by_client_ref(
            session, tenant_id=observation.tenant_id, client_ref=observation.client_ref
        )
        if existing is not None:
            raise ConflictError("client_ref")
    session.add(observation)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        # client_ref is the only unique column on observations; a concurrent duplicate lands here.
        if observation.client_ref is not None:
            raise ConflictError("client_ref") from exc
        raise
    await session.refresh(observation)
    return observation


async def list_for_window(
    session: AsyncSession,
    *,
    tenant_id: str,
    start: datetime,
    end: datetime,
) -> list[Observation]:
    # Most recent first; id breaks ties so repeated queries return the same order.
    stmt = (
        select(Observation)
        .where(
            tenant_predicate(Observation, tenant_id),
            Observation.observed_at >= start,
            Observation.observed_at < end,
        )
        .order_by(Observation.observed_at.desc(), Observation.id.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_recent(
    session: AsyncSession,
    *,
    tenant_id: str,
    kind: str | None = None,
    limit: int = 50,
) -> list[Observation]:
    stmt = select(Observation).where(tenant_predicate(Observation, tenant_id))
    if kind:
        stmt = stmt.where(Observation.kind == kind)
    stmt = stmt.order_by(Observation.observed_at.desc(), Observation.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())

from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from haccp.core.config import get_settings
from haccp.domain.period import Period
from haccp.services.conformity import PolicyTable
from haccp.services.retention.scheduler import RetentionScheduler


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request from the app-owned factory; closed on success or error.
    async with request.app.state.session_factory() as session:
        yield session


def get_policy(request: Request) -> PolicyTable:
    return request.app.state.policy


def get_scheduler(request: Request) -> RetentionScheduler:
    return request.app.state.scheduler


def _auth_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
    )


def optional_tenant_id(request: Request) -> str | None:
    # Credentials are verified upstream; the gateway forwards the tenant in X-Tenant-Id.
    tenant_id = (request.headers.get("X-Tenant-Id") or "").strip() or None
    request.state.tenant_id = tenant_id
    return tenant_id


def require_tenant(tenant_id: str | None = Depends(optional_tenant_id)) -> str:
    if not tenant_id:
        raise _auth_error("X-Tenant-Id header is required")
    return tenant_id


def parse_period(period: str) -> Period:
    try:
        return Period.parse(period)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_PERIOD", "message": str(exc)},
        ) from exc


def list_limit(limit: int | None = None) -> int:
    settings = get_settings()
    if limit is None:
        return settings.observation_list_default_limit
    return max(1, min(int(limit), settings.observation_list_max_limit))

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from haccp.apps.api.deps import get_db
from haccp.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from haccp.apps.api.response import SuccessEnvelope, error_response, success_response


router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    ts: str
    scheduler_running: bool | None = None


@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(request: Request) -> dict:
    scheduler = getattr(request.app.state, "scheduler", None)
    payload = HealthResponse(
        status="ok",
        ts=datetime.now(timezone.utc).isoformat(),
        scheduler_running=scheduler.running if scheduler is not None else None,
    )
    return success_response(request=request, data=payload)


@router.get("/health/db", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health_db(request: Request, db: AsyncSession = Depends(get_db)):
    # Report storage reachability without leaking driver error text.
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        payload = error_response(request=request, code="DATABASE_UNAVAILABLE", message="Database unreachable")
        return JSONResponse(content=payload, status_code=503)
    payload = HealthResponse(status="ok", ts=datetime.now(timezone.utc).isoformat())
    return success_response(request=request, data=payload)

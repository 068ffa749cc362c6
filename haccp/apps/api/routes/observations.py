from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from haccp.apps.api.deps import get_db, get_policy, list_limit, optional_tenant_id, require_tenant
from haccp.apps.api.openapi import OBSERVATION_ERROR_RESPONSES
from haccp.apps.api.response import SuccessEnvelope, success_response
from haccp.core.clock import ensure_utc
from haccp.domain.models import Observation
from haccp.services.conformity import PolicyTable
from haccp.services.intake import ObservationIntake


router = APIRouter(prefix="/observations", tags=["observations"], responses=OBSERVATION_ERROR_RESPONSES)


class ObservationResponse(BaseModel):
    id: int
    tenant_id: str | None
    kind: str
    zone_id: int | None
    observed_at: str
    value: float | None
    responsible: str | None
    product: str | None
    supplier: str | None
    photo_url: str | None
    client_ref: str | None
    conforme: bool


def _to_payload(row: Observation) -> ObservationResponse:
    return ObservationResponse(
        id=row.id,
        tenant_id=row.tenant_id,
        kind=row.kind,
        zone_id=row.zone_id,
        observed_at=ensure_utc(row.observed_at).isoformat(),
        value=row.value,
        responsible=row.responsible,
        product=row.product,
        supplier=row.supplier,
        photo_url=row.photo_url,
        client_ref=row.client_ref,
        conforme=row.conforme,
    )


@router.post(
    "/{kind}",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[ObservationResponse] | ObservationResponse,
)
async def create_observation(
    kind: str,
    request: Request,
    fields: dict[str, Any] = Body(...),
    tenant_id: str | None = Depends(optional_tenant_id),
    policy: PolicyTable = Depends(get_policy),
    db: AsyncSession = Depends(get_db),
):
    # Conformity is computed server-side; any "conforme" in the body is ignored for readings.
    row = await ObservationIntake(db, policy).ingest(kind, fields, tenant_id=tenant_id)
    return success_response(request=request, data=_to_payload(row))


@router.get("", response_model=SuccessEnvelope[list[ObservationResponse]] | list[ObservationResponse])
async def list_observations(
    request: Request,
    kind: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    tenant_id: str = Depends(require_tenant),
    policy: PolicyTable = Depends(get_policy),
    db: AsyncSession = Depends(get_db),
):
    rows = await ObservationIntake(db, policy).list_recent(tenant_id, kind=kind, limit=list_limit(limit))
    return success_response(request=request, data=[_to_payload(row) for row in rows])

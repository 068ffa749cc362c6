from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel

from haccp.apps.api.deps import get_scheduler, parse_period, require_tenant
from haccp.apps.api.openapi import REPORT_ERROR_RESPONSES
from haccp.apps.api.response import SuccessEnvelope, success_response
from haccp.domain.period import Period
from haccp.services.archive import ArchiveEntry, ArchiveKey, ArchiveStore, blob_name
from haccp.services.retention import RetentionScheduler


router = APIRouter(prefix="/reports", tags=["reports"], responses=REPORT_ERROR_RESPONSES)

_TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


class ArchiveEntryResponse(BaseModel):
    tenant_id: str
    period: str
    name: str
    size_bytes: int
    created_at: str


def _entry_payload(entry: ArchiveEntry) -> ArchiveEntryResponse:
    return ArchiveEntryResponse(
        tenant_id=entry.tenant_id,
        period=entry.period.key,
        name=entry.name,
        size_bytes=entry.size_bytes,
        created_at=entry.created_at.isoformat(),
    )


def _sorted_entries(archive: ArchiveStore, tenant_id: str) -> list[ArchiveEntry]:
    # Listing walks the filesystem, so it runs off the event loop.
    return sorted(archive.list(tenant_id), key=lambda entry: entry.period)


def _download(content: bytes, *, filename: str, media_type: str = _TEXT_MEDIA_TYPE) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{period}/generate", response_class=Response)
async def generate_report(
    target: Period = Depends(parse_period),
    tenant_id: str = Depends(require_tenant),
    scheduler: RetentionScheduler = Depends(get_scheduler),
) -> Response:
    # Typed QueryError/RenderError/PersistError propagate to the domain error handler.
    document = await scheduler.generate_now(tenant_id, target)
    return _download(document.content, filename=document.filename, media_type=document.media_type)


@router.get("", response_model=SuccessEnvelope[list[ArchiveEntryResponse]] | list[ArchiveEntryResponse])
async def list_reports(
    request: Request,
    tenant_id: str = Depends(require_tenant),
    scheduler: RetentionScheduler = Depends(get_scheduler),
):
    entries = await asyncio.to_thread(_sorted_entries, scheduler.archive, tenant_id)
    return success_response(request=request, data=[_entry_payload(entry) for entry in entries])


@router.get("/{period}", response_class=Response)
async def download_report(
    target: Period = Depends(parse_period),
    tenant_id: str = Depends(require_tenant),
    scheduler: RetentionScheduler = Depends(get_scheduler),
) -> Response:
    content = await asyncio.to_thread(scheduler.archive.get, ArchiveKey(tenant_id, target))
    if content is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "NOT_FOUND", "message": "No archived report for this period"},
        )
    return _download(content, filename=blob_name(target))

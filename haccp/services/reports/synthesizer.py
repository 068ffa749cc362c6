from __future__ import annotations

from dataclasses import dataclass, field
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from haccp.core.errors import QueryError, RenderError
from haccp.domain.models import Observation, Zone
from haccp.domain.period import Period
from haccp.persistence.repos.observations import list_for_window
from haccp.persistence.repos.tenants import get_tenant
from haccp.persistence.repos.zones import zones_by_id
from haccp.services.reports.render import (
    UNKNOWN_ZONE,
    Document,
    DocumentRenderer,
    ReportRecord,
    TextReportRenderer,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportSource:
    # Everything a render needs, fetched in one read so rendering never touches storage.
    tenant_id: str
    tenant_label: str
    period: Period
    observations: list[Observation]
    zones: dict[int, Zone] = field(default_factory=dict)


class ReportSynthesizer:
    """Builds the monthly compliance document for one tenant.

    ``fetch`` and ``render`` are separate so callers can track which step
    failed; ``synthesize`` runs both.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        renderer: DocumentRenderer | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._renderer = renderer or TextReportRenderer()

    async def fetch(self, tenant_id: str, period: Period) -> ReportSource:
        try:
            async with self._session_factory() as session:
                tenant = await get_tenant(session, tenant_id)
                rows = await list_for_window(session, tenant_id=tenant_id, start=period.start, end=period.end)
                zones = await zones_by_id(session, tenant_id=tenant_id)
        except SQLAlchemyError as exc:
            raise QueryError(f"observation query failed for tenant={tenant_id} period={period}") from exc
        return ReportSource(
            tenant_id=tenant_id,
            tenant_label=tenant.name if tenant is not None and tenant.name else tenant_id,
            period=period,
            observations=rows,
            zones=zones,
        )

    def render(self, source: ReportSource) -> Document:
        renderer = self._renderer
        try:
            lines = [renderer.title(source.tenant_label, source.period)]
        except Exception as exc:  # noqa: BLE001 - any title failure means no document can be built
            raise RenderError("cannot render report title", structural=True) from exc

        skipped = 0
        body: list[str] = []
        for row in source.observations:
            zone = source.zones.get(row.zone_id) if row.zone_id is not None else None
            record = ReportRecord(
                id=row.id,
                kind=row.kind,
                observed_at=row.observed_at,
                responsible=row.responsible,
                zone_name=zone.name if zone is not None else UNKNOWN_ZONE,
                product=row.product,
                supplier=row.supplier,
                value=row.value,
                conforme=bool(row.conforme),
            )
            try:
                body.append(renderer.line(record))
            except RenderError as exc:
                if exc.structural:
                    raise
                skipped += 1
                logger.warning(
                    "report_record_skipped tenant=%s period=%s record_id=%s reason=%s",
                    source.tenant_id,
                    source.period,
                    row.id,
                    exc,
                )
            except (TypeError, ValueError) as exc:
                skipped += 1
                logger.warning(
                    "report_record_skipped tenant=%s period=%s record_id=%s",
                    source.tenant_id,
                    source.period,
                    row.id,
                    exc_info=exc,
                )

        if not source.observations:
            body.append(renderer.empty_marker())
        if skipped:
            body.append(renderer.skipped_marker(skipped))
        lines.extend(body)

        try:
            content = renderer.encode(lines)
        except Exception as exc:  # noqa: BLE001 - encoding failure leaves nothing publishable
            raise RenderError("cannot encode report document", structural=True) from exc
        return Document(
            tenant_id=source.tenant_id,
            period=source.period,
            lines=tuple(lines),
            content=content,
            observation_count=len(source.observations),
            skipped=skipped,
        )

    async def synthesize(self, tenant_id: str, period: Period) -> Document:
        source = await self.fetch(tenant_id, period)
        return self.render(source)

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import math
from typing import Protocol, Sequence

from haccp.core.clock import ensure_utc
from haccp.core.errors import RenderError
from haccp.domain.period import Period
from haccp.services.archive.store import blob_name


UNKNOWN_ZONE = "unknown"
NO_DATA_MARKER = "No data for this period."
_KINDS_WITH_VALUE = {"temperature"}


@dataclass(frozen=True)
class ReportRecord:
    # Flattened observation as seen by a renderer; zone already resolved to a display name.
    id: int
    kind: str
    observed_at: datetime | None
    responsible: str | None
    zone_name: str
    product: str | None
    supplier: str | None
    value: float | None
    conforme: bool


@dataclass(frozen=True)
class Document:
    tenant_id: str
    period: Period
    lines: tuple[str, ...]
    content: bytes
    observation_count: int
    skipped: int = 0
    media_type: str = "text/plain; charset=utf-8"

    @property
    def filename(self) -> str:
        return blob_name(self.period)


class DocumentRenderer(Protocol):
    def title(self, tenant_label: str, period: Period) -> str:
        ...

    def line(self, record: ReportRecord) -> str:
        ...

    def empty_marker(self) -> str:
        ...

    def skipped_marker(self, skipped: int) -> str:
        ...

    def encode(self, lines: Sequence[str]) -> bytes:
        ...


class TextReportRenderer:
    """Plain UTF-8 renderer: one ``|``-separated line per observation."""

    def title(self, tenant_label: str, period: Period) -> str:
        return f"HACCP report - {tenant_label} - {period.key}"

    def line(self, record: ReportRecord) -> str:
        if record.observed_at is None:
            raise RenderError("observation has no timestamp", record_id=record.id)
        value = record.value
        if value is not None and not math.isfinite(float(value)):
            raise RenderError("observation value is not finite", record_id=record.id)
        if value is None and record.kind in _KINDS_WITH_VALUE:
            raise RenderError("temperature reading has no value", record_id=record.id)

        if record.kind == "delivery":
            product = " / ".join(part for part in (record.supplier, record.product) if part) or "-"
        else:
            product = record.product or "-"
        value_text = f"{float(value):.1f} °C" if value is not None else "-"
        status = "OK" if record.conforme else "NON-CONFORMING"
        return " | ".join(
            [
                ensure_utc(record.observed_at).strftime("%Y-%m-%d"),
                record.kind,
                record.responsible or "?",
                record.zone_name,
                product,
                value_text,
                status,
            ]
        )

    def empty_marker(self) -> str:
        return NO_DATA_MARKER

    def skipped_marker(self, skipped: int) -> str:
        return f"{skipped} record(s) could not be rendered."

    def encode(self, lines: Sequence[str]) -> bytes:
        return ("\n".join(lines) + "\n").encode("utf-8")

from __future__ import annotations

from haccp.services.reports.render import (
    NO_DATA_MARKER,
    UNKNOWN_ZONE,
    Document,
    DocumentRenderer,
    ReportRecord,
    TextReportRenderer,
)
from haccp.services.reports.synthesizer import ReportSource, ReportSynthesizer


__all__ = [
    "NO_DATA_MARKER",
    "UNKNOWN_ZONE",
    "Document",
    "DocumentRenderer",
    "ReportRecord",
    "ReportSource",
    "ReportSynthesizer",
    "TextReportRenderer",
]

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging

from haccp.core.config import RETENTION_MONTHS
from haccp.domain.period import month_distance
from haccp.services.archive.store import ArchiveKey, ArchiveStore


logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    examined: int = 0
    kept: int = 0
    deleted: list[ArchiveKey] = field(default_factory=list)
    failed: list[ArchiveKey] = field(default_factory=list)
    dry_run: bool = False


def is_expired(distance_months: int, retention_months: int = RETENTION_MONTHS) -> bool:
    return distance_months >= retention_months


def sweep_archive(
    archive: ArchiveStore,
    *,
    now: datetime,
    retention_months: int = RETENTION_MONTHS,
    dry_run: bool = False,
) -> SweepReport:
    """Delete every archive entry whose period is at least ``retention_months`` old.

    Works on the listing taken at sweep start; entries published meanwhile are
    left for the next sweep. A failed deletion is logged and the sweep moves on.
    """
    report = SweepReport(dry_run=dry_run)
    snapshot = list(archive.list())
    for entry in snapshot:
        report.examined += 1
        distance = month_distance(entry.period, now)
        if not is_expired(distance, retention_months):
            report.kept += 1
            continue
        if dry_run:
            report.deleted.append(entry.key)
            continue
        try:
            archive.delete(entry.key)
        except Exception as exc:  # noqa: BLE001 - one bad entry must not stop the sweep
            report.failed.append(entry.key)
            logger.warning(
                "archive_purge_failed tenant=%s period=%s step=sweep",
                entry.tenant_id,
                entry.period,
                exc_info=exc,
            )
            continue
        report.deleted.append(entry.key)
        logger.info(
            "archive_entry_purged tenant=%s period=%s age_months=%s",
            entry.tenant_id,
            entry.period,
            distance,
        )
    return report

from __future__ import annotations

import argparse
from datetime import datetime, timezone

from haccp.core.config import RETENTION_MONTHS, get_settings
from haccp.core.logging import configure_logging
from haccp.services.archive import LocalArchiveStore
from haccp.services.retention import sweep_archive


def _run_prune(archive_dir: str | None, dry_run: bool) -> None:
    # Apply the fixed retention window to the archive outside the scheduled cycle.
    settings = get_settings()
    archive = LocalArchiveStore(archive_dir or settings.archive_dir)
    report = sweep_archive(
        archive,
        now=datetime.now(timezone.utc),
        retention_months=RETENTION_MONTHS,
        dry_run=dry_run,
    )
    if dry_run:
        print("dry_run=true")
    for key in report.deleted:
        print(f"{'would_purge' if dry_run else 'purged'}={key}")
    print(f"examined={report.examined} kept={report.kept} purged={len(report.deleted)} failed={len(report.failed)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Purge archived HACCP reports beyond retention")
    parser.add_argument("--archive-dir", default=None)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    configure_logging()
    _run_prune(args.archive_dir, args.dry_run)


if __name__ == "__main__":
    main()

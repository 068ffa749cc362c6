from __future__ import annotations

import argparse
import asyncio

from haccp.core.config import get_settings
from haccp.core.logging import configure_logging
from haccp.domain.period import Period
from haccp.persistence.db import build_engine, build_session_factory
from haccp.services.archive import LocalArchiveStore, build_archive_locks
from haccp.services.retention import RetentionScheduler


async def _run_generate(tenant_id: str, period: Period, archive_dir: str | None) -> None:
    # Publish one (tenant, period) report through the same locked path as the scheduler.
    settings = get_settings()
    engine = build_engine(settings)
    locks, lock_redis = build_archive_locks(settings)
    try:
        scheduler = RetentionScheduler(
            session_factory=build_session_factory(engine),
            archive=LocalArchiveStore(archive_dir or settings.archive_dir),
            locks=locks,
            settings=settings,
        )
        document = await scheduler.generate_now(tenant_id, period)
    finally:
        if lock_redis is not None:
            await lock_redis.aclose()
        await engine.dispose()
    print(f"published={tenant_id}/{document.filename}")
    print(f"observations={document.observation_count} skipped={document.skipped}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate and archive a monthly HACCP report")
    parser.add_argument("--tenant-id", required=True)
    parser.add_argument("--period", required=True, help="Calendar month as YYYY-MM")
    parser.add_argument("--archive-dir", default=None)
    args = parser.parse_args()

    try:
        period = Period.parse(args.period)
    except ValueError as exc:
        parser.error(str(exc))
    configure_logging()
    asyncio.run(_run_generate(args.tenant_id, period, args.archive_dir))


if __name__ == "__main__":
    main()

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from haccp.core.config import get_settings
from haccp.core.logging import configure_logging
from haccp.domain.period import Period
from haccp.persistence.db import build_engine, build_session_factory
from haccp.services.archive import LocalArchiveStore, build_archive_locks
from haccp.services.retention import RetentionScheduler


logger = logging.getLogger(__name__)


async def run_retention_cycle(ctx) -> dict:
    # Monthly firing in worker mode; the scheduler serializes overlapping cycles itself.
    scheduler: RetentionScheduler = ctx["scheduler"]
    report = await scheduler.run_cycle()
    return {
        "period": report.period.key,
        "tenants": len({outcome.tenant_id for outcome in report.outcomes}),
        "steps": len(report.outcomes),
        "failed": [f"{outcome.tenant_id}/{outcome.period}" for outcome in report.failed],
        "purged": [str(key) for key in report.sweep.deleted] if report.sweep else [],
        "sweep_error": report.sweep_error,
    }


async def generate_report(ctx, tenant_id: str, period: str) -> dict:
    # Enqueued on-demand publication; typed failures surface as job errors.
    scheduler: RetentionScheduler = ctx["scheduler"]
    document = await scheduler.generate_now(tenant_id, Period.parse(period))
    return {
        "tenant_id": tenant_id,
        "period": document.period.key,
        "observations": document.observation_count,
        "skipped": document.skipped,
    }


async def _startup(ctx) -> None:
    # Own the engine for the worker's lifetime; only the archive lock is shared with the API, through Redis.
    configure_logging()
    settings = get_settings()
    engine = build_engine(settings)
    locks, lock_redis = build_archive_locks(settings, shared=True)
    ctx["engine"] = engine
    ctx["lock_redis"] = lock_redis
    ctx["scheduler"] = RetentionScheduler(
        session_factory=build_session_factory(engine),
        archive=LocalArchiveStore(settings.archive_dir),
        locks=locks,
        settings=settings,
    )
    logger.info("retention_worker_started archive_dir=%s", settings.archive_dir)


async def _shutdown(ctx) -> None:
    lock_redis = ctx.get("lock_redis")
    if lock_redis is not None:
        await lock_redis.aclose()
    engine = ctx.get("engine")
    if engine is not None:
        await engine.dispose()


class WorkerSettings:
    # Keep worker settings as class attributes for ARQ CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.retention_queue_name
    functions = [generate_report]
    cron_jobs = [
        cron(
            run_retention_cycle,
            day=min(max(1, int(settings.report_schedule_day)), 28),
            hour=min(max(0, int(settings.report_schedule_hour)), 23),
            minute=0,
            timeout=max(60, int(settings.report_cycle_timeout_s) * 4),
            unique=True,
        )
    ]
    on_startup = _startup
    on_shutdown = _shutdown

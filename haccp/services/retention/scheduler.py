from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from haccp.core.clock import Clock, SystemClock, ensure_utc
from haccp.core.config import RETENTION_MONTHS, Settings, get_settings
from haccp.core.errors import HaccpError
from haccp.domain.period import Period
from haccp.persistence.repos.tenants import list_tenant_starts
from haccp.services.archive.locks import KeyedLocks
from haccp.services.archive.store import ArchiveEntry, ArchiveKey, ArchiveStore
from haccp.services.reports.render import Document
from haccp.services.reports.synthesizer import ReportSynthesizer
from haccp.services.retention.sweep import SweepReport, sweep_archive


logger = logging.getLogger(__name__)


class CycleState(str, Enum):
    IDLE = "idle"
    QUERYING = "querying"
    RENDERING = "rendering"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[CycleState, frozenset[CycleState]] = {
    CycleState.IDLE: frozenset({CycleState.QUERYING}),
    CycleState.QUERYING: frozenset({CycleState.RENDERING, CycleState.FAILED}),
    CycleState.RENDERING: frozenset({CycleState.PERSISTING, CycleState.FAILED}),
    CycleState.PERSISTING: frozenset({CycleState.DONE, CycleState.FAILED}),
    CycleState.DONE: frozenset(),
    CycleState.FAILED: frozenset(),
}


@dataclass
class TenantCycleOutcome:
    # One (tenant, period) step of a cycle; FAILED and DONE are terminal.
    tenant_id: str
    period: Period
    state: CycleState = CycleState.IDLE
    failed_step: CycleState | None = None
    error: str | None = None
    entry: ArchiveEntry | None = None

    def advance(self, target: CycleState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"invalid cycle transition {self.state.value} -> {target.value}")
        self.state = target

    def fail(self, error: str) -> None:
        if self.state in (CycleState.DONE, CycleState.FAILED):
            return
        # Failing from IDLE means the step never started querying.
        self.failed_step = self.state if self.state is not CycleState.IDLE else CycleState.QUERYING
        self.state = CycleState.FAILED
        self.error = error


@dataclass
class CycleReport:
    started_at: datetime
    period: Period
    outcomes: list[TenantCycleOutcome] = field(default_factory=list)
    sweep: SweepReport | None = None
    sweep_error: str | None = None
    tenant_listing_error: str | None = None

    @property
    def failed(self) -> list[TenantCycleOutcome]:
        return [outcome for outcome in self.outcomes if outcome.state is CycleState.FAILED]


def _published_periods(archive: ArchiveStore, tenant_id: str) -> set[Period]:
    return {entry.period for entry in archive.list(tenant_id)}


def next_boundary(now: datetime, *, day: int = 1, hour: int = 3) -> datetime:
    # First firing strictly after "now"; day is clamped to 28 so it exists in every month.
    now = ensure_utc(now)
    day = min(max(1, int(day)), 28)
    hour = min(max(0, int(hour)), 23)
    period = Period.containing(now)
    candidate = datetime(period.year, period.month, day, hour, tzinfo=timezone.utc)
    if candidate <= now:
        following = period.next()
        candidate = datetime(following.year, following.month, day, hour, tzinfo=timezone.utc)
    return candidate


class RetentionScheduler:
    """Monthly report publication and archive retention.

    Constructed explicitly with its storage, archive and clock; ``start`` and
    ``stop`` own the single background timer task. Each firing synthesizes the
    just-completed month for every tenant, backfills any month in the retention
    window that a failed or missed firing left unpublished, then sweeps expired
    archive entries whatever the synthesis outcome was.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        archive: ArchiveStore,
        synthesizer: ReportSynthesizer | None = None,
        clock: Clock | None = None,
        locks: KeyedLocks | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._archive = archive
        self._synthesizer = synthesizer or ReportSynthesizer(session_factory)
        self._clock = clock or SystemClock()
        self._locks = locks or KeyedLocks()
        self._settings = settings or get_settings()
        self._cycle_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None

    @property
    def archive(self) -> ArchiveStore:
        return self._archive

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_forever(), name="haccp-retention-scheduler")
        logger.info("retention_scheduler_started")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("retention_scheduler_stopped")

    async def _run_forever(self) -> None:
        settings = self._settings
        while True:
            deadline = next_boundary(
                self._clock.now(),
                day=settings.report_schedule_day,
                hour=settings.report_schedule_hour,
            )
            logger.info("retention_cycle_scheduled at=%s", deadline.isoformat())
            await self._clock.sleep_until(deadline)
            try:
                await self.run_cycle(now=self._clock.now())
            except Exception:  # noqa: BLE001 - keep the timer alive; the next boundary retries
                logger.exception("retention cycle failed")

    async def run_cycle(self, *, now: datetime | None = None, period: Period | None = None) -> CycleReport:
        async with self._cycle_lock:
            now = ensure_utc(now or self._clock.now())
            period = period or Period.containing(now).previous()
            report = CycleReport(started_at=now, period=period)

            try:
                async with self._session_factory() as session:
                    tenants = await list_tenant_starts(session)
            except SQLAlchemyError as exc:
                tenants = []
                report.tenant_listing_error = str(exc)
                logger.warning("retention_cycle_tenant_listing_failed period=%s step=querying", period, exc_info=exc)

            steps: list[tuple[str, Period]] = []
            for tenant_id, created_at in tenants:
                pending = await self._pending_periods(tenant_id, created_at, period, now)
                steps.extend((tenant_id, pending_period) for pending_period in pending)

            semaphore = asyncio.Semaphore(max(1, int(self._settings.report_max_concurrency)))

            async def _bounded(tenant_id: str, step_period: Period) -> TenantCycleOutcome:
                async with semaphore:
                    return await self._run_tenant_step(tenant_id, step_period)

            report.outcomes = list(await asyncio.gather(*(_bounded(t, p) for t, p in steps)))

            # Synthesis is complete (done or failed) for every tenant before the sweep starts.
            try:
                report.sweep = await self.sweep(now=now)
            except Exception as exc:  # noqa: BLE001 - sweep failure is terminal for this cycle only
                report.sweep_error = str(exc)
                logger.exception("retention_sweep_failed period=%s step=sweep", period)

            logger.info(
                "retention_cycle_finished period=%s tenants=%s steps=%s failed=%s purged=%s",
                period,
                len(tenants),
                len(report.outcomes),
                len(report.failed),
                len(report.sweep.deleted) if report.sweep else 0,
            )
            return report

    async def _pending_periods(
        self,
        tenant_id: str,
        created_at: datetime | None,
        period: Period,
        now: datetime,
    ) -> list[Period]:
        # The cycle's period is always republished; earlier months still inside the
        # retention window are backfilled when a prior cycle failed or never fired.
        oldest = Period.containing(now)
        for _ in range(RETENTION_MONTHS - 1):
            oldest = oldest.previous()
        if created_at is not None:
            oldest = max(oldest, Period.containing(ensure_utc(created_at)))
        published = await asyncio.to_thread(_published_periods, self._archive, tenant_id)
        pending: list[Period] = []
        candidate = oldest
        while candidate < period:
            if candidate not in published:
                pending.append(candidate)
            candidate = candidate.next()
        if pending:
            logger.info(
                "retention_backfill_pending tenant=%s periods=%s",
                tenant_id,
                ",".join(p.key for p in pending),
            )
        pending.append(period)
        return pending

    async def _run_tenant_step(self, tenant_id: str, period: Period) -> TenantCycleOutcome:
        outcome = TenantCycleOutcome(tenant_id=tenant_id, period=period)
        timeout_s = float(self._settings.report_cycle_timeout_s)
        try:
            await asyncio.wait_for(self._synthesize_and_publish(outcome), timeout=timeout_s if timeout_s > 0 else None)
        except asyncio.TimeoutError:
            step = outcome.state
            outcome.fail("timeout")
            logger.warning(
                "retention_step_timed_out tenant=%s period=%s step=%s timeout_s=%s",
                tenant_id,
                period,
                step.value,
                timeout_s,
            )
        except HaccpError as exc:
            step = outcome.state
            outcome.fail(f"{type(exc).__name__}: {exc}")
            logger.warning(
                "retention_step_failed tenant=%s period=%s step=%s error=%s",
                tenant_id,
                period,
                step.value,
                type(exc).__name__,
                exc_info=exc,
            )
        except Exception as exc:  # noqa: BLE001 - isolate one tenant's failure from the others
            step = outcome.state
            outcome.fail(f"{type(exc).__name__}: {exc}")
            logger.exception("retention_step_crashed tenant=%s period=%s step=%s", tenant_id, period, step.value)
        return outcome

    async def _synthesize_and_publish(self, outcome: TenantCycleOutcome) -> Document:
        key = ArchiveKey(outcome.tenant_id, outcome.period)
        # Every writer for this (tenant, period) goes through the same lock before put.
        async with self._locks.hold(key):
            outcome.advance(CycleState.QUERYING)
            source = await self._synthesizer.fetch(outcome.tenant_id, outcome.period)
            outcome.advance(CycleState.RENDERING)
            document = self._synthesizer.render(source)
            outcome.advance(CycleState.PERSISTING)
            outcome.entry = await asyncio.to_thread(self._archive.put, key, document.content)
            outcome.advance(CycleState.DONE)
        logger.info(
            "report_published tenant=%s period=%s observations=%s skipped=%s",
            outcome.tenant_id,
            outcome.period,
            document.observation_count,
            document.skipped,
        )
        return document

    async def generate_now(self, tenant_id: str, period: Period) -> Document:
        """On-demand synthesis and publication; waits behind any writer holding the same key.

        Raises the typed ``QueryError``, ``RenderError`` or ``PersistError`` on failure.
        """
        outcome = TenantCycleOutcome(tenant_id=tenant_id, period=period)
        try:
            return await self._synthesize_and_publish(outcome)
        except HaccpError:
            step = outcome.state
            outcome.fail("on_demand")
            logger.warning("report_generate_failed tenant=%s period=%s step=%s", tenant_id, period, step.value)
            raise

    async def sweep(self, *, now: datetime | None = None, dry_run: bool = False) -> SweepReport:
        return await asyncio.to_thread(
            sweep_archive,
            self._archive,
            now=ensure_utc(now or self._clock.now()),
            retention_months=RETENTION_MONTHS,
            dry_run=dry_run,
        )

from __future__ import annotations

from haccp.services.retention.scheduler import (
    CycleReport,
    CycleState,
    RetentionScheduler,
    TenantCycleOutcome,
    next_boundary,
)
from haccp.services.retention.sweep import SweepReport, is_expired, sweep_archive


__all__ = [
    "CycleReport",
    "CycleState",
    "RetentionScheduler",
    "SweepReport",
    "TenantCycleOutcome",
    "is_expired",
    "next_boundary",
    "sweep_archive",
]

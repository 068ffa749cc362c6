from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    # Injected wherever "now" or waiting matters so tests can drive time deterministically.
    def now(self) -> datetime:
        ...

    async def sleep_until(self, deadline: datetime) -> None:
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep_until(self, deadline: datetime) -> None:
        # Sleep in bounded slices so wall-clock adjustments are picked up.
        while True:
            remaining = (deadline - self.now()).total_seconds()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, 3600.0))


def ensure_utc(moment: datetime) -> datetime:
    # Naive timestamps are treated as UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)

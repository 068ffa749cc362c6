from __future__ import annotations

import asyncio
from datetime import datetime, timedelta


class FakeClock:
    """Deterministic clock: ``sleep_until`` jumps straight to the deadline.

    After ``max_wakeups`` returns, further sleeps block until cancelled so a
    started scheduler settles instead of racing through future months.
    """

    def __init__(self, now: datetime, *, max_wakeups: int | None = None) -> None:
        self._now = now
        self._max_wakeups = max_wakeups
        self.deadlines: list[datetime] = []

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        self._now = self._now + delta

    async def sleep_until(self, deadline: datetime) -> None:
        self.deadlines.append(deadline)
        if self._max_wakeups is not None and len(self.deadlines) > self._max_wakeups:
            await asyncio.Event().wait()
        if deadline > self._now:
            self._now = deadline
        await asyncio.sleep(0)

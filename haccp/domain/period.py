from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import re


_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True, order=True)
class Period:
    """A calendar month, the unit reports are synthesized and retained by."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month out of range: {self.month}")
        if not 1 <= self.year <= 9999:
            raise ValueError(f"year out of range: {self.year}")

    @classmethod
    def parse(cls, raw: str) -> "Period":
        match = _PERIOD_RE.match(raw.strip())
        if match is None:
            raise ValueError(f"invalid period key: {raw!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def containing(cls, moment: datetime) -> "Period":
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        return cls(moment.year, moment.month)

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def ordinal(self) -> int:
        # Months since year 0, so differences are whole calendar months.
        return self.year * 12 + (self.month - 1)

    @property
    def start(self) -> datetime:
        return datetime(self.year, self.month, 1, tzinfo=timezone.utc)

    @property
    def end(self) -> datetime:
        return self.next().start

    def next(self) -> "Period":
        return _from_ordinal(self.ordinal + 1)

    def previous(self) -> "Period":
        return _from_ordinal(self.ordinal - 1)

    def months_until(self, other: "Period") -> int:
        return other.ordinal - self.ordinal

    def __str__(self) -> str:
        return self.key


def _from_ordinal(ordinal: int) -> Period:
    year, month_index = divmod(ordinal, 12)
    return Period(year, month_index + 1)


def month_distance(period: Period, now: datetime) -> int:
    # Age of a period key in whole calendar months relative to "now".
    return period.months_until(Period.containing(now))

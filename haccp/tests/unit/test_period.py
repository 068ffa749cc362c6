from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from haccp.domain.period import Period, month_distance


def test_parse_and_format_round_trip() -> None:
    period = Period.parse("2024-01")
    assert period == Period(2024, 1)
    assert str(period) == "2024-01"
    assert period.key == "2024-01"


@pytest.mark.parametrize("raw", ["2024-13", "2024-00", "2024-1", "24-01", "2024/01", "", "january"])
def test_parse_rejects_malformed_keys(raw: str) -> None:
    with pytest.raises(ValueError):
        Period.parse(raw)


def test_previous_and_next_cross_year_boundaries() -> None:
    assert Period(2024, 1).previous() == Period(2023, 12)
    assert Period(2023, 12).next() == Period(2024, 1)


def test_month_window_is_half_open_utc() -> None:
    period = Period(2024, 12)
    assert period.start == datetime(2024, 12, 1, tzinfo=timezone.utc)
    assert period.end == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_containing_converts_to_utc_first() -> None:
    paris_midnight = datetime(2024, 2, 1, 0, 30, tzinfo=timezone(timedelta(hours=1)))
    assert Period.containing(paris_midnight) == Period(2024, 1)


@pytest.mark.parametrize(
    ("key", "distance"),
    [
        ("2023-12", 14),
        ("2024-02", 12),
        ("2024-03", 11),
        ("2025-02", 0),
    ],
)
def test_month_distance_counts_whole_calendar_months(key: str, distance: int) -> None:
    now = datetime(2025, 2, 15, 12, 0, tzinfo=timezone.utc)
    assert month_distance(Period.parse(key), now) == distance


def test_periods_sort_chronologically() -> None:
    keys = ["2024-03", "2023-12", "2024-01"]
    assert [str(p) for p in sorted(Period.parse(k) for k in keys)] == ["2023-12", "2024-01", "2024-03"]

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from haccp.core.errors import PurgeError
from haccp.domain.period import Period
from haccp.services.archive import ArchiveKey, LocalArchiveStore
from haccp.services.retention import is_expired, sweep_archive


NOW = datetime(2025, 2, 10, 3, 0, tzinfo=timezone.utc)


class _FailingDeleteStore(LocalArchiveStore):
    def __init__(self, base_dir: Path, failing: ArchiveKey) -> None:
        super().__init__(base_dir)
        self._failing = failing

    def delete(self, key: ArchiveKey) -> bool:
        if key == self._failing:
            raise PurgeError(f"cannot delete {key}")
        return super().delete(key)


def _populate(store: LocalArchiveStore, *keys: str) -> None:
    for key in keys:
        store.put(ArchiveKey("t1", Period.parse(key)), key.encode())


def test_is_expired_at_exactly_the_retention_window() -> None:
    assert is_expired(12) is True
    assert is_expired(11) is False
    assert is_expired(14) is True


def test_sweep_deletes_entries_twelve_or_more_months_old(tmp_path: Path) -> None:
    store = LocalArchiveStore(tmp_path)
    _populate(store, "2023-12", "2024-02", "2024-03")

    report = sweep_archive(store, now=NOW)

    assert sorted(str(key.period) for key in report.deleted) == ["2023-12", "2024-02"]
    assert report.examined == 3
    assert report.kept == 1
    assert [str(e.period) for e in store.list()] == ["2024-03"]


def test_sweep_never_deletes_names_that_do_not_parse(tmp_path: Path) -> None:
    store = LocalArchiveStore(tmp_path)
    _populate(store, "2020-01")
    tenant_dir = store.path_for(ArchiveKey("t1", Period(2020, 1))).parent
    stray = tenant_dir / "2019-01-Rapport_HACCP.pdf"
    stray.write_text("not ours")

    report = sweep_archive(store, now=NOW)

    assert [str(key.period) for key in report.deleted] == ["2020-01"]
    assert stray.exists()


def test_dry_run_reports_without_deleting(tmp_path: Path) -> None:
    store = LocalArchiveStore(tmp_path)
    _populate(store, "2023-12", "2024-03")

    report = sweep_archive(store, now=NOW, dry_run=True)

    assert report.dry_run is True
    assert [str(key.period) for key in report.deleted] == ["2023-12"]
    assert len(list(store.list())) == 2


def test_failed_deletion_is_logged_and_sweep_continues(tmp_path: Path, caplog) -> None:
    failing = ArchiveKey("t1", Period(2023, 1))
    store = _FailingDeleteStore(tmp_path, failing)
    _populate(store, "2023-01", "2023-02", "2023-03")

    report = sweep_archive(store, now=NOW)

    assert report.failed == [failing]
    assert sorted(str(key.period) for key in report.deleted) == ["2023-02", "2023-03"]
    assert [str(e.period) for e in store.list()] == ["2023-01"]
    assert "archive_purge_failed" in caplog.text

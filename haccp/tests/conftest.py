from __future__ import annotations

from pathlib import Path

import pytest

from haccp.core.config import Settings, get_settings
from haccp.persistence.db import build_engine, build_session_factory, create_all
from haccp.services.archive import LocalArchiveStore
from haccp.services.conformity import load_policy_table


@pytest.fixture(autouse=True)
def reset_settings_cache(monkeypatch) -> None:
    # Each test starts from defaults; tests that need overrides set env vars and clear again.
    monkeypatch.delenv("ALLOW_UNSCOPED_WRITES", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'haccp.db'}",
        archive_dir=str(tmp_path / "archives"),
        retention_scheduler_enabled=False,
        report_cycle_timeout_s=5.0,
    )


@pytest.fixture
async def engine(settings: Settings):
    # Isolated SQLite database per test; disposed so no connection outlives its loop.
    engine = build_engine(settings)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def archive(settings: Settings) -> LocalArchiveStore:
    return LocalArchiveStore(settings.archive_dir)


@pytest.fixture
def policy(settings: Settings):
    return load_policy_table(settings)

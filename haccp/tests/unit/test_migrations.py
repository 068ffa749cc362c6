from __future__ import annotations

from contextlib import closing
from pathlib import Path
import sqlite3

from alembic import command
from alembic.config import Config


REPO_ROOT = Path(__file__).resolve().parents[3]


def _tables(db_path: Path) -> set[str]:
    with closing(sqlite3.connect(db_path)) as conn:
        return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}


def _indexes(db_path: Path) -> set[str]:
    with closing(sqlite3.connect(db_path)) as conn:
        return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")}


def test_migrations_upgrade_to_head_and_back(tmp_path: Path) -> None:
    db_path = tmp_path / "migrated.db"
    config = Config(str(REPO_ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")

    command.upgrade(config, "head")
    assert {"tenants", "zones", "observations", "alembic_version"} <= _tables(db_path)
    assert {"ix_observations_tenant_observed_at", "ix_zones_tenant_id"} <= _indexes(db_path)

    command.downgrade(config, "base")
    assert _tables(db_path).isdisjoint({"tenants", "zones", "observations"})

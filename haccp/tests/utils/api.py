from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from haccp.apps.api.main import create_app
from haccp.core.config import Settings
from haccp.services.archive import LocalArchiveStore
from haccp.tests.utils.clock import FakeClock


def build_test_app(settings: Settings, session_factory) -> FastAPI:
    # Inject the per-test database and archive; the scheduler timer stays off under ASGITransport.
    return create_app(
        settings,
        session_factory=session_factory,
        archive=LocalArchiveStore(settings.archive_dir),
        clock=FakeClock(datetime(2024, 2, 1, 3, 0, tzinfo=timezone.utc)),
    )


def client_for(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def tenant_headers(tenant_id: str = "T") -> dict[str, str]:
    return {"X-Tenant-Id": tenant_id}

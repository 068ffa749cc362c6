from __future__ import annotations

import pytest

from haccp.tests.utils.api import build_test_app, client_for


@pytest.mark.asyncio
async def test_v1_health_is_enveloped(settings, session_factory) -> None:
    app = build_test_app(settings, session_factory)
    async with client_for(app) as client:
        response = await client.get("/v1/health", headers={"X-Request-Id": "req-123"})

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["status"] == "ok"
    assert body["data"]["scheduler_running"] is False
    assert body["meta"] == {"request_id": "req-123", "api_version": "v1"}
    assert response.headers["X-Request-Id"] == "req-123"


@pytest.mark.asyncio
async def test_legacy_health_is_bare_and_marked_deprecated(settings, session_factory) -> None:
    app = build_test_app(settings, session_factory)
    async with client_for(app) as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["Deprecation"] == "true"
    assert "successor-version" in response.headers["Link"]


@pytest.mark.asyncio
async def test_db_health_reaches_storage(settings, session_factory) -> None:
    app = build_test_app(settings, session_factory)
    async with client_for(app) as client:
        response = await client.get("/v1/health/db")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "ok"

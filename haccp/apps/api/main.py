from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
import logging
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from haccp.apps.api.errors import (
    domain_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from haccp.apps.api.response import API_VERSION
from haccp.apps.api.routes.health import router as health_router
from haccp.apps.api.routes.observations import router as observations_router
from haccp.apps.api.routes.reports import router as reports_router
from haccp.core.clock import Clock, SystemClock
from haccp.core.config import Settings, get_settings
from haccp.core.errors import HaccpError
from haccp.core.logging import configure_logging
from haccp.persistence.db import build_engine, build_session_factory
from haccp.services.archive import ArchiveStore, LocalArchiveStore, build_archive_locks
from haccp.services.conformity import load_policy_table
from haccp.services.retention import RetentionScheduler


logger = logging.getLogger(__name__)

_LEGACY_SUNSET_DAYS = 90
_LEGACY_EXEMPT_PREFIXES = (
    "/v1",
    "/docs",
    "/openapi.json",
    "/redoc",
)


def _embedded_scheduler_enabled(settings: Settings) -> bool:
    return settings.retention_scheduler_enabled and settings.retention_scheduler_mode == "embedded"


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    archive: ArchiveStore | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Build the API with its engine, policy, archive and scheduler wired onto ``app.state``.

    Collaborators can be injected; anything not injected is built from settings.
    Serve with ``uvicorn haccp.apps.api.main:create_app --factory``.
    """
    configure_logging()
    settings = settings or get_settings()

    owned_engine: AsyncEngine | None = None
    if session_factory is None:
        owned_engine = build_engine(settings)
        session_factory = build_session_factory(owned_engine)
    archive = archive or LocalArchiveStore(settings.archive_dir)
    clock = clock or SystemClock()
    # Invalid conformity configuration fails here, before the app accepts traffic.
    policy = load_policy_table(settings)
    locks, lock_redis = build_archive_locks(settings)
    scheduler = RetentionScheduler(
        session_factory=session_factory,
        archive=archive,
        clock=clock,
        locks=locks,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if _embedded_scheduler_enabled(settings):
            await scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            if lock_redis is not None:
                await lock_redis.aclose()
            if owned_engine is not None:
                await owned_engine.dispose()

    app = FastAPI(title="HACCP Telemetry API", version=API_VERSION, docs_url=None, lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.policy = policy
    app.state.archive = archive
    app.state.clock = clock
    app.state.scheduler = scheduler

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        # Mark legacy routes with deprecation headers to guide clients to /v1.
        if not request.url.path.startswith(_LEGACY_EXEMPT_PREFIXES):
            sunset_at = datetime.now(timezone.utc) + timedelta(days=_LEGACY_SUNSET_DAYS)
            response.headers["Deprecation"] = "true"
            response.headers["Sunset"] = format_datetime(sunset_at)
            response.headers["Link"] = '</v1/docs>; rel="successor-version"'
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HaccpError)
    async def _domain_exception_handler(request: Request, exc: HaccpError):
        return await domain_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_request_error path=%s", request.url.path)
        return await unhandled_exception_handler(request, exc)

    # Mount versioned v1 API routes.
    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(observations_router, prefix=f"/{API_VERSION}")
    app.include_router(reports_router, prefix=f"/{API_VERSION}")

    # Retain unversioned legacy routes as deprecated compatibility aliases.
    app.include_router(health_router, include_in_schema=False)
    app.include_router(observations_router, include_in_schema=False)

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title="HACCP Telemetry API v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    return app

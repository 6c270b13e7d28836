from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from seolens.apps.api.errors import (
    http_exception_handler,
    seolens_exception_handler,
    starlette_http_exception_handler,
    tenant_predicate_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from seolens.apps.api.routes.analytics import router as analytics_router
from seolens.apps.api.routes.health import router as health_router
from seolens.apps.api.routes.settings import router as settings_router
from seolens.core.config import get_settings
from seolens.core.errors import SeoLensError
from seolens.core.logging import configure_logging
from seolens.persistence.guards import TenantPredicateError
from seolens.services.telemetry import record_request


API_VERSION = "v1"
_LEGACY_SUNSET_DAYS = 90
_LEGACY_EXEMPT_PREFIXES = (f"/{API_VERSION}", "/docs", "/openapi.json", "/redoc")


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=get_settings().app_name)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        record_request(path=request.url.path, status_code=response.status_code, latency_ms=latency_ms)
        response.headers.setdefault("X-Request-Id", request_id)
        # Mark legacy routes with deprecation headers to guide clients to /v1.
        if not request.url.path.startswith(_LEGACY_EXEMPT_PREFIXES):
            sunset_at = datetime.now(timezone.utc) + timedelta(days=_LEGACY_SUNSET_DAYS)
            response.headers["Deprecation"] = "true"
            response.headers["Sunset"] = format_datetime(sunset_at)
            response.headers["Link"] = f'</{API_VERSION}/docs>; rel="successor-version"'
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(SeoLensError)
    async def _seolens_exception_handler(request: Request, exc: SeoLensError):
        return await seolens_exception_handler(request, exc)

    @app.exception_handler(TenantPredicateError)
    async def _tenant_predicate_exception_handler(request: Request, exc: TenantPredicateError):
        return await tenant_predicate_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    # Mount versioned v1 API routes.
    app.include_router(analytics_router, prefix=f"/{API_VERSION}")
    app.include_router(settings_router, prefix=f"/{API_VERSION}")
    app.include_router(health_router, prefix=f"/{API_VERSION}")

    # Retain unversioned routes as deprecated aliases for the dashboard's older builds.
    app.include_router(analytics_router, include_in_schema=False)
    app.include_router(settings_router, include_in_schema=False)
    app.include_router(health_router, include_in_schema=False)

    return app


app = create_app()

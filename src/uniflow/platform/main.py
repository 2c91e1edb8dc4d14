"""
Main FastAPI application entry point for the Uniflow subscription engine.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from uniflow.platform.billing.subscriptions.router import router as subscriptions_router
from uniflow.platform.db import check_database_health, create_all_tables_async, get_session_maker
from uniflow.platform.domain import UniflowError
from uniflow.platform.partner_management.router import router as resellers_router
from uniflow.platform.settings import settings
from uniflow.platform.tenant.router import router as tenants_router
from uniflow.platform.usage.meter import build_usage_meter

API_PREFIX = "/api/v1"


def uniflow_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render engine errors as ``{error_code, message, status_code, context, recovery_hint}``."""
    if not isinstance(exc, UniflowError):
        raise exc
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle events."""
    logger = structlog.get_logger(__name__)
    logger.info(
        "service.startup.begin",
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
    )

    # Production schemas are managed by migrations; dev and test create them
    if not settings.is_production:
        try:
            await create_all_tables_async()
            logger.info("database.init.success")
        except Exception as e:
            logger.error("database.init.failed", error=str(e))
            raise

    yield

    logger.info("service.shutdown.complete")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Uniflow Subscription Engine",
        description="Tenant subscriptions, entitlements and reseller commission",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )
    logger = structlog.get_logger(__name__)

    app.state.usage_meter = build_usage_meter(get_session_maker(), settings)

    if settings.observability.enable_correlation_ids:

        @app.middleware("http")
        async def correlation_id_middleware(
            request: Request, call_next: Callable[[Request], Awaitable[Response]]
        ) -> Response:
            correlation_id = request.headers.get("X-Correlation-ID") or uuid4().hex
            structlog.contextvars.clear_contextvars()
            structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
            response = await call_next(request)
            response.headers["X-Correlation-ID"] = correlation_id
            return response

    app.add_exception_handler(UniflowError, uniflow_error_handler)

    app.include_router(subscriptions_router, prefix=API_PREFIX, tags=["Subscriptions"])
    app.include_router(tenants_router, prefix=API_PREFIX, tags=["Tenants"])
    app.include_router(resellers_router, prefix=API_PREFIX, tags=["Resellers"])
    logger.info("routers.registered", prefix=API_PREFIX)

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        database_ok = await check_database_health()
        return {
            "status": "healthy" if database_ok else "degraded",
            "version": settings.app_version,
            "database": database_ok,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


app = create_application()

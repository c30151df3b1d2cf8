"""Time-off service: FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from timeoff.common.exceptions import register_exception_handlers
from timeoff.common.rate_limit import limiter
from timeoff.config import settings
from timeoff.database import TenantEngineRegistry
from timeoff.leave.router import balances_router, requests_router
from timeoff.periods.router import periods_router, types_router

logger = logging.getLogger(__name__)


def build_tenant_registry() -> TenantEngineRegistry:
    return TenantEngineRegistry(
        settings.DATABASE_URL_TEMPLATE,
        max_engines=settings.TENANT_POOL_MAX_ENGINES,
        engine_options={
            "echo": settings.ENVIRONMENT == "development" and settings.LOG_LEVEL == "debug",
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_pre_ping": True,
        },
        lock_timeout_ms=settings.DB_LOCK_TIMEOUT_MS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    # Startup: tenant engines are created lazily on first use
    logger.info("Time-off service started (%s)", settings.ENVIRONMENT)
    yield
    # Shutdown
    await app.state.tenant_registry.dispose_all()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Time-off",
        description="Leave periods, balances and the two-level leave approval workflow",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )
    app.state.tenant_registry = build_tenant_registry()  # disposed in lifespan

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(periods_router, prefix="/api/v1/leave-periods", tags=["leave-periods"])
    app.include_router(types_router, prefix="/api/v1/leave-types", tags=["leave-types"])
    app.include_router(balances_router, prefix="/api/v1/leave/balances", tags=["leave"])
    app.include_router(requests_router, prefix="/api/v1/leave/requests", tags=["leave"])

    return app


app = create_app()

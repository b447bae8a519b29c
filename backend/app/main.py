"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 5000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import Settings, settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check

# ── Services & routers ──
from backend.app.services import Services, build_services
from backend.app.api.v1.alerts import router as alert_router

logger = get_logger(__name__)

ServicesFactory = Callable[[Settings], Services]


def create_app(
    config: Optional[Settings] = None,
    *,
    services_factory: ServicesFactory = build_services,
) -> FastAPI:
    """
    Build the application.

    ``services_factory`` receives the settings and returns the Services
    bundle; tests pass one that injects mock HTTP clients and transports.
    """
    config = config or settings
    setup_logging(config)

    # ── Application lifespan (startup / shutdown) ──

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            config.APP_NAME, config.APP_VERSION, config.ENVIRONMENT,
        )
        services = services_factory(config)
        app.state.services = services
        await services.startup()
        try:
            yield
        finally:
            await services.shutdown()
            logger.info("Shutting down %s", config.APP_NAME)

    app = FastAPI(
        title=config.APP_NAME,
        description=(
            "Live disaster alerts aggregated from NDMA, IMD, SACHET and ISRO. "
            "Provides classified and prioritised alerts from an in-memory "
            "snapshot cache, scheduled and manual refresh, on-demand city "
            "search, and web push notifications for admin-authored alerts."
        ),
        version=config.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Middleware stack (outermost first) ──

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS if not config.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app, config)

    # ── Register routers ──
    app.include_router(alert_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": config.APP_NAME,
            "version": config.APP_VERSION,
            "environment": config.ENVIRONMENT,
            "sources": [a.name for a in app.state.services.adapters],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Deep health probe — database, cache, push configuration."""
        report = await run_health_check(app.state.services)
        if report.status is HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Liveness probe — is the process alive?"""
        return {"status": "alive"}

    return app


app = create_app()

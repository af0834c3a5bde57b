"""FastAPI application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from obligation_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from obligation_engine.api.v1 import admin, obligations, tax
from obligation_engine.infrastructure.observability.logging import setup_logging
from obligation_engine.infrastructure.scheduler import SweepScheduler
from obligation_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the periodic backfill sweep for the lifetime of the app"""
    scheduler = None
    if settings.sweep_enabled:
        scheduler = SweepScheduler(settings.sweep_interval_seconds)
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Obligation Engine",
        description="Recurring obligations, series edits and expense amortization",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(obligations.router, prefix="/v1", tags=["obligations"])
    app.include_router(tax.router, prefix="/v1", tags=["tax"])
    app.include_router(admin.router, prefix="/v1", tags=["admin"])

    return app


app = create_app()

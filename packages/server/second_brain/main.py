"""
Second Brain API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from second_brain.core.config import Settings, get_settings
from second_brain.core.database import Database
from second_brain.core.errors import register_error_handlers
from second_brain.core.logging import configure_logging
from second_brain.core.middleware import CSRF_HEADER, CSRFMiddleware, SecurityHeadersMiddleware
from second_brain.services.generation import GenerationClient
from second_brain.services.storage import LocalFileStorage
from second_brain.api.v1 import router as api_v1_router
from second_brain.api.v1.auth import router as auth_router

log = structlog.get_logger()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Second Brain",
        description="Personal and team knowledge base: notes, links, media and documents.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.db = Database(settings.database_url, echo=settings.debug)
    app.state.storage = LocalFileStorage(settings.upload_dir, settings.upload_url_prefix)
    app.state.generation = GenerationClient(settings)

    register_error_handlers(app)

    # Middleware (order matters, outermost first)
    app.add_middleware(
        SecurityHeadersMiddleware,
        hsts=not settings.debug,
        upload_prefix=settings.upload_url_prefix,
    )
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", CSRF_HEADER],
    )

    # Auth routes
    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    # Stored uploads
    app.mount(
        settings.upload_url_prefix,
        StaticFiles(directory=settings.upload_dir, check_dir=False),
        name="uploads",
    )

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database answers a trivial query."""
        async with app.state.db.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("app.starting", database=app.state.db.engine.url.get_backend_name())
        if settings.create_tables_on_startup:
            await app.state.db.create_all()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("app.stopping")
        await app.state.generation.close()
        await app.state.db.dispose()

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("second_brain.main:app", host=settings.host, port=settings.port, log_level=settings.log_level)

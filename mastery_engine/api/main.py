"""
FastAPI application for the mastery engine.

Provides REST API for:
- Diagnostic placement (start / answer / complete)
- Knowledge graph queries and the learner's frontier
- Mastery reads and updates
- FIRe review scheduling and review-set compression
"""

from __future__ import annotations

import sys
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from mastery_engine import __version__
from mastery_engine.api.routers import (
    diagnostic_router,
    knowledge_graph_router,
    mastery_router,
    spaced_repetition_router,
)
from mastery_engine.config import get_settings
from mastery_engine.core.errors import (
    ContentError,
    InvalidInputError,
    MasteryEngineError,
    NotFoundError,
    StoreUnavailableError,
)
from mastery_engine.db.database import check_database_health, init_db
from mastery_engine.engine import MasteryEngine, build_engine
from mastery_engine.store.sql import SqlMasteryStore

settings = get_settings()

ERROR_STATUS: dict[type[MasteryEngineError], int] = {
    NotFoundError: 404,
    InvalidInputError: 400,
    ContentError: 500,
    StoreUnavailableError: 503,
}


def configure_logging(level: str | None = None) -> None:
    """Route loguru output to stderr (and the configured log file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level or settings.log_level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention="7 days")


def _status_for(exc: MasteryEngineError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status
    return 500


async def engine_error_handler(request: Request, exc: MasteryEngineError) -> JSONResponse:
    """Map engine errors to HTTP status codes."""
    status = _status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.debug(f"{request.method} {request.url.path} rejected ({status}): {exc}")
    return JSONResponse(
        status_code=status,
        content={"success": False, "error": type(exc).__name__, "detail": str(exc)},
    )


def create_app(engine: MasteryEngine | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        engine: Pre-built engine (tests); when None the lifespan builds one
            from settings and initializes the database tables.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        if app.state.engine is None:
            logger.info("Starting mastery engine service...")
            init_db()
            app.state.engine = build_engine(settings)
            logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

        yield

        logger.info("Shutting down mastery engine service...")

    app = FastAPI(
        title="Mastery Engine",
        description="""
        Adaptive mastery and review engine.

        ## Features

        - **Diagnostic**: adaptive placement test that finds the knowledge frontier
        - **Knowledge Graph**: topics, prerequisites and encompassings
        - **Mastery**: per-learner mastery with 80% gating and 100% full mastery
        - **Spaced Repetition**: FIRe scheduling with implicit repetition
        """,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine

    # CORS middleware for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MasteryEngineError, engine_error_handler)

    # ========================================
    # Health & Status Endpoints
    # ========================================

    @app.get("/", tags=["Health"])
    def root() -> dict[str, str]:
        """Root endpoint returning service info."""
        return {
            "service": "mastery-engine",
            "version": __version__,
            "status": "ok",
        }

    @app.get("/health", tags=["Health"])
    def health_check(request: Request) -> dict[str, Any]:
        """Health check with database connectivity and graph status."""
        current = request.app.state.engine
        components: dict[str, Any] = {
            "graph": "loaded" if current is not None else "not_loaded",
            "topics": len(current.graph) if current is not None else 0,
        }
        errors = {}

        if current is not None and isinstance(current.store, SqlMasteryStore):
            db_status, db_error = check_database_health()
            components["database"] = db_status
            if db_error:
                errors["database"] = db_error
        else:
            components["database"] = "not_used"

        healthy = current is not None and not errors
        result: dict[str, Any] = {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "components": components,
        }
        if errors:
            result["errors"] = errors
        return result

    # ========================================
    # Mount routers
    # ========================================

    app.include_router(diagnostic_router.router, prefix="/api/diagnostic", tags=["Diagnostic"])
    app.include_router(
        knowledge_graph_router.router, prefix="/api/knowledge-graph", tags=["Knowledge Graph"]
    )
    app.include_router(mastery_router.router, prefix="/api/mastery", tags=["Mastery"])
    app.include_router(
        spaced_repetition_router.router,
        prefix="/api/spaced-repetition",
        tags=["Spaced Repetition"],
    )

    return app

"""
Live tail HTTP API.

Endpoints:
- GET /health                 -> store health and configured categories
- GET /bootstrap/{category}   -> starting cursor (newest key) or empty marker
- GET /live/{category}        -> next batch strictly after ?after=<cursor>
- GET /debug/{category}       -> collection count and key range

Usage:
    uvicorn livetail.api.main:app
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .schemas import (
    BootstrapResponse,
    CollectionStatsResponse,
    ErrorResponse,
    HealthResponse,
    TailResponse,
)
from ..core.config import (
    VERSION,
    debug_enabled,
    ensure_db_directory,
    get_category_map,
    validate_config,
)
from ..core.errors import InvalidCursor, UnsupportedCategory
from ..core.store import SQLiteEventStore
from ..core.tail import TailService
from ..util.logging import logger


def build_default_service() -> TailService:
    """SQLite backed service using the environment configured category map."""
    for issue in validate_config():
        logger.warning(f"Config issue: {issue}")

    ensure_db_directory()
    categories = get_category_map()
    store = SQLiteEventStore(categories.values())
    return TailService(store, categories)


def create_app(service: Optional[TailService] = None) -> FastAPI:
    """
    Build the API application.

    When no service is given, one backed by the configured SQLite database is
    created on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "tail_service", None) is None:
            app.state.tail_service = build_default_service()
        logger.log_operation("api.startup", "success", {
            "categories": list(app.state.tail_service.categories)
        })
        yield
        logger.log_operation("api.shutdown", "success")

    app = FastAPI(
        title="Live Tail API",
        version=VERSION,
        description="Cursor based incremental tailing of append-only event collections",
        docs_url="/docs" if debug_enabled() else None,
        redoc_url="/redoc" if debug_enabled() else None,
        lifespan=lifespan,
    )
    app.state.tail_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(UnsupportedCategory)
    async def unsupported_category_handler(request: Request, exc: UnsupportedCategory):
        body = ErrorResponse(error="unsupported_category", detail=str(exc))
        return JSONResponse(status_code=400, content=body.model_dump())

    @app.exception_handler(InvalidCursor)
    async def invalid_cursor_handler(request: Request, exc: InvalidCursor):
        body = ErrorResponse(error="invalid_cursor", detail=str(exc))
        return JSONResponse(status_code=400, content=body.model_dump())

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}")
        body = ErrorResponse(error="internal_error", detail="Internal error.")
        return JSONResponse(status_code=500, content=body.model_dump())

    def get_service(request: Request) -> TailService:
        return request.app.state.tail_service

    @app.get("/health", response_model=HealthResponse)
    def health_check_endpoint(service: TailService = Depends(get_service)):
        """Check system health."""
        db_health = service.store.healthy()
        return HealthResponse(
            status="healthy" if db_health else "unhealthy",
            version=VERSION,
            db_health=db_health,
            categories=list(service.categories),
        )

    @app.get("/bootstrap/{category}", response_model=BootstrapResponse)
    def bootstrap_endpoint(category: str, service: TailService = Depends(get_service)):
        """Starting cursor for a new consumer; skips any existing backlog."""
        return BootstrapResponse.from_result(service.bootstrap(category))

    @app.get("/live/{category}", response_model=TailResponse)
    def tail_endpoint(
        category: str,
        after: Optional[str] = Query(None, description="Cursor of the last record seen"),
        limit: Optional[int] = Query(None, description="Requested page size, clamped server side"),
        service: TailService = Depends(get_service),
    ):
        """Records strictly newer than `after`, ascending by key."""
        return TailResponse.from_result(service.tail(category, after, limit))

    @app.get("/debug/{category}", response_model=CollectionStatsResponse)
    def debug_endpoint(category: str, service: TailService = Depends(get_service)):
        """Collection namespace, count and newest/oldest ids."""
        return CollectionStatsResponse.from_stats(service.stats(category))

    return app


app = create_app()

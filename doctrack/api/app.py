"""
DocTrack API — FastAPI application factory.

Run:
    doctrack run --port 5000

Or:
    uvicorn doctrack.api.app:create_app --factory --port 5000
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from doctrack import __version__
from doctrack.api.routes import auth, documents, folders, users
from doctrack.db.session import init_db
from doctrack.engine.config import ServiceConfig, get_config
from doctrack.engine.errors import ConflictError, DocTrackError, classify_integrity_error
from doctrack.engine.logging import (
    init_logging,
    log,
    log_api_request,
    log_system_event,
    shutdown_logging,
)
from doctrack.engine.security import TokenService

logger = logging.getLogger("doctrack.api")

ROOT_MESSAGE = "Document Tracking System API is running!"


def _error_response(status_code: int, message: str, error: str, **extra) -> JSONResponse:
    body = {"message": message, "error": error}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def _register_exception_handlers(app: FastAPI, config: ServiceConfig) -> None:

    @app.exception_handler(DocTrackError)
    async def handle_doctrack_error(request: Request, exc: DocTrackError):
        if exc.http_status >= 500:
            logger.error("%s %s failed: %r", request.method, request.url.path, exc)
        else:
            logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.http_status, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.response_body())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "error": err.get("type"),
                "message": err.get("msg"),
            }
            for err in exc.errors()
        ]
        return _error_response(400, "Invalid request.", "ValidationError", details=details)

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError):
        kind = classify_integrity_error(exc)
        logger.warning("Unhandled integrity error (%s) on %s", kind, request.url.path)
        conflict = ConflictError("Request conflicts with existing data.", constraint=kind)
        return JSONResponse(status_code=409, content=conflict.response_body())

    @app.exception_handler(StaleDataError)
    async def handle_stale_data(request: Request, exc: StaleDataError):
        conflict = ConflictError("Record was modified by another request. Reload and try again.")
        return JSONResponse(status_code=409, content=conflict.response_body())

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
        extra = {"detail": str(exc)} if config.debug else {}
        return _error_response(500, "Internal server error.", "DatabaseError", **extra)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        log(log_system_event(
            "unhandled_error",
            level="ERROR",
            details={"path": request.url.path, "error": type(exc).__name__},
        ))
        extra = {"detail": str(exc)} if config.debug else {}
        return _error_response(500, "Internal server error.", "InternalError", **extra)


def create_app(
    config: Optional[ServiceConfig] = None,
    session_factory: Optional[sessionmaker] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config:          Service configuration. Defaults to ``get_config()``.
        session_factory: Pre-built sessionmaker (tests). When omitted the
                         database from ``config.database`` is initialised;
                         tables are created for SQLite and dev setups.
    """
    config = config or get_config()

    if session_factory is None:
        db = config.database
        session_factory = init_db(
            db.url,
            create_tables=db.is_sqlite or config.debug,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=db.pool_pre_ping,
            echo=db.echo,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.logging.enabled:
            q = config.logging.async_queue
            init_logging(
                log_dir=config.logging.directory,
                flush_interval_ms=q.flush_interval_ms,
                flush_batch_size=q.flush_batch_size,
                max_queue_size=q.max_queue_size,
            )
        log(log_system_event("api_started", details={"environment": config.environment}))
        logger.info("%s %s started (%s)", config.name, __version__, config.environment)
        yield
        log(log_system_event("api_stopped"))
        shutdown_logging()

    app = FastAPI(
        title=config.name,
        description="Folder and document tracking with QR-addressable folders",
        version=config.version,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.session_factory = session_factory
    app.state.token_service = TokenService.from_config(config.security)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        duration = round((time.monotonic() - start) * 1000, 2)
        log(log_api_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration,
            user_id=getattr(request.state, "user_id", None),
            client_ip=request.client.host if request.client else None,
        ))
        return response

    _register_exception_handlers(app, config)

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return ROOT_MESSAGE

    @app.get("/health")
    def health() -> dict:
        """Liveness plus a SELECT 1 database probe."""
        database = "connected"
        try:
            with app.state.session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Health check database probe failed: %s", e)
            database = "unavailable"
        return {
            "status": "healthy" if database == "connected" else "degraded",
            "version": config.version,
            "database": database,
        }

    for module in (auth, users, documents, folders):
        app.include_router(module.router)

    return app

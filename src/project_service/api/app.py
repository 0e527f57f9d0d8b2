"""FastAPI application for the project service."""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from project_service.api.routes import router as api_router
from project_service.errors import (
    ConflictError,
    LimitExceededError,
    LimitsUnavailableError,
    NotFoundError,
    PermissionDeniedError,
    ProjectServiceError,
)
from project_service.main import Application, get_application

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

# Most specific first
_STATUS_BY_ERROR: list[tuple[type[ProjectServiceError], int]] = [
    (NotFoundError, 404),
    (LimitExceededError, 403),
    (PermissionDeniedError, 403),
    (ConflictError, 409),
    (LimitsUnavailableError, 503),
]


def status_for(error: ProjectServiceError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


def create_app(application: Application | None = None, consume_events: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        application: Component graph to serve, defaults to the global one
        consume_events: Run the event consumer inside the API process
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan events."""
        logger.info("Starting project service API...")
        app.state.application.start(consume_events=consume_events)
        yield
        logger.info("Shutting down project service API...")
        app.state.application.stop()

    app = FastAPI(
        title="Project Service",
        description="Projects, domains and repositories with per-tenant quotas",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.application = application or get_application()

    @app.exception_handler(ProjectServiceError)
    async def handle_service_error(request: Request, exc: ProjectServiceError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"error": "invalid_request", "detail": str(exc)})

    # Request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
        return response

    app.include_router(api_router, prefix="/api")

    @app.get("/health")
    def health_check() -> dict:
        return {**app.state.application.health(), "version": VERSION}

    @app.get("/")
    async def root():
        return {
            "name": "Project Service",
            "version": VERSION,
            "docs": "/docs",
            "openapi": "/openapi.json",
        }

    return app

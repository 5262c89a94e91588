from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging_setup import setup_logging
from .repositories import Repository, build_repository
from .routers import tasks as tasks_router
from .settings import Settings, get_settings
from .utils import error_envelope, validation_errors

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "tasks",
        "description": "Owner-scoped CRUD for tasks with filtering, sorting, pagination and statistics.",
    },
]


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return the standard failure envelope for request validation errors.

    Response format:
        {
            "success": false,
            "message": "Request validation failed",
            "errors": [{"field": "...", "message": "..."}]
        }
    """
    return JSONResponse(
        status_code=422,
        content=error_envelope("Request validation failed", validation_errors(exc.errors())),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "Route not found" if exc.status_code == 404 and exc.detail == "Not Found" else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(message),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_envelope("Internal server error"))


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, repository: Optional[Repository] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Defaults to values loaded from the environment.
        repository: Store handle shared by all requests; defaults to the backend
            named by settings.persistence_backend.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Task Manager API",
        description="Backend API for personal task management with pluggable storage backends.",
        version="0.1.0",
        openapi_tags=openapi_tags,
    )
    app.state.settings = settings
    app.state.repository = repository if repository is not None else build_repository(settings)

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # PUBLIC_INTERFACE
    @app.get("/api/health", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health and the active storage backend.
        """
        return {
            "success": True,
            "message": "Server is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "backend": settings.persistence_backend,
        }

    app.include_router(tasks_router.router)
    logger.info("Task API ready backend=%s", settings.persistence_backend)
    return app


app = create_app()


# PUBLIC_INTERFACE
def run() -> None:
    """Configure logging and serve the application with uvicorn (console script: task-api)."""
    import uvicorn

    settings = get_settings()
    setup_logging(console_level=settings.log_level, log_file=settings.log_file)

    uvicorn.run(
        "tasks_api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )

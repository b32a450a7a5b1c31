"""FastAPI application factory (F5).

Main entry point for the Learning Portal Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portal import __version__
from portal.config.app_config import load_app_config
from portal.core.errors import (
    ConflictError,
    LockedError,
    NotFoundError,
    PortalError,
    ValidationError,
)
from portal.db.database import init_db
from portal.web.routes import (
    attempts_router,
    health_router,
    lessons_router,
    progress_router,
    quizzes_router,
)

logger = structlog.get_logger(__name__)

_STATUS_BY_ERROR: dict[type[PortalError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    LockedError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    # Startup
    config = load_app_config()
    init_db(config.db_path)
    logger.info(
        "api_startup",
        db_path=str(config.db_path),
        attempt_duration_seconds=config.quiz.attempt_duration_seconds,
        max_attempts=config.quiz.max_attempts,
    )
    yield
    # Shutdown (nothing to do for now)


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    """Map engine errors to HTTP responses."""
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, error_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            code = error_code
            break

    body: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, LockedError) and exc.reason:
        body["reason"] = exc.reason
    if isinstance(exc, ValidationError) and exc.missing_question_ids:
        body["missing_question_ids"] = exc.missing_question_ids

    logger.info("request_rejected", path=request.url.path, error=type(exc).__name__, status=code)
    return JSONResponse(status_code=code, content=body)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Learning Portal API",
        description="Quiz attempts and lesson progression for the student portal",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware for web clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PortalError, portal_error_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(lessons_router)
    app.include_router(quizzes_router)
    app.include_router(attempts_router)
    app.include_router(progress_router)

    return app


# Default app instance for uvicorn
app = create_app()

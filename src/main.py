"""choreworld - household chore scheduling, duty rotation and XP progression."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.core.config import constants, settings
from src.core.db_client import close_connection, init_db
from src.core.errors import (
    ChoreWorldError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    build_error_response,
)
from src.core.logging import configure_logfire, instrument_fastapi
from src.core.scheduler import start_scheduler, stop_scheduler
from src.interface.assignments_router import router as assignments_router


logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[ChoreWorldError], int] = {
    InvalidInputError: constants.HTTP_BAD_REQUEST,
    NotFoundError: constants.HTTP_NOT_FOUND,
    PermissionDeniedError: constants.HTTP_FORBIDDEN,
    InvalidStateTransitionError: constants.HTTP_CONFLICT,
}


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    if settings.scheduler_enabled:
        start_scheduler()
    else:
        logger.info("Scheduler disabled by configuration")
    yield
    # Shutdown
    if settings.scheduler_enabled:
        stop_scheduler()
    await close_connection()


app = FastAPI(
    title="choreworld",
    description="Household chore scheduling, duty rotation and XP progression",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(assignments_router)


@app.exception_handler(ChoreWorldError)
async def handle_domain_error(request: Request, exc: ChoreWorldError) -> JSONResponse:
    """Translate domain errors into JSON error responses."""
    status_code = next(
        (code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)),
        constants.HTTP_SERVER_ERROR,
    )
    logger.info(
        "Request failed",
        extra={"path": request.url.path, "code": exc.code, "status_code": status_code},
    )
    return JSONResponse(content=exc.to_response().model_dump(), status_code=status_code)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures and return a generic error body."""
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(
        content=build_error_response(exc).model_dump(), status_code=constants.HTTP_SERVER_ERROR
    )


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=constants.HTTP_OK)

"""FastAPI application factory.

Main entry point for the reading program Web API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from luxlibris.core.phases import get_program_state
from luxlibris.web.routes import (
    configurations_router,
    health_router,
    phase_router,
    rollover_router,
    submissions_router,
    voting_router,
)
from luxlibris.web.services import get_services

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    services = get_services()
    state = get_program_state(services.store)
    logger.info(
        "api_startup",
        backend=services.config.storage.backend,
        academic_year=str(state[0]) if state else None,
        phase=state[1].value if state else None,
    )
    yield


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Malformed input that passed schema validation, e.g. a bad year in the path."""
    logger.info("invalid_request", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": {"error": "invalid_request", "message": str(exc)}},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Lux Libris Program API",
        description="Reading program: configuration, release, approvals, voting, rollover",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValueError, value_error_handler)

    app.include_router(health_router)
    app.include_router(phase_router)
    app.include_router(configurations_router)
    app.include_router(submissions_router)
    app.include_router(rollover_router)
    app.include_router(voting_router)

    return app


# Default app instance for uvicorn
app = create_app()

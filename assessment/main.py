"""
Main FastAPI application.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from assessment.api.v1.api import api_router
from assessment.core.config import settings
from assessment.core.error_responses import register_exception_handlers
from assessment.core.logging_config import setup_logging
from assessment.middleware import RequestLoggingMiddleware

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan: log startup and shutdown.

    Schema creation is owned by deployment tooling, not the app.
    """
    logger.info(
        f"Starting {settings.APP_NAME} v{settings.APP_VERSION} (env={settings.ENV})"
    )
    yield
    logger.info(f"Shutting down {settings.APP_NAME}")


tags_metadata = [
    {
        "name": "tests",
        "description": "Author, validate and publish test definitions; start attempts.",
    },
    {
        "name": "sessions",
        "description": "Timed attempts: answers, completion and results.",
    },
]


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "Assembles assessments from a question catalog and manages timed "
            "attempts, answer capture and scoring.\n\n"
            "## Identity\n\n"
            "Requests arrive pre-authorized; the acting user is read from the "
            "`X-User-Id` header."
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )

    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_application()

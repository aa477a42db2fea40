"""
Message Pulse Backend Application

Vote ingestion and aggregation for message testing.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from api.v1 import router as api_v1_router
from core.config import settings
from core.events import create_start_app_handler, create_stop_app_handler
from core.exceptions import (
    DuplicateVoteError,
    NotFoundError,
    StorageError,
    VotePipelineError,
    VoteValidationError,
)
from core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware

logger = structlog.get_logger(__name__)

API_VERSION = "1.0.0"

ERROR_STATUS = {
    VoteValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DuplicateVoteError: status.HTTP_409_CONFLICT,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

STORAGE_UNAVAILABLE_DETAIL = "Storage is temporarily unavailable. Please retry."


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the store (and maintenance jobs) on startup, release them on shutdown."""
    await create_start_app_handler(app)()
    yield
    await create_stop_app_handler(app)()


def register_exception_handlers(application: FastAPI) -> None:
    """Translate pipeline errors into JSON error bodies."""

    @application.exception_handler(VotePipelineError)
    async def pipeline_exception_handler(request: Request, exc: VotePipelineError) -> JSONResponse:
        status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)

        if isinstance(exc, StorageError):
            logger.error("storage_unavailable", error=exc.message, path=request.url.path)
            # Raw storage errors can carry hostnames and keys
            detail = STORAGE_UNAVAILABLE_DETAIL
        else:
            logger.info("request_rejected", code=exc.code, error=exc.message, path=request.url.path)
            detail = exc.message

        return JSONResponse(status_code=status_code, content={"detail": detail, "code": exc.code})

    @application.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed requests are rejected as invalid input (400)."""
        errors = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": errors, "code": "INVALID_INPUT"},
        )

    # Registered on Exception so error responses still pass through CORS
    @application.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "code": "INTERNAL_ERROR",
                "error_type": type(exc).__name__ if settings.DEBUG else None,
            },
        )


def create_application() -> FastAPI:
    """Build the FastAPI app with middleware, routers and error handlers."""
    docs_enabled = settings.DEBUG
    application = FastAPI(
        title=settings.APP_NAME,
        description="Vote ingestion and aggregation for message testing",
        version=API_VERSION,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    # Starlette runs middleware in reverse order of registration
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(RequestIDMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Idempotency-Key",
            "X-Anon-Session-Id",
            "X-Request-ID",
        ],
        expose_headers=["X-Request-ID"],
    )
    application.add_middleware(GZipMiddleware, minimum_size=1000)

    application.include_router(api_v1_router, prefix="/api/v1")
    register_exception_handlers(application)

    @application.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Liveness check; reports which storage backend is configured."""
        return {"status": "healthy", "service": "messagepulse-api", "storage": settings.STORAGE_BACKEND}

    @application.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        return {
            "name": settings.APP_NAME,
            "version": API_VERSION,
            "docs": "/docs" if docs_enabled else "disabled",
        }

    return application


app = create_application()

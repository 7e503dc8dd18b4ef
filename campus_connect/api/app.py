"""
FastAPI Application Factory.

``create_app()`` mounts the ``/auth`` router over an already-wired
service container and installs the handlers that render every failure
as ``{"success": false, "message": ..., "error_code": ...}``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from campus_connect import __version__
from campus_connect.api.routes import router as auth_router
from campus_connect.errors import CampusConnectError
from campus_connect.logger import get_logger
from campus_connect.models.api_models import ErrorResponse, HealthResponse
from campus_connect.models.auth_models import AuthErrorCode
from campus_connect.services import ServerServiceContainer

logger = get_logger("campus_connect.api")


def _error_response(status_code: int, message: str, error_code: str) -> JSONResponse:
    body = ErrorResponse(message=message, error_code=error_code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def campus_connect_error_handler(request: Request, exc: CampusConnectError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc.message,
        )
    return _error_response(exc.status_code, exc.message, str(exc.error_code))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request.")
    if location:
        message = f"{location}: {message}"
    return _error_response(400, message, str(AuthErrorCode.VALIDATION_ERROR))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        500, "Server error. Please try again later.", str(AuthErrorCode.UNKNOWN_ERROR),
    )


def create_app(services: ServerServiceContainer) -> FastAPI:
    """Build the HTTP application over *services*."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services["otp_manager"].purge_expired()
        logger.info("Campus Connect API %s ready.", __version__)
        yield
        logger.info("Campus Connect API shutting down.")

    app = FastAPI(
        title="Campus Connect Identity API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=services["config"].CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CampusConnectError, campus_connect_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth_router)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    def health() -> HealthResponse:
        return HealthResponse(version=__version__)

    return app

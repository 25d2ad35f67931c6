"""Unified error handling for Devlink API."""

import traceback
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from .exceptions import (
    AuthenticationError,
    DevlinkError,
    InvalidInputError,
    NotFoundError,
    RelationshipStateError,
    TransientError,
)
from .logging import ContextLogger
from .settings import settings

logger = ContextLogger(__name__)

# Checked in order; the first matching base class wins.
STATUS_BY_ERROR: list[tuple[type[DevlinkError], int]] = [
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (RelationshipStateError, status.HTTP_409_CONFLICT),
    (TransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: DevlinkError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class ErrorResponse:
    """Standardized error response structure."""

    @staticmethod
    def create_response(
        status_code: int,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        correlation_id: str | None = None,
        include_traceback: bool = False,
        exception: Exception | None = None,
        headers: dict[str, str] | None = None,
    ) -> JSONResponse:
        """Create standardized error response."""
        content = {
            "error": True,
            "message": message,
            "error_code": error_code or "UNKNOWN_ERROR",
            "status_code": status_code,
        }

        if details:
            content["details"] = details

        if correlation_id:
            content["correlation_id"] = correlation_id

        if include_traceback and exception:
            content["traceback"] = traceback.format_exception(
                type(exception), exception, exception.__traceback__
            )

        return JSONResponse(status_code=status_code, content=content, headers=headers)


async def devlink_error_handler(request: Request, exc: DevlinkError) -> JSONResponse:
    """Handle all Devlink-specific errors in a unified way."""
    correlation_id = getattr(request.state, "correlation_id", None)
    status_code = status_for(exc)

    log_message = f"{exc.__class__.__name__}: {exc.message}"
    extra = {
        "error_code": exc.error_code,
        "correlation_id": correlation_id,
        "exception_type": exc.__class__.__name__,
        "path": request.url.path,
    }

    if status_code >= 500:
        logger.error(log_message, extra=extra, exc_info=True)
    else:
        logger.warning(log_message, extra=extra)

    headers = None
    if isinstance(exc, TransientError):
        headers = {"Retry-After": "1"}

    return ErrorResponse.create_response(
        status_code=status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
        correlation_id=correlation_id,
        headers=headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    correlation_id = getattr(request.state, "correlation_id", None)

    logger.error(
        f"Unexpected error: {exc}",
        extra={
            "correlation_id": correlation_id,
            "exception_type": exc.__class__.__name__,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=True,
    )

    include_traceback = settings.debug

    return ErrorResponse.create_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="Internal server error occurred",
        error_code="INTERNAL_SERVER_ERROR",
        correlation_id=correlation_id,
        include_traceback=include_traceback,
        exception=exc if include_traceback else None,
    )


def register_error_handlers(app) -> None:
    """Register all error handlers with the FastAPI app."""

    # Handle all DevlinkError subclasses with one handler
    app.add_exception_handler(DevlinkError, devlink_error_handler)

    # Handle unexpected exceptions
    app.add_exception_handler(Exception, generic_exception_handler)

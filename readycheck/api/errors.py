"""
Mapping of service exceptions to standardized HTTP error responses.
"""

from datetime import datetime
from typing import Tuple

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from readycheck.exceptions import (
    AuthError,
    CheckAlreadyCompletedError,
    CheckNotCompletedError,
    CheckNotFoundError,
    DependencyError,
    ReadyCheckError,
    ValidationError,
)
from readycheck.middleware import get_correlation_id
from readycheck.models.api_models import ErrorResponse

# First match wins, so subclasses must precede their bases
ERROR_STATUS_CODES: Tuple[Tuple[type, int], ...] = (
    (ValidationError, 400),
    (AuthError, 401),
    (CheckNotFoundError, 404),
    (CheckAlreadyCompletedError, 409),
    (CheckNotCompletedError, 409),
    (DependencyError, 503),
)

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"


def status_code_for(error: Exception) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


def create_error_response(
    error_type: str,
    message: str,
    correlation_id: str,
    status_code: int = 500
) -> JSONResponse:
    """Create standardized error response."""
    error_response = ErrorResponse(
        error=error_type,
        message=message,
        correlation_id=correlation_id,
        timestamp=datetime.utcnow()
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json")
    )


def error_response_for(error: Exception, correlation_id: str) -> JSONResponse:
    """
    Build the error response for an exception raised by a service.

    Unknown exceptions become a 500 with a generic message so internals
    never reach the client.
    """
    status_code = status_code_for(error)
    if status_code == 500:
        return create_error_response("InternalServerError", INTERNAL_ERROR_MESSAGE, correlation_id, 500)
    return create_error_response(type(error).__name__, str(error), correlation_id, status_code)


async def service_error_handler(request: Request, exc: ReadyCheckError) -> JSONResponse:
    """Exception handler for service errors raised outside endpoint bodies (e.g. dependencies)."""
    return error_response_for(exc, get_correlation_id(request))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 ValidationError."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"
    else:
        message = "Invalid request"
    return create_error_response("ValidationError", message, get_correlation_id(request), 400)

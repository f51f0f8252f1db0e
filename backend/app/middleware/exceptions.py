"""Custom exception handlers for consistent error responses.

Every error leaves the API in the same envelope:

    {"error": {"code": "...", "message": "...", "details": {...}}}

Domain code raises the `CivilDefenceError` family:

    BusinessLogicError      422  a well-formed request that breaks a rule
    ResourceNotFoundError   404
    PermissionDeniedError   403
    ConflictError           409  stale task version, duplicate membership,
                                 illegal wizard transition

Framework, validation and database errors are translated here as well.
"""

import logging
from typing import Any, Optional, Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class CivilDefenceError(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class BusinessLogicError(CivilDefenceError):
    def __init__(self, message: str, error_code: str = "BUSINESS_LOGIC_ERROR"):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, error_code)


class ResourceNotFoundError(CivilDefenceError):
    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} not found: {identifier}",
            status.HTTP_404_NOT_FOUND,
            "RESOURCE_NOT_FOUND",
            details={"resource": resource},
        )


class PermissionDeniedError(CivilDefenceError):
    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, status.HTTP_403_FORBIDDEN, "PERMISSION_DENIED")


class ConflictError(CivilDefenceError):
    """The target changed, or already exists, since the caller last read it."""

    def __init__(
        self,
        message: str,
        error_code: str = "CONFLICT",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, status.HTTP_409_CONFLICT, error_code, details)


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    content: dict[str, Any] = {"error": {"code": error_code, "message": message}}
    if details:
        content["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _request_context(request: Request) -> dict[str, str]:
    return {"path": request.url.path, "method": request.method}


# ── Handlers ─────────────────────────────────────────────────

async def app_exception_handler(request: Request, exc: CivilDefenceError) -> JSONResponse:
    logger.warning(
        f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}",
        extra={"error_code": exc.error_code, **_request_context(request)},
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code, exc.details)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {exc.detail}", extra=_request_context(request))

    response = create_error_response(
        exc.status_code, str(exc.detail), error_code=f"HTTP_{exc.status_code}"
    )
    # 401s keep their WWW-Authenticate challenge
    for key, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[key] = value
    return response


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    logger.warning(f"Validation error on {request.url.path}", extra=_request_context(request))

    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


# (substring in the driver message, status, code, client message)
_INTEGRITY_RULES = (
    ("unique", status.HTTP_409_CONFLICT, "DUPLICATE_RECORD", "A record with this value already exists"),
    ("foreign key", status.HTTP_422_UNPROCESSABLE_ENTITY, "FOREIGN_KEY_VIOLATION", "Referenced record does not exist"),
    ("not null", status.HTTP_422_UNPROCESSABLE_ENTITY, "NULL_VALUE_NOT_ALLOWED", "Required field is missing"),
)


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error(f"Database integrity error on {request.url.path}: {exc}", extra=_request_context(request))

    driver_message = str(getattr(exc, "orig", None) or exc).lower()
    for needle, status_code, error_code, message in _INTEGRITY_RULES:
        if needle in driver_message:
            return create_error_response(status_code, message, error_code)
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "Database constraint violation", "INTEGRITY_ERROR"
    )


async def stale_data_exception_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    logger.warning(f"Stale write on {request.url.path}: {exc}", extra=_request_context(request))
    return create_error_response(
        status.HTTP_409_CONFLICT,
        "This record was changed by someone else. Refresh and try again.",
        error_code="STALE_RECORD",
    )


async def operational_exception_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error(f"Database operational error on {request.url.path}: {exc}", extra=_request_context(request))
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable. Please try again.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception on {request.url.path}: {exc}",
        extra=_request_context(request),
        exc_info=exc,
    )
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with the FastAPI app."""
    handlers = [
        (CivilDefenceError, app_exception_handler),
        (HTTPException, http_exception_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (ValidationError, validation_exception_handler),
        (IntegrityError, integrity_exception_handler),
        (OperationalError, operational_exception_handler),
        (StaleDataError, stale_data_exception_handler),
        (Exception, general_exception_handler),
    ]
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, handler)

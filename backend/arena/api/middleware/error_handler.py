"""
Error handler middleware and custom exceptions.

Provides consistent error responses and custom exception classes
for engine errors. Every engine error carries a stable `error_code`
clients branch on (retry, pick another slot, go to the pay flow...).
"""
import enum
import logging
from typing import Optional, Dict, Any
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from arena.lib.logging import get_logger

logger = get_logger(__name__)


class ErrorCode(str, enum.Enum):
    """Stable machine-readable error codes."""
    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PAYMENT_METHOD_REQUIRED = "PAYMENT_METHOD_REQUIRED"
    MOBILE_METHOD_REQUIRED = "MOBILE_METHOD_REQUIRED"
    # Eligibility
    PENDING_FINES = "PENDING_FINES"
    # Concurrency (safe to retry)
    SLOT_LOCKED = "SLOT_LOCKED"
    SLOT_ALREADY_BOOKED = "SLOT_ALREADY_BOOKED"
    # State
    ALREADY_PAID_BY_SELF = "ALREADY_PAID_BY_SELF"
    OWN_UNPAID_BOOKING = "OWN_UNPAID_BOOKING"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    NOT_BOOKING_OWNER = "NOT_BOOKING_OWNER"
    BOOKING_NOT_PAYABLE = "BOOKING_NOT_PAYABLE"
    BOOKING_ALREADY_PAID = "BOOKING_ALREADY_PAID"
    BOOKING_NOT_CANCELLABLE = "BOOKING_NOT_CANCELLABLE"
    BOOKING_NOT_NO_SHOW_ELIGIBLE = "BOOKING_NOT_NO_SHOW_ELIGIBLE"
    BOOKING_NOT_COMPLETABLE = "BOOKING_NOT_COMPLETABLE"
    SLOT_IN_PAST = "SLOT_IN_PAST"
    SLOT_NOT_ENDED = "SLOT_NOT_ENDED"
    COURT_NOT_FOUND = "COURT_NOT_FOUND"
    TIME_SLOT_NOT_FOUND = "TIME_SLOT_NOT_FOUND"
    FINE_NOT_FOUND = "FINE_NOT_FOUND"
    NOT_FINE_OWNER = "NOT_FINE_OWNER"
    NOTIFICATION_NOT_FOUND = "NOTIFICATION_NOT_FOUND"
    # Staff
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    CLIENT_NOT_FOUND_NEEDS_INFO = "CLIENT_NOT_FOUND_NEEDS_INFO"
    CLIENT_HAS_PENDING_FINES = "CLIENT_HAS_PENDING_FINES"
    # Generic
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Custom exception classes
class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(
        self,
        resource: str,
        resource_id: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "resource_id": resource_id},
            error_code=error_code,
        )


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code=ErrorCode.UNAUTHORIZED,
        )


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(
        self,
        message: str = "Forbidden",
        error_code: ErrorCode = ErrorCode.FORBIDDEN,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            error_code=error_code,
        )


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details or {},
            error_code=error_code,
        )


class ConflictException(AppException):
    """Resource conflict exception."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details or {},
            error_code=error_code,
        )


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(
        self,
        message: str,
        errors: Optional[Dict[str, Any]] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"errors": errors or {}},
            error_code=error_code,
        )


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


# Exception handlers
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handler for custom application exceptions.

    Returns consistent error response with correlation ID.
    """
    correlation_id = _correlation_id(request)
    error_code = exc.error_code.value if exc.error_code else None

    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"Application error: {exc.message}",
        extra={
            "correlation_id": correlation_id,
            "status_code": exc.status_code,
            "error_code": error_code,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
    )

    response_content = {
        "success": False,
        "error": exc.message,
        "error_code": error_code,
        "correlation_id": correlation_id,
    }
    if exc.details:
        response_content["details"] = exc.details

    return JSONResponse(
        status_code=exc.status_code,
        content=response_content,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handler for Pydantic validation errors.

    Rejected before any store access.
    """
    correlation_id = _correlation_id(request)

    errors = [
        {
            "loc": list(error["loc"]),
            "msg": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(
        "Validation error",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "errors": errors,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation error",
            "error_code": ErrorCode.VALIDATION_ERROR.value,
            "correlation_id": correlation_id,
            "details": {"errors": errors},
        },
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handler for Starlette HTTP exceptions.
    """
    correlation_id = _correlation_id(request)

    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={
            "correlation_id": correlation_id,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "correlation_id": correlation_id,
        },
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler for unhandled exceptions.

    Logs full stack trace and returns generic error message.
    """
    correlation_id = _correlation_id(request)

    logger.error(
        f"Unhandled exception: {exc}",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal server error",
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "correlation_id": correlation_id,
        },
    )

"""
Tests for error handler middleware and custom exceptions.
"""
import pytest
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from arena.api.middleware.error_handler import (
    AppException,
    BadRequestException,
    ConflictException,
    ErrorCode,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
    app_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)


@pytest.mark.unit
def test_app_exception_creation():
    exc = AppException(
        message="Test error",
        status_code=500,
        details={"key": "value"},
    )

    assert exc.message == "Test error"
    assert exc.status_code == 500
    assert exc.details == {"key": "value"}
    assert exc.error_code is None


@pytest.mark.unit
def test_not_found_exception():
    exc = NotFoundException("Booking", "123", error_code=ErrorCode.BOOKING_NOT_FOUND)

    assert exc.message == "Booking with id '123' not found"
    assert exc.status_code == 404
    assert exc.details["resource"] == "Booking"
    assert exc.details["resource_id"] == "123"
    assert exc.error_code == ErrorCode.BOOKING_NOT_FOUND


@pytest.mark.unit
def test_not_found_exception_without_id():
    exc = NotFoundException("Court")

    assert exc.message == "Court not found"
    assert exc.status_code == 404


@pytest.mark.unit
def test_unauthorized_exception():
    exc = UnauthorizedException()

    assert exc.message == "Unauthorized"
    assert exc.status_code == 401
    assert exc.error_code == ErrorCode.UNAUTHORIZED


@pytest.mark.unit
def test_forbidden_exception_defaults():
    exc = ForbiddenException()

    assert exc.status_code == 403
    assert exc.error_code == ErrorCode.FORBIDDEN


@pytest.mark.unit
def test_forbidden_exception_with_details():
    exc = ForbiddenException(
        "You have pending fines",
        error_code=ErrorCode.PENDING_FINES,
        details={"pending_fines": 5000},
    )

    assert exc.error_code == ErrorCode.PENDING_FINES
    assert exc.details == {"pending_fines": 5000}


@pytest.mark.unit
def test_bad_request_exception():
    exc = BadRequestException("Invalid input", details={"field": "date"})

    assert exc.message == "Invalid input"
    assert exc.status_code == 400
    assert exc.details == {"field": "date"}


@pytest.mark.unit
def test_conflict_exception():
    exc = ConflictException("Slot locked", error_code=ErrorCode.SLOT_LOCKED)

    assert exc.status_code == 409
    assert exc.error_code == ErrorCode.SLOT_LOCKED


@pytest.mark.unit
def test_validation_exception():
    exc = ValidationException(
        "Validation failed",
        errors={"date": "Invalid format"},
    )

    assert exc.status_code == 422
    assert exc.details["errors"] == {"date": "Invalid format"}
    assert exc.error_code == ErrorCode.VALIDATION_ERROR


@pytest.mark.integration
def test_app_exception_handler_in_route():
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)

    @app.get("/test-error")
    async def test_error():
        raise ConflictException(
            "This slot is being booked by another customer",
            details={"retry_after": 42},
            error_code=ErrorCode.SLOT_LOCKED,
        )

    client = TestClient(app)
    response = client.get("/test-error")

    assert response.status_code == 409
    data = response.json()
    assert data["success"] is False
    assert data["error_code"] == "SLOT_LOCKED"
    assert data["details"] == {"retry_after": 42}
    assert "correlation_id" in data


@pytest.mark.integration
def test_validation_error_handler():
    app = FastAPI()
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    class TestModel(BaseModel):
        price: int = Field(..., ge=0)

    @app.post("/test-validation")
    async def test_validation(data: TestModel):
        return {"ok": True}

    client = TestClient(app)
    response = client.post("/test-validation", json={"price": -1})

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "Validation error"
    assert data["error_code"] == "VALIDATION_ERROR"
    assert data["details"]["errors"][0]["loc"] == ["body", "price"]


@pytest.mark.integration
def test_http_exception_handler():
    app = FastAPI()
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    @app.get("/test-http-error")
    async def test_http_error():
        raise StarletteHTTPException(status_code=404, detail="Page not found")

    client = TestClient(app)
    response = client.get("/test-http-error")

    assert response.status_code == 404
    data = response.json()
    assert data["error"] == "Page not found"
    assert "correlation_id" in data


@pytest.mark.integration
def test_unhandled_exception_handler():
    app = FastAPI()
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/test-unhandled")
    async def test_unhandled():
        raise ValueError("Unexpected error")

    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/test-unhandled")

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "Internal server error"
    assert data["error_code"] == "INTERNAL_ERROR"


@pytest.mark.integration
def test_exception_with_correlation_id():
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)

    @app.get("/test-correlation")
    async def test_correlation(request: Request):
        request.state.correlation_id = "test-correlation-123"
        raise BadRequestException("Test error")

    client = TestClient(app)
    response = client.get("/test-correlation")

    assert response.status_code == 400
    assert response.json()["correlation_id"] == "test-correlation-123"

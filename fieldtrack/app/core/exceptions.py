"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes for trip/visit precondition failures and
global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


# Trip preconditions

class TripNotFoundError(ResourceNotFoundError):
    """Raised when no trip matches the given trip ID or staff ID."""

    def __init__(self, trip_id: Any = None, staff_id: Any = None):
        if trip_id is None and staff_id is not None:
            super().__init__("Active trip for staff", staff_id)
        else:
            super().__init__("Trip", trip_id)


class TripReferenceRequiredError(AppException):
    """Raised when a trip operation names neither a trip nor a staff member."""

    def __init__(self):
        super().__init__(
            message="Trip ID or Staff ID is required",
            error_code="ERR_BAD_REQUEST",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class TripAlreadyActiveError(AppException):
    """Raised when a staff member starts a trip while another is ACTIVE."""

    def __init__(self, staff_id: str, trip_id: str):
        super().__init__(
            message=f"Staff {staff_id} already has an active trip",
            error_code="ERR_TRIP_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"staff_id": staff_id, "trip_id": trip_id}
        )


class TripNotActiveError(AppException):
    """Raised when a trip that has ENDED is updated or ended again."""

    def __init__(self, trip_id: str, current_status: str):
        super().__init__(
            message=f"Trip is not active. Current status: {current_status}",
            error_code="ERR_TRIP_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"trip_id": trip_id, "status": current_status}
        )


# Visit preconditions

class VisitNotFoundError(ResourceNotFoundError):
    """Raised when a visit ID is unknown."""

    def __init__(self, visit_id: Any):
        super().__init__("Visit", visit_id)


class VisitAlreadyInProgressError(AppException):
    """Raised when a staff member starts a visit while another is IN_PROGRESS."""

    def __init__(self, staff_id: str, visit_id: str):
        super().__init__(
            message=f"Staff {staff_id} already has a visit in progress",
            error_code="ERR_VISIT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"staff_id": staff_id, "visit_id": visit_id}
        )


class VisitNotInProgressError(AppException):
    """Raised when a completed or cancelled visit is modified."""

    def __init__(self, visit_id: str, current_status: str):
        super().__init__(
            message=f"Visit is not in progress. Current status: {current_status}",
            error_code="ERR_VISIT_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"visit_id": visit_id, "status": current_status}
        )


class CancelReasonRequiredError(AppException):
    """Raised when a visit is cancelled without a reason."""

    def __init__(self, visit_id: str):
        super().__init__(
            message="A cancellation reason is required",
            error_code="ERR_VISIT_003",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"visit_id": visit_id}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": exc.errors()
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )

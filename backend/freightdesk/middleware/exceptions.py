"""Application exceptions and the handlers that render them.

Every error leaves the API in one envelope:

    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }

The settlement errors (InvalidTransition, ValidationError,
ReconciliationPending, ConflictError) are raised by the settlement engine
and its store; all of them are recoverable by re-reading the assignment and
re-submitting corrected input.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class FreightDeskException(Exception):
    """Base exception for FreightDesk application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ResourceNotFoundError(FreightDeskException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


# ── Settlement errors ────────────────────────────────────────

class InvalidTransition(FreightDeskException):
    """Operation is not legal from the assignment's current status."""

    def __init__(self, current_status: str, operation: str):
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            message=f"Cannot {operation} an assignment that is {current_status}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_TRANSITION",
            details={"current_status": current_status, "operation": operation},
        )


class ValidationError(FreightDeskException):
    """Rejected money input.

    When a specific value is required (the correction protocol), `expected`
    carries it so the operator can resubmit exactly that amount.
    """

    def __init__(self, message: str, field: str, expected: float | None = None):
        self.field = field
        self.expected = expected
        details = {"field": field}
        if expected is not None:
            details["expected"] = expected
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="SETTLEMENT_VALIDATION_ERROR",
            details=details,
        )


class ReconciliationPending(FreightDeskException):
    """Settlement refused: the collected amount does not match the total due."""

    def __init__(self, remaining: float, required_total_collection: float, total_due: float):
        self.remaining = remaining
        self.required_total_collection = required_total_collection
        self.total_due = total_due
        if remaining > 0:
            message = (
                f"Underpaid by {remaining:.2f}: collected amount must be "
                f"{required_total_collection:.2f} before settling"
            )
        else:
            message = (
                f"Overpaid by {-remaining:.2f} (refund owed): collected amount must be "
                f"{required_total_collection:.2f} before settling"
            )
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="RECONCILIATION_PENDING",
            details={
                "remaining": remaining,
                "required_total_collection": required_total_collection,
                "total_due": total_due,
            },
        )


class ConflictError(FreightDeskException):
    """The assignment was changed by someone else since it was loaded."""

    def __init__(self, assignment_id: str):
        self.assignment_id = assignment_id
        super().__init__(
            message=f"Assignment {assignment_id} was modified concurrently; reload and retry",
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONCURRENT_MODIFICATION",
            details={"assignment_id": assignment_id},
        )


# ── Rendering ────────────────────────────────────────────────

# Error codes for HTTPExceptions raised directly by routers
HTTP_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_404_NOT_FOUND: "RESOURCE_NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
}


def error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    """Wrap an error in the `{"error": {...}}` envelope."""
    body = {"code": code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


def _where(request: Request) -> str:
    return f"{request.method} {request.url.path}"


async def freightdesk_exception_handler(request: Request, exc: FreightDeskException) -> JSONResponse:
    logger.warning("%s -> %s: %s", _where(request), exc.error_code, exc.message)
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
    if exc.status_code >= 500:
        logger.error("%s -> %s: %s", _where(request), exc.status_code, exc.detail)
    return error_response(exc.status_code, code, str(exc.detail))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and query strings (wrong types, missing fields)."""
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning("%s -> invalid request: %d error(s)", _where(request), len(errors))
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed",
        {"errors": errors},
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """A write that lost to a database constraint, e.g. two active assignments
    for one shipment.  The transaction has already been rolled back by `get_db`.
    """
    logger.warning("%s -> constraint violation: %s", _where(request), exc.orig)
    return error_response(
        status.HTTP_409_CONFLICT,
        "CONSTRAINT_VIOLATION",
        "The change conflicts with existing records; reload and retry",
    )


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("%s -> database unavailable: %s", _where(request), exc.orig)
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DATABASE_UNAVAILABLE",
        "Database temporarily unavailable. Please try again.",
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internals stay in the log, never in the response
    logger.error("%s -> unhandled %s", _where(request), type(exc).__name__, exc_info=exc)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(FreightDeskException, freightdesk_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

"""Error bodies and the status / error_code mapping shared by every handler."""

from typing import Optional

from pydantic import BaseModel

from src.exceptions import (
    AuthorizationError,
    DatabaseError,
    GateValidationError,
    ProductionLockedError,
    RecordNotFoundError,
    RouteSequenceError,
    WOFlowError,
)

# Map HTTP status codes to machine-readable error codes for consistent API responses.
STATUS_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
    429: "rate_limited",
    500: "internal_error",
    503: "service_unavailable",
}

# Most specific first; ProductionLockedError is a GateValidationError.
DOMAIN_ERROR_STATUS = (
    (ProductionLockedError, 409, "production_locked"),
    (RouteSequenceError, 409, "sequence_conflict"),
    (GateValidationError, 400, "gate_validation"),
    (RecordNotFoundError, 404, "not_found"),
    (AuthorizationError, 403, "forbidden"),
    (DatabaseError, 503, "service_unavailable"),
)


class ErrorResponse(BaseModel):
    detail: str
    error_code: Optional[str] = None


INTERNAL_ERROR = ErrorResponse(detail="Internal server error", error_code="internal_error")


def error_code_for_status(status_code: int) -> str:
    return STATUS_ERROR_CODES.get(status_code, "internal_error")


def resolve_domain_error(exc: WOFlowError) -> tuple[int, ErrorResponse]:
    """Status code and body for a domain error; unmapped errors are a 500."""
    for error_type, status_code, error_code in DOMAIN_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, ErrorResponse(detail=str(exc), error_code=error_code)
    return 500, INTERNAL_ERROR

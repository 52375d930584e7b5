"""Error definitions.

Two layers live here:
- Session faults (FaultKind / Fault): what the archive session records when
  a query, connection or validation step fails. Faults are values, never raised.
- API errors (ApiErrorCode / ApiError): what the HTTP surface raises, each
  mapped to an HTTP status code.
"""

from dataclasses import dataclass
from enum import Enum


class FaultKind(str, Enum):
    """Categories of session faults.

    Kinds:
        connection: Storage unreachable or authentication rejected
        validation: Malformed integer/date/text input, rejected before storage
        query: Storage rejected or failed a statement
        consistency: Aggregate stats diverged from the shard recount
        owner_required: Data operation attempted before an owner was set
        faulty: Operation refused because the session is already faulty
        not_found: The targeted archive item does not exist (no session fault)
        conflict: The archive item is already in the requested state (no session fault)
    """

    connection = "connection"
    validation = "validation"
    query = "query"
    consistency = "consistency"
    owner_required = "owner_required"
    faulty = "faulty"
    not_found = "not_found"
    conflict = "conflict"


@dataclass(frozen=True)
class Fault:
    """A recorded session fault.

    Attributes:
        kind: The fault category.
        message: Human-readable description (never includes bound values).
        label: Statement or parameter label that triggered the fault, if any.
    """

    kind: FaultKind
    message: str
    label: str | None = None


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_OWNER_REQUIRED = "E_OWNER_REQUIRED"

    # Authorization errors (403)
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_TRASH_ITEM_NOT_FOUND = "E_TRASH_ITEM_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"

    # Conflict errors (409)
    E_ALREADY_IN_TRASH = "E_ALREADY_IN_TRASH"
    E_CONSISTENCY_VIOLATION = "E_CONSISTENCY_VIOLATION"
    E_SESSION_FAULTY = "E_SESSION_FAULTY"

    # Server errors
    E_STORAGE_UNAVAILABLE = "E_STORAGE_UNAVAILABLE"  # 503
    E_QUERY_FAILED = "E_QUERY_FAILED"  # 500
    E_INTERNAL = "E_INTERNAL"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_OWNER_REQUIRED: 401,
    ApiErrorCode.E_INTERNAL_ONLY: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_TRASH_ITEM_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_ALREADY_IN_TRASH: 409,
    ApiErrorCode.E_CONSISTENCY_VIOLATION: 409,
    ApiErrorCode.E_SESSION_FAULTY: 409,
    ApiErrorCode.E_STORAGE_UNAVAILABLE: 503,
    ApiErrorCode.E_QUERY_FAILED: 500,
    ApiErrorCode.E_INTERNAL: 500,
}

# Fault kind to API error code mapping (used when a session operation fails)
FAULT_KIND_TO_CODE: dict[FaultKind, ApiErrorCode] = {
    FaultKind.connection: ApiErrorCode.E_STORAGE_UNAVAILABLE,
    FaultKind.validation: ApiErrorCode.E_INVALID_REQUEST,
    FaultKind.query: ApiErrorCode.E_QUERY_FAILED,
    FaultKind.consistency: ApiErrorCode.E_CONSISTENCY_VIOLATION,
    FaultKind.owner_required: ApiErrorCode.E_OWNER_REQUIRED,
    FaultKind.faulty: ApiErrorCode.E_SESSION_FAULTY,
    FaultKind.not_found: ApiErrorCode.E_TRASH_ITEM_NOT_FOUND,
    FaultKind.conflict: ApiErrorCode.E_ALREADY_IN_TRASH,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
        fault: The session fault this error reports, if any
    """

    def __init__(self, code: ApiErrorCode, message: str, fault: Fault | None = None):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        self.fault = fault
        super().__init__(message)

    @classmethod
    def from_fault(
        cls, fault: Fault | None, default_message: str = "Operation failed"
    ) -> "ApiError":
        """Build an ApiError from a session fault."""
        if fault is None:
            return cls(ApiErrorCode.E_INTERNAL, default_message)
        code = FAULT_KIND_TO_CODE.get(fault.kind, ApiErrorCode.E_INTERNAL)
        return cls(code, fault.message, fault)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)

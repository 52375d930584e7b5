"""Archive API envelopes and exception handlers.

Bodies are either {"data": ...} or
{"error": {"code": "E_...", "message": "...", "request_id": "..."}}.

Archive operations report failure as a Fault. Routes turn it into an
ApiError (raise_for_fault), and api_error_handler logs the fault kind and
the statement label behind it before rendering the envelope. Fault messages
never carry bound values, so they are safe to return to the caller.
"""

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from logvault.errors import ERROR_CODE_TO_STATUS, ApiError, ApiErrorCode
from logvault.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Statuses raised by the framework itself (unknown route, wrong method, ...)
FRAMEWORK_STATUS_TO_CODE: dict[int, ApiErrorCode] = {
    400: ApiErrorCode.E_INVALID_REQUEST,
    401: ApiErrorCode.E_OWNER_REQUIRED,
    403: ApiErrorCode.E_INTERNAL_ONLY,
    404: ApiErrorCode.E_NOT_FOUND,
    405: ApiErrorCode.E_INVALID_REQUEST,
    422: ApiErrorCode.E_INVALID_REQUEST,
}


def success_response(data: Any) -> dict[str, Any]:
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Build the error envelope; request_id defaults to the current request's."""
    error = {"code": code.value, "message": message}
    request_id = request_id or get_request_id()
    if request_id:
        error["request_id"] = request_id
    return {"error": error}


def error_json(code: ApiErrorCode, message: str, status_code: int | None = None) -> JSONResponse:
    """Error envelope as a response, with the status taken from the code."""
    return JSONResponse(
        status_code=status_code or ERROR_CODE_TO_STATUS.get(code, 500),
        content=error_response(code, message),
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.fault is not None:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "archive_request_failed",
            code=exc.code.value,
            status_code=exc.status_code,
            fault_kind=exc.fault.kind.value,
            fault_label=exc.fault.label,
            path=request.url.path,
        )
    return error_json(exc.code, exc.message, exc.status_code)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    code = FRAMEWORK_STATUS_TO_CODE.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    return error_json(code, str(exc.detail or "Request failed"), exc.status_code)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies and query parameters become 400 E_INVALID_REQUEST.

    Only the offending field locations are logged, not their values.
    """
    fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
    logger.info("request_invalid", path=request.url.path, fields=fields)
    return error_json(ApiErrorCode.E_INVALID_REQUEST, "Invalid request")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 E_INTERNAL; the exception is logged but never echoed."""
    logger.exception("unhandled_exception", error_type=type(exc).__name__)
    return error_json(ApiErrorCode.E_INTERNAL, "Internal server error")

"""X-Request-ID correlation for archive requests.

The calling frontend usually forwards its own request id; it is kept when it
is a plain token (letters, digits, '.', '_', '-', up to 128 characters) and
replaced with a fresh UUID otherwise. The id is bound into the logging
context for the whole request, echoed on the response, and one
request_completed event is logged per request with the resolved owner.

Registered after OwnerMiddleware so it wraps it: owner rejections carry the
header too.
"""

import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from logvault.logging import clear_request_context, get_logger, set_request_context

REQUEST_ID_HEADER = "X-Request-ID"

_REQUEST_ID_RE = re.compile(r"[A-Za-z0-9._-]{1,128}")

logger = get_logger(__name__)


def is_valid_request_id(value: str) -> bool:
    return bool(_REQUEST_ID_RE.fullmatch(value))


def resolve_request_id(incoming: str | None) -> str:
    """The caller's id if it is a plain token, else a new UUID."""
    if incoming and is_valid_request_id(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.monotonic()
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_request_context(request_id)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", method=request.method, path=request.url.path)
            raise
        else:
            response.headers[REQUEST_ID_HEADER] = request_id
            if self.log_requests:
                logger.info(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    owner_id=getattr(request.state, "owner_id", None),
                    duration_ms=round((time.monotonic() - started) * 1000, 2),
                )
            return response
        finally:
            clear_request_context()

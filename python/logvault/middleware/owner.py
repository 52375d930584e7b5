"""Owner middleware.

The archive is always read and written on behalf of one owner. The calling
frontend authenticates its user and forwards the owner id in X-Logvault-Owner;
this service trusts it. In staging and prod the caller must also present the
shared internal secret in X-Logvault-Internal.

Order of checks:
1. Skip if public path
2. Verify internal header (if required)
3. Parse the owner header (decimal digits only, never 0)
4. Attach owner_id to request state
"""

import hmac

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from logvault.errors import ApiError, ApiErrorCode
from logvault.logging import get_logger, set_owner_context
from logvault.responses import error_json
from logvault.services.validation import validate_owner_id

logger = get_logger(__name__)

OWNER_HEADER = "x-logvault-owner"
INTERNAL_HEADER = "x-logvault-internal"

PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class OwnerMiddleware(BaseHTTPMiddleware):
    """Resolves the archive owner for every non-public request."""

    def __init__(
        self,
        app: ASGIApp,
        requires_internal_header: bool = False,
        internal_secret: str | None = None,
    ):
        super().__init__(app)
        self.requires_internal_header = requires_internal_header
        self.internal_secret = internal_secret

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        if self.requires_internal_header:
            rejected = self._verify_internal_header(request)
            if rejected:
                return rejected

        header_value = request.headers.get(OWNER_HEADER)
        owner_id = validate_owner_id(header_value) if header_value else None
        if not isinstance(owner_id, int):
            logger.warning(
                "owner_rejected",
                reason="owner_header_missing" if header_value is None else "owner_header_invalid",
                request_path=request.url.path,
            )
            return error_json(ApiErrorCode.E_OWNER_REQUIRED, "Archive owner required")

        request.state.owner_id = owner_id
        set_owner_context(str(owner_id))
        return await call_next(request)

    def _verify_internal_header(self, request: Request) -> JSONResponse | None:
        """Constant-time check of the internal secret header."""
        header_value = request.headers.get(INTERNAL_HEADER)

        if header_value is None:
            logger.warning(
                "owner_rejected",
                reason="internal_header_missing",
                request_path=request.url.path,
            )
            return error_json(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required")

        if not self.internal_secret:
            # Settings validation requires the secret in staging/prod
            logger.error("internal_secret_missing")
            return error_json(ApiErrorCode.E_INTERNAL, "Internal server error")

        if not hmac.compare_digest(header_value.encode(), self.internal_secret.encode()):
            logger.warning(
                "owner_rejected",
                reason="internal_header_mismatch",
                request_path=request.url.path,
            )
            return error_json(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required")

        return None


def get_owner_id(request: Request) -> int:
    """FastAPI dependency returning the owner resolved by OwnerMiddleware.

    Raises:
        ApiError: If the middleware did not run (public path or tests without it).
    """
    owner_id = getattr(request.state, "owner_id", None)
    if owner_id is None:
        raise ApiError(ApiErrorCode.E_OWNER_REQUIRED, "Archive owner required")
    return owner_id

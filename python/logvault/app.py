"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, owner middleware, request-id middleware, and routes.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures all requests (including owner rejections) get X-Request-ID

Actual execution order per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. OwnerMiddleware (checks internal header, resolves owner)
3. Route handler
4. OwnerMiddleware (returns response)
5. RequestIDMiddleware (logs, sets response header)
"""

import json

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from logvault.api.routes import create_api_router
from logvault.config import get_settings
from logvault.errors import ApiError, ApiErrorCode
from logvault.logging import configure_logging, get_logger
from logvault.middleware.owner import OwnerMiddleware
from logvault.middleware.request_id import RequestIDMiddleware
from logvault.responses import (
    api_error_handler,
    error_json,
    http_exception_handler,
    request_validation_handler,
    unhandled_exception_handler,
)

logger = get_logger(__name__)


def create_app(skip_owner_middleware: bool = False) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_owner_middleware: If True, skip adding owner middleware (for testing).

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json)

    app = FastAPI(
        title="Logvault API",
        description="Trash, restore, consistency and search for a date-sharded chat archive",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Catch JSON decode errors before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return error_json(ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body")
        return await call_next(request)

    app.include_router(create_api_router())

    if not skip_owner_middleware:
        app.add_middleware(
            OwnerMiddleware,
            requires_internal_header=settings.requires_internal_header,
            internal_secret=settings.internal_secret,
        )
        logger.info(
            "owner_middleware_enabled",
            env=settings.logvault_env.value,
            internal_header_required=settings.requires_internal_header,
        )

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.
    This ensures every response includes X-Request-ID, including owner rejections.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")

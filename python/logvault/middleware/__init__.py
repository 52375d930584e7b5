"""Middleware modules for the Logvault API."""

from logvault.middleware.owner import OWNER_HEADER, OwnerMiddleware
from logvault.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware

__all__ = ["OwnerMiddleware", "OWNER_HEADER", "RequestIDMiddleware", "REQUEST_ID_HEADER"]

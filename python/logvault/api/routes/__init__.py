"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from logvault.api.routes.consistency import router as consistency_router
from logvault.api.routes.health import router as health_router
from logvault.api.routes.search import router as search_router
from logvault.api.routes.trash import router as trash_router


def create_api_router() -> APIRouter:
    """Create and configure the API router."""
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(trash_router, tags=["trash"])
    api_router.include_router(search_router, tags=["search"])
    api_router.include_router(consistency_router, tags=["consistency"])
    return api_router


__all__ = ["create_api_router"]

"""FastAPI dependencies for route handlers."""

from typing import Annotated, NoReturn

from fastapi import Depends
from sqlalchemy.orm import Session

from logvault.config import get_settings
from logvault.db.session import get_db
from logvault.errors import ApiError, ApiErrorCode, Fault
from logvault.middleware.owner import get_owner_id
from logvault.services.archive import ArchiveSession

__all__ = ["get_archive", "get_db", "raise_for_fault"]


def get_archive(
    owner_id: Annotated[int, Depends(get_owner_id)],
    db: Annotated[Session, Depends(get_db)],
) -> ArchiveSession:
    """Archive session for the request owner.

    One ArchiveSession per request, so fault state never outlives the
    request that caused it.
    """
    archive = ArchiveSession.from_settings(db, get_settings())
    if not archive.set_owner(owner_id):
        raise ApiError(ApiErrorCode.E_OWNER_REQUIRED, "Archive owner required")
    return archive


def raise_for_fault(fault: Fault | None, default_message: str) -> NoReturn:
    """Raise the ApiError matching an archive fault."""
    raise ApiError.from_fault(fault, default_message)

"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from logvault.schemas.archive import (
    ConsistencyReportOut,
    ConversationDayRequest,
    TrashedItemOut,
    TrashListResponse,
    TrashRequest,
)
from logvault.schemas.search import SearchHitOut, SearchResponse

__all__ = [
    # Archive
    "ConsistencyReportOut",
    "ConversationDayRequest",
    "TrashedItemOut",
    "TrashListResponse",
    "TrashRequest",
    # Search
    "SearchHitOut",
    "SearchResponse",
]

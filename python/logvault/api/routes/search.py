"""Search routes.

Routes are transport-only:
- Resolve the archive session for the request owner
- Call exactly one archive operation
- Return success(...) or raise ApiError
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from logvault.api.deps import get_archive, raise_for_fault
from logvault.responses import success_response
from logvault.schemas.search import SearchHitOut, SearchResponse
from logvault.services.archive import ArchiveSession

router = APIRouter()


@router.get("/search")
def search(
    archive: Annotated[ArchiveSession, Depends(get_archive)],
    q: Annotated[str, Query(min_length=1, description="Boolean-mode search query")],
    date: Annotated[
        list[str] | None,
        Query(description="Day(s) to search, YYYY-MM-DD. Omit to search every archived day."),
    ] = None,
    peer_name_id: Annotated[int | None, Query(ge=0)] = None,
    peer_server_id: Annotated[int | None, Query(ge=0)] = None,
) -> dict:
    """Ranked search of archived messages.

    Each day shard is scanned up to the per-shard cap, then hits from all
    days are ordered by score and capped (100 by default). Passing both
    peer ids restricts the search to one conversation. Trashed messages are
    returned with trashed=true.
    """
    if date:
        result = archive.search_many(q, date, peer_name_id, peer_server_id)
    else:
        result = archive.search_archive(q, peer_name_id, peer_server_id)
    if not result:
        raise_for_fault(result.fault, "Search failed")

    response = SearchResponse(results=[SearchHitOut.from_hit(hit) for hit in result.value])
    return success_response(response.model_dump(mode="json"))

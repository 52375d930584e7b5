"""Consistency routes.

Compares a conversation-day's stats row with a recount of its shard and,
on request, overwrites the stats with the recount.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from logvault.api.deps import get_archive, raise_for_fault
from logvault.responses import success_response
from logvault.schemas.archive import ConsistencyReportOut
from logvault.services.archive import ArchiveSession

router = APIRouter()


@router.get("/consistency")
def verify_consistency(
    archive: Annotated[ArchiveSession, Depends(get_archive)],
    peer_name_id: Annotated[int, Query(ge=0)],
    peer_server_id: Annotated[int, Query(ge=0)],
    date: Annotated[str, Query(description="Date partition, YYYY-MM-DD")],
    repair: Annotated[bool, Query(description="Overwrite stats with the recount")] = False,
) -> dict:
    """Verify (and optionally repair) the stats row for a conversation-day.

    Trashed days are reported but never repaired.
    """
    result = archive.verify(peer_name_id, peer_server_id, date, repair=repair)
    if not result:
        raise_for_fault(result.fault, "Consistency check failed")
    return success_response(ConsistencyReportOut.from_report(result.value).model_dump(mode="json"))

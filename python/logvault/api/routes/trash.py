"""Trash routes.

Routes are transport-only:
- Resolve the archive session for the request owner
- Call exactly one archive operation
- Return success(...) or raise ApiError

No domain logic or raw DB access in routes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from logvault.api.deps import get_archive, raise_for_fault
from logvault.responses import success_response
from logvault.schemas.archive import TrashedItemOut, TrashListResponse, TrashRequest
from logvault.services.archive import ArchiveSession

router = APIRouter()


@router.get("/trash")
def list_trash(archive: Annotated[ArchiveSession, Depends(get_archive)]) -> dict:
    """List conversation-days in trash, newest date first."""
    items = archive.list_trashed()
    if not items:
        raise_for_fault(items.fault, "Could not list trash")
    response = TrashListResponse(
        items=[TrashedItemOut.from_item(item) for item in items.value],
        count=len(items.value),
    )
    return success_response(response.model_dump(mode="json"))


@router.post("/trash")
def move_to_trash(
    body: TrashRequest,
    archive: Annotated[ArchiveSession, Depends(get_archive)],
) -> dict:
    """Move a conversation-day to trash.

    Marks shard rows, saved links and favorites as trashed and drops the
    day's stats row, all in one transaction. Returns 409 E_ALREADY_IN_TRASH
    if the day is already in trash.
    """
    if not archive.move_to_trash(body.peer_name_id, body.peer_server_id, body.date, body.link_ref):
        raise_for_fault(archive.last_failure, "Could not move conversation to trash")
    return success_response({"state": "trashed", **body.model_dump(exclude={"link_ref"})})


@router.post("/trash/restore")
def restore_from_trash(
    body: TrashRequest,
    archive: Annotated[ArchiveSession, Depends(get_archive)],
) -> dict:
    """Restore a conversation-day from trash and rebuild its stats row.

    Returns 404 E_TRASH_ITEM_NOT_FOUND if the day is not in trash.
    """
    if not archive.restore_from_trash(
        body.peer_name_id, body.peer_server_id, body.date, body.link_ref
    ):
        raise_for_fault(archive.last_failure, "Could not restore conversation from trash")
    return success_response({"state": "live", **body.model_dump(exclude={"link_ref"})})


@router.delete("/trash", status_code=204)
def purge_from_trash(
    archive: Annotated[ArchiveSession, Depends(get_archive)],
    peer_name_id: Annotated[int, Query(ge=0)],
    peer_server_id: Annotated[int, Query(ge=0)],
    date: Annotated[str, Query(description="Date partition, YYYY-MM-DD")],
) -> Response:
    """Permanently delete a trashed conversation-day.

    Returns 404 E_TRASH_ITEM_NOT_FOUND if the day is not in trash.
    """
    result = archive.purge_from_trash(peer_name_id, peer_server_id, date)
    if not result:
        raise_for_fault(result.fault, "Could not purge conversation")
    return Response(status_code=204)


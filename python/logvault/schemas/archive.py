"""Archive Pydantic schemas.

Request and response models for the trash and consistency endpoints.

Request bodies only check types. Peer ids and dates are validated again by
the archive session, so a malformed date is reported the same way whether it
arrives in a body or a query string.
"""

from pydantic import BaseModel, ConfigDict, Field

from logvault.services.recount import ConsistencyReport
from logvault.services.trash import TrashedItem

# =============================================================================
# Request Schemas
# =============================================================================


class ConversationDayRequest(BaseModel):
    """Identifies one conversation-day: a peer on a date."""

    peer_name_id: int = Field(..., ge=0)
    peer_server_id: int = Field(..., ge=0)
    date: str = Field(..., description="Date partition, YYYY-MM-DD")

    model_config = ConfigDict(extra="forbid")


class TrashRequest(ConversationDayRequest):
    """Request to move a conversation-day to trash or restore it.

    link_ref is the prefix of saved links that belong to this conversation.
    An empty value leaves saved links untouched.
    """

    link_ref: str = ""


# =============================================================================
# Response Schemas
# =============================================================================


class TrashedItemOut(BaseModel):
    """A conversation-day in trash."""

    peer_name_id: int
    peer_server_id: int
    date: str
    timeframe: str | None = None

    @classmethod
    def from_item(cls, item: TrashedItem) -> "TrashedItemOut":
        return cls(
            peer_name_id=item.peer.name_id,
            peer_server_id=item.peer.server_id,
            date=item.date,
            timeframe=item.timeframe,
        )


class TrashListResponse(BaseModel):
    items: list[TrashedItemOut] = Field(default_factory=list)
    count: int = 0


class ConsistencyReportOut(BaseModel):
    """Stats vs. shard comparison for one conversation-day."""

    peer_name_id: int
    peer_server_id: int
    date: str
    live_count: int
    stat_counts: list[int]
    in_trash: bool
    consistent: bool
    repaired: bool

    @classmethod
    def from_report(cls, report: ConsistencyReport) -> "ConsistencyReportOut":
        return cls(
            peer_name_id=report.triple.peer.name_id,
            peer_server_id=report.triple.peer.server_id,
            date=report.triple.date,
            live_count=report.live_count,
            stat_counts=report.stat_counts,
            in_trash=report.in_trash,
            consistent=report.consistent,
            repaired=report.repaired,
        )

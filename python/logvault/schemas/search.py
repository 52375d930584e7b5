"""Search Pydantic schemas.

Search returns ranked message hits from one or more day shards. Trashed
messages are included and flagged.
"""

from pydantic import BaseModel, ConfigDict, Field

from logvault.services.search import SearchHit


class SearchHitOut(BaseModel):
    """Response schema for a single search hit."""

    ts: float
    time_slice: str
    peer_name_id: int
    peer_server_id: int
    direction: str
    body: str | None = None
    score: float
    trashed: bool = False

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_hit(cls, hit: SearchHit) -> "SearchHitOut":
        return cls(
            ts=hit.ts,
            time_slice=hit.time_slice,
            peer_name_id=hit.peer_name_id,
            peer_server_id=hit.peer_server_id,
            direction=hit.direction,
            body=hit.body,
            score=hit.score,
            trashed=hit.trashed,
        )


class SearchResponse(BaseModel):
    """Response for the search endpoint, ordered by score."""

    results: list[SearchHitOut] = Field(default_factory=list)

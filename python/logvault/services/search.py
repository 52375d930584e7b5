"""Ranked full-text search over message shards.

A search scans one or more day shards with a ranked text match, scoped to
the owner (and optionally one peer). Each shard scan is capped
(search_shard_limit, 10000 by default) and ordered by score so the cap keeps
the best rows. Hits from every scanned shard are merged into one result set
that holds only the best search_result_limit hits (100 by default).
Weaker hits are dropped as each shard is merged.

Soft-deleted rows are not filtered out; each hit carries its ext flag so the
caller can tell trashed conversations apart.

The rank expression depends on the dialect:

- PostgreSQL: ts_rank over to_tsvector('simple', body)
- MySQL/MariaDB: MATCH(body) AGAINST(... IN BOOLEAN MODE)
- SQLite: the logvault_match() function registered by the engine
"""

import hashlib
import heapq
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy.engine import RowMapping

from logvault.db.fulltext import SQLITE_MATCH_FUNCTION
from logvault.logging import get_logger
from logvault.services.keys import Peer
from logvault.services.routing import ShardRouter
from logvault.services.store import ArchiveStore, OpResult

logger = get_logger(__name__)

DEFAULT_SHARD_LIMIT = 10000
DEFAULT_RESULT_LIMIT = 100

_PG_VECTOR = "to_tsvector('simple', coalesce(body, ''))"
_PG_QUERY = "plainto_tsquery('simple', :query)"


@dataclass(frozen=True)
class SearchHit:
    """One matching message."""

    ts: float
    time_slice: str
    peer_name_id: int
    peer_server_id: int
    direction: str
    body: str | None
    score: float
    ext: int | None

    @property
    def peer(self) -> Peer:
        return Peer(self.peer_name_id, self.peer_server_id)

    @property
    def trashed(self) -> bool:
        return self.ext is not None


class SearchResultSet:
    """Running top-N of hits for one search.

    Every appended batch is merged into the best `limit` hits so far
    (highest score first, earlier messages first on ties); weaker hits are
    dropped as they arrive. len() still counts every hit that matched.
    """

    def __init__(self, limit: int = DEFAULT_RESULT_LIMIT):
        self.limit = limit
        self.matched = 0
        self._hits: list[SearchHit] = []

    def __len__(self) -> int:
        return self.matched

    def extend(self, hits: Sequence[SearchHit]) -> None:
        self.matched += len(hits)
        self._hits = heapq.nsmallest(self.limit, [*self._hits, *hits], key=_rank)

    def top(self) -> list[SearchHit]:
        return list(self._hits)


def _rank(hit: SearchHit) -> tuple[float, float]:
    return (-hit.score, hit.ts)


def hash_query(query: str) -> str:
    """Short stable digest of a query, for logs (raw text is never logged)."""
    return hashlib.sha256(query.encode("utf-8")).hexdigest()[:12]


def rank_expressions(dialect_name: str) -> tuple[str, str]:
    """(score expression, match predicate) for a SQL dialect."""
    if dialect_name == "postgresql":
        return f"ts_rank({_PG_VECTOR}, {_PG_QUERY})", f"{_PG_VECTOR} @@ {_PG_QUERY}"
    if dialect_name in ("mysql", "mariadb"):
        match = "MATCH(body) AGAINST(:query IN BOOLEAN MODE)"
        return match, match
    score = f"{SQLITE_MATCH_FUNCTION}(body, :query)"
    return score, f"{score} > 0"


class SearchAggregator:
    """Runs ranked searches and keeps the current result set."""

    def __init__(
        self,
        store: ArchiveStore,
        router: ShardRouter,
        shard_limit: int = DEFAULT_SHARD_LIMIT,
        result_limit: int = DEFAULT_RESULT_LIMIT,
    ):
        self.store = store
        self.router = router
        self.shard_limit = shard_limit
        self.result_limit = result_limit
        self.results: SearchResultSet | None = None

    def search(
        self, owner_id: int, query: str, date: str, peer: Peer | None = None
    ) -> OpResult[list[SearchHit]]:
        """Search one day shard."""
        return self.search_many(owner_id, query, [date], peer)

    def search_many(
        self, owner_id: int, query: str, dates: Sequence[str], peer: Peer | None = None
    ) -> OpResult[list[SearchHit]]:
        """Search several day shards into one result set.

        The previous result set is discarded first. The first shard that
        fails stops the search.
        """
        self.results = SearchResultSet(self.result_limit)
        if not query.strip():
            return OpResult.success([])

        for date in dates:
            scanned = self._scan_shard(owner_id, query, date, peer)
            if not scanned:
                logger.warning(
                    "search_failed",
                    query_hash=hash_query(query),
                    date=date,
                    fault_kind=scanned.fault.kind.value if scanned.fault else None,
                )
                return OpResult.failure(scanned.fault)
            self.results.extend(scanned.value)

        hits = self.results.top()
        logger.info(
            "search_completed",
            query_hash=hash_query(query),
            shards=len(dates),
            matched=len(self.results),
            returned=len(hits),
            peer_scoped=peer is not None,
        )
        return OpResult.success(hits)

    def search_archive(
        self, owner_id: int, query: str, peer: Peer | None = None
    ) -> OpResult[list[SearchHit]]:
        """Search every day the owner has live conversations on.

        Days come from the stats table, newest first.
        """
        dates = self.archive_dates(owner_id, peer)
        if not dates:
            return OpResult.failure(dates.fault)
        return self.search_many(owner_id, query, dates.value, peer)

    def archive_dates(self, owner_id: int, peer: Peer | None = None) -> OpResult[list[str]]:
        stats = self.store.quote(self.router.stats_table)
        params = {"owner_id": owner_id}
        peer_filter = ""
        if peer is not None:
            peer_filter = "AND peer_name_id = :peer_name_id AND peer_server_id = :peer_server_id"
            params.update(peer_name_id=peer.name_id, peer_server_id=peer.server_id)

        result = self.store.select_rows(
            "archive_dates",
            f"""
                SELECT DISTINCT at
                FROM {stats}
                WHERE owner_id = :owner_id
                {peer_filter}
                ORDER BY at DESC
            """,
            params,
        )
        if not result:
            return result
        return OpResult.success([row["at"] for row in result.value])

    def _scan_shard(
        self, owner_id: int, query: str, date: str, peer: Peer | None
    ) -> OpResult[list[SearchHit]]:
        shard = self.store.quote(self.router.shard_name(date))
        score, predicate = rank_expressions(self.store.db.get_bind().dialect.name)
        params = {"owner_id": owner_id, "query": query, "scan_limit": self.shard_limit}
        peer_filter = ""
        if peer is not None:
            peer_filter = "AND peer_name_id = :peer_name_id AND peer_server_id = :peer_server_id"
            params.update(peer_name_id=peer.name_id, peer_server_id=peer.server_id)

        result = self.store.select_rows(
            "search_shard",
            f"""
                SELECT
                    timestamp AS ts,
                    peer_name_id,
                    peer_server_id,
                    direction,
                    ext,
                    body,
                    {score} AS score
                FROM {shard}
                WHERE {predicate}
                AND owner_id = :owner_id
                {peer_filter}
                ORDER BY score DESC
                LIMIT :scan_limit
            """,
            params,
        )
        if not result:
            return result
        return OpResult.success([_hit(row, date) for row in result.value])


def _hit(row: RowMapping, date: str) -> SearchHit:
    return SearchHit(
        ts=float(row["ts"]),
        time_slice=date,
        peer_name_id=row["peer_name_id"],
        peer_server_id=row["peer_server_id"],
        direction=row["direction"],
        body=row["body"],
        score=float(row["score"] or 0.0),
        ext=row["ext"],
    )

"""Aggregate stat recomputation.

The stats table caches, per (owner, peer, date), how many live messages the
shard holds. It is a cache: the shard is the source of truth. Whenever the
two may have diverged (after a restore, or when verification finds a
mismatch) the count is recomputed from the shard and written back.

recount() must run after shard markers are cleared. Running it earlier
counts the conversation as empty.
"""

from dataclasses import dataclass, field

from logvault.db.schema import PENDING_DELETION_TABLE
from logvault.errors import Fault, FaultKind
from logvault.logging import get_logger
from logvault.services.keys import Triple
from logvault.services.routing import ShardRouter
from logvault.services.store import ArchiveStore, OpResult
from logvault.services.transactions import Step, TransactionCoordinator

logger = get_logger(__name__)

TRIPLE_PREDICATE = """
    owner_id = :owner_id
    AND peer_name_id = :peer_name_id
    AND peer_server_id = :peer_server_id
"""


@dataclass(frozen=True)
class ConsistencyReport:
    """Result of comparing a triple's stat rows against the shard."""

    triple: Triple
    live_count: int
    stat_counts: list[int] = field(default_factory=list)
    in_trash: bool = False
    repaired: bool = False

    @property
    def consistent(self) -> bool:
        if self.in_trash:
            # Trashed triples have no stat row and no live messages
            return not self.stat_counts and self.live_count == 0
        if not self.stat_counts:
            return self.live_count == 0
        return len(self.stat_counts) == 1 and self.stat_counts[0] == self.live_count


class ConsistencyRecalculator:
    """Recounts shard rows and reconciles the stats table."""

    def __init__(
        self, store: ArchiveStore, router: ShardRouter, coordinator: TransactionCoordinator
    ):
        self.store = store
        self.router = router
        self.coordinator = coordinator

    def recount(self, triple: Triple) -> OpResult[int]:
        """Count live (not soft-deleted) shard rows for the triple."""
        shard = self.store.quote(self.router.shard_name(triple.date))
        result = self.store.select_scalar(
            "recount_messages",
            f"""
                SELECT count(*)
                FROM {shard}
                WHERE {TRIPLE_PREDICATE}
                AND ext IS NULL
            """,
            triple.params(),
        )
        if not result:
            return result
        return OpResult.success(int(result.value or 0))

    def count_stat_rows(self, triple: Triple) -> OpResult[int]:
        """How many stat rows exist for the triple (normally 0 or 1)."""
        stats = self.store.quote(self.router.stats_table)
        result = self.store.select_scalar(
            "probe_stats",
            f"""
                SELECT count(*)
                FROM {stats}
                WHERE {TRIPLE_PREDICATE}
                AND at = :date
            """,
            triple.params(),
        )
        if not result:
            return result
        return OpResult.success(int(result.value or 0))

    def read_stat_counts(self, triple: Triple) -> OpResult[list[int]]:
        stats = self.store.quote(self.router.stats_table)
        result = self.store.select_rows(
            "read_stats",
            f"""
                SELECT count
                FROM {stats}
                WHERE {TRIPLE_PREDICATE}
                AND at = :date
            """,
            triple.params(),
        )
        if not result:
            return result
        return OpResult.success([int(row["count"]) for row in result.value])

    def reconcile(self, triple: Triple, live_count: int) -> OpResult[str]:
        """Write live_count to the stats table for the triple.

        0 existing rows -> insert; 1 -> update; more than one is a duplicate
        condition: the shard recount is trusted, duplicates are deleted and a
        single row is inserted.

        Must run inside a transaction. Returns the action taken.
        """
        existing = self.count_stat_rows(triple)
        if not existing:
            return existing

        if existing.value == 1:
            return self._update_stats(triple, live_count)

        if existing.value > 1:
            logger.warning(
                "consistency_violation",
                reason="duplicate_stat_rows",
                rows=existing.value,
                peer_name_id=triple.peer.name_id,
                peer_server_id=triple.peer.server_id,
                date=triple.date,
            )
            deleted = self.delete_stats(triple)
            if not deleted:
                return deleted
            inserted = self._insert_stats(triple, live_count)
            return OpResult.success("repaired") if inserted else inserted

        return self._insert_stats(triple, live_count)

    def delete_stats(self, triple: Triple) -> OpResult[int]:
        stats = self.store.quote(self.router.stats_table)
        return self.store.execute(
            "remove_stats",
            f"""
                DELETE FROM {stats}
                WHERE {TRIPLE_PREDICATE}
                AND at = :date
            """,
            triple.params(),
        )

    def _insert_stats(self, triple: Triple, live_count: int) -> OpResult[str]:
        stats = self.store.quote(self.router.stats_table)
        result = self.store.execute(
            "insert_stats",
            f"""
                INSERT INTO {stats} (owner_id, peer_name_id, peer_server_id, at, count)
                VALUES (:owner_id, :peer_name_id, :peer_server_id, :date, :count)
            """,
            {**triple.params(), "count": live_count},
        )
        return OpResult.success("inserted") if result else result

    def _update_stats(self, triple: Triple, live_count: int) -> OpResult[str]:
        stats = self.store.quote(self.router.stats_table)
        result = self.store.execute(
            "update_stats",
            f"""
                UPDATE {stats}
                SET count = :count
                WHERE {TRIPLE_PREDICATE}
                AND at = :date
            """,
            {**triple.params(), "count": live_count},
        )
        if not result:
            return result
        if result.value != 1:
            # The probe saw exactly one row; anything else means another
            # session changed the stats row between probe and update.
            return self.store.fail(
                Fault(
                    FaultKind.consistency,
                    f"Stats update touched {result.value} rows, expected 1",
                    "update_stats",
                )
            )
        return OpResult.success("updated")

    def is_in_trash(self, triple: Triple) -> OpResult[bool]:
        result = self.store.select_scalar(
            "probe_pending_deletion",
            f"""
                SELECT count(*)
                FROM {PENDING_DELETION_TABLE}
                WHERE {TRIPLE_PREDICATE}
                AND date = :date
            """,
            triple.params(),
        )
        if not result:
            return result
        return OpResult.success(int(result.value or 0) > 0)

    def verify(self, triple: Triple, repair: bool = False) -> OpResult[ConsistencyReport]:
        """Compare stat rows for the triple with a fresh shard recount.

        With repair=True a divergence is fixed by overwriting the stats with
        the recount, in its own transaction. Trashed triples are reported
        but never repaired.
        """
        in_trash = self.is_in_trash(triple)
        if not in_trash:
            return in_trash

        live = self.recount(triple)
        if not live:
            return live

        stat_counts = self.read_stat_counts(triple)
        if not stat_counts:
            return stat_counts

        report = ConsistencyReport(
            triple=triple,
            live_count=live.value,
            stat_counts=stat_counts.value,
            in_trash=in_trash.value,
        )
        if report.consistent:
            return OpResult.success(report)

        logger.warning(
            "consistency_violation",
            reason="stats_diverged",
            live_count=report.live_count,
            stat_counts=report.stat_counts,
            in_trash=report.in_trash,
            peer_name_id=triple.peer.name_id,
            peer_server_id=triple.peer.server_id,
            date=triple.date,
        )
        if not repair or report.in_trash:
            return OpResult.success(report)

        repaired = self.coordinator.run(
            "repair_stats",
            [Step("reconcile_stats", lambda ctx: self.reconcile(triple, report.live_count))],
        )
        if not repaired:
            return OpResult.failure(repaired.fault)

        logger.info(
            "stats_repaired",
            live_count=report.live_count,
            peer_name_id=triple.peer.name_id,
            peer_server_id=triple.peer.server_id,
            date=triple.date,
        )
        return OpResult.success(
            ConsistencyReport(
                triple=triple,
                live_count=report.live_count,
                stat_counts=[report.live_count],
                in_trash=False,
                repaired=True,
            )
        )

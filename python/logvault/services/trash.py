"""Trash and restore workflows.

A conversation-day (owner, peer, date) is either live or in trash. The
pending_del row is the only source of truth for "in trash"; every other
table mirrors it:

- message shard rows carry ext=1 while trashed
- the stats row is absent while trashed and rebuilt from the shard on restore
- my-links (matched by link prefix) and favorites carry ext=1 while trashed

Move to trash runs entirely inside one transaction. Restore cannot: the
message shard is updated first, as its own unit, because shard tables are
not guaranteed to take part in the surrounding transaction. If the
transaction that follows rolls back, a compensation re-marks the shard so the
shard and pending_del agree again. With compensation disabled the shard stays
live while pending_del still says "in trash"; that window is logged.

Both directions check pending_del first. Trashing a day already in trash is
refused with a conflict fault, and restoring a live day is refused with a
not_found fault, so neither workflow touches the shard of a day in the other
state.
"""

from dataclasses import dataclass

from logvault.db.schema import FAVORITES_TABLE, MYLINKS_TABLE, PENDING_DELETION_TABLE
from logvault.errors import Fault, FaultKind
from logvault.logging import get_logger
from logvault.services.audit import EVENT_CHAT_TRASHED, LEVEL_NOTICE, AuditRecorder
from logvault.services.keys import Peer, Triple
from logvault.services.recount import TRIPLE_PREDICATE, ConsistencyRecalculator
from logvault.services.routing import ShardRouter
from logvault.services.store import ArchiveStore, OpResult
from logvault.services.transactions import Compensation, Step, TransactionCoordinator
from logvault.services.validation import LIKE_ESCAPE_CHAR, escape_like

logger = get_logger(__name__)


@dataclass(frozen=True)
class TrashedItem:
    """One conversation-day sitting in trash."""

    peer: Peer
    date: str
    timeframe: str | None


class TrashWorkflow:
    """Moves conversation-days between live and trash."""

    def __init__(
        self,
        store: ArchiveStore,
        router: ShardRouter,
        recalculator: ConsistencyRecalculator,
        coordinator: TransactionCoordinator,
        audit: AuditRecorder,
        restore_compensation: bool = True,
    ):
        self.store = store
        self.router = router
        self.recalculator = recalculator
        self.coordinator = coordinator
        self.audit = audit
        self.restore_compensation = restore_compensation

    # =========================================================================
    # Move to trash
    # =========================================================================

    def move_to_trash(self, triple: Triple, link_ref: str) -> OpResult[None]:
        """Move a conversation-day to trash in one transaction.

        Steps, in order: refuse a day already in trash, record pending
        deletion, drop the stats row, mark my-links, mark favorites, mark
        shard rows. The audit event is written after commit and does not
        affect the outcome.

        An empty link_ref marks no my-links. The legacy archive matched
        `link LIKE '%'` there and so marked every link for the peer.
        """
        result = self.coordinator.run(
            "move_to_trash",
            [
                Step("check_live", lambda ctx: self._require_live(triple)),
                Step("set_pending_deletion", lambda ctx: self._set_pending(triple)),
                Step("remove_stats", lambda ctx: self.recalculator.delete_stats(triple)),
                Step(
                    "trash_mylinks",
                    lambda ctx: self._mark_mylinks(triple, link_ref, trashed=True),
                ),
                Step("trash_favorites", lambda ctx: self._mark_favorites(triple, trashed=True)),
                Step("trash_messages", lambda ctx: self._mark_messages(triple, trashed=True)),
            ],
        )
        if not result:
            logger.warning("trash_failed", **_log_fields(triple, result.fault))
            return OpResult.failure(result.fault)

        logger.info(
            "trash_moved",
            peer_name_id=triple.peer.name_id,
            peer_server_id=triple.peer.server_id,
            date=triple.date,
            messages=result.value["trash_messages"],
        )

        recorded = self.audit.record(triple.owner_id, EVENT_CHAT_TRASHED, LEVEL_NOTICE)
        if not recorded:
            logger.warning(
                "audit_event_failed",
                event_id=EVENT_CHAT_TRASHED,
                fault_kind=recorded.fault.kind.value,
            )
            # The trash itself is committed; do not leave the session faulty
            self.store.rollback()

        return OpResult.success()

    # =========================================================================
    # Restore from trash
    # =========================================================================

    def restore_from_trash(self, triple: Triple, link_ref: str) -> OpResult[None]:
        """Bring a conversation-day back from trash.

        Only a day in trash can be restored; anything else is a not_found
        fault. The shard is unmarked first and committed on its own. Then, in
        one transaction: drop pending deletion, recount the shard, write the
        stats row, unmark my-links and favorites.
        """
        in_trash = self._require_trashed(triple, "restore_from_trash")
        if not in_trash:
            return in_trash

        unmarked = self._mark_messages(triple, trashed=False, autocommit=True)
        if not unmarked:
            logger.warning(
                "restore_failed", stage="restore_messages", **_log_fields(triple, unmarked.fault)
            )
            return OpResult.failure(unmarked.fault)

        compensations = []
        if self.restore_compensation:
            compensations.append(
                Compensation(
                    "retrash_messages",
                    lambda: self._mark_messages(triple, trashed=True, autocommit=True),
                )
            )

        result = self.coordinator.run(
            "restore_from_trash",
            [
                Step("unset_pending_deletion", lambda ctx: self._unset_pending(triple)),
                # Must follow the shard unmark above; earlier it would count zero
                Step("recount", lambda ctx: self.recalculator.recount(triple)),
                Step(
                    "reconcile_stats",
                    lambda ctx: self.recalculator.reconcile(triple, ctx["recount"]),
                ),
                Step(
                    "restore_mylinks",
                    lambda ctx: self._mark_mylinks(triple, link_ref, trashed=False),
                ),
                Step("restore_favorites", lambda ctx: self._mark_favorites(triple, trashed=False)),
            ],
            compensations=compensations,
        )
        if not result:
            logger.warning(
                "restore_failed", stage="transaction", **_log_fields(triple, result.fault)
            )
            if not self.restore_compensation:
                logger.error(
                    "restore_inconsistency_window",
                    peer_name_id=triple.peer.name_id,
                    peer_server_id=triple.peer.server_id,
                    date=triple.date,
                )
            return OpResult.failure(result.fault)

        logger.info(
            "trash_restored",
            peer_name_id=triple.peer.name_id,
            peer_server_id=triple.peer.server_id,
            date=triple.date,
            count=result.value["recount"],
            stats_action=result.value["reconcile_stats"],
        )
        return OpResult.success()

    # =========================================================================
    # Purge and listing
    # =========================================================================

    def purge(self, triple: Triple) -> OpResult[None]:
        """Permanently delete a trashed conversation-day.

        Only triples currently in trash can be purged. Soft-deleted shard
        rows are deleted first (own unit), then pending deletion, trashed
        my-links and favorites in one transaction.
        """
        in_trash = self._require_trashed(triple, "purge_from_trash")
        if not in_trash:
            return in_trash

        shard = self.store.quote(self.router.shard_name(triple.date))
        deleted = self.store.execute_autocommit(
            "delete_messages",
            f"""
                DELETE FROM {shard}
                WHERE {TRIPLE_PREDICATE}
                AND ext = 1
            """,
            triple.params(),
        )
        if not deleted:
            logger.warning(
                "purge_failed", stage="delete_messages", **_log_fields(triple, deleted.fault)
            )
            return OpResult.failure(deleted.fault)

        result = self.coordinator.run(
            "purge_from_trash",
            [
                Step("unset_pending_deletion", lambda ctx: self._unset_pending(triple)),
                Step("delete_mylinks", lambda ctx: self._delete_trashed_mylinks(triple)),
                Step("delete_favorites", lambda ctx: self._delete_favorites(triple)),
            ],
        )
        if not result:
            logger.warning(
                "purge_failed", stage="transaction", **_log_fields(triple, result.fault)
            )
            return OpResult.failure(result.fault)

        logger.info(
            "trash_purged",
            peer_name_id=triple.peer.name_id,
            peer_server_id=triple.peer.server_id,
            date=triple.date,
            messages=deleted.value,
        )
        return OpResult.success()

    def list_trashed(self, owner_id: int) -> OpResult[list[TrashedItem]]:
        """Trashed conversation-days, newest date first."""
        result = self.store.select_rows(
            "list_trashed",
            f"""
                SELECT peer_name_id, peer_server_id, date, timeframe
                FROM {PENDING_DELETION_TABLE}
                WHERE owner_id = :owner_id
                ORDER BY date DESC
            """,
            {"owner_id": owner_id},
        )
        if not result:
            return result
        return OpResult.success(
            [
                TrashedItem(
                    peer=Peer(row["peer_name_id"], row["peer_server_id"]),
                    date=row["date"],
                    timeframe=row["timeframe"],
                )
                for row in result.value
            ]
        )

    def trash_count(self, owner_id: int) -> OpResult[int]:
        result = self.store.select_scalar(
            "trash_count",
            f"SELECT count(*) FROM {PENDING_DELETION_TABLE} WHERE owner_id = :owner_id",
            {"owner_id": owner_id},
        )
        if not result:
            return result
        return OpResult.success(int(result.value or 0))

    # =========================================================================
    # Statements
    # =========================================================================

    def _require_trashed(self, triple: Triple, label: str) -> OpResult[None]:
        in_trash = self.recalculator.is_in_trash(triple)
        if not in_trash:
            return OpResult.failure(in_trash.fault)
        if not in_trash.value:
            return OpResult.failure(
                Fault(FaultKind.not_found, "Conversation is not in trash", label)
            )
        return OpResult.success()

    def _require_live(self, triple: Triple) -> OpResult[None]:
        in_trash = self.recalculator.is_in_trash(triple)
        if not in_trash:
            return OpResult.failure(in_trash.fault)
        if in_trash.value:
            return OpResult.failure(
                Fault(FaultKind.conflict, "Conversation is already in trash", "move_to_trash")
            )
        return OpResult.success()

    def _set_pending(self, triple: Triple) -> OpResult[int]:
        return self.store.execute(
            "set_pending_deletion",
            f"""
                INSERT INTO {PENDING_DELETION_TABLE} (owner_id, peer_name_id, peer_server_id, date)
                VALUES (:owner_id, :peer_name_id, :peer_server_id, :date)
            """,
            triple.params(),
        )

    def _unset_pending(self, triple: Triple) -> OpResult[int]:
        return self.store.execute(
            "unset_pending_deletion",
            f"""
                DELETE FROM {PENDING_DELETION_TABLE}
                WHERE {TRIPLE_PREDICATE}
                AND date = :date
            """,
            triple.params(),
        )

    def _mark_messages(
        self, triple: Triple, trashed: bool, autocommit: bool = False
    ) -> OpResult[int]:
        # The shard is per date, so owner and peer select the whole conversation-day
        shard = self.store.quote(self.router.shard_name(triple.date))
        label = "trash_messages" if trashed else "restore_messages"
        marker = "1" if trashed else "NULL"
        sql = f"UPDATE {shard} SET ext = {marker} WHERE {TRIPLE_PREDICATE}"
        if autocommit:
            return self.store.execute_autocommit(label, sql, triple.params())
        return self.store.execute(label, sql, triple.params())

    def _mark_mylinks(self, triple: Triple, link_ref: str, trashed: bool) -> OpResult[int]:
        label = "trash_mylinks" if trashed else "restore_mylinks"
        if not link_ref:
            # Legacy matched every link for the peer here; an empty ref now marks none
            return OpResult.success(0)
        marker = "1" if trashed else "NULL"
        return self.store.execute(
            label,
            f"""
                UPDATE {MYLINKS_TABLE}
                SET ext = {marker}
                WHERE owner_id = :owner_id
                AND peer_name_id = :peer_name_id
                AND link LIKE :link_prefix ESCAPE :like_escape
            """,
            {
                "owner_id": triple.owner_id,
                "peer_name_id": triple.peer.name_id,
                "link_prefix": escape_like(link_ref) + "%",
                "like_escape": LIKE_ESCAPE_CHAR,
            },
        )

    def _mark_favorites(self, triple: Triple, trashed: bool) -> OpResult[int]:
        label = "trash_favorites" if trashed else "restore_favorites"
        marker = "1" if trashed else "NULL"
        return self.store.execute(
            label,
            f"""
                UPDATE {FAVORITES_TABLE}
                SET ext = {marker}
                WHERE {TRIPLE_PREDICATE}
                AND tslice = :date
            """,
            triple.params(),
        )

    def _delete_trashed_mylinks(self, triple: Triple) -> OpResult[int]:
        return self.store.execute(
            "delete_mylinks",
            f"""
                DELETE FROM {MYLINKS_TABLE}
                WHERE {TRIPLE_PREDICATE}
                AND ext = 1
                AND datat = :date
            """,
            triple.params(),
        )

    def _delete_favorites(self, triple: Triple) -> OpResult[int]:
        return self.store.execute(
            "delete_favorites",
            f"""
                DELETE FROM {FAVORITES_TABLE}
                WHERE {TRIPLE_PREDICATE}
                AND tslice = :date
            """,
            triple.params(),
        )


def _log_fields(triple: Triple, fault: Fault | None) -> dict:
    return {
        "peer_name_id": triple.peer.name_id,
        "peer_server_id": triple.peer.server_id,
        "date": triple.date,
        "fault_kind": fault.kind.value if fault else None,
        "fault_label": fault.label if fault else None,
    }

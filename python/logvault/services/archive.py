"""Archive session: the caller-facing entry point.

One ArchiveSession wraps one database session and one owner. It owns the
session's fault state and wires the services together:

    ArchiveSession
      -> validation (every external value)
      -> ShardRouter (date -> shard table)
      -> TrashWorkflow / ConsistencyRecalculator / SearchAggregator
      -> TransactionCoordinator -> ArchiveStore -> SQLAlchemy

Workflow methods (move_to_trash, restore_from_trash, purge_from_trash,
set_owner, rollback) return bool. Read methods return OpResult. Nothing
raises across this boundary.

Every data operation requires an owner (set_owner) and a CLEAN session. A
validation failure marks the session FAULTY like any storage failure; only
rollback() clears it.
"""

from typing import Any

from sqlalchemy.orm import Session

from logvault.config import Settings, get_settings
from logvault.errors import Fault, FaultKind
from logvault.logging import get_logger, set_owner_context
from logvault.services.audit import AuditEvent, AuditRecorder
from logvault.services.fault_state import FaultState
from logvault.services.keys import Peer, Triple
from logvault.services.links import LinkService, MyLink
from logvault.services.recount import TRIPLE_PREDICATE, ConsistencyRecalculator, ConsistencyReport
from logvault.services.routing import DEFAULT_MESSAGES_PREFIX, ShardRouter
from logvault.services.search import (
    DEFAULT_RESULT_LIMIT,
    DEFAULT_SHARD_LIMIT,
    SearchAggregator,
    SearchHit,
)
from logvault.services.store import ArchiveStore, OpResult
from logvault.services.transactions import TransactionCoordinator
from logvault.services.trash import TrashedItem, TrashWorkflow
from logvault.services.validation import ParamKind, validate, validate_owner_id

logger = get_logger(__name__)


class ArchiveSession:
    """Per-request archive session for one owner."""

    def __init__(
        self,
        db: Session,
        host: str,
        messages_prefix: str = DEFAULT_MESSAGES_PREFIX,
        search_shard_limit: int = DEFAULT_SHARD_LIMIT,
        search_result_limit: int = DEFAULT_RESULT_LIMIT,
        restore_compensation: bool = True,
    ):
        self.faults = FaultState()
        self.store = ArchiveStore(db, self.faults)
        self.router = ShardRouter(host, messages_prefix)
        self.coordinator = TransactionCoordinator(self.store)
        self.recalculator = ConsistencyRecalculator(self.store, self.router, self.coordinator)
        self.audit = AuditRecorder(self.store)
        self.links = LinkService(self.store)
        self.trash = TrashWorkflow(
            self.store,
            self.router,
            self.recalculator,
            self.coordinator,
            self.audit,
            restore_compensation=restore_compensation,
        )
        self.searcher = SearchAggregator(
            self.store,
            self.router,
            shard_limit=search_shard_limit,
            result_limit=search_result_limit,
        )
        self.owner_id: int | None = None
        # Fault behind the most recent False from a workflow method. Unlike
        # last_fault it survives the rollback a failed workflow performs.
        self.last_failure: Fault | None = None

    @classmethod
    def from_settings(cls, db: Session, settings: Settings | None = None) -> "ArchiveSession":
        settings = settings or get_settings()
        return cls(
            db,
            host=settings.xmpp_host,
            messages_prefix=settings.messages_prefix,
            search_shard_limit=settings.search_shard_limit,
            search_result_limit=settings.search_result_limit,
            restore_compensation=settings.restore_compensation,
        )

    # =========================================================================
    # Session state
    # =========================================================================

    def set_owner(self, owner_id: object) -> bool:
        """Set the archive owner. Fails (and faults) on a non-integer or zero id."""
        value = validate_owner_id(owner_id)
        if isinstance(value, Fault):
            self.faults.mark_faulty(value)
            return self._failed(value)
        self.owner_id = value
        set_owner_context(str(value))
        return True

    def is_faulty(self) -> bool:
        return self.faults.is_faulty

    @property
    def last_fault(self) -> Fault | None:
        return self.faults.last_fault

    def rollback(self) -> bool:
        """Roll back the open transaction and return the session to CLEAN."""
        return bool(self.store.rollback())

    # =========================================================================
    # Trash workflows
    # =========================================================================

    def move_to_trash(
        self, peer_name_id: object, peer_server_id: object, date: object, link_ref: object
    ) -> bool:
        triple = self._triple(peer_name_id, peer_server_id, date)
        if isinstance(triple, Fault):
            return self._failed(triple)
        link = self._checked(link_ref, ParamKind.text, "link_ref")
        if isinstance(link, Fault):
            return self._failed(link)
        return self._finish(self.trash.move_to_trash(triple, link))

    def restore_from_trash(
        self, peer_name_id: object, peer_server_id: object, date: object, link_ref: object
    ) -> bool:
        triple = self._triple(peer_name_id, peer_server_id, date)
        if isinstance(triple, Fault):
            return self._failed(triple)
        link = self._checked(link_ref, ParamKind.text, "link_ref")
        if isinstance(link, Fault):
            return self._failed(link)
        return self._finish(self.trash.restore_from_trash(triple, link))

    def purge_from_trash(
        self, peer_name_id: object, peer_server_id: object, date: object
    ) -> OpResult[None]:
        """Permanently delete a trashed conversation-day.

        Returns an OpResult so callers can tell "not in trash" (a not_found
        fault, session stays CLEAN) from storage failures.
        """
        triple = self._triple(peer_name_id, peer_server_id, date)
        if isinstance(triple, Fault):
            return OpResult.failure(triple)
        return self.trash.purge(triple)

    def list_trashed(self) -> OpResult[list[TrashedItem]]:
        owner = self._require_owner("list_trashed")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        return self.trash.list_trashed(owner)

    def trash_count(self) -> OpResult[int]:
        owner = self._require_owner("trash_count")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        return self.trash.trash_count(owner)

    # =========================================================================
    # Consistency
    # =========================================================================

    def recount(self, peer_name_id: object, peer_server_id: object, date: object) -> OpResult[int]:
        triple = self._triple(peer_name_id, peer_server_id, date)
        if isinstance(triple, Fault):
            return OpResult.failure(triple)
        return self.recalculator.recount(triple)

    def verify(
        self, peer_name_id: object, peer_server_id: object, date: object, repair: bool = False
    ) -> OpResult[ConsistencyReport]:
        triple = self._triple(peer_name_id, peer_server_id, date)
        if isinstance(triple, Fault):
            return OpResult.failure(triple)
        return self.recalculator.verify(triple, repair=repair)

    # =========================================================================
    # Search
    # =========================================================================

    def search(
        self,
        query_text: object,
        date: object,
        peer_name_id: object = None,
        peer_server_id: object = None,
    ) -> OpResult[list[SearchHit]]:
        """Ranked search of one day, optionally within one conversation."""
        return self.search_many(query_text, [date], peer_name_id, peer_server_id)

    def search_many(
        self,
        query_text: object,
        dates: list[object],
        peer_name_id: object = None,
        peer_server_id: object = None,
    ) -> OpResult[list[SearchHit]]:
        owner = self._require_owner("search")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        query = self._checked(query_text, ParamKind.text, "query")
        if isinstance(query, Fault):
            return OpResult.failure(query)
        checked_dates = []
        for date in dates:
            value = self._checked(date, ParamKind.date, "date")
            if isinstance(value, Fault):
                return OpResult.failure(value)
            checked_dates.append(value)
        peer = self._optional_peer(peer_name_id, peer_server_id)
        if isinstance(peer, Fault):
            return OpResult.failure(peer)
        return self.searcher.search_many(owner, query, checked_dates, peer)

    def search_archive(
        self, query_text: object, peer_name_id: object = None, peer_server_id: object = None
    ) -> OpResult[list[SearchHit]]:
        """Ranked search over every day with live conversations."""
        owner = self._require_owner("search")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        query = self._checked(query_text, ParamKind.text, "query")
        if isinstance(query, Fault):
            return OpResult.failure(query)
        peer = self._optional_peer(peer_name_id, peer_server_id)
        if isinstance(peer, Fault):
            return OpResult.failure(peer)
        return self.searcher.search_archive(owner, query, peer)

    # =========================================================================
    # Conversation listings
    # =========================================================================

    def list_conversations(self, date: object) -> OpResult[list[dict[str, Any]]]:
        """Stat rows for one day: peer and live message count, per conversation."""
        owner = self._require_owner("list_conversations")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        day = self._checked(date, ParamKind.date, "date")
        if isinstance(day, Fault):
            return OpResult.failure(day)

        stats = self.store.quote(self.router.stats_table)
        result = self.store.select_rows(
            "list_conversations",
            f"""
                SELECT peer_name_id, peer_server_id, count
                FROM {stats}
                WHERE owner_id = :owner_id
                AND at = :date
                ORDER BY peer_name_id, peer_server_id
            """,
            {"owner_id": owner, "date": day},
        )
        if not result:
            return result
        return OpResult.success(
            [
                {
                    "peer": Peer(row["peer_name_id"], row["peer_server_id"]),
                    "count": int(row["count"]),
                }
                for row in result.value
            ]
        )

    def count_lines(
        self, peer_name_id: object, peer_server_id: object, date: object
    ) -> OpResult[int]:
        """All shard rows for the conversation-day, trashed ones included."""
        triple = self._triple(peer_name_id, peer_server_id, date)
        if isinstance(triple, Fault):
            return OpResult.failure(triple)
        shard = self.store.quote(self.router.shard_name(triple.date))
        result = self.store.select_scalar(
            "count_lines",
            f"SELECT count(*) FROM {shard} WHERE {TRIPLE_PREDICATE}",
            triple.params(),
        )
        if not result:
            return result
        return OpResult.success(int(result.value or 0))

    # =========================================================================
    # My links and audit events
    # =========================================================================

    def add_mylink(
        self,
        peer_name_id: object,
        peer_server_id: object,
        link_date: object,
        link: object,
        description: object = None,
    ) -> OpResult[None]:
        triple = self._triple(peer_name_id, peer_server_id, link_date)
        if isinstance(triple, Fault):
            return OpResult.failure(triple)
        checked_link = self._checked(link, ParamKind.text, "link")
        if isinstance(checked_link, Fault):
            return OpResult.failure(checked_link)
        if description is not None:
            description = self._checked(description, ParamKind.text, "description")
            if isinstance(description, Fault):
                return OpResult.failure(description)
        return self.links.add(triple.owner_id, triple.peer, triple.date, checked_link, description)

    def list_mylinks(self) -> OpResult[list[MyLink]]:
        owner = self._require_owner("list_mylinks")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        return self.links.list_live(owner)

    def mylinks_count(self) -> OpResult[int]:
        owner = self._require_owner("mylinks_count")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        return self.links.count_live(owner)

    def delete_mylink(self, link_id: object) -> OpResult[int]:
        owner = self._require_owner("delete_mylink")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        checked = self._checked(link_id, ParamKind.integer, "link_id")
        if isinstance(checked, Fault):
            return OpResult.failure(checked)
        return self.links.delete(owner, checked)

    def record_event(
        self, event_id: object, level_id: object, extra: str | None = None
    ) -> OpResult[None]:
        owner = self._require_owner("record_event")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        event = self._checked(event_id, ParamKind.integer, "event_id")
        if isinstance(event, Fault):
            return OpResult.failure(event)
        level = self._checked(level_id, ParamKind.integer, "level_id")
        if isinstance(level, Fault):
            return OpResult.failure(level)
        return self.audit.record(owner, event, level, extra)

    def list_events(
        self, offset: object = 0, event_id: object = None
    ) -> OpResult[list[AuditEvent]]:
        owner = self._require_owner("list_events")
        if isinstance(owner, Fault):
            return OpResult.failure(owner)
        start = self._checked(offset, ParamKind.integer, "offset")
        if isinstance(start, Fault):
            return OpResult.failure(start)
        if event_id is not None:
            event_id = self._checked(event_id, ParamKind.integer, "event_id")
            if isinstance(event_id, Fault):
                return OpResult.failure(event_id)
        return self.audit.list_events(owner, event_id=event_id, offset=start)

    # =========================================================================
    # Preconditions
    # =========================================================================

    def _failed(self, fault: Fault) -> bool:
        self.last_failure = fault
        return False

    def _finish(self, result: OpResult[None]) -> bool:
        if not result:
            return self._failed(result.fault)
        self.last_failure = None
        return True

    def _require_owner(self, label: str) -> int | Fault:
        if self.faults.is_faulty:
            return Fault(FaultKind.faulty, "Session is faulty; roll back before retrying", label)
        if self.owner_id is None:
            fault = Fault(
                FaultKind.owner_required, "Owner must be set before data operations", label
            )
            self.faults.mark_faulty(fault)
            return fault
        return self.owner_id

    def _checked(self, value: object, kind: ParamKind, label: str) -> Any:
        """Validate one value; a failure marks the session faulty."""
        result = validate(value, kind, label)
        if isinstance(result, Fault):
            logger.warning("validation_failed", label=label, kind=kind.value)
            self.faults.mark_faulty(result)
        return result

    def _optional_peer(self, peer_name_id: object, peer_server_id: object) -> Peer | None | Fault:
        if peer_name_id is None and peer_server_id is None:
            return None
        name_id = self._checked(peer_name_id, ParamKind.integer, "peer_name_id")
        if isinstance(name_id, Fault):
            return name_id
        server_id = self._checked(peer_server_id, ParamKind.integer, "peer_server_id")
        if isinstance(server_id, Fault):
            return server_id
        return Peer(name_id, server_id)

    def _triple(self, peer_name_id: object, peer_server_id: object, date: object) -> Triple | Fault:
        """Owner precondition plus validated peer and date."""
        owner = self._require_owner("triple")
        if isinstance(owner, Fault):
            return owner
        peer = self._optional_peer(peer_name_id, peer_server_id)
        if isinstance(peer, Fault):
            return peer
        if peer is None:
            return self._checked(None, ParamKind.integer, "peer_name_id")
        day = self._checked(date, ParamKind.date, "date")
        if isinstance(day, Fault):
            return day
        return Triple(owner, peer, day)

"""Audit event recording.

Events are rows in jorge_logger keyed by event id and level ids from the
archive's event dictionary. Recording is a side effect of a completed
workflow and never part of its transaction.
"""

from dataclasses import dataclass
from datetime import datetime

from logvault.db.schema import AUDIT_TABLE
from logvault.services.store import ArchiveStore, OpResult

# Event dictionary ids (jorge_logger_dict / jorge_logger_level_dict)
EVENT_CHAT_TRASHED = 4
LEVEL_NOTICE = 1

DEFAULT_EVENTS_PAGE = 300


@dataclass(frozen=True)
class AuditEvent:
    event_id: int
    level_id: int
    # SQLite returns the timestamp as text
    log_time: datetime | str
    extra: str | None


class AuditRecorder:
    """Writes and reads audit events for one owner."""

    def __init__(self, store: ArchiveStore):
        self.store = store

    def record(
        self, owner_id: int, event_id: int, level_id: int, extra: str | None = None
    ) -> OpResult[None]:
        """Insert an event and commit it as its own unit of work."""
        result = self.store.execute_autocommit(
            "record_event",
            f"""
                INSERT INTO {AUDIT_TABLE} (id_user, id_log_detail, id_log_level, log_time, extra)
                VALUES (:owner_id, :event_id, :level_id, CURRENT_TIMESTAMP, :extra)
            """,
            {
                "owner_id": owner_id,
                "event_id": event_id,
                "level_id": level_id,
                "extra": extra,
            },
        )
        return OpResult.success() if result else OpResult.failure(result.fault)

    def list_events(
        self,
        owner_id: int,
        event_id: int | None = None,
        offset: int = 0,
        limit: int = DEFAULT_EVENTS_PAGE,
    ) -> OpResult[list[AuditEvent]]:
        """Most recent events first, optionally filtered by event id."""
        event_filter = ""
        params = {"owner_id": owner_id, "offset": offset, "limit": limit}
        if event_id is not None:
            event_filter = "AND id_log_detail = :event_id"
            params["event_id"] = event_id

        result = self.store.select_rows(
            "list_events",
            f"""
                SELECT id_log_detail, id_log_level, log_time, extra
                FROM {AUDIT_TABLE}
                WHERE id_user = :owner_id
                {event_filter}
                ORDER BY log_time DESC
                LIMIT :limit OFFSET :offset
            """,
            params,
        )
        if not result:
            return result
        return OpResult.success(
            [
                AuditEvent(
                    event_id=row["id_log_detail"],
                    level_id=row["id_log_level"],
                    log_time=row["log_time"],
                    extra=row["extra"],
                )
                for row in result.value
            ]
        )

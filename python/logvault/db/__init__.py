"""Database module for logvault.

Provides engine creation, session management, transaction helpers, and the
archive table definitions.
"""

from logvault.db.engine import create_db_engine, get_engine
from logvault.db.schema import (
    AUDIT_TABLE,
    FAVORITES_TABLE,
    MYLINKS_TABLE,
    PENDING_DELETION_TABLE,
    create_archive_schema,
    ensure_message_shard,
    stats_table_name,
)
from logvault.db.session import get_db, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "transaction",
    # Schema
    "AUDIT_TABLE",
    "FAVORITES_TABLE",
    "MYLINKS_TABLE",
    "PENDING_DELETION_TABLE",
    "create_archive_schema",
    "ensure_message_shard",
    "stats_table_name",
]

"""Archive table definitions.

The archive predates this package, so table names are part of the on-disk
contract and are kept exactly:

- logdb_messages_<YYYY-MM-DD>_<host>: one message shard per day
- logdb_stats_<host>: per (owner, peer, day) message counts
- pending_del: conversations currently in trash
- jorge_mylinks: saved links into conversations
- jorge_favorites: favorited conversation days
- jorge_logger: audit events

Shards and the stats table are named per host at runtime, so they are built
as SQLAlchemy Core tables on demand rather than declared as ORM models.
Archive queries are written as text() statements against these names; the
definitions here exist for schema creation and for tests.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Engine,
    Float,
    Index,
    Integer,
    MetaData,
    SmallInteger,
    String,
    Table,
    Text,
)

PENDING_DELETION_TABLE = "pending_del"
MYLINKS_TABLE = "jorge_mylinks"
FAVORITES_TABLE = "jorge_favorites"
AUDIT_TABLE = "jorge_logger"
STATS_TABLE_PREFIX = "logdb_stats_"


def stats_table_name(host: str) -> str:
    """Name of the per-host aggregate stats table."""
    return f"{STATS_TABLE_PREFIX}{host}"


def define_message_shard(metadata: MetaData, name: str) -> Table:
    """Define one message shard table."""
    return Table(
        name,
        metadata,
        Column("owner_id", Integer, nullable=False),
        Column("peer_name_id", Integer, nullable=False),
        Column("peer_server_id", Integer, nullable=False),
        Column("peer_resource_id", Integer, nullable=True),
        Column("direction", String(4), nullable=False),
        Column("type", String(20), nullable=True),
        Column("subject", Text, nullable=True),
        Column("body", Text, nullable=True),
        Column("timestamp", Float, nullable=False),
        # NULL = live, 1 = soft-deleted (in trash)
        Column("ext", SmallInteger, nullable=True),
        Index(f"ix_{name}_triple", "owner_id", "peer_name_id", "peer_server_id"),
    )


def define_archive_tables(metadata: MetaData, host: str) -> dict[str, Table]:
    """Define the fixed side-tables and the per-host stats table."""
    tables = {}

    tables["stats"] = Table(
        stats_table_name(host),
        metadata,
        Column("owner_id", Integer, nullable=False),
        Column("peer_name_id", Integer, nullable=False),
        Column("peer_server_id", Integer, nullable=False),
        Column("at", String(20), nullable=False),
        Column("count", Integer, nullable=False),
        # No unique constraint: legacy data may hold duplicate rows per triple
        Index(
            f"ix_{STATS_TABLE_PREFIX}{host}_triple",
            "owner_id",
            "peer_name_id",
            "peer_server_id",
            "at",
        ),
    )

    tables["pending_del"] = Table(
        PENDING_DELETION_TABLE,
        metadata,
        Column("owner_id", Integer, nullable=False),
        Column("peer_name_id", Integer, nullable=False),
        Column("peer_server_id", Integer, nullable=False),
        Column("date", String(30), nullable=False),
        Column("timeframe", String(50), nullable=True),
        Index("ix_pending_del_owner", "owner_id"),
        # One pending row per conversation-day
        Index(
            "ux_pending_del_triple",
            "owner_id",
            "peer_name_id",
            "peer_server_id",
            "date",
            unique=True,
        ),
    )

    tables["mylinks"] = Table(
        MYLINKS_TABLE,
        metadata,
        Column("id_link", Integer, primary_key=True, autoincrement=True),
        Column("owner_id", Integer, nullable=False),
        Column("peer_name_id", Integer, nullable=False),
        Column("peer_server_id", Integer, nullable=False),
        Column("datat", String(30), nullable=False),
        Column("link", Text, nullable=False),
        Column("description", Text, nullable=True),
        Column("ext", SmallInteger, nullable=True),
    )

    tables["favorites"] = Table(
        FAVORITES_TABLE,
        metadata,
        Column("id_favorite", Integer, primary_key=True, autoincrement=True),
        Column("owner_id", Integer, nullable=False),
        Column("peer_name_id", Integer, nullable=False),
        Column("peer_server_id", Integer, nullable=False),
        Column("tslice", String(20), nullable=False),
        Column("comment", Text, nullable=True),
        Column("ext", SmallInteger, nullable=True),
    )

    tables["audit"] = Table(
        AUDIT_TABLE,
        metadata,
        Column("id_user", Integer, nullable=False),
        Column("id_log_detail", Integer, nullable=False),
        Column("id_log_level", Integer, nullable=False),
        Column("log_time", DateTime, nullable=False),
        Column("extra", Text, nullable=True),
    )

    return tables


def create_archive_schema(engine: Engine, host: str) -> None:
    """Create the side-tables and stats table if they do not exist."""
    metadata = MetaData()
    define_archive_tables(metadata, host)
    metadata.create_all(engine, checkfirst=True)


def ensure_message_shard(engine: Engine, name: str) -> Table:
    """Create a message shard table if it does not exist.

    The archive never creates shards itself (the logging server does); this
    is for provisioning and tests.
    """
    metadata = MetaData()
    table = define_message_shard(metadata, name)
    metadata.create_all(engine, checkfirst=True)
    return table

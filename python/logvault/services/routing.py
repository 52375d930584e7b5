"""Shard routing.

Maps a date partition to the physical message shard holding that day's
messages. The name is `<prefix><date>_<host>`, e.g.
`logdb_messages_2023-05-01_jabber.example.org`, and must stay byte-for-byte
compatible with existing shards.

Routing is pure: no caching and no existence check. A shard that does not
exist surfaces later as a query fault, not a routing error.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from logvault.db.schema import stats_table_name

DEFAULT_MESSAGES_PREFIX = "logdb_messages_"


@dataclass(frozen=True)
class ShardId:
    """Structured identifier of one message shard."""

    prefix: str
    date: str
    host: str

    @property
    def name(self) -> str:
        return f"{self.prefix}{self.date}_{self.host}"

    def __str__(self) -> str:
        return self.name


class ShardRouter:
    """Resolves shard and stats table names for one deployment host."""

    def __init__(self, host: str, prefix: str = DEFAULT_MESSAGES_PREFIX):
        self.host = host
        self.prefix = prefix

    def shard_for(self, date: str) -> ShardId:
        """Shard holding messages for the (already validated) date."""
        return ShardId(prefix=self.prefix, date=date, host=self.host)

    def shard_name(self, date: str) -> str:
        return self.shard_for(date).name

    @property
    def stats_table(self) -> str:
        return stats_table_name(self.host)


def quote_table(db: Session, name: str) -> str:
    """Quote a table name for the session's SQL dialect.

    Shard names contain '-' and '.', so they are always quoted.
    """
    preparer = db.get_bind().dialect.identifier_preparer
    return preparer.quote_identifier(name)

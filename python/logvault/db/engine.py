"""SQLAlchemy engine creation and configuration.

The engine is created once at application startup and provides
connection pooling for all archive sessions.
"""

from functools import lru_cache
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from logvault.config import get_settings
from logvault.db.fulltext import register_sqlite_functions


def create_db_engine(database_url: str | None = None, **engine_kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine with the given URL.

    Args:
        database_url: Connection string. If None, uses settings.
        **engine_kwargs: Extra arguments forwarded to create_engine
            (e.g. poolclass for in-memory SQLite).

    Returns:
        Configured SQLAlchemy engine.

    Note:
        Any SQLAlchemy dialect with transactions works. PostgreSQL and MySQL
        rank matches natively; SQLite connections get the logvault_match
        function registered on connect.
    """
    if database_url is None:
        settings = get_settings()
        database_url = settings.database_url

    engine_kwargs.setdefault("pool_pre_ping", True)
    engine = create_engine(database_url, echo=False, **engine_kwargs)

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", register_sqlite_functions)

    return engine


@lru_cache
def get_engine() -> Engine:
    """Get the cached database engine.

    Returns:
        The application's SQLAlchemy engine instance.
    """
    return create_db_engine()

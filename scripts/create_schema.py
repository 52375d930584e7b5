#!/usr/bin/env python
"""Create archive tables in a development database.

Creates the side-tables (pending_del, jorge_mylinks, jorge_favorites,
jorge_logger) and the per-host stats table. Message shards are normally
created by the logging server; pass dates to create empty shards for them
too.

Constraints:
- Refuses to run in staging or prod (LOGVAULT_ENV check)
- Idempotent: existing tables are left alone
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... LOGVAULT_XMPP_HOST=... \
        python ../scripts/create_schema.py 2023-05-01 2023-05-02
"""

import os
import sys


def main():
    # 1. Environment check (hard fail in staging/prod)
    logvault_env = os.getenv("LOGVAULT_ENV", "local")
    if logvault_env not in ("local", "test"):
        print(f"ERROR: create_schema.py refuses to run in LOGVAULT_ENV={logvault_env}")
        sys.exit(1)

    from logvault.config import get_settings
    from logvault.db.engine import create_db_engine
    from logvault.db.schema import create_archive_schema, ensure_message_shard
    from logvault.services.routing import ShardRouter
    from logvault.services.validation import validate_date

    settings = get_settings()

    # 2. Validate dates before touching the database
    dates = sys.argv[1:]
    invalid = [date for date in dates if not isinstance(validate_date(date), str)]
    if invalid:
        print(f"ERROR: invalid date(s): {', '.join(invalid)} (expected YYYY-MM-DD)")
        sys.exit(1)

    engine = create_db_engine(settings.database_url)
    router = ShardRouter(settings.xmpp_host, settings.messages_prefix)

    # 3. Side-tables and stats
    create_archive_schema(engine, settings.xmpp_host)

    # 4. Requested shards
    for date in dates:
        ensure_message_shard(engine, router.shard_name(date))

    # 5. Report
    url = settings.database_url
    db_display = url.split("@")[1] if "@" in url else url
    print(f"Database: {db_display}")
    print(f"LOGVAULT_ENV: {logvault_env}")
    print(f"Stats table: {router.stats_table}")
    for date in dates:
        print(f"Shard: {router.shard_name(date)}")

    engine.dispose()


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Database Initialization Script
==============================

Create the aggregate tables (agency_word_counts, agency_checksums) and
report what the source tables currently hold.

Usage:
    python scripts/init_databases.py
    python scripts/init_databases.py --check-only

Version: 0.1.0
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shared.config import settings
from shared.logging import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=settings.json_logs, service_name="init-db")
logger = get_logger(__name__)


SOURCE_TABLES = ("agencies", "agency_cfr_references", "ecfr_documents")


async def init_postgres(check_only: bool = False) -> bool:
    """Initialize PostgreSQL aggregate tables."""
    from sqlalchemy import text

    from shared.database import PostgresClient, postgres_session
    from services.scope_metrics.store import PostgresAggregateStore
    from services.scope_metrics.errors import StorageError

    client = PostgresClient(settings.postgres)
    try:
        health = await client.health_check()
        if health["status"] != "healthy":
            logger.error("postgres_unreachable", error=health.get("error"))
            return False
        logger.info("postgres_connected", latency_ms=health["latency_ms"])

        if not check_only:
            store = PostgresAggregateStore(client.session_factory)
            await store.create_schema()

        async with postgres_session(client.session_factory) as session:
            for table in SOURCE_TABLES:
                exists = await session.execute(
                    text("SELECT to_regclass(:name) IS NOT NULL"),
                    {"name": table},
                )
                if exists.scalar():
                    count = await session.execute(text(f"SELECT COUNT(*) FROM {table}"))
                    logger.info("source_table", table=table, rows=count.scalar())
                else:
                    logger.warning("source_table_missing", table=table)

        return True

    except StorageError as e:
        logger.error("postgres_initialization_failed", error=str(e))
        return False
    finally:
        await client.close()


async def main() -> int:
    """Main initialization function."""
    parser = argparse.ArgumentParser(description="Initialize regscope database tables")
    parser.add_argument(
        "--check-only",
        action="store_true",
        help="Only check connectivity and source tables",
    )
    args = parser.parse_args()

    logger.info("=" * 50)
    logger.info("regscope database initialization")
    logger.info("=" * 50)

    ok = await init_postgres(check_only=args.check_only)

    if ok:
        logger.info("Database initialized successfully!")
        return 0

    logger.error("Database initialization failed")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

"""
Database Module
===============

Async PostgreSQL access (asyncpg + SQLAlchemy) for the aggregate store
and the document/reference sources.

Usage:
    from shared.database import PostgresClient, postgres_session

    client = PostgresClient(settings.postgres)
    async with postgres_session(client.session_factory) as session:
        await session.execute(text("SELECT 1"))
"""

from shared.database.postgres import (
    PostgresClient,
    postgres_session,
)


__all__ = [
    "PostgresClient",
    "postgres_session",
]

"""
Aggregate Store
===============

Idempotent persistence of per-(organization, date) aggregates.

Tables:
- agency_word_counts: unique (agency_id, effective_date)
- agency_checksums: unique (agency_id, effective_date, checksum_algo)

Both upserts overwrite the value and calculation_timestamp on conflict,
so repeated runs converge on the same stored state.

Version: 0.1.0
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.database.postgres import postgres_session
from shared.logging import get_logger
from shared.models import ChecksumPoint, WordCountPoint
from services.scope_metrics.errors import StorageError


logger = get_logger(__name__)


SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS agency_word_counts (
        id SERIAL PRIMARY KEY,
        agency_id INTEGER NOT NULL,
        effective_date DATE NOT NULL,
        word_count INTEGER NOT NULL CHECK (word_count >= 0),
        calculation_timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (agency_id, effective_date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agency_checksums (
        id SERIAL PRIMARY KEY,
        agency_id INTEGER NOT NULL,
        effective_date DATE NOT NULL,
        checksum_algo VARCHAR(32) NOT NULL,
        checksum_value VARCHAR(128) NOT NULL,
        calculation_timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (agency_id, effective_date, checksum_algo)
    )
    """,
)

UPSERT_WORD_COUNT_SQL = """
    INSERT INTO agency_word_counts (agency_id, effective_date, word_count)
    VALUES (:agency_id, :effective_date, :word_count)
    ON CONFLICT (agency_id, effective_date) DO UPDATE SET
        word_count = EXCLUDED.word_count,
        calculation_timestamp = NOW()
"""

UPSERT_CHECKSUM_SQL = """
    INSERT INTO agency_checksums (agency_id, effective_date, checksum_algo, checksum_value)
    VALUES (:agency_id, :effective_date, :checksum_algo, :checksum_value)
    ON CONFLICT (agency_id, effective_date, checksum_algo) DO UPDATE SET
        checksum_value = EXCLUDED.checksum_value,
        calculation_timestamp = NOW()
"""

WORD_COUNT_SERIES_SQL = """
    SELECT
        wc.effective_date,
        wc.word_count,
        wc.calculation_timestamp,
        cs.checksum_algo,
        cs.checksum_value
    FROM agency_word_counts wc
    LEFT JOIN agency_checksums cs
        ON wc.agency_id = cs.agency_id
       AND wc.effective_date = cs.effective_date
       AND cs.checksum_algo = :checksum_algo
    WHERE wc.agency_id = :agency_id
    ORDER BY wc.effective_date ASC
"""

CHECKSUM_SERIES_SQL = """
    SELECT effective_date, checksum_algo, checksum_value, calculation_timestamp
    FROM agency_checksums
    WHERE agency_id = :agency_id
    ORDER BY effective_date ASC, checksum_algo ASC
"""


class AggregateStore(ABC):
    """Persistence contract for word counts and checksums."""

    @abstractmethod
    async def upsert_word_count(
        self,
        organization_id: int,
        effective_date: date,
        word_count: int,
    ) -> None:
        """Insert or overwrite the word count for (organization, date)."""
        ...

    @abstractmethod
    async def upsert_checksum(
        self,
        organization_id: int,
        effective_date: date,
        algorithm: str,
        value: str,
    ) -> None:
        """Insert or overwrite the checksum for (organization, date, algorithm)."""
        ...

    @abstractmethod
    async def word_count_series(
        self,
        organization_id: int,
        algorithm: str = "SHA-256",
    ) -> list[WordCountPoint]:
        """Word counts for an organization, oldest first."""
        ...

    @abstractmethod
    async def checksum_series(self, organization_id: int) -> list[ChecksumPoint]:
        """Checksums for an organization, oldest first. Sparse."""
        ...

    async def upsert_aggregates(
        self,
        organization_id: int,
        effective_date: date,
        word_count: int,
        checksum_algorithm: str | None = None,
        checksum: str | None = None,
    ) -> None:
        """
        Store both aggregates for a pair, checksum first.

        With no checksum only the word count is written and any existing
        checksum row is left as it was.
        """
        if checksum is not None and checksum_algorithm is not None:
            await self.upsert_checksum(organization_id, effective_date, checksum_algorithm, checksum)
        await self.upsert_word_count(organization_id, effective_date, word_count)

    async def ping(self) -> None:
        """Raise StorageError if the store cannot be reached."""
        return None


class PostgresAggregateStore(AggregateStore):
    """
    PostgreSQL-backed aggregate store.

    Each call runs in one short transaction under a timeout.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: float = 30.0,
    ) -> None:
        self._session_factory = session_factory
        self.timeout_seconds = timeout_seconds

    async def _execute(
        self,
        operation: str,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> list[Any]:
        return await self._execute_many(operation, [(sql, params or {})])

    async def _execute_many(
        self,
        operation: str,
        statements: list[tuple[str, dict[str, Any]]],
    ) -> list[Any]:
        """Run statements in a single transaction; rows of the last one are returned."""
        try:
            async with asyncio.timeout(self.timeout_seconds):
                async with postgres_session(self._session_factory) as session:
                    rows: list[Any] = []
                    for sql, params in statements:
                        result = await session.execute(text(sql), params)
                        rows = list(result.fetchall()) if result.returns_rows else []
                    return rows
        except TimeoutError as e:
            raise StorageError(operation, f"timed out after {self.timeout_seconds}s") from e
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(operation, str(e)) from e

    async def upsert_word_count(
        self,
        organization_id: int,
        effective_date: date,
        word_count: int,
    ) -> None:
        if word_count < 0:
            raise ValueError("word_count must be >= 0")

        await self._execute(
            "upsert_word_count",
            UPSERT_WORD_COUNT_SQL,
            _word_count_params(organization_id, effective_date, word_count),
        )
        logger.debug(
            "word_count_stored",
            organization_id=organization_id,
            effective_date=effective_date.isoformat(),
            word_count=word_count,
        )

    async def upsert_checksum(
        self,
        organization_id: int,
        effective_date: date,
        algorithm: str,
        value: str,
    ) -> None:
        await self._execute(
            "upsert_checksum",
            UPSERT_CHECKSUM_SQL,
            _checksum_params(organization_id, effective_date, algorithm, value),
        )
        logger.debug(
            "checksum_stored",
            organization_id=organization_id,
            effective_date=effective_date.isoformat(),
            algorithm=algorithm,
            checksum=value[:10],
        )

    async def upsert_aggregates(
        self,
        organization_id: int,
        effective_date: date,
        word_count: int,
        checksum_algorithm: str | None = None,
        checksum: str | None = None,
    ) -> None:
        if word_count < 0:
            raise ValueError("word_count must be >= 0")

        statements: list[tuple[str, dict[str, Any]]] = []
        if checksum is not None and checksum_algorithm is not None:
            statements.append(
                (
                    UPSERT_CHECKSUM_SQL,
                    _checksum_params(organization_id, effective_date, checksum_algorithm, checksum),
                )
            )
        statements.append(
            (
                UPSERT_WORD_COUNT_SQL,
                _word_count_params(organization_id, effective_date, word_count),
            )
        )

        await self._execute_many("upsert_aggregates", statements)
        logger.debug(
            "aggregates_stored",
            organization_id=organization_id,
            effective_date=effective_date.isoformat(),
            word_count=word_count,
            checksum=checksum[:10] if checksum else None,
        )

    async def word_count_series(
        self,
        organization_id: int,
        algorithm: str = "SHA-256",
    ) -> list[WordCountPoint]:
        rows = await self._execute(
            "word_count_series",
            WORD_COUNT_SERIES_SQL,
            {"agency_id": organization_id, "checksum_algo": algorithm},
        )
        return [
            WordCountPoint(
                effective_date=row.effective_date,
                count=row.word_count,
                checksum_algorithm=row.checksum_algo,
                checksum=row.checksum_value,
                calculated_at=row.calculation_timestamp,
            )
            for row in rows
        ]

    async def checksum_series(self, organization_id: int) -> list[ChecksumPoint]:
        rows = await self._execute(
            "checksum_series",
            CHECKSUM_SERIES_SQL,
            {"agency_id": organization_id},
        )
        return [
            ChecksumPoint(
                effective_date=row.effective_date,
                algorithm=row.checksum_algo,
                value=row.checksum_value,
                calculated_at=row.calculation_timestamp,
            )
            for row in rows
        ]

    async def ping(self) -> None:
        await self._execute("ping", "SELECT 1")

    async def create_schema(self) -> None:
        """Create the aggregate tables if they do not exist."""
        for statement in SCHEMA_STATEMENTS:
            await self._execute("create_schema", statement)
        logger.info("aggregate_schema_ready")


def _word_count_params(organization_id: int, effective_date: date, word_count: int) -> dict[str, Any]:
    return {
        "agency_id": organization_id,
        "effective_date": effective_date,
        "word_count": word_count,
    }


def _checksum_params(
    organization_id: int,
    effective_date: date,
    algorithm: str,
    value: str,
) -> dict[str, Any]:
    return {
        "agency_id": organization_id,
        "effective_date": effective_date,
        "checksum_algo": algorithm,
        "checksum_value": value,
    }


@dataclass
class _StoredValue:
    value: Any
    calculated_at: datetime


class InMemoryAggregateStore(AggregateStore):
    """
    Dictionary-backed aggregate store.

    Same upsert semantics as the PostgreSQL store; used for dry runs.
    """

    def __init__(self) -> None:
        self.word_counts: dict[tuple[int, date], _StoredValue] = {}
        self.checksums: dict[tuple[int, date, str], _StoredValue] = {}
        self._lock = asyncio.Lock()

    async def upsert_word_count(
        self,
        organization_id: int,
        effective_date: date,
        word_count: int,
    ) -> None:
        if word_count < 0:
            raise ValueError("word_count must be >= 0")
        async with self._lock:
            self.word_counts[(organization_id, effective_date)] = _StoredValue(
                value=word_count,
                calculated_at=datetime.now(UTC),
            )

    async def upsert_checksum(
        self,
        organization_id: int,
        effective_date: date,
        algorithm: str,
        value: str,
    ) -> None:
        async with self._lock:
            self.checksums[(organization_id, effective_date, algorithm)] = _StoredValue(
                value=value,
                calculated_at=datetime.now(UTC),
            )

    async def word_count_series(
        self,
        organization_id: int,
        algorithm: str = "SHA-256",
    ) -> list[WordCountPoint]:
        points = []
        for (org_id, effective_date), stored in sorted(self.word_counts.items()):
            if org_id != organization_id:
                continue
            checksum = self.checksums.get((org_id, effective_date, algorithm))
            points.append(
                WordCountPoint(
                    effective_date=effective_date,
                    count=stored.value,
                    checksum_algorithm=algorithm if checksum else None,
                    checksum=checksum.value if checksum else None,
                    calculated_at=stored.calculated_at,
                )
            )
        return points

    async def checksum_series(self, organization_id: int) -> list[ChecksumPoint]:
        return [
            ChecksumPoint(
                effective_date=effective_date,
                algorithm=algorithm,
                value=stored.value,
                calculated_at=stored.calculated_at,
            )
            for (org_id, effective_date, algorithm), stored in sorted(self.checksums.items())
            if org_id == organization_id
        ]

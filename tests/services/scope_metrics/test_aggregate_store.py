"""
Tests for Aggregate Store
=========================

Tests for:
- In-memory upsert semantics and series
- PostgreSQL statements and error wrapping

Version: 0.1.0
"""

import asyncio
from datetime import UTC, date, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from services.scope_metrics.errors import StorageError
from services.scope_metrics.store import (
    InMemoryAggregateStore,
    PostgresAggregateStore,
)


D1 = date(2015, 12, 31)
D2 = date(2020, 1, 1)


# =============================================================================
# In-Memory Store Tests
# =============================================================================


class TestInMemoryAggregateStore:
    """Tests for InMemoryAggregateStore."""

    @pytest.mark.asyncio
    async def test_insert_then_overwrite(self) -> None:
        store = InMemoryAggregateStore()

        await store.upsert_word_count(1, D1, 10)
        first = store.word_counts[(1, D1)].calculated_at
        await store.upsert_word_count(1, D1, 12)

        assert len(store.word_counts) == 1
        assert store.word_counts[(1, D1)].value == 12
        assert store.word_counts[(1, D1)].calculated_at >= first

    @pytest.mark.asyncio
    async def test_checksum_keyed_by_algorithm(self) -> None:
        store = InMemoryAggregateStore()

        await store.upsert_checksum(1, D1, "SHA-256", "aa")
        await store.upsert_checksum(1, D1, "SHA-512", "bb")
        await store.upsert_checksum(1, D1, "SHA-256", "cc")

        assert store.checksums[(1, D1, "SHA-256")].value == "cc"
        assert store.checksums[(1, D1, "SHA-512")].value == "bb"

    @pytest.mark.asyncio
    async def test_negative_count_rejected(self) -> None:
        with pytest.raises(ValueError):
            await InMemoryAggregateStore().upsert_word_count(1, D1, -1)

    @pytest.mark.asyncio
    async def test_word_count_series(self) -> None:
        store = InMemoryAggregateStore()
        await store.upsert_word_count(1, D2, 20)
        await store.upsert_word_count(1, D1, 10)
        await store.upsert_word_count(2, D1, 99)
        await store.upsert_checksum(1, D2, "SHA-256", "ff")

        series = await store.word_count_series(1)

        assert [(p.effective_date, p.count) for p in series] == [(D1, 10), (D2, 20)]
        assert series[0].checksum is None
        assert series[0].checksum_algorithm is None
        assert series[1].checksum == "ff"
        assert series[1].checksum_algorithm == "SHA-256"

    @pytest.mark.asyncio
    async def test_checksum_series_is_sparse(self) -> None:
        store = InMemoryAggregateStore()
        await store.upsert_word_count(1, D1, 0)
        await store.upsert_word_count(1, D2, 5)
        await store.upsert_checksum(1, D2, "SHA-256", "ab")

        series = await store.checksum_series(1)

        assert len(series) == 1
        assert series[0].effective_date == D2
        assert series[0].value == "ab"

    @pytest.mark.asyncio
    async def test_upsert_aggregates(self) -> None:
        store = InMemoryAggregateStore()
        await store.upsert_aggregates(1, D1, 5, checksum_algorithm="SHA-256", checksum="old")

        await store.upsert_aggregates(1, D1, 0)

        assert store.word_counts[(1, D1)].value == 0
        assert store.checksums[(1, D1, "SHA-256")].value == "old"

    @pytest.mark.asyncio
    async def test_ping(self) -> None:
        assert await InMemoryAggregateStore().ping() is None


# =============================================================================
# PostgreSQL Store Tests
# =============================================================================


class TestPostgresAggregateStore:
    """Tests for PostgresAggregateStore with a mocked session."""

    @pytest.mark.asyncio
    async def test_upsert_word_count_statement(self, session_factory) -> None:
        factory, session = session_factory()
        store = PostgresAggregateStore(factory)

        await store.upsert_word_count(3, D2, 42)

        statement, params = session.execute.call_args.args
        sql = str(statement)
        assert "INSERT INTO agency_word_counts" in sql
        assert "ON CONFLICT (agency_id, effective_date) DO UPDATE" in sql
        assert "calculation_timestamp = NOW()" in sql
        assert params == {"agency_id": 3, "effective_date": D2, "word_count": 42}
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_upsert_checksum_statement(self, session_factory) -> None:
        factory, session = session_factory()
        store = PostgresAggregateStore(factory)

        await store.upsert_checksum(3, D2, "SHA-256", "abc")

        statement, params = session.execute.call_args.args
        assert "ON CONFLICT (agency_id, effective_date, checksum_algo)" in str(statement)
        assert params == {
            "agency_id": 3,
            "effective_date": D2,
            "checksum_algo": "SHA-256",
            "checksum_value": "abc",
        }

    @pytest.mark.asyncio
    async def test_upsert_aggregates_single_transaction(self, session_factory) -> None:
        factory, session = session_factory()
        store = PostgresAggregateStore(factory)

        await store.upsert_aggregates(3, D2, 42, checksum_algorithm="SHA-256", checksum="abc")

        statements = [str(call.args[0]) for call in session.execute.call_args_list]
        assert len(statements) == 2
        assert "INSERT INTO agency_checksums" in statements[0]
        assert "INSERT INTO agency_word_counts" in statements[1]
        factory.assert_called_once()
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_upsert_aggregates_without_checksum(self, session_factory) -> None:
        factory, session = session_factory()
        store = PostgresAggregateStore(factory)

        await store.upsert_aggregates(3, D2, 0)

        statement, params = session.execute.call_args.args
        assert session.execute.await_count == 1
        assert "INSERT INTO agency_word_counts" in str(statement)
        assert params == {"agency_id": 3, "effective_date": D2, "word_count": 0}

    @pytest.mark.asyncio
    async def test_upsert_aggregates_rolls_back_both(self, session_factory) -> None:
        factory, session = session_factory()
        ok = session.execute.return_value
        session.execute.side_effect = [ok, OperationalError("INSERT", {}, Exception("down"))]
        store = PostgresAggregateStore(factory)

        with pytest.raises(StorageError) as exc:
            await store.upsert_aggregates(1, D1, 7, checksum_algorithm="SHA-256", checksum="x")

        assert exc.value.operation == "upsert_aggregates"
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_error_wrapped(self, session_factory) -> None:
        factory, session = session_factory()
        session.execute.side_effect = OperationalError("INSERT", {}, Exception("down"))
        store = PostgresAggregateStore(factory)

        with pytest.raises(StorageError) as exc:
            await store.upsert_word_count(1, D1, 1)

        assert exc.value.operation == "upsert_word_count"
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_wrapped(self, session_factory) -> None:
        factory, session = session_factory()

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        session.execute = AsyncMock(side_effect=slow)
        store = PostgresAggregateStore(factory, timeout_seconds=0.01)

        with pytest.raises(StorageError, match="timed out"):
            await store.upsert_checksum(1, D1, "SHA-256", "x")

    @pytest.mark.asyncio
    async def test_word_count_series_rows(self, session_factory) -> None:
        stamp = datetime(2024, 1, 1, tzinfo=UTC)
        rows = [
            SimpleNamespace(
                effective_date=D1,
                word_count=10,
                calculation_timestamp=stamp,
                checksum_algo=None,
                checksum_value=None,
            ),
            SimpleNamespace(
                effective_date=D2,
                word_count=12,
                calculation_timestamp=stamp,
                checksum_algo="SHA-256",
                checksum_value="ab",
            ),
        ]
        factory, session = session_factory(rows)
        store = PostgresAggregateStore(factory)

        series = await store.word_count_series(5)

        assert [p.count for p in series] == [10, 12]
        assert series[1].checksum == "ab"
        _, params = session.execute.call_args.args
        assert params == {"agency_id": 5, "checksum_algo": "SHA-256"}

    @pytest.mark.asyncio
    async def test_checksum_series_rows(self, session_factory) -> None:
        rows = [
            SimpleNamespace(
                effective_date=D2,
                checksum_algo="SHA-256",
                checksum_value="ab",
                calculation_timestamp=None,
            )
        ]
        factory, _ = session_factory(rows)

        series = await PostgresAggregateStore(factory).checksum_series(5)

        assert series[0].algorithm == "SHA-256"
        assert series[0].value == "ab"

    @pytest.mark.asyncio
    async def test_create_schema(self, session_factory) -> None:
        factory, session = session_factory()

        await PostgresAggregateStore(factory).create_schema()

        sql = " ".join(str(call.args[0]) for call in session.execute.call_args_list)
        assert "CREATE TABLE IF NOT EXISTS agency_word_counts" in sql
        assert "CREATE TABLE IF NOT EXISTS agency_checksums" in sql
        assert "UNIQUE (agency_id, effective_date, checksum_algo)" in sql

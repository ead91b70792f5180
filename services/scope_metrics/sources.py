"""
External Sources
================

Read-only inputs to the pipeline: raw title documents, organization
chapter references, and the organization catalog.

Abstract interfaces plus PostgreSQL implementations over:
- ecfr_documents (cfr_title, effective_date, xml_content)
- agency_cfr_references (agency_id, cfr_title, cfr_chapter)
- agencies (id, name)

Version: 0.1.0
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.logging import get_logger
from shared.models import Organization
from services.scope_metrics.errors import DocumentFetchError, StorageError


logger = get_logger(__name__)


@dataclass(frozen=True)
class RawDocument:
    """Unparsed XML for one title as of one date."""

    title: int
    effective_date: date
    content: str


@dataclass(frozen=True)
class OrganizationReference:
    """The (title, chapter) pairs that make up an organization's jurisdiction."""

    organization_id: int
    scopes_by_title: Mapping[int, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_pairs(
        cls,
        organization_id: int,
        pairs: Iterable[tuple[int | None, str | None]],
    ) -> "OrganizationReference":
        """
        Build from (title, chapter) rows.

        Rows without a title are ignored; a title with no chapter is kept
        with an empty scope set, so it is fetched but matches nothing.
        """
        grouped: dict[int, set[str]] = {}
        for title, chapter in pairs:
            if title is None:
                continue
            scopes = grouped.setdefault(int(title), set())
            if chapter:
                scopes.add(str(chapter))
        return cls(
            organization_id=organization_id,
            scopes_by_title={t: frozenset(s) for t, s in sorted(grouped.items())},
        )

    @property
    def titles(self) -> list[int]:
        return list(self.scopes_by_title)

    @property
    def is_empty(self) -> bool:
        return not self.scopes_by_title

    def scopes_for(self, title: int) -> frozenset[str]:
        return self.scopes_by_title.get(title, frozenset())


class DocumentSource(ABC):
    """Provides raw documents by title and effective date."""

    @abstractmethod
    async def fetch(self, titles: list[int], effective_date: date) -> list[RawDocument]:
        """Documents for the given titles as of ``effective_date``."""
        ...

    async def available_dates(self) -> list[date]:
        """Effective dates with at least one document, newest first."""
        return []


class ReferenceSource(ABC):
    """Provides organization chapter references."""

    @abstractmethod
    async def references(self, organization_id: int) -> OrganizationReference:
        ...


class OrganizationCatalog(ABC):
    """Enumerates organizations for batch iteration."""

    @abstractmethod
    async def organizations(self) -> list[Organization]:
        ...

    async def get_by_name(self, name: str) -> Organization | None:
        for organization in await self.organizations():
            if organization.name == name:
                return organization
        return None


class _PostgresReader:
    """Shared query helper with timeout and retry on connection errors."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: float = 60.0,
        retries: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self.timeout_seconds = timeout_seconds
        self.retries = max(1, retries)

    async def _query(self, sql: str, params: dict[str, Any] | None = None) -> list[Any]:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((OperationalError, TimeoutError)),
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
            before_sleep=lambda retry_state: logger.warning(
                "source_query_retry",
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                async with asyncio.timeout(self.timeout_seconds):
                    async with self._session_factory() as session:
                        result = await session.execute(text(sql), params or {})
                        return list(result.fetchall())


class PostgresDocumentSource(_PostgresReader, DocumentSource):
    """Reads title XML from the ecfr_documents table."""

    async def fetch(self, titles: list[int], effective_date: date) -> list[RawDocument]:
        if not titles:
            return []
        try:
            rows = await self._query(
                """
                SELECT cfr_title, xml_content::text AS xml_content
                FROM ecfr_documents
                WHERE cfr_title = ANY(:titles) AND effective_date = :effective_date
                ORDER BY cfr_title
                """,
                {"titles": list(titles), "effective_date": effective_date},
            )
        except (SQLAlchemyError, TimeoutError) as e:
            raise DocumentFetchError(list(titles), effective_date, str(e) or type(e).__name__) from e

        logger.debug(
            "documents_fetched",
            titles=titles,
            effective_date=effective_date.isoformat(),
            count=len(rows),
        )
        return [
            RawDocument(
                title=int(row.cfr_title),
                effective_date=effective_date,
                content=row.xml_content or "",
            )
            for row in rows
        ]

    async def available_dates(self) -> list[date]:
        try:
            rows = await self._query(
                "SELECT DISTINCT effective_date FROM ecfr_documents ORDER BY effective_date DESC"
            )
        except (SQLAlchemyError, TimeoutError) as e:
            raise StorageError("available_dates", str(e) or type(e).__name__) from e
        return [row.effective_date for row in rows]


class PostgresReferenceSource(_PostgresReader, ReferenceSource):
    """Reads chapter references from agency_cfr_references."""

    async def references(self, organization_id: int) -> OrganizationReference:
        try:
            rows = await self._query(
                """
                SELECT cfr_title, cfr_chapter
                FROM agency_cfr_references
                WHERE agency_id = :agency_id
                """,
                {"agency_id": organization_id},
            )
        except (SQLAlchemyError, TimeoutError) as e:
            raise StorageError("references", str(e) or type(e).__name__) from e
        return OrganizationReference.from_pairs(
            organization_id,
            ((row.cfr_title, row.cfr_chapter) for row in rows),
        )


class PostgresOrganizationCatalog(_PostgresReader, OrganizationCatalog):
    """Reads organizations from the agencies table."""

    async def organizations(self) -> list[Organization]:
        try:
            rows = await self._query("SELECT id, name FROM agencies ORDER BY id")
        except (SQLAlchemyError, TimeoutError) as e:
            raise StorageError("organizations", str(e) or type(e).__name__) from e
        return [Organization(id=row.id, name=row.name) for row in rows]

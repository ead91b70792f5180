"""
Test Configuration
==================

Pytest fixtures for regscope tests.
"""

import os
from collections.abc import Iterable
from datetime import date
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "testing"

from shared.models import Organization  # noqa: E402
from services.scope_metrics.errors import DocumentFetchError  # noqa: E402
from services.scope_metrics.sources import (  # noqa: E402
    DocumentSource,
    OrganizationReference,
    RawDocument,
    ReferenceSource,
)


# =============================================================================
# Sample Documents
# =============================================================================


TITLE_7_XML = """<?xml version="1.0" encoding="UTF-8"?>
<ECFR>
  <DIV1 N="7" TYPE="TITLE">
    <HEAD>Title 7 - Agriculture</HEAD>
    <DIV2 N="A" TYPE="SUBTITLE">
      <DIV3 N="2" TYPE="CHAPTER">
        <DIV5 N="210" TYPE="PART">
          <P>Hello world</P>
          <P>Foo bar baz</P>
        </DIV5>
      </DIV3>
      <DIV3 N="3" TYPE="CHAPTER">
        <HEAD>CHAPTER III</HEAD>
        <P>Other chapter text</P>
      </DIV3>
    </DIV2>
  </DIV1>
</ECFR>
"""

TITLE_10_XML = """<?xml version="1.0" encoding="UTF-8"?>
<ECFR>
  <DIV1 N="10" TYPE="TITLE">
    <DIV3 N="X" TYPE="CHAPTER">
      <HEAD>CHAPTER X</HEAD>
      <DIV4 N="A" TYPE="SUBCHAP">
        <DIV5 N="1000" TYPE="PART">
          <HEAD>PART 1000 - GENERAL</HEAD>
          <DIV8 N="1000.1" TYPE="SECTION">
            <HEAD>1000.1 Purpose.</HEAD>
            <P>This part applies to all persons.</P>
          </DIV8>
        </DIV5>
      </DIV4>
    </DIV3>
  </DIV1>
</ECFR>
"""


@pytest.fixture
def title_7_xml() -> str:
    return TITLE_7_XML


@pytest.fixture
def title_10_xml() -> str:
    return TITLE_10_XML


@pytest.fixture
def effective_date() -> date:
    return date(2020, 1, 1)


@pytest.fixture
def org_x() -> Organization:
    return Organization(id=1, name="X")


# =============================================================================
# Source Doubles
# =============================================================================


class StaticDocumentSource(DocumentSource):
    """Serves documents from a dict keyed by (title, date)."""

    def __init__(
        self,
        documents: dict[tuple[int, date], str],
        fail_titles: Iterable[int] = (),
    ) -> None:
        self.documents = documents
        self.fail_titles = set(fail_titles)
        self.calls: list[tuple[list[int], date]] = []

    async def fetch(self, titles: list[int], effective_date: date) -> list[RawDocument]:
        self.calls.append((list(titles), effective_date))
        if self.fail_titles.intersection(titles):
            raise DocumentFetchError(list(titles), effective_date, "connection reset")
        return [
            RawDocument(title=t, effective_date=effective_date, content=self.documents[(t, effective_date)])
            for t in titles
            if (t, effective_date) in self.documents
        ]

    async def available_dates(self) -> list[date]:
        return sorted({d for _, d in self.documents}, reverse=True)


class StaticReferenceSource(ReferenceSource):
    """Serves references from a dict of organization id -> (title, chapter) rows."""

    def __init__(self, rows: dict[int, list[tuple[int | None, str | None]]]) -> None:
        self.rows = rows

    async def references(self, organization_id: int) -> OrganizationReference:
        return OrganizationReference.from_pairs(organization_id, self.rows.get(organization_id, []))


@pytest.fixture
def static_documents():
    return StaticDocumentSource


@pytest.fixture
def static_references():
    return StaticReferenceSource


# =============================================================================
# Database Doubles
# =============================================================================


def make_session_factory(rows: list[Any] | None = None) -> tuple[MagicMock, AsyncMock]:
    """
    Build a mock async_sessionmaker and the session it yields.

    ``session.execute`` returns a result whose ``fetchall()`` gives ``rows``.
    """
    result = MagicMock()
    result.returns_rows = rows is not None
    result.fetchall.return_value = rows or []
    result.scalar.return_value = 1

    session = AsyncMock()
    session.execute = AsyncMock(return_value=result)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)

    factory = MagicMock(return_value=context)
    return factory, session


@pytest.fixture
def session_factory():
    return make_session_factory

"""
Pair Pipeline
=============

Runs one (organization, effective date) pair end to end:

    references -> fetch -> parse -> locate scopes -> extract text
               -> reduce -> store

A malformed document is skipped without failing the pair. Fetch and
storage errors propagate to the caller. Both aggregates are written in
one final store call, so a pair that fails or is cancelled earlier
commits nothing. Parsing runs in a worker thread.

Version: 0.1.0
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date

from shared.config import PipelineSettings
from shared.logging import get_logger
from shared.models import Organization
from services.scope_metrics.errors import FatalConfigurationError, MalformedDocumentError
from services.scope_metrics.extractor import (
    DEFAULT_CONTENT_TAGS,
    DEFAULT_TEXT_DEPTH_LIMIT,
    extract_text,
)
from services.scope_metrics.fingerprint import (
    CHECKSUM_ALGORITHM,
    SUPPORTED_ALGORITHMS,
    ExtractedFragment,
    Reduction,
    reduce_fragments,
)
from services.scope_metrics.locator import (
    DEFAULT_SCOPE_ATTRIBUTE,
    DEFAULT_SCOPE_DEPTH_LIMIT,
    DEFAULT_SCOPE_TAGS,
    locate_scopes,
)
from services.scope_metrics.sources import (
    DocumentSource,
    OrganizationReference,
    RawDocument,
    ReferenceSource,
)
from services.scope_metrics.store import AggregateStore
from services.scope_metrics.tree import parse_document, title_root


logger = get_logger(__name__)


@dataclass
class PipelineConfig:
    """Tree-walking constants for the pipeline."""

    scope_tags: tuple[str, ...] = DEFAULT_SCOPE_TAGS
    scope_attribute: str = DEFAULT_SCOPE_ATTRIBUTE
    scope_depth_limit: int = DEFAULT_SCOPE_DEPTH_LIMIT
    content_tags: tuple[str, ...] = DEFAULT_CONTENT_TAGS
    text_depth_limit: int = DEFAULT_TEXT_DEPTH_LIMIT
    checksum_algorithm: str = CHECKSUM_ALGORITHM
    preview_max_results: int = 10

    def __post_init__(self) -> None:
        if self.checksum_algorithm not in SUPPORTED_ALGORITHMS:
            raise FatalConfigurationError(
                f"unsupported checksum algorithm: {self.checksum_algorithm!r} "
                f"(expected one of {sorted(SUPPORTED_ALGORITHMS)})"
            )

    @classmethod
    def from_settings(cls, pipeline: PipelineSettings) -> "PipelineConfig":
        return cls(
            scope_tags=tuple(pipeline.scope_tags_list),
            scope_attribute=pipeline.scope_attribute,
            scope_depth_limit=pipeline.scope_depth_limit,
            content_tags=tuple(pipeline.content_tags_list),
            text_depth_limit=pipeline.text_depth_limit,
            checksum_algorithm=pipeline.checksum_algorithm,
            preview_max_results=pipeline.preview_max_results,
        )


@dataclass
class PairResult:
    """Outcome of processing one (organization, date) pair."""

    organization_id: int
    effective_date: date

    titles_referenced: int = 0
    documents_fetched: int = 0
    documents_skipped: int = 0
    scopes_matched: int = 0

    word_count: int = 0
    fragment_count: int = 0
    checksum_algorithm: str | None = None
    checksum: str | None = None

    skipped_titles: list[int] = field(default_factory=list)


class PairPipeline:
    """
    Extraction and fingerprint pipeline for single pairs.

    Sources and store are injected; the pipeline holds no state between
    pairs and is safe to share across concurrent workers.
    """

    def __init__(
        self,
        documents: DocumentSource,
        references: ReferenceSource,
        store: AggregateStore,
        config: PipelineConfig | None = None,
    ) -> None:
        self.documents = documents
        self.references = references
        self.store = store
        self.config = config or PipelineConfig()

    def extract_document(
        self,
        document: RawDocument,
        scope_ids: frozenset[str],
    ) -> tuple[list[ExtractedFragment], int]:
        """
        Extract fragments from one raw document.

        Args:
            document: Raw title XML
            scope_ids: Chapter identifiers referenced for this title

        Returns:
            (fragments, number of matched scopes)

        Raises:
            MalformedDocumentError: If the document cannot be parsed
        """
        if not scope_ids:
            return [], 0

        tree = parse_document(document.content, title=document.title)
        root = title_root(tree)
        if root is None:
            raise MalformedDocumentError("no title element", title=document.title)

        try:
            scopes = locate_scopes(
                root,
                scope_ids,
                scope_tags=self.config.scope_tags,
                scope_attribute=self.config.scope_attribute,
                max_depth=self.config.scope_depth_limit,
            )
        except MalformedDocumentError as e:
            raise MalformedDocumentError(e.reason, title=document.title) from e

        if not scopes:
            logger.info(
                "no_matching_scopes",
                title=document.title,
                chapters=sorted(scope_ids),
            )
            return [], 0

        fragments: list[ExtractedFragment] = []
        for scope in scopes:
            scope_id = str(scope.attribute(self.config.scope_attribute) or "Unknown")
            for item in extract_text(
                scope,
                depth_limit=self.config.text_depth_limit,
                content_tags=self.config.content_tags,
            ):
                fragments.append(
                    ExtractedFragment(
                        title=document.title,
                        scope_id=scope_id,
                        tag=item.tag,
                        text=item.text,
                    )
                )

        logger.debug(
            "scopes_extracted",
            title=document.title,
            scopes=len(scopes),
            fragments=len(fragments),
        )
        return fragments, len(scopes)

    async def collect(
        self,
        organization: Organization,
        effective_date: date,
        result: PairResult,
        max_results: int | None = None,
    ) -> list[ExtractedFragment]:
        """Gather fragments for a pair, recording counts on ``result``."""
        reference: OrganizationReference = await self.references.references(organization.id)
        result.titles_referenced = len(reference.titles)

        if reference.is_empty:
            logger.info(
                "no_references",
                organization_id=organization.id,
                organization=organization.name,
            )
            return []

        raw_documents = await self.documents.fetch(reference.titles, effective_date)
        result.documents_fetched = len(raw_documents)

        fragments: list[ExtractedFragment] = []
        for document in raw_documents:
            try:
                # Parsing a title is CPU-bound; keep the event loop free.
                found, scope_count = await asyncio.to_thread(
                    self.extract_document,
                    document,
                    reference.scopes_for(document.title),
                )
            except MalformedDocumentError as e:
                result.documents_skipped += 1
                result.skipped_titles.append(document.title)
                logger.warning(
                    "document_skipped",
                    organization_id=organization.id,
                    effective_date=effective_date.isoformat(),
                    title=document.title,
                    error=str(e),
                )
                continue

            result.scopes_matched += scope_count
            fragments.extend(found)

            if max_results is not None and len(fragments) >= max_results:
                return fragments[:max_results]

        return fragments

    async def process(self, organization: Organization, effective_date: date) -> PairResult:
        """
        Compute and store aggregates for one pair.

        Raises:
            DocumentFetchError: If documents cannot be fetched
            StorageError: If references cannot be read or aggregates cannot be written
        """
        result = PairResult(organization_id=organization.id, effective_date=effective_date)

        fragments = await self.collect(organization, effective_date, result)
        reduction = reduce_fragments(fragments, self.config.checksum_algorithm)

        # Cancellation waits for both writes.
        await asyncio.shield(self._commit(organization.id, effective_date, reduction))

        result.word_count = reduction.word_count
        result.fragment_count = reduction.fragment_count
        if reduction.checksum is not None:
            result.checksum_algorithm = reduction.checksum.algorithm
            result.checksum = reduction.checksum.value

        logger.info(
            "pair_processed",
            organization_id=organization.id,
            effective_date=effective_date.isoformat(),
            documents=result.documents_fetched,
            scopes=result.scopes_matched,
            fragments=result.fragment_count,
            word_count=result.word_count,
            checksum=result.checksum[:10] if result.checksum else None,
        )
        return result

    async def _commit(
        self,
        organization_id: int,
        effective_date: date,
        reduction: Reduction,
    ) -> None:
        if reduction.checksum is None:
            logger.debug(
                "checksum_skipped_no_text",
                organization_id=organization_id,
                effective_date=effective_date.isoformat(),
            )
            await self.store.upsert_aggregates(organization_id, effective_date, reduction.word_count)
            return

        await self.store.upsert_aggregates(
            organization_id,
            effective_date,
            reduction.word_count,
            checksum_algorithm=reduction.checksum.algorithm,
            checksum=reduction.checksum.value,
        )

    async def preview(
        self,
        organization: Organization,
        effective_date: date,
        max_results: int | None = None,
    ) -> list[ExtractedFragment]:
        """
        Extract a bounded sample of fragments without persisting anything.

        Args:
            organization: Organization to query
            effective_date: Document date
            max_results: Fragment cap (defaults to the configured preview limit)

        Returns:
            Up to ``max_results`` fragments in extraction order
        """
        limit = self.config.preview_max_results if max_results is None else max_results
        result = PairResult(organization_id=organization.id, effective_date=effective_date)
        return await self.collect(organization, effective_date, result, max_results=limit)

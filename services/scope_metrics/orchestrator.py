"""
Batch Orchestrator
==================

Drives the pair pipeline over dates x organizations.

Features:
- Outer loop over dates, inner loop over organizations
- Bounded concurrency (one pair at a time by default)
- Error isolation (one failed pair doesn't stop others)
- Cooperative cancellation checked before each pair

Version: 0.1.0
"""

import asyncio
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from shared.config import Settings
from shared.database import PostgresClient
from shared.logging import bind_context, clear_context, get_logger
from shared.models import Organization
from services.scope_metrics.errors import FatalConfigurationError, ScopeMetricsError
from services.scope_metrics.pipeline import PairPipeline, PairResult, PipelineConfig
from services.scope_metrics.sources import (
    OrganizationCatalog,
    PostgresDocumentSource,
    PostgresOrganizationCatalog,
    PostgresReferenceSource,
)
from services.scope_metrics.store import (
    AggregateStore,
    InMemoryAggregateStore,
    PostgresAggregateStore,
)


logger = get_logger(__name__)

ProgressCallback = Callable[[int, int, PairResult | None], None]


@dataclass
class PairFailure:
    """A pair that raised during processing."""

    organization_id: int
    organization_name: str
    effective_date: date
    error: str
    error_type: str


@dataclass
class BatchResult:
    """Result of a batch run."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    pairs_total: int = 0
    pairs_succeeded: int = 0
    pairs_failed: int = 0
    pairs_skipped: int = 0
    cancelled: bool = False

    results: list[PairResult] = field(default_factory=list)
    failures: list[PairFailure] = field(default_factory=list)

    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    duration_seconds: float = 0.0

    @property
    def pairs_processed(self) -> int:
        return self.pairs_succeeded + self.pairs_failed

    @property
    def success_rate(self) -> float:
        """Fraction of attempted pairs that succeeded."""
        if self.pairs_processed == 0:
            return 0.0
        return self.pairs_succeeded / self.pairs_processed


class BatchOrchestrator:
    """
    Runs the pipeline for every (date, organization) pair.

    With ``max_concurrent == 1`` pairs run strictly in order. Higher values
    process pairs concurrently under a semaphore, which should not exceed
    the database pool size.
    """

    def __init__(
        self,
        pipeline: PairPipeline,
        max_concurrent: int = 1,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.pipeline = pipeline
        self.max_concurrent = max_concurrent
        self.cancel_event = cancel_event or asyncio.Event()
        self._semaphore = asyncio.Semaphore(max_concurrent)

    def cancel(self) -> None:
        """Request that no further pairs be started."""
        self.cancel_event.set()

    async def run(
        self,
        dates: Sequence[date],
        organizations: Sequence[Organization],
        on_progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """
        Process every pair.

        Args:
            dates: Effective dates (outer loop)
            organizations: Organizations (inner loop)
            on_progress: Optional callback(current, total, pair_result)

        Returns:
            BatchResult with per-pair outcomes and failures
        """
        result = BatchResult()
        pairs = [(d, org) for d in dates for org in organizations]
        result.pairs_total = len(pairs)

        if not pairs:
            logger.info("batch_empty", dates=len(dates), organizations=len(organizations))
            return self._finish(result)

        bind_context(run_id=result.run_id)
        logger.info(
            "batch_started",
            dates=[d.isoformat() for d in dates],
            organizations=len(organizations),
            pairs=len(pairs),
            max_concurrent=self.max_concurrent,
        )

        try:
            if self.max_concurrent == 1:
                for current, (effective_date, organization) in enumerate(pairs, start=1):
                    await self._run_pair(
                        result, organization, effective_date, current, len(pairs), on_progress
                    )
            else:
                tasks = [
                    self._run_pair_with_semaphore(
                        result, organization, effective_date, current, len(pairs), on_progress
                    )
                    for current, (effective_date, organization) in enumerate(pairs, start=1)
                ]
                await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self._finish(result)
            clear_context()

        return result

    async def _run_pair_with_semaphore(
        self,
        result: BatchResult,
        organization: Organization,
        effective_date: date,
        current: int,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        async with self._semaphore:
            await self._run_pair(result, organization, effective_date, current, total, on_progress)

    async def _run_pair(
        self,
        result: BatchResult,
        organization: Organization,
        effective_date: date,
        current: int,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        if self.cancel_event.is_set():
            result.cancelled = True
            result.pairs_skipped += 1
            return

        pair_result: PairResult | None = None
        try:
            pair_result = await self.pipeline.process(organization, effective_date)
        except Exception as e:
            result.pairs_failed += 1
            result.failures.append(
                PairFailure(
                    organization_id=organization.id,
                    organization_name=organization.name,
                    effective_date=effective_date,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            )
            logger.error(
                "pair_failed",
                organization_id=organization.id,
                organization=organization.name,
                effective_date=effective_date.isoformat(),
                error_type=type(e).__name__,
                error=str(e),
            )
        else:
            result.pairs_succeeded += 1
            result.results.append(pair_result)

        if on_progress:
            try:
                on_progress(current, total, pair_result)
            except Exception as e:
                logger.warning("progress_callback_failed", error=str(e))

    def _finish(self, result: BatchResult) -> BatchResult:
        result.completed_at = datetime.now(UTC)
        result.duration_seconds = (result.completed_at - result.started_at).total_seconds()

        logger.info(
            "batch_complete",
            pairs=result.pairs_total,
            succeeded=result.pairs_succeeded,
            failed=result.pairs_failed,
            skipped=result.pairs_skipped,
            cancelled=result.cancelled,
            duration=f"{result.duration_seconds:.2f}s",
        )
        return result


async def run_word_count_job(
    dates: Sequence[date],
    settings: Settings,
    dry_run: bool = False,
    organization_names: Sequence[str] | None = None,
    cancel_event: asyncio.Event | None = None,
) -> BatchResult:
    """
    Run the word count job against PostgreSQL.

    Args:
        dates: Effective dates to process
        settings: Application settings
        dry_run: Keep aggregates in memory instead of writing them
        organization_names: Restrict the run to these organizations
        cancel_event: Set to stop starting new pairs

    Returns:
        BatchResult

    Raises:
        FatalConfigurationError: If the pipeline settings are invalid, the
            database is unreachable or no organizations are available
    """
    pipeline_settings = settings.pipeline
    config = PipelineConfig.from_settings(pipeline_settings)

    client = PostgresClient(settings.postgres, echo=settings.debug)

    try:
        postgres_store = PostgresAggregateStore(
            client.session_factory,
            timeout_seconds=pipeline_settings.store_timeout_seconds,
        )
        try:
            await postgres_store.ping()
        except ScopeMetricsError as e:
            raise FatalConfigurationError(f"aggregate store unreachable: {e}") from e

        store: AggregateStore = InMemoryAggregateStore() if dry_run else postgres_store

        reader_args = {
            "timeout_seconds": pipeline_settings.fetch_timeout_seconds,
            "retries": pipeline_settings.fetch_retries,
        }
        catalog: OrganizationCatalog = PostgresOrganizationCatalog(
            client.session_factory, **reader_args
        )
        organizations = await _load_organizations(catalog, organization_names)

        pipeline = PairPipeline(
            documents=PostgresDocumentSource(client.session_factory, **reader_args),
            references=PostgresReferenceSource(client.session_factory, **reader_args),
            store=store,
            config=config,
        )
        orchestrator = BatchOrchestrator(
            pipeline,
            max_concurrent=pipeline_settings.max_concurrent_pairs,
            cancel_event=cancel_event,
        )
        return await orchestrator.run(dates, organizations)
    finally:
        await client.close()


async def _load_organizations(
    catalog: OrganizationCatalog,
    names: Sequence[str] | None,
) -> list[Organization]:
    try:
        organizations = await catalog.organizations()
    except ScopeMetricsError as e:
        raise FatalConfigurationError(f"organization catalog unavailable: {e}") from e

    if names:
        wanted = set(names)
        missing = wanted - {o.name for o in organizations}
        if missing:
            logger.warning("organizations_not_found", names=sorted(missing))
        organizations = [o for o in organizations if o.name in wanted]

    if not organizations:
        raise FatalConfigurationError("no organizations to process")

    logger.info("organizations_loaded", count=len(organizations))
    return organizations

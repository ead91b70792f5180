"""
Scope Metrics Service
=====================

Extracts the text belonging to an organization's chapters from eCFR
title XML and reduces it to a word count and a SHA-256 fingerprint per
(organization, effective date).

Components:
- tree: generic attributed document tree (lxml-backed)
- locator: chapter scope search
- extractor: paragraph/heading text collection
- fingerprint: deterministic word count and checksum
- store: idempotent aggregate persistence
- pipeline / orchestrator: per-pair processing and batch runs
"""

from services.scope_metrics.errors import (
    DocumentFetchError,
    FatalConfigurationError,
    MalformedDocumentError,
    ScopeMetricsError,
    StorageError,
)
from services.scope_metrics.extractor import TextItem, extract_text
from services.scope_metrics.fingerprint import (
    CHECKSUM_ALGORITHM,
    FRAGMENT_SEPARATOR,
    Checksum,
    ExtractedFragment,
    Reduction,
    reduce_fragments,
)
from services.scope_metrics.locator import locate_scopes
from services.scope_metrics.orchestrator import (
    BatchOrchestrator,
    BatchResult,
    PairFailure,
    run_word_count_job,
)
from services.scope_metrics.pipeline import PairPipeline, PairResult, PipelineConfig
from services.scope_metrics.store import (
    AggregateStore,
    InMemoryAggregateStore,
    PostgresAggregateStore,
)
from services.scope_metrics.tree import DocumentNode, parse_document, title_root

__version__ = "0.1.0"

__all__ = [
    "AggregateStore",
    "BatchOrchestrator",
    "BatchResult",
    "CHECKSUM_ALGORITHM",
    "Checksum",
    "DocumentFetchError",
    "DocumentNode",
    "ExtractedFragment",
    "FRAGMENT_SEPARATOR",
    "FatalConfigurationError",
    "InMemoryAggregateStore",
    "MalformedDocumentError",
    "PairFailure",
    "PairPipeline",
    "PairResult",
    "PipelineConfig",
    "PostgresAggregateStore",
    "Reduction",
    "ScopeMetricsError",
    "StorageError",
    "TextItem",
    "extract_text",
    "locate_scopes",
    "parse_document",
    "reduce_fragments",
    "run_word_count_job",
    "title_root",
]

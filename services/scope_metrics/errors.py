"""
Scope Metrics Errors
====================

Exception hierarchy for the extraction pipeline.

Per-document errors (MalformedDocumentError) are absorbed inside a pair;
per-pair errors (DocumentFetchError, StorageError) are absorbed by the
batch orchestrator; FatalConfigurationError aborts the run.

Version: 0.1.0
"""

from datetime import date


class ScopeMetricsError(Exception):
    """Base class for pipeline errors."""


class MalformedDocumentError(ScopeMetricsError):
    """A document could not be interpreted as a tree."""

    def __init__(self, reason: str, title: int | None = None) -> None:
        self.title = title
        self.reason = reason
        prefix = f"title {title}: " if title is not None else ""
        super().__init__(f"{prefix}{reason}")


class DocumentFetchError(ScopeMetricsError):
    """Raw documents for a title/date could not be fetched."""

    def __init__(self, titles: list[int], effective_date: date, reason: str) -> None:
        self.titles = titles
        self.effective_date = effective_date
        self.reason = reason
        super().__init__(
            f"fetch failed for titles {titles} on {effective_date.isoformat()}: {reason}"
        )


class StorageError(ScopeMetricsError):
    """An aggregate could not be written or read."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")


class FatalConfigurationError(ScopeMetricsError):
    """A required external resource is missing or unreachable."""

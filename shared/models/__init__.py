"""
Shared Models
=============

Pydantic models shared between the pipeline and its readers.

Models:
- Organization (catalog entry)
- WordCountPoint, ChecksumPoint (time series points)
"""

from shared.models.aggregate import (
    ChecksumPoint,
    Organization,
    WordCountPoint,
)


__all__ = [
    "Organization",
    "WordCountPoint",
    "ChecksumPoint",
]

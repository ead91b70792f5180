"""
Aggregate Models
================

Models for organizations and the word-count / checksum time series
read back from the aggregate store.

Version: 0.1.0
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class Organization(BaseModel):
    """An organization (agency) from the catalog."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Organization identifier")
    name: str = Field(..., description="Display name")


class WordCountPoint(BaseModel):
    """One word-count observation, with its checksum when one was stored."""

    effective_date: date
    count: int = Field(..., ge=0)
    checksum_algorithm: str | None = None
    checksum: str | None = None
    calculated_at: datetime | None = None


class ChecksumPoint(BaseModel):
    """One checksum observation."""

    effective_date: date
    algorithm: str
    value: str = Field(..., description="Lowercase hex digest")
    calculated_at: datetime | None = None

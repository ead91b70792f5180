"""
REGSCOPE Services
=================

Services:
- scope_metrics: scope extraction, word counts and content checksums
  for versioned eCFR title documents
"""

__all__ = [
    "scope_metrics",
]

"""
Fingerprint & Word Count
========================

Reduces extracted fragments to a word count and a content checksum.

The checksum is only reproducible because fragments are sorted by
(title, scope, tag, text) before being joined; extraction order and
query row order never reach the digest.

Version: 0.1.0
"""

import hashlib
import re
from collections.abc import Iterable
from dataclasses import dataclass


CHECKSUM_ALGORITHM = "SHA-256"
FRAGMENT_SEPARATOR = "\n<--SNIP-->\n"

_WHITESPACE = re.compile(r"\s+")

_HASHERS = {
    "SHA-256": hashlib.sha256,
}

SUPPORTED_ALGORITHMS = frozenset(_HASHERS)


@dataclass(frozen=True)
class ExtractedFragment:
    """One piece of text tied to the title and scope it came from."""

    title: int
    scope_id: str
    tag: str
    text: str

    @property
    def sort_key(self) -> tuple[int, str, str, str]:
        return (self.title, self.scope_id, self.tag, self.text)


@dataclass(frozen=True)
class Checksum:
    """A digest and the algorithm that produced it."""

    algorithm: str
    value: str


@dataclass(frozen=True)
class Reduction:
    """Aggregates for one (organization, date) pair."""

    word_count: int
    checksum: Checksum | None
    fragment_count: int = 0


def count_words(text: str) -> int:
    """Count whitespace-delimited tokens in ``text``."""
    trimmed = text.strip()
    if not trimmed:
        return 0
    return len(_WHITESPACE.split(trimmed))


def combine_fragments(fragments: Iterable[ExtractedFragment]) -> str:
    """Sort fragments into canonical order and join their text."""
    ordered = sorted(fragments, key=lambda f: f.sort_key)
    return FRAGMENT_SEPARATOR.join(f.text for f in ordered)


def compute_checksum(content: str, algorithm: str = CHECKSUM_ALGORITHM) -> Checksum:
    """
    Hash UTF-8 encoded ``content``.

    Raises:
        ValueError: If ``algorithm`` is not supported
    """
    try:
        hasher = _HASHERS[algorithm]
    except KeyError:
        raise ValueError(f"Unsupported checksum algorithm: {algorithm}") from None
    return Checksum(
        algorithm=algorithm,
        value=hasher(content.encode("utf-8")).hexdigest(),
    )


def reduce_fragments(
    fragments: Iterable[ExtractedFragment],
    algorithm: str = CHECKSUM_ALGORITHM,
) -> Reduction:
    """
    Compute the word count and checksum for a set of fragments.

    No fragments means a zero count and no checksum at all, rather than
    the digest of an empty string.

    Args:
        fragments: Extracted fragments, in any order
        algorithm: Checksum algorithm name

    Returns:
        Reduction with word count and optional checksum
    """
    items = list(fragments)
    if not items:
        return Reduction(word_count=0, checksum=None, fragment_count=0)

    word_count = sum(count_words(f.text) for f in items)
    checksum = compute_checksum(combine_fragments(items), algorithm)

    return Reduction(
        word_count=word_count,
        checksum=checksum,
        fragment_count=len(items),
    )

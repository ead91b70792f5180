"""
Text Extractor
==============

Collects paragraph and heading text from a located scope.

Only the text directly inside a P/HEAD element is taken; inline markup
nested inside a paragraph (<I>, <E>, ...) is not reassembled, so a
paragraph with mixed content contributes its leading text segment.

Version: 0.1.0
"""

from collections.abc import Sequence
from dataclasses import dataclass

from services.scope_metrics.tree import DocumentNode


DEFAULT_CONTENT_TAGS: tuple[str, ...] = ("P", "HEAD")
DEFAULT_TEXT_DEPTH_LIMIT = 15


@dataclass(frozen=True)
class TextItem:
    """Text found under a scope, before it is tied to a title/scope."""

    tag: str
    text: str


def extract_text(
    scope_root: DocumentNode,
    depth_limit: int = DEFAULT_TEXT_DEPTH_LIMIT,
    content_tags: Sequence[str] = DEFAULT_CONTENT_TAGS,
) -> list[TextItem]:
    """
    Extract content text under ``scope_root``.

    At each node the content tags are read first (in ``content_tags``
    order), then every other child group is descended into. Nodes deeper
    than ``depth_limit`` contribute nothing and are not walked.

    Args:
        scope_root: Located scope node
        depth_limit: Maximum depth walked below ``scope_root``
        content_tags: Tags whose direct text is collected

    Returns:
        Trimmed, non-empty text items in traversal order
    """
    tags = tuple(content_tags)
    return _collect(scope_root, 0, depth_limit, tags)


def _collect(
    element: DocumentNode,
    depth: int,
    depth_limit: int,
    content_tags: tuple[str, ...],
) -> list[TextItem]:
    if depth > depth_limit:
        return []

    items: list[TextItem] = []

    for tag in content_tags:
        for node in element.get(tag):
            text = (node.text or "").strip()
            if text:
                items.append(TextItem(tag=tag, text=text))

    for tag, nodes in element.children.items():
        if tag in content_tags:
            continue
        for child in nodes:
            items.extend(_collect(child, depth + 1, depth_limit, content_tags))

    return items

"""
Scope Locator
=============

Finds the subtrees of a title that belong to an organization.

A scope is a chapter-equivalent division (DIV3 or DIV5 in eCFR XML)
whose ``N`` attribute matches one of the organization's chapter
identifiers. Identifiers are compared as exact strings, so "03" does
not match "3".

Version: 0.1.0
"""

from collections.abc import Collection, Sequence

from services.scope_metrics.errors import MalformedDocumentError
from services.scope_metrics.tree import DocumentNode


DEFAULT_SCOPE_TAGS: tuple[str, ...] = ("DIV3", "DIV5")
DEFAULT_SCOPE_ATTRIBUTE = "N"
CONTAINER_PREFIX = "DIV"
DEFAULT_SCOPE_DEPTH_LIMIT = 64


def locate_scopes(
    root: DocumentNode,
    target_scope_ids: Collection[str],
    scope_tags: Sequence[str] = DEFAULT_SCOPE_TAGS,
    scope_attribute: str = DEFAULT_SCOPE_ATTRIBUTE,
    max_depth: int = DEFAULT_SCOPE_DEPTH_LIMIT,
) -> list[DocumentNode]:
    """
    Find scope subtrees whose identifier is in ``target_scope_ids``.

    The search does not stop at a match: containers are walked to the
    bottom so that every disjoint scope is returned, in document order.
    Scope-bearing children are checked at every level but are not
    themselves descended into from the level that checked them.

    Args:
        root: Title element to search under
        target_scope_ids: Scope identifiers to match
        scope_tags: Tags that can carry a scope
        scope_attribute: Attribute holding the scope identifier
        max_depth: Container nesting ceiling

    Returns:
        Matched scope nodes, duplicates preserved

    Raises:
        MalformedDocumentError: If containers nest deeper than ``max_depth``
    """
    if not target_scope_ids:
        return []

    targets = {str(t) for t in target_scope_ids}
    scope_kinds = tuple(scope_tags)
    found: list[DocumentNode] = []

    def search(element: DocumentNode, depth: int) -> None:
        if depth > max_depth:
            raise MalformedDocumentError(
                f"division nesting exceeds {max_depth} levels"
            )

        for kind in scope_kinds:
            for candidate in element.get(kind):
                value = candidate.attribute(scope_attribute)
                if value and str(value) in targets:
                    found.append(candidate)

        for tag, nodes in element.children.items():
            if not tag.startswith(CONTAINER_PREFIX) or tag in scope_kinds:
                continue
            for child in nodes:
                search(child, depth + 1)

    search(root, 0)
    return found

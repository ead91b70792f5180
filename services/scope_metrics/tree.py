"""
Document Tree
=============

Generic attributed tree for parsed eCFR XML documents.

Same-tag children are always grouped into a tuple under their tag, so
consumers never deal with the single-node vs. sequence ambiguity.
Attribute values are kept as the literal strings from the document.

Version: 0.1.0
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from lxml import etree

from services.scope_metrics.errors import MalformedDocumentError


TITLE_TAG = "DIV1"


@dataclass(frozen=True)
class DocumentNode:
    """One element of a parsed document tree."""

    tag: str
    attributes: Mapping[str, str] = field(default_factory=dict)
    text: str | None = None
    children: Mapping[str, tuple["DocumentNode", ...]] = field(default_factory=dict)

    def get(self, tag: str) -> tuple["DocumentNode", ...]:
        """Children with the given tag, in document order."""
        return self.children.get(tag, ())

    def attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def iter_children(self) -> Iterator[tuple[str, "DocumentNode"]]:
        """Yield (tag, child) pairs, grouped by tag in first-seen order."""
        for tag, nodes in self.children.items():
            for node in nodes:
                yield tag, node


def _build_node(element: etree._Element) -> DocumentNode:
    grouped: dict[str, list[DocumentNode]] = {}
    for child in element:
        # Comments and processing instructions have a callable tag
        if not isinstance(child.tag, str):
            continue
        grouped.setdefault(child.tag, []).append(_build_node(child))

    text = element.text.strip() if element.text else None

    return DocumentNode(
        tag=element.tag,
        attributes=MappingProxyType(dict(element.attrib)),
        text=text or None,
        children=MappingProxyType({tag: tuple(nodes) for tag, nodes in grouped.items()}),
    )


def parse_document(xml: str | bytes, title: int | None = None) -> DocumentNode:
    """
    Parse raw XML into a DocumentNode tree.

    Args:
        xml: Raw document content
        title: Title number, used only for error context

    Returns:
        Root node of the document

    Raises:
        MalformedDocumentError: If the content is not well-formed XML
    """
    if isinstance(xml, str):
        xml = xml.encode("utf-8")

    if not xml.strip():
        raise MalformedDocumentError("empty document", title=title)

    parser = etree.XMLParser(
        remove_comments=True,
        remove_pis=True,
        resolve_entities=False,
        no_network=True,
    )
    try:
        root = etree.fromstring(xml, parser=parser)
    except etree.XMLSyntaxError as e:
        raise MalformedDocumentError(f"invalid XML: {e}", title=title) from e

    return _build_node(root)


def title_root(document: DocumentNode) -> DocumentNode | None:
    """
    Locate the title element of a document.

    The eCFR layout is ``<ECFR><DIV1 TYPE="TITLE">...``; the first DIV1 is
    used. A document whose root is itself a DIV1 is accepted as-is.
    """
    if document.tag == TITLE_TAG:
        return document
    titles = document.get(TITLE_TAG)
    return titles[0] if titles else None

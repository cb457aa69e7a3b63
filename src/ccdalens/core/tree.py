"""Generic document tree built from CDA XML, plus the accessors used to read it.

The tree is plain dicts, lists and strings:

- an attribute ``X`` is stored under the key ``"@_X"``
- inline text of an element that also carries attributes or children is
  stored under ``"#text"``
- an element with only text (or nothing) collapses to a plain string
- repeated sibling elements become a list, a single occurrence stays a bare
  node, so cardinality can never be inferred from shape
- namespace prefixes are dropped from element and attribute names
- when document order cannot be read back from the keys (text mixed with
  child elements, or interleaved sibling names) the element also carries
  ``"#content"``: its text segments and child nodes in document order. The
  child nodes there are the same objects stored under their names.

Every read of the tree elsewhere in ccdalens goes through ``text_or_attr``
and ``as_sequence`` (or the helpers below that are built on them).
"""

from __future__ import annotations

import re
from typing import Any, Iterator

from lxml import etree

from ccdalens.errors import XMLTreeError

ATTR_PREFIX = "@_"
TEXT_KEY = "#text"
ORDER_KEY = "#content"

_WS_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([,.;:!?)])")


def text_or_attr(node: Any, attr: str | None = None) -> str | None:
    """Read an attribute value, or the inline text of a node.

    Args:
        node: A tree node, a list of nodes (the first is read) or None.
        attr: Attribute name without prefix, e.g. ``"root"``. When omitted
            the node's inline text is returned.

    Returns None when the node is absent, the attribute is missing, or the
    value is empty.
    """
    if isinstance(node, list):
        node = node[0] if node else None
    if node is None:
        return None

    if attr is not None:
        if not isinstance(node, dict):
            return None
        value = node.get(ATTR_PREFIX + attr)
    elif isinstance(node, dict):
        value = node.get(TEXT_KEY)
    else:
        value = node

    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value)
    return text if text.strip() else None


def as_sequence(node: Any) -> list:
    """Return ``node`` as a list: [] for None, [node] for a bare node."""
    if node is None:
        return []
    if isinstance(node, list):
        return node
    if isinstance(node, tuple):
        return list(node)
    return [node]


def first(node: Any) -> Any:
    """First element of a possibly-repeated node, or None."""
    seq = as_sequence(node)
    return seq[0] if seq else None


def child(node: Any, *path: str) -> Any:
    """Walk ``path`` from ``node``, reading through repeated nodes.

    At each step a list is read through its first element. Returns None as
    soon as a step is missing.
    """
    current = node
    for name in path:
        current = first(current)
        if not isinstance(current, dict):
            return None
        current = current.get(name)
        if current is None:
            return None
    return current


def children(node: Any, *path: str) -> list:
    """All nodes found at ``path``, always as a list."""
    return as_sequence(child(node, *path)) if path else as_sequence(node)


def iter_nodes(node: Any) -> Iterator[dict]:
    """Yield every element node in the tree, depth first, document order."""
    for item in as_sequence(node):
        if not isinstance(item, dict):
            continue
        yield item
        for key, value in item.items():
            if key.startswith(ATTR_PREFIX) or key in (TEXT_KEY, ORDER_KEY):
                continue
            yield from iter_nodes(value)


def narrative_text(node: Any) -> str | None:
    """Flatten all text content below ``node`` into one string.

    Text is read in document order where the tree records it. Attribute
    values are ignored. Whitespace runs collapse to a single space.
    """
    parts: list[str] = []
    _collect_text(node, parts)
    text = _WS_RE.sub(" ", " ".join(parts)).strip()
    text = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", text)
    return text or None


def _collect_text(node: Any, parts: list[str]) -> None:
    if node is None:
        return
    if isinstance(node, list):
        for item in node:
            _collect_text(item, parts)
        return
    if not isinstance(node, dict):
        text = str(node).strip()
        if text:
            parts.append(text)
        return
    if ORDER_KEY in node:
        for segment in as_sequence(node[ORDER_KEY]):
            _collect_text(segment, parts)
        return
    # leading text precedes children in trees without an order record
    _collect_text(node.get(TEXT_KEY), parts)
    for key, value in node.items():
        if key.startswith(ATTR_PREFIX) or key == TEXT_KEY:
            continue
        _collect_text(value, parts)


# --- XML to tree ---------------------------------------------------------


def xml_to_tree(xml: str | bytes, recover: bool = False) -> dict:
    """Convert CDA XML text into the generic tree.

    Args:
        xml: XML document as text or bytes.
        recover: If True, use lxml's recovery mode for malformed exports.

    Returns a dict with a single key, the root element's local name.

    Raises:
        XMLTreeError: If the text is not well-formed XML.
    """
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    parser = etree.XMLParser(
        recover=recover, resolve_entities=False, no_network=True, huge_tree=True
    )
    try:
        root = etree.fromstring(xml, parser)
    except etree.XMLSyntaxError as e:
        raise XMLTreeError(f"Malformed XML: {e}") from e
    if root is None:
        raise XMLTreeError("Malformed XML: no root element")
    return {etree.QName(root).localname: _element_to_node(root)}


def parse_file(filepath: str, recover: bool = False) -> dict:
    """Read a CDA XML file and return its generic tree.

    Args:
        filepath: Path to the XML file.
        recover: If True, use lxml's recovery mode for encoding issues.
    """
    with open(filepath, "rb") as f:
        data = f.read()
    return xml_to_tree(data, recover=recover)


def _element_to_node(el: etree._Element) -> Any:
    node: dict[str, Any] = {}
    for name, value in el.attrib.items():
        node[ATTR_PREFIX + etree.QName(name).localname] = value

    texts: list[str] = []
    segments: list[Any] = []
    names: list[str] = []
    lead = el.text.strip() if el.text else ""
    if lead:
        texts.append(lead)
        segments.append(lead)
    for sub in el:
        # comments and processing instructions have no string tag
        if isinstance(sub.tag, str):
            name = etree.QName(sub).localname
            value = _element_to_node(sub)
            existing = node.get(name)
            if existing is None:
                node[name] = value
            elif isinstance(existing, list):
                existing.append(value)
            else:
                node[name] = [existing, value]
            names.append(name)
            segments.append(value)
        tail = sub.tail.strip() if sub.tail else ""
        if tail:
            texts.append(tail)
            segments.append(tail)

    text = " ".join(texts)
    if not node:
        return text
    if text:
        node[TEXT_KEY] = text
    if (text and names) or not _grouped(names):
        node[ORDER_KEY] = segments
    return node


def _grouped(names: list[str]) -> bool:
    """True when each name's occurrences are contiguous."""
    seen: set[str] = set()
    previous = None
    for name in names:
        if name != previous:
            if name in seen:
                return False
            seen.add(name)
            previous = name
    return True

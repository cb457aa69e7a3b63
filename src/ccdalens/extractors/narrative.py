"""Sections read for their human-readable narrative block."""

from __future__ import annotations

from typing import Any

from ccdalens.core.hl7 import DEFAULT_ID_TYPES, IdTypeTable
from ccdalens.core.tree import child, children, narrative_text, text_or_attr
from ccdalens.models import NarrativeBlock, NarrativeSection


def extract_narrative(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> NarrativeSection | None:
    if not isinstance(section, dict):
        return None
    text = child(section, "text")
    code = child(section, "code")
    title = text_or_attr(child(section, "title"))
    return NarrativeSection(
        title=title.strip() if title else None,
        text=narrative_text(text),
        blocks=narrative_blocks(text),
        code=text_or_attr(code, "code"),
        code_system=text_or_attr(code, "codeSystem"),
    )


def narrative_blocks(text: Any) -> list[NarrativeBlock]:
    """Lists and paragraphs directly under a <text> element."""
    blocks = []
    for lst in children(text, "list"):
        items = [narrative_text(item) for item in children(lst, "item")]
        items = [i for i in items if i]
        if items:
            blocks.append(NarrativeBlock(kind="list", items=items))
    for para in children(text, "paragraph"):
        rendered = narrative_text(para)
        if rendered:
            blocks.append(NarrativeBlock(kind="paragraph", text=rendered))
    return blocks

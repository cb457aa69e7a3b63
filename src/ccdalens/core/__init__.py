"""Core utilities for reading the generic CDA tree."""

from ccdalens.core.hl7 import (
    DEFAULT_ID_TYPES,
    LOINC,
    IdTypeTable,
    code_display,
    collect_codes,
    collect_template_ids,
)
from ccdalens.core.tree import (
    as_sequence,
    child,
    children,
    first,
    narrative_text,
    parse_file,
    text_or_attr,
    xml_to_tree,
)

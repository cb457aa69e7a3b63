"""End-to-end extraction: classify, resolve the release, then read every section.

One ClinicalExtractor, parameterized by a SectionCatalog, handles every
document kind. The catalog decides which sections are read; the EXTRACTORS
map decides how.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Iterable

from ccdalens.catalog import SectionCatalog, SectionDescriptor, default_catalog
from ccdalens.classifier import DocumentKind, detect_document_type
from ccdalens.core.hl7 import DEFAULT_ID_TYPES, IdTypeTable
from ccdalens.core.tree import child, children, narrative_text, parse_file, text_or_attr, xml_to_tree
from ccdalens.errors import DocumentFormatError
from ccdalens.extractors.base import section_entries
from ccdalens.extractors.header import extract_header
from ccdalens.extractors.registry import EXTRACTORS
from ccdalens.models import ClinicalDocument, DocumentMetadata, SectionMetadata
from ccdalens.versions import DocumentVersion, detect_version, validate_version

ROOT_ELEMENT = "ClinicalDocument"

_DOCUMENT_FIELDS = frozenset(f.name for f in dataclasses.fields(ClinicalDocument))


def document_root(tree: Any) -> dict:
    """Return the ClinicalDocument node of a generic tree.

    Raises:
        DocumentFormatError: If the tree has no ClinicalDocument element.
    """
    node = tree.get(ROOT_ELEMENT) if isinstance(tree, dict) else None
    if not isinstance(node, dict):
        raise DocumentFormatError(
            "Invalid C-CDA document: missing ClinicalDocument root element",
            {"root_keys": sorted(tree) if isinstance(tree, dict) else []},
        )
    return node


def _as_document_node(root: Any) -> Any:
    if isinstance(root, dict) and isinstance(root.get(ROOT_ELEMENT), dict):
        return root[ROOT_ELEMENT]
    return root


# --- Section location ---


def body_sections(root: Any) -> list[dict]:
    """The structured body's immediate sections, in document order."""
    doc = _as_document_node(root)
    result = []
    for comp in children(doc, "component", "structuredBody", "component"):
        for section in children(comp, "section"):
            if isinstance(section, dict):
                result.append(section)
    return result


def _section_template_roots(section: dict) -> list[str]:
    return [r for r in (text_or_attr(t, "root") for t in children(section, "templateId")) if r]


def _by_template(sections: list[dict], template_id: str) -> dict | None:
    for section in sections:
        if template_id in _section_template_roots(section):
            return section
    return None


def _by_code(sections: list[dict], codes: Iterable[str]) -> dict | None:
    codes = set(codes)
    for section in sections:
        if text_or_attr(child(section, "code"), "code") in codes:
            return section
    return None


def _by_title(sections: list[dict], keyword: str) -> dict | None:
    keyword = keyword.lower()
    for section in sections:
        title = text_or_attr(child(section, "title"))
        if title and keyword in title.lower():
            return section
    return None


def find_section(root: Any, template_id: str) -> dict | None:
    """First body section whose own templateId list contains ``template_id``."""
    return _by_template(body_sections(root), template_id)


def find_section_flexible(root: Any, template_ids: str | Iterable[str]) -> dict | None:
    """Try each candidate template id in order; the first found wins."""
    if isinstance(template_ids, str):
        template_ids = [template_ids]
    sections = body_sections(root)
    for template_id in template_ids:
        section = _by_template(sections, template_id)
        if section is not None:
            return section
    return None


def find_section_by_code(root: Any, codes: Iterable[str]) -> dict | None:
    return _by_code(body_sections(root), codes)


def find_section_by_title(root: Any, keyword: str) -> dict | None:
    """First body section whose title contains ``keyword``, case-insensitively."""
    return _by_title(body_sections(root), keyword)


def locate_section(
    sections: list[dict], descriptor: SectionDescriptor
) -> tuple[dict | None, str | None]:
    """Find a descriptor's section: template ids, then section codes, then title.

    Returns (section, matched template id). The template id is None when
    the section was found by code or title.
    """
    for template_id in descriptor.template_ids:
        section = _by_template(sections, template_id)
        if section is not None:
            return section, template_id
    if descriptor.section_codes:
        section = _by_code(sections, descriptor.section_codes)
        if section is not None:
            return section, None
    if descriptor.title_keyword:
        section = _by_title(sections, descriptor.title_keyword)
        if section is not None:
            return section, None
    return None, None


def _section_metadata(section_id: str | None, section: dict, template_id: str | None) -> SectionMetadata:
    title = text_or_attr(child(section, "title"))
    return SectionMetadata(
        section_id=section_id,
        title=title.strip() if title else None,
        code=text_or_attr(child(section, "code"), "code"),
        template_id=template_id,
        narrative=narrative_text(child(section, "text")),
        entry_count=len(section_entries(section)),
    )


# --- Extraction ---


class ClinicalExtractor:
    """Extracts a ClinicalDocument from a generic tree.

    Args:
        catalog: Sections to read. Defaults to the built-in catalog.
        id_types: Root-OID table used to type patient and provider ids.
        unknown_kind: Kind whose sections are read when classification fails.
    """

    def __init__(
        self,
        catalog: SectionCatalog | None = None,
        id_types: IdTypeTable | None = None,
        unknown_kind: DocumentKind = DocumentKind.CONTINUITY_OF_CARE,
    ):
        self.catalog = catalog if catalog is not None else default_catalog()
        self.id_types = id_types or DEFAULT_ID_TYPES
        self.unknown_kind = unknown_kind
        for descriptor in self.catalog:
            if descriptor.id not in _DOCUMENT_FIELDS:
                raise ValueError(f"Section '{descriptor.id}' has no ClinicalDocument field")
            if descriptor.extractor not in EXTRACTORS:
                raise ValueError(
                    f"Section '{descriptor.id}' names unknown extractor '{descriptor.extractor}'"
                )

    def extract(self, tree: Any) -> ClinicalDocument:
        """Run the full pipeline over one document tree.

        Raises:
            DocumentFormatError: If the tree has no ClinicalDocument root.
        """
        doc = document_root(tree)
        warnings: list[str] = []

        kind = detect_document_type(doc)
        version = detect_version(doc)
        validation = validate_version(doc, kind, version)

        effective_kind = kind
        if kind is DocumentKind.UNKNOWN:
            effective_kind = self.unknown_kind
            warnings.append(
                f"Unrecognized document type; extracting as {effective_kind.value}"
            )
        if version is DocumentVersion.UNKNOWN:
            warnings.append("Unable to detect C-CDA version")
        elif not validation.valid and validation.message:
            warnings.append(validation.message)

        sections = body_sections(doc)
        values: dict[str, Any] = {}
        located: dict[str, SectionMetadata] = {}
        consumed: set[int] = set()

        for descriptor in self.catalog.sections_for_extraction(effective_kind):
            routine = EXTRACTORS[descriptor.extractor]
            if descriptor.document_level:
                values[descriptor.id] = routine(doc, self.id_types)
                continue
            section, template_id = locate_section(sections, descriptor)
            values[descriptor.id] = routine(section, self.id_types)
            if section is not None:
                consumed.add(id(section))
                located[descriptor.id] = _section_metadata(descriptor.id, section, template_id)

        unrecognized = []
        for section in sections:
            if id(section) in consumed:
                continue
            roots = _section_template_roots(section)
            unrecognized.append(_section_metadata(None, section, roots[0] if roots else None))

        missing = self.catalog.validate(values, effective_kind)
        warnings.extend(m.message for m in missing)

        if "header" not in values:
            values["header"] = extract_header(doc, self.id_types)

        metadata = DocumentMetadata(
            document_kind=kind.value,
            effective_kind=effective_kind.value,
            document_version=version.value,
            validation=validation,
            supported_sections=[d.id for d in self.catalog.supported_sections(effective_kind)],
            missing_required=missing,
            sections=located,
            unrecognized_sections=unrecognized,
            warnings=warnings,
        )
        return ClinicalDocument(metadata=metadata, raw=doc, **values)


def extract_document(tree: Any, catalog: SectionCatalog | None = None) -> ClinicalDocument:
    return ClinicalExtractor(catalog).extract(tree)


def extract_xml(xml: str | bytes, recover: bool = False, catalog: SectionCatalog | None = None) -> ClinicalDocument:
    return ClinicalExtractor(catalog).extract(xml_to_tree(xml, recover=recover))


def extract_file(filepath: str, recover: bool = False, catalog: SectionCatalog | None = None) -> ClinicalDocument:
    return ClinicalExtractor(catalog).extract(parse_file(filepath, recover=recover))


def document_to_dict(document: ClinicalDocument, include_raw: bool = False) -> dict:
    """Plain-dict view of a document for JSON output."""
    data = dataclasses.asdict(document)
    if not include_raw:
        data.pop("raw", None)
    return data

"""MCP server for ccdalens: classify and extract C-CDA documents as tools.

Run with: python -m ccdalens.mcp.server
Configure env: CCDALENS_CONFIG=/path/to/ccdalens.toml (optional)
"""

from __future__ import annotations

import dataclasses
import os

from mcp.server.fastmcp import FastMCP

from ccdalens.catalog import default_catalog
from ccdalens.classifier import DocumentKind, detect_document_type, display_info, supported_kinds
from ccdalens.config import build_extractor, load_config
from ccdalens.core.tree import parse_file, xml_to_tree
from ccdalens.errors import CDAError
from ccdalens.extractor import ClinicalExtractor, document_to_dict
from ccdalens.versions import compatibility_report, detect_version, release_info

CONFIG_PATH = os.environ.get("CCDALENS_CONFIG", "")

mcp = FastMCP(
    "ccdalens",
    instructions=(
        "C-CDA clinical document reader. Every tool takes either a file path "
        "or raw XML text (pass exactly one).\n\n"
        "Key capabilities:\n"
        "- detect_document: Document kind and C-CDA release\n"
        "- extract_document: Header, patient and every clinical section as JSON\n"
        "- list_sections: Catalog sections (required/optional) for a document kind\n"
        "- validate_document: Release support and missing required sections\n"
        "- version_report: Template inventory and upgrade recommendations\n\n"
        "Start with detect_document to see what kind of document you have."
    ),
)


def _get_extractor() -> ClinicalExtractor:
    if CONFIG_PATH:
        return build_extractor(load_config(CONFIG_PATH))
    return build_extractor()


def _load_tree(path: str, xml: str) -> dict:
    if bool(path) == bool(xml):
        raise ValueError("Pass exactly one of 'path' or 'xml'")
    if path:
        return parse_file(path, recover=True)
    return xml_to_tree(xml, recover=True)


def _error(e: Exception) -> dict:
    result = {"error": str(e)}
    if isinstance(e, CDAError) and e.details:
        result["details"] = e.details
    return result


@mcp.tool()
def detect_document(path: str = "", xml: str = "") -> dict:
    """Classify a C-CDA document and detect its release.

    Args:
        path: Path to a C-CDA XML file.
        xml: Raw C-CDA XML text, instead of a path.
    """
    try:
        tree = _load_tree(path, xml)
    except (CDAError, OSError, ValueError) as e:
        return _error(e)
    kind = detect_document_type(tree)
    version = detect_version(tree)
    info = display_info(kind)
    return {
        "document_kind": kind.value,
        "name": info["name"],
        "description": info["description"],
        "version": version.value,
    }


@mcp.tool()
def extract_document(path: str = "", xml: str = "", sections: list[str] | None = None) -> dict:
    """Extract header, patient and clinical sections from a C-CDA document.

    Args:
        path: Path to a C-CDA XML file.
        xml: Raw C-CDA XML text, instead of a path.
        sections: Optional list of section ids to return (e.g. ["allergies", "medications"]).
            Header, patient and metadata are always included.
    """
    try:
        document = _get_extractor().extract(_load_tree(path, xml))
    except (CDAError, OSError, ValueError) as e:
        return _error(e)
    data = document_to_dict(document)
    if sections:
        keep = {"header", "patient", "metadata", *sections}
        data = {k: v for k, v in data.items() if k in keep}
    return data


@mcp.tool()
def list_sections(kind: str, required_only: bool = False) -> dict:
    """List catalog sections for a document kind.

    Args:
        kind: Document kind, e.g. "continuity-of-care" or "progress-note".
        required_only: Only return required sections.
    """
    parsed = DocumentKind.parse(kind)
    if parsed is DocumentKind.UNKNOWN:
        return {
            "error": f"Unknown document kind '{kind}'",
            "valid_kinds": [k.value for k in supported_kinds()],
        }
    catalog = default_catalog()
    descriptors = catalog.required_sections(parsed) if required_only else catalog.supported_sections(parsed)
    return {
        "document_kind": parsed.value,
        **{k: v for k, v in catalog.kind_stats(parsed).items() if k != "section_ids"},
        "sections": [
            {
                "id": d.id,
                "label": d.label,
                "required": d.required,
                "template_ids": list(d.template_ids),
            }
            for d in descriptors
        ],
    }


@mcp.tool()
def validate_document(path: str = "", xml: str = "") -> dict:
    """Check release support for the document's kind and report missing required sections.

    Args:
        path: Path to a C-CDA XML file.
        xml: Raw C-CDA XML text, instead of a path.
    """
    try:
        document = _get_extractor().extract(_load_tree(path, xml))
    except (CDAError, OSError, ValueError) as e:
        return _error(e)
    meta = document.metadata
    return {
        "document_kind": meta.document_kind,
        "effective_kind": meta.effective_kind,
        "version": meta.document_version,
        "validation": dataclasses.asdict(meta.validation),
        "missing_required": [dataclasses.asdict(m) for m in meta.missing_required],
        "warnings": meta.warnings,
    }


@mcp.tool()
def version_report(path: str = "", xml: str = "") -> dict:
    """Template inventory, release compatibility and upgrade recommendations.

    Args:
        path: Path to a C-CDA XML file.
        xml: Raw C-CDA XML text, instead of a path.
    """
    try:
        tree = _load_tree(path, xml)
    except (CDAError, OSError, ValueError) as e:
        return _error(e)
    report = compatibility_report(tree, detect_document_type(tree))
    result = dataclasses.asdict(report)
    release = release_info(report.version)
    if release is not None:
        result["release"] = {"description": release.description, "template_date": release.template_date}
    return result


def main():
    mcp.run()


if __name__ == "__main__":
    main()

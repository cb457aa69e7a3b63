"""Directory discovery and batch extraction over exported C-CDA files."""

from __future__ import annotations

import os
import re

from ccdalens.core.tree import parse_file
from ccdalens.errors import CDAError
from ccdalens.extractor import ClinicalExtractor

DEFAULT_FILE_PATTERN = r".*\.xml$"


def discover_files(input_dir: str, pattern: str = DEFAULT_FILE_PATTERN) -> list[str]:
    """Find files matching a regex pattern in a directory."""
    files = []
    for f in os.listdir(input_dir):
        path = os.path.join(input_dir, f)
        if os.path.isfile(path) and re.match(pattern, f, re.IGNORECASE):
            files.append(path)
    return sorted(files)


def process_directory(
    input_dir: str,
    extractor: ClinicalExtractor | None = None,
    pattern: str = DEFAULT_FILE_PATTERN,
    recover: bool = False,
) -> dict:
    """Extract every matching document in ``input_dir``.

    Per-file failures are collected in ``errors`` and processing continues.

    Returns:
        {"input_dir", "documents": [(filename, ClinicalDocument)],
         "inventory": [per-file summary dicts], "errors": [{"filename", "error"}]}
    """
    extractor = extractor or ClinicalExtractor()
    data = {
        "input_dir": os.path.abspath(input_dir),
        "documents": [],
        "inventory": [],
        "errors": [],
    }

    files = discover_files(input_dir, pattern)
    print(f"Found {len(files)} documents to process")

    for path in files:
        filename = os.path.basename(path)
        try:
            document = extractor.extract(parse_file(path, recover=recover))
        except (CDAError, OSError) as e:
            data["errors"].append({"filename": filename, "error": str(e)})
            print(f"  ERROR {filename}: {e}")
            continue

        meta = document.metadata
        counts = {k: v for k, v in document.counts().items() if v}
        data["documents"].append((filename, document))
        data["inventory"].append({
            "filename": filename,
            "document_kind": meta.document_kind,
            "document_version": meta.document_version,
            "title": document.header.title,
            "effective_time": document.header.effective_time,
            "entries": sum(counts.values()),
            "warnings": len(meta.warnings),
        })
        print(
            f"  {filename}: {meta.document_kind}, v{meta.document_version}, "
            f"{sum(counts.values())} entries, {len(meta.warnings)} warnings"
        )

    return data

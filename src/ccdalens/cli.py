#!/usr/bin/env python3
"""CLI entry point for ccdalens package.

Usage:
    ccdalens detect <file>
    ccdalens extract <file> [--json] [--config ccdalens.toml] [--recover]
    ccdalens sections <kind> [--required | --optional]
    ccdalens validate <file>
    ccdalens batch <input_dir> [--pattern REGEX] [--config ccdalens.toml]
    ccdalens init-config [--output ccdalens.toml]
    ccdalens serve-mcp [--config ccdalens.toml]
"""

import argparse
import json
import sys

from ccdalens.errors import CDAError


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="ccdalens",
        description="Classify C-CDA documents and extract their clinical sections.",
    )
    sub = parser.add_subparsers(dest="command")

    # --- detect ---
    detect_parser = sub.add_parser("detect", help="Show document kind and C-CDA release")
    detect_parser.add_argument("file", help="C-CDA XML file")
    detect_parser.add_argument("--recover", action="store_true", help="Parse malformed XML leniently")

    # --- extract ---
    extract_parser = sub.add_parser("extract", help="Extract clinical sections from a document")
    extract_parser.add_argument("file", help="C-CDA XML file")
    extract_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    extract_parser.add_argument("--config", default="", help="Path to ccdalens.toml config file")
    extract_parser.add_argument("--recover", action="store_true", help="Parse malformed XML leniently")

    # --- sections ---
    sections_parser = sub.add_parser("sections", help="List catalog sections for a document kind")
    sections_parser.add_argument("kind", help="Document kind, e.g. continuity-of-care")
    group = sections_parser.add_mutually_exclusive_group()
    group.add_argument("--required", action="store_true", help="Only required sections")
    group.add_argument("--optional", action="store_true", help="Only optional sections")

    # --- validate ---
    validate_parser = sub.add_parser("validate", help="Check release support and required sections")
    validate_parser.add_argument("file", help="C-CDA XML file")
    validate_parser.add_argument("--recover", action="store_true", help="Parse malformed XML leniently")

    # --- batch ---
    batch_parser = sub.add_parser("batch", help="Extract every document in a directory")
    batch_parser.add_argument("input_dir", help="Directory containing C-CDA files")
    batch_parser.add_argument("--pattern", default=r".*\.xml$", help="Filename regex")
    batch_parser.add_argument("--config", default="", help="Path to ccdalens.toml config file")
    batch_parser.add_argument("--recover", action="store_true", help="Parse malformed XML leniently")

    # --- init-config ---
    config_parser = sub.add_parser("init-config", help="Write a starter ccdalens.toml")
    config_parser.add_argument("--output", default="ccdalens.toml", help="Config file output path")

    # --- serve-mcp ---
    mcp_parser = sub.add_parser("serve-mcp", help="Start MCP server")
    mcp_parser.add_argument("--config", default="", help="Path to ccdalens.toml config file")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "detect":
            _handle_detect(args)
        elif args.command == "extract":
            _handle_extract(args)
        elif args.command == "sections":
            _handle_sections(args)
        elif args.command == "validate":
            _handle_validate(args)
        elif args.command == "batch":
            _handle_batch(args)
        elif args.command == "init-config":
            _handle_init_config(args)
        elif args.command == "serve-mcp":
            _handle_serve_mcp(args)
    except (CDAError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _extractor(config_path: str):
    from ccdalens.config import build_extractor, load_config

    if not config_path:
        return build_extractor()
    return build_extractor(load_config(config_path))


def _handle_detect(args):
    from ccdalens.classifier import detect_document_type, display_info
    from ccdalens.core.tree import parse_file
    from ccdalens.versions import detect_version

    tree = parse_file(args.file, recover=args.recover)
    kind = detect_document_type(tree)
    version = detect_version(tree)
    info = display_info(kind)

    print(f"Document kind:  {kind.value} ({info['name']})")
    print(f"C-CDA version:  {version.value}")


def _handle_extract(args):
    from ccdalens.core.tree import parse_file
    from ccdalens.extractor import document_to_dict
    from ccdalens.models import NarrativeSection

    extractor = _extractor(args.config)
    document = extractor.extract(parse_file(args.file, recover=args.recover))

    if args.json:
        print(json.dumps(document_to_dict(document), indent=2))
        return

    meta = document.metadata
    header = document.header
    patient = document.patient

    print(f"\n{'='*50}")
    print(f"{header.title or 'Untitled document'}")
    print(f"{'='*50}")
    print(f"  Kind:      {meta.document_kind}"
          + (f" (extracted as {meta.effective_kind})" if meta.effective_kind != meta.document_kind else ""))
    print(f"  Version:   {meta.document_version}")
    print(f"  Date:      {header.effective_time or '-'}")
    if patient is not None:
        name = patient.name.full if patient.name else None
        print(f"  Patient:   {name or '-'} (MRN {patient.mrn or '-'})")

    counts = {k: v for k, v in document.counts().items() if v}
    if counts:
        print("\n  Entries:")
        for section_id, count in counts.items():
            print(f"    {section_id:<25} {count:>6}")

    narratives = [sid for sid, value in vars(document).items() if isinstance(value, NarrativeSection)]
    if narratives:
        print(f"\n  Narrative sections: {', '.join(narratives)}")

    if meta.unrecognized_sections:
        titles = [s.title or s.code or "?" for s in meta.unrecognized_sections]
        print(f"\n  Unrecognized sections: {', '.join(titles)}")

    _print_warnings(meta.warnings)


def _print_warnings(warnings):
    if not warnings:
        return
    print("\n  Warnings:")
    for w in warnings:
        print(f"    - {w}")


def _handle_sections(args):
    from ccdalens.catalog import default_catalog
    from ccdalens.classifier import DocumentKind

    kind = DocumentKind.parse(args.kind)
    if kind is DocumentKind.UNKNOWN:
        valid = ", ".join(k.value for k in DocumentKind if k is not DocumentKind.UNKNOWN)
        print(f"Error: Unknown document kind '{args.kind}'. Valid kinds: {valid}", file=sys.stderr)
        sys.exit(1)

    catalog = default_catalog()
    if args.required:
        sections = catalog.required_sections(kind)
    elif args.optional:
        sections = catalog.optional_sections(kind)
    else:
        sections = catalog.supported_sections(kind)

    print(f"{'Section':<25} {'Label':<30} Required")
    print(f"{'-'*25} {'-'*30} {'-'*8}")
    for d in sections:
        print(f"{d.id:<25} {d.label:<30} {'yes' if d.required else 'no'}")


def _handle_validate(args):
    from ccdalens.core.tree import parse_file
    from ccdalens.extractor import ClinicalExtractor

    document = ClinicalExtractor().extract(parse_file(args.file, recover=args.recover))
    meta = document.metadata

    status = "valid" if meta.validation.valid else "invalid"
    print(f"Version check: {status} ({meta.validation.message or '-'})")
    if meta.missing_required:
        print("Missing required sections:")
        for m in meta.missing_required:
            print(f"  - {m.label} ({m.section_id})")
    else:
        print("All required sections present")

    if not meta.validation.valid or meta.missing_required:
        sys.exit(2)


def _handle_batch(args):
    from ccdalens.sources.base import process_directory

    data = process_directory(
        args.input_dir,
        extractor=_extractor(args.config),
        pattern=args.pattern,
        recover=args.recover,
    )

    kinds: dict[str, int] = {}
    for item in data["inventory"]:
        kinds[item["document_kind"]] = kinds.get(item["document_kind"], 0) + 1

    print(f"\n{'='*50}")
    print("Batch Summary")
    print(f"{'='*50}")
    for kind, count in sorted(kinds.items()):
        print(f"  {kind:<25} {count:>6}")
    print(f"  {'errors':<25} {len(data['errors']):>6}")

    if data["errors"]:
        sys.exit(1)


def _handle_init_config(args):
    from ccdalens.config import write_default_config

    path = write_default_config(args.output)
    print(f"Wrote {path}")


def _handle_serve_mcp(args):
    import os

    if args.config:
        os.environ["CCDALENS_CONFIG"] = args.config

    from ccdalens.mcp.server import mcp

    mcp.run()


if __name__ == "__main__":
    main()

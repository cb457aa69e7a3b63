"""Configuration management for ccdalens.

Loads a TOML file that tunes extraction without code changes: the document
kind used when classification fails, extra identifier roots, and extra
candidate template ids per section.
"""

from __future__ import annotations

import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from ccdalens.catalog import SectionCatalog, default_catalog
from ccdalens.classifier import DocumentKind
from ccdalens.core.hl7 import DEFAULT_ID_TYPES
from ccdalens.errors import ConfigError
from ccdalens.extractor import ClinicalExtractor

DEFAULT_CONFIG_PATH = "ccdalens.toml"

DEFAULT_CONFIG_TEMPLATE = """\
# ccdalens configuration

[extraction]
# Document kind whose sections are read when classification fails
unknown_kind = "continuity-of-care"

[identifiers]
# Extra root OID -> identifier type labels
# "1.2.840.114350.1.13.0.1.7.5.737384.14" = "MRN"

# Extra candidate template ids, tried after the built-in ones
# [sections.notes]
# template_ids = ["1.2.3.4.5"]
"""


@dataclass
class ExtractionConfig:
    unknown_kind: DocumentKind = DocumentKind.CONTINUITY_OF_CARE
    identifiers: dict[str, str] = field(default_factory=dict)  # root OID -> id type
    section_templates: dict[str, list[str]] = field(default_factory=dict)  # section id -> extra ids


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> ExtractionConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if the config file doesn't exist.

    Raises:
        ConfigError: If the file parses but holds invalid values.
    """
    path = Path(config_path)
    if not path.exists():
        print(
            f"Warning: Config file '{config_path}' not found, using defaults.",
            file=sys.stderr,
        )
        return ExtractionConfig()

    with open(path, "rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in '{config_path}': {e}") from e

    return config_from_dict(raw, source=str(path))


def config_from_dict(raw: dict, source: str = "<dict>") -> ExtractionConfig:
    config = ExtractionConfig()

    extraction = raw.get("extraction", {})
    if "unknown_kind" in extraction:
        kind = DocumentKind.parse(extraction["unknown_kind"])
        if kind is DocumentKind.UNKNOWN:
            raise ConfigError(
                f"Invalid unknown_kind '{extraction['unknown_kind']}' in {source}",
                {"valid": [k.value for k in DocumentKind if k is not DocumentKind.UNKNOWN]},
            )
        config.unknown_kind = kind

    for root, label in raw.get("identifiers", {}).items():
        if not isinstance(label, str) or not label:
            raise ConfigError(f"Identifier label for '{root}' must be a non-empty string")
        config.identifiers[root] = label

    for section_id, entry in raw.get("sections", {}).items():
        template_ids = entry.get("template_ids", []) if isinstance(entry, dict) else None
        if not isinstance(template_ids, list) or not all(isinstance(t, str) for t in template_ids):
            raise ConfigError(f"sections.{section_id}.template_ids must be a list of strings")
        config.section_templates[section_id] = template_ids

    return config


def build_catalog(config: ExtractionConfig) -> SectionCatalog:
    catalog = default_catalog()
    if not config.section_templates:
        return catalog
    try:
        return catalog.with_template_overrides(config.section_templates)
    except KeyError as e:
        raise ConfigError(str(e.args[0])) from e


def build_extractor(config: ExtractionConfig | None = None) -> ClinicalExtractor:
    """Return a ClinicalExtractor with the config's catalog and id-type table."""
    config = config or ExtractionConfig()
    return ClinicalExtractor(
        catalog=build_catalog(config),
        id_types=DEFAULT_ID_TYPES.with_overrides(config.identifiers),
        unknown_kind=config.unknown_kind,
    )


def write_default_config(output_path: str = DEFAULT_CONFIG_PATH) -> str:
    Path(output_path).write_text(DEFAULT_CONFIG_TEMPLATE)
    return output_path

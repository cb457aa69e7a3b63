"""C-CDA release detection, kind/release validation and upgrade guidance.

Release detection tries, in order:

1. an exact (template root, extension) pair from TEMPLATE_VERSION_MAP
2. a release-date pattern in any template extension, newest release first
3. a release-date literal anywhere in the document's text content

and otherwise reports UNKNOWN.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from ccdalens.classifier import DocumentKind, display_info
from ccdalens.core.hl7 import collect_template_ids
from ccdalens.core.tree import narrative_text
from ccdalens.models import TemplateIdentifier, VersionValidation


class DocumentVersion(str, Enum):
    V1_1 = "1.1"
    V2_0 = "2.0"
    V2_1 = "2.1"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | DocumentVersion) -> DocumentVersion:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def rank(self) -> int:
        return _RANK[self]

    # str defines its own ordering, so all four comparisons are overridden.
    def __lt__(self, other):
        if not isinstance(other, DocumentVersion):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, DocumentVersion):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, DocumentVersion):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, DocumentVersion):
            return NotImplemented
        return self.rank >= other.rank


_RANK = {
    DocumentVersion.UNKNOWN: 0,
    DocumentVersion.V1_1: 1,
    DocumentVersion.V2_0: 2,
    DocumentVersion.V2_1: 3,
}


@dataclass(frozen=True)
class ReleaseInfo:
    version: DocumentVersion
    template_date: str  # templateId/@extension used by the release
    description: str
    supported_kinds: frozenset[DocumentKind]


_K = DocumentKind

RELEASES: tuple[ReleaseInfo, ...] = (
    ReleaseInfo(
        DocumentVersion.V2_1, "2015-08-01", "C-CDA Release 2.1",
        frozenset({
            _K.CONTINUITY_OF_CARE, _K.CARE_PLAN, _K.CONSULTATION_NOTE, _K.DIAGNOSTIC_IMAGING,
            _K.DISCHARGE_SUMMARY, _K.HISTORY_AND_PHYSICAL, _K.OPERATIVE_NOTE,
            _K.PROCEDURE_NOTE, _K.PROGRESS_NOTE, _K.REFERRAL_NOTE, _K.TRANSFER_SUMMARY,
        }),
    ),
    ReleaseInfo(
        DocumentVersion.V2_0, "2014-06-09", "C-CDA Release 2.0",
        frozenset({
            _K.CONTINUITY_OF_CARE, _K.CONSULTATION_NOTE, _K.DISCHARGE_SUMMARY,
            _K.HISTORY_AND_PHYSICAL, _K.OPERATIVE_NOTE, _K.PROCEDURE_NOTE, _K.PROGRESS_NOTE,
        }),
    ),
    ReleaseInfo(
        DocumentVersion.V1_1, "2012-01-06", "C-CDA Release 1.1",
        frozenset({
            _K.CONTINUITY_OF_CARE, _K.CONSULTATION_NOTE, _K.DISCHARGE_SUMMARY,
            _K.HISTORY_AND_PHYSICAL, _K.OPERATIVE_NOTE, _K.PROCEDURE_NOTE,
        }),
    ),
)

_RELEASE_BY_VERSION = {r.version: r for r in RELEASES}

# Extension patterns per release, newest first.
VERSION_PATTERNS: tuple[tuple[DocumentVersion, re.Pattern], ...] = tuple(
    (r.version, re.compile(re.escape(r.template_date))) for r in RELEASES
)

_DOC = "2.16.840.1.113883.10.20.22.1."
US_REALM_HEADER = _DOC + "1"


def _version_map() -> MappingProxyType:
    # US Realm Header plus the document-level templates each release defines
    suffixes = {
        DocumentVersion.V2_1: ("1", "2", "3", "4", "5", "6", "7", "8", "9", "13", "14", "15"),
        DocumentVersion.V2_0: ("1", "2", "3", "4", "6", "7", "8", "9"),
        DocumentVersion.V1_1: ("1", "2", "3", "4", "6", "7", "8"),
    }
    table = {}
    for version, arcs in suffixes.items():
        date = _RELEASE_BY_VERSION[version].template_date
        for arc in arcs:
            table[(_DOC + arc, date)] = version
    return MappingProxyType(table)


TEMPLATE_VERSION_MAP = _version_map()


def detect_version(tree: Any) -> DocumentVersion:
    """Determine which C-CDA release produced the document."""
    pairs = collect_template_ids(tree)

    for tid in pairs:
        version = TEMPLATE_VERSION_MAP.get(tid.key())
        if version is not None:
            return version

    for version, pattern in VERSION_PATTERNS:
        if any(tid.extension and pattern.search(tid.extension) for tid in pairs):
            return version

    text = narrative_text(tree) or ""
    for release in RELEASES:
        if release.template_date in text:
            return release.version

    return DocumentVersion.UNKNOWN


def release_info(version: DocumentVersion | str) -> ReleaseInfo | None:
    return _RELEASE_BY_VERSION.get(DocumentVersion.parse(version))


def supported_versions() -> list[DocumentVersion]:
    return [r.version for r in RELEASES]


def supported_kinds_for(version: DocumentVersion | str) -> list[DocumentKind]:
    """Kinds a release defines, in declaration order of DocumentKind."""
    release = release_info(version)
    if release is None:
        return []
    return [k for k in DocumentKind if k in release.supported_kinds]


def validate_version(
    tree: Any,
    kind: DocumentKind | str,
    version: DocumentVersion | str | None = None,
) -> VersionValidation:
    """Check that ``kind`` is defined by the document's C-CDA release.

    The result is advisory; callers record it and carry on.
    """
    kind = DocumentKind.parse(kind)
    version = detect_version(tree) if version is None else DocumentVersion.parse(version)
    release = release_info(version)

    if release is None:
        return VersionValidation(
            valid=False,
            version=version.value,
            document_kind=kind.value,
            message=f"Unsupported C-CDA version: {version.value}",
        )

    supported = [k.value for k in supported_kinds_for(version)]
    if kind in release.supported_kinds:
        message = f"{display_info(kind)['name']} is supported in C-CDA {version.value}"
        return VersionValidation(True, version.value, kind.value, message, supported)
    return VersionValidation(
        valid=False,
        version=version.value,
        document_kind=kind.value,
        message=f"Document type '{kind.value}' not supported in C-CDA {version.value}",
        supported_kinds=supported,
    )


def compare_versions(a: DocumentVersion | str, b: DocumentVersion | str) -> int:
    """Return -1, 0 or 1. Unknown versions sort below every release."""
    a = DocumentVersion.parse(a)
    b = DocumentVersion.parse(b)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def latest_version() -> DocumentVersion:
    return max(r.version for r in RELEASES)


def is_latest_version(version: DocumentVersion | str) -> bool:
    return DocumentVersion.parse(version) == latest_version()


def upgrade_recommendations(version: DocumentVersion | str) -> list[str]:
    """What moving from ``version`` to the latest release would add."""
    version = DocumentVersion.parse(version)
    latest = latest_version()
    if compare_versions(version, latest) >= 0:
        return []

    current_kinds = set(supported_kinds_for(version))
    new_kinds = [k.value for k in supported_kinds_for(latest) if k not in current_kinds]
    recommendations = []
    if new_kinds:
        recommendations.append(f"New document types available: {', '.join(new_kinds)}")
    recommendations.append("Enhanced template validation and parsing capabilities")
    recommendations.append("Improved clinical data structure support")
    return recommendations


@dataclass
class VersionInfo:
    """Template inventory of a document."""

    version: str
    templates: list[TemplateIdentifier] = field(default_factory=list)
    us_realm_header: TemplateIdentifier | None = None
    document_templates: list[TemplateIdentifier] = field(default_factory=list)
    section_templates: list[TemplateIdentifier] = field(default_factory=list)


def version_info(tree: Any) -> VersionInfo:
    info = VersionInfo(version=detect_version(tree).value)
    for tid in collect_template_ids(tree):
        info.templates.append(tid)
        if tid.root == US_REALM_HEADER:
            info.us_realm_header = tid
        elif tid.root.startswith(_DOC):
            info.document_templates.append(tid)
        elif tid.root.startswith("2.16.840.1.113883.10.20.22.2."):
            info.section_templates.append(tid)
    return info


def conformance_templates(tree: Any) -> list[TemplateIdentifier]:
    """Templates from the HL7 CDA implementation-guide arc (2.16.840.1.113883.10.20)."""
    return [
        tid for tid in collect_template_ids(tree)
        if tid.root.startswith("2.16.840.1.113883.10.20")
    ]


@dataclass
class CompatibilityReport:
    version: str
    document_kind: str
    validation: VersionValidation
    latest_version: str
    upgrade_available: bool
    recommendations: list[str] = field(default_factory=list)
    total_templates: int = 0
    document_level_templates: int = 0
    section_level_templates: int = 0
    has_us_realm_header: bool = False


def compatibility_report(tree: Any, kind: DocumentKind | str) -> CompatibilityReport:
    info = version_info(tree)
    version = DocumentVersion.parse(info.version)
    latest = latest_version()
    return CompatibilityReport(
        version=version.value,
        document_kind=DocumentKind.parse(kind).value,
        validation=validate_version(tree, kind, version),
        latest_version=latest.value,
        upgrade_available=compare_versions(version, latest) < 0,
        recommendations=upgrade_recommendations(version),
        total_templates=len(info.templates),
        document_level_templates=len(info.document_templates),
        section_level_templates=len(info.section_templates),
        has_us_realm_header=info.us_realm_header is not None,
    )

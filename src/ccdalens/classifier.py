"""Document kind detection from template ids and LOINC document type codes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ccdalens.core.hl7 import collect_codes, collect_template_ids


class DocumentKind(str, Enum):
    CONTINUITY_OF_CARE = "continuity-of-care"
    CARE_PLAN = "care-plan"
    CONSULTATION_NOTE = "consultation-note"
    DIAGNOSTIC_IMAGING = "diagnostic-imaging"
    DISCHARGE_SUMMARY = "discharge-summary"
    HISTORY_AND_PHYSICAL = "history-and-physical"
    OPERATIVE_NOTE = "operative-note"
    PROCEDURE_NOTE = "procedure-note"
    PROGRESS_NOTE = "progress-note"
    REFERRAL_NOTE = "referral-note"
    TRANSFER_SUMMARY = "transfer-summary"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | DocumentKind) -> DocumentKind:
        """Coerce a string to a kind; unrecognized strings become UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class KindInfo:
    kind: DocumentKind
    template_id: str
    type_code: str  # LOINC
    display_name: str
    description: str


# Detection priority order: the first kind matched wins.
KIND_TABLE: tuple[KindInfo, ...] = (
    KindInfo(DocumentKind.CONTINUITY_OF_CARE, "2.16.840.1.113883.10.20.22.1.2", "34133-9",
             "Continuity of Care Document", "Comprehensive clinical summary"),
    KindInfo(DocumentKind.CARE_PLAN, "2.16.840.1.113883.10.20.22.1.15", "52521-2",
             "Care Plan", "Patient care planning and goals"),
    KindInfo(DocumentKind.CONSULTATION_NOTE, "2.16.840.1.113883.10.20.22.1.4", "11488-4",
             "Consultation Note", "Specialist consultation documentation"),
    KindInfo(DocumentKind.DIAGNOSTIC_IMAGING, "2.16.840.1.113883.10.20.22.1.5", "18748-4",
             "Diagnostic Imaging Report", "Radiology and imaging results"),
    KindInfo(DocumentKind.DISCHARGE_SUMMARY, "2.16.840.1.113883.10.20.22.1.8", "18842-5",
             "Discharge Summary", "Hospital discharge documentation"),
    KindInfo(DocumentKind.HISTORY_AND_PHYSICAL, "2.16.840.1.113883.10.20.22.1.3", "34117-2",
             "History and Physical", "Clinical assessment and examination"),
    KindInfo(DocumentKind.OPERATIVE_NOTE, "2.16.840.1.113883.10.20.22.1.7", "11504-8",
             "Operative Note", "Surgical procedure documentation"),
    KindInfo(DocumentKind.PROCEDURE_NOTE, "2.16.840.1.113883.10.20.22.1.6", "28570-0",
             "Procedure Note", "Medical procedure documentation"),
    KindInfo(DocumentKind.PROGRESS_NOTE, "2.16.840.1.113883.10.20.22.1.9", "11506-3",
             "Progress Note", "Ongoing care progress tracking"),
    KindInfo(DocumentKind.REFERRAL_NOTE, "2.16.840.1.113883.10.20.22.1.14", "57133-1",
             "Referral Note", "Provider referral documentation"),
    KindInfo(DocumentKind.TRANSFER_SUMMARY, "2.16.840.1.113883.10.20.22.1.13", "18761-7",
             "Transfer Summary", "Patient transfer documentation"),
)

_UNKNOWN_INFO = {"name": "Unknown Document Type", "description": "Unrecognized document type"}

_BY_KIND = {info.kind: info for info in KIND_TABLE}


def detect_document_type(tree: Any) -> DocumentKind:
    """Classify a document from its template ids, then its LOINC type codes.

    The whole tree is scanned, not just the header, since authoring systems
    differ in where they place templateIds. For each kind in priority order
    a template-root match is checked before a type-code match.
    """
    roots = {tid.root for tid in collect_template_ids(tree)}
    codes = set(collect_codes(tree))
    for info in KIND_TABLE:
        if info.template_id in roots:
            return info.kind
        if info.type_code in codes:
            return info.kind
    return DocumentKind.UNKNOWN


def kind_by_template_id(template_id: str) -> DocumentKind | None:
    for info in KIND_TABLE:
        if info.template_id == template_id:
            return info.kind
    return None


def kind_by_type_code(type_code: str) -> DocumentKind | None:
    for info in KIND_TABLE:
        if info.type_code == type_code:
            return info.kind
    return None


def kind_info(kind: DocumentKind) -> KindInfo | None:
    return _BY_KIND.get(kind)


def display_info(kind: DocumentKind | str) -> dict[str, str]:
    """Return {"name", "description"} for a kind."""
    info = _BY_KIND.get(DocumentKind.parse(kind))
    if info is None:
        return dict(_UNKNOWN_INFO)
    return {"name": info.display_name, "description": info.description}


def supported_kinds() -> list[DocumentKind]:
    return [info.kind for info in KIND_TABLE]

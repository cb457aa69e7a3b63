"""Declarative table of clinical sections and the queries over it.

The catalog is pure configuration: it says which sections exist, which
template ids (in priority order) identify them, which document kinds they
belong to, whether they are required there, and which extraction routine
reads them. It never looks at a document tree.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

from ccdalens.classifier import DocumentKind
from ccdalens.models import MissingSection

_K = DocumentKind
_S = "2.16.840.1.113883.10.20.22.2."  # C-CDA section template arc

# Kinds whose bodies carry the CCD-style clinical summary sections
SUMMARY_KINDS = frozenset({
    _K.CONTINUITY_OF_CARE,
    _K.DISCHARGE_SUMMARY,
    _K.HISTORY_AND_PHYSICAL,
    _K.CONSULTATION_NOTE,
    _K.PROGRESS_NOTE,
})


@dataclass(frozen=True)
class SectionDescriptor:
    """One catalog entry."""

    id: str  # also the ClinicalDocument field name
    label: str
    extractor: str  # key into extractors.registry.EXTRACTORS
    template_ids: tuple[str, ...] = ()  # first match wins
    kinds: frozenset[DocumentKind] | None = None  # None means every kind
    required: bool = False
    section_codes: tuple[str, ...] = ()  # LOINC section codes, tried after template ids
    title_keyword: str | None = None  # case-insensitive title match, tried last
    baseline: bool = False  # extracted for every document regardless of kind
    document_level: bool = False  # read from the ClinicalDocument node, not a section

    def applies_to(self, kind: DocumentKind) -> bool:
        return self.kinds is None or kind in self.kinds


def _section(id, label, extractor, template_ids=(), kinds=None, required=False,
             codes=(), title=None, baseline=False):
    if isinstance(template_ids, str):
        template_ids = (template_ids,)
    if kinds is not None:
        kinds = frozenset(kinds)
    return SectionDescriptor(
        id=id,
        label=label,
        extractor=extractor,
        template_ids=tuple(template_ids),
        kinds=kinds,
        required=required,
        section_codes=tuple(codes),
        title_keyword=title,
        baseline=baseline,
    )


DEFAULT_SECTIONS: tuple[SectionDescriptor, ...] = (
    # Header level
    SectionDescriptor("header", "Document Info", "header", required=True,
                      baseline=True, document_level=True),
    SectionDescriptor("patient", "Patient Info", "patient", required=True,
                      baseline=True, document_level=True),
    # Clinical summary sections (entries-required ".1" template first)
    _section("allergies", "Allergies", "allergies", (_S + "6.1", _S + "6"),
             SUMMARY_KINDS, codes=("48765-2",), baseline=True),
    _section("medications", "Medications", "medications", (_S + "1.1", _S + "1"),
             SUMMARY_KINDS, codes=("10160-0",), baseline=True),
    _section("problems", "Problems", "problems", (_S + "5.1", _S + "5"),
             SUMMARY_KINDS, codes=("11450-4",), baseline=True),
    _section("procedures", "Procedures", "procedures", (_S + "7.1", _S + "7"),
             SUMMARY_KINDS, codes=("47519-4",), baseline=True),
    _section("vital_signs", "Vital Signs", "vital_signs", (_S + "4.1", _S + "4"),
             SUMMARY_KINDS, codes=("8716-3",), baseline=True),
    _section("lab_results", "Lab Results", "lab_results", (_S + "3.1", _S + "3"),
             SUMMARY_KINDS, codes=("30954-2",), baseline=True),
    _section("immunizations", "Immunizations", "immunizations", (_S + "2.1", _S + "2"),
             {_K.CONTINUITY_OF_CARE, _K.HISTORY_AND_PHYSICAL, _K.PROGRESS_NOTE},
             codes=("11369-6",), baseline=True),
    _section("encounters", "Encounters", "encounters", (_S + "22.1", _S + "22"),
             {_K.CONTINUITY_OF_CARE}, codes=("46240-8",), baseline=True),
    _section("social_history", "Social History", "social_history", _S + "17",
             {_K.CONTINUITY_OF_CARE}, codes=("29762-2",), baseline=True),
    _section("functional_status", "Functional Status", "functional_status", _S + "14",
             {_K.CONTINUITY_OF_CARE}, codes=("47420-5",), baseline=True),
    _section("plan_of_care", "Plan of Care", "plan_of_care", _S + "10",
             {_K.CONTINUITY_OF_CARE}, codes=("18776-5",), baseline=True),
    _section("notes", "Notes", "notes", _S + "65",
             {_K.CONTINUITY_OF_CARE}, codes=("11488-4", "34109-9", "11506-3"), baseline=True),
    _section("advance_directives", "Advance Directives", "advance_directives",
             (_S + "21.1", _S + "21"), {_K.CONTINUITY_OF_CARE}, codes=("42348-3",)),
    _section("family_history", "Family History", "family_history", _S + "15",
             {_K.CONTINUITY_OF_CARE}, codes=("10157-6",)),
    _section("medical_equipment", "Medical Equipment", "medical_equipment", _S + "23",
             {_K.CONTINUITY_OF_CARE}, codes=("46264-8",)),
    _section("mental_status", "Mental Status", "mental_status", _S + "56",
             {_K.CONTINUITY_OF_CARE}, codes=("10190-7",)),
    _section("nutrition", "Nutrition", "nutrition", _S + "57",
             {_K.CONTINUITY_OF_CARE}, codes=("61144-2",)),
    _section("payers", "Payers", "payers", _S + "18",
             {_K.CONTINUITY_OF_CARE}, codes=("48768-6",)),
    _section("reason_for_visit", "Reason for Visit", "narrative", _S + "12",
             {_K.CONTINUITY_OF_CARE}, codes=("29299-5",)),
    # Care plan
    _section("health_concerns", "Health Concerns", "health_concerns", _S + "58",
             {_K.CARE_PLAN}, required=True, codes=("75310-3",)),
    _section("goals", "Goals", "goals", _S + "60",
             {_K.CARE_PLAN}, required=True, codes=("61146-7",)),
    _section("interventions", "Interventions", "interventions",
             "2.16.840.1.113883.10.20.21.2.3", {_K.CARE_PLAN}, required=True,
             codes=("62387-6",)),
    # History and physical, progress note
    _section("chief_complaint", "Chief Complaint", "narrative",
             (_S + "13", "1.3.6.1.4.1.19376.1.5.3.1.1.13.2.1"),
             {_K.HISTORY_AND_PHYSICAL, _K.PROGRESS_NOTE}, codes=("10154-3",)),
    _section("present_illness", "History of Present Illness", "narrative",
             "1.3.6.1.4.1.19376.1.5.3.1.3.4", {_K.HISTORY_AND_PHYSICAL}, required=True,
             codes=("10164-2",)),
    _section("review_of_systems", "Review of Systems", "narrative",
             (_S + "44", "1.3.6.1.4.1.19376.1.5.3.1.3.18"),
             {_K.HISTORY_AND_PHYSICAL, _K.PROGRESS_NOTE}, codes=("10187-3",)),
    _section("physical_exam", "Physical Examination", "physical_exam",
             "2.16.840.1.113883.10.20.2.10",
             {_K.HISTORY_AND_PHYSICAL, _K.PROGRESS_NOTE}, codes=("29545-1",)),
    _section("assessment", "Assessment and Plan", "narrative", (_S + "9", _S + "8"),
             {_K.HISTORY_AND_PHYSICAL, _K.PROGRESS_NOTE}, codes=("51847-2", "51848-0")),
    # Operative and procedure notes
    _section("preoperative_dx", "Preoperative Diagnosis", "narrative", _S + "34",
             {_K.OPERATIVE_NOTE}, required=True, codes=("10219-4",)),
    _section("postoperative_dx", "Postoperative Diagnosis", "narrative", _S + "35",
             {_K.OPERATIVE_NOTE}, required=True, codes=("10218-6",)),
    _section("procedure_description", "Procedure Description", "narrative", _S + "27",
             {_K.OPERATIVE_NOTE, _K.PROCEDURE_NOTE}, required=True, codes=("29554-3",)),
    _section("anesthesia", "Anesthesia", "anesthesia", _S + "25",
             {_K.OPERATIVE_NOTE, _K.PROCEDURE_NOTE}, codes=("59774-0",)),
    _section("complications", "Complications", "complications", _S + "37",
             {_K.OPERATIVE_NOTE, _K.PROCEDURE_NOTE}, codes=("55109-3",)),
    _section("blood_loss", "Estimated Blood Loss", "narrative",
             "2.16.840.1.113883.10.20.18.2.9", {_K.OPERATIVE_NOTE}, codes=("55103-6",)),
    _section("surgical_specimens", "Surgical Specimens", "narrative",
             "2.16.840.1.113883.10.20.7.13", {_K.OPERATIVE_NOTE}, codes=("59773-2",)),
    _section("procedure_indications", "Procedure Indications", "narrative", _S + "29",
             {_K.PROCEDURE_NOTE}, required=True, codes=("59768-2",)),
    _section("procedure_findings", "Procedure Findings", "narrative", _S + "28",
             {_K.PROCEDURE_NOTE}, codes=("59776-5",)),
    # Discharge summary
    _section("admission_dx", "Admission Diagnosis", "narrative", _S + "43",
             {_K.DISCHARGE_SUMMARY}, required=True, codes=("46241-6",)),
    _section("discharge_dx", "Discharge Diagnosis", "narrative", _S + "24",
             {_K.DISCHARGE_SUMMARY}, required=True, codes=("11535-2",)),
    _section("hospital_course", "Hospital Course", "narrative",
             "1.3.6.1.4.1.19376.1.5.3.1.3.5", {_K.DISCHARGE_SUMMARY}, required=True,
             codes=("8648-8",)),
    _section("discharge_instructions", "Discharge Instructions", "narrative", _S + "41",
             {_K.DISCHARGE_SUMMARY}, codes=("8653-8",)),
    _section("hospital_consultations", "Hospital Consultations", "narrative", _S + "42",
             {_K.DISCHARGE_SUMMARY}, codes=("18841-7",)),
    # Diagnostic imaging
    _section("dicom_catalog", "DICOM Object Catalog", "dicom_catalog",
             "2.16.840.1.113883.10.20.6.1.1", {_K.DIAGNOSTIC_IMAGING}, required=True),
    _section("findings", "Findings", "narrative", "2.16.840.1.113883.10.20.6.1.2",
             {_K.DIAGNOSTIC_IMAGING}, required=True, codes=("18782-3",)),
    _section("impressions", "Impressions", "narrative", kinds={_K.DIAGNOSTIC_IMAGING},
             title="impression"),
    # Consultation note
    _section("reason_for_referral", "Reason for Referral", "narrative",
             "1.3.6.1.4.1.19376.1.5.3.1.3.1", {_K.CONSULTATION_NOTE}, required=True,
             codes=("42349-1",), title="reason for referral"),
    _section("consultation_request", "Consultation Request", "narrative",
             kinds={_K.CONSULTATION_NOTE}, title="consultation request"),
    _section("recommendations", "Recommendations", "narrative",
             kinds={_K.CONSULTATION_NOTE}, title="recommendations"),
    # Progress note
    _section("plan_of_treatment", "Plan of Treatment", "narrative", _S + "10",
             {_K.PROGRESS_NOTE}, required=True, codes=("18776-5",)),
    _section("subjective_data", "Subjective Data", "narrative",
             "2.16.840.1.113883.10.20.21.2.2", {_K.PROGRESS_NOTE}, codes=("61150-9",)),
    _section("objective_data", "Objective Data", "narrative",
             "2.16.840.1.113883.10.20.21.2.1", {_K.PROGRESS_NOTE}, codes=("61149-1",)),
    _section("instructions", "Instructions", "instructions", _S + "45",
             {_K.PROGRESS_NOTE, _K.DISCHARGE_SUMMARY}, codes=("69730-0",)),
    # Referral note
    _section("referral_reason", "Reason for Referral", "narrative",
             kinds={_K.REFERRAL_NOTE}, required=True, title="referral reason"),
    _section("referral_request", "Referral Request", "narrative",
             kinds={_K.REFERRAL_NOTE}, required=True, title="referral request"),
    _section("referring_provider", "Referring Provider", "narrative",
             kinds={_K.REFERRAL_NOTE}, title="referring provider"),
    # Transfer summary
    _section("transfer_dx", "Transfer Diagnosis", "narrative",
             kinds={_K.TRANSFER_SUMMARY}, required=True, title="transfer diagnosis"),
    _section("transfer_summary", "Transfer Summary", "narrative",
             kinds={_K.TRANSFER_SUMMARY}, required=True, title="transfer summary"),
    _section("receiving_provider", "Receiving Provider", "narrative",
             kinds={_K.TRANSFER_SUMMARY}, title="receiving provider"),
)


class SectionCatalog:
    """Immutable collection of SectionDescriptors with lookup queries."""

    def __init__(self, descriptors: Iterable[SectionDescriptor]):
        self._descriptors = tuple(descriptors)
        self._by_id = {d.id: d for d in self._descriptors}
        if len(self._by_id) != len(self._descriptors):
            raise ValueError("Duplicate section id in catalog")

    def __iter__(self):
        return iter(self._descriptors)

    def __len__(self):
        return len(self._descriptors)

    @property
    def descriptors(self) -> tuple[SectionDescriptor, ...]:
        return self._descriptors

    def section(self, section_id: str) -> SectionDescriptor | None:
        return self._by_id.get(section_id)

    def supported_sections(self, kind: DocumentKind | str) -> list[SectionDescriptor]:
        """Sections applicable to ``kind``: required first, then by label."""
        kind = DocumentKind.parse(kind)
        matching = [d for d in self._descriptors if d.applies_to(kind)]
        return sorted(matching, key=lambda d: (not d.required, d.label.casefold(), d.id))

    def required_sections(self, kind: DocumentKind | str) -> list[SectionDescriptor]:
        return [d for d in self.supported_sections(kind) if d.required]

    def optional_sections(self, kind: DocumentKind | str) -> list[SectionDescriptor]:
        return [d for d in self.supported_sections(kind) if not d.required]

    def is_supported(self, section_id: str, kind: DocumentKind | str) -> bool:
        descriptor = self.section(section_id)
        return descriptor is not None and descriptor.applies_to(DocumentKind.parse(kind))

    def section_by_template_id(self, template_id: str) -> SectionDescriptor | None:
        """First section (in table order) listing ``template_id`` as a candidate."""
        for descriptor in self._descriptors:
            if template_id in descriptor.template_ids:
                return descriptor
        return None

    def sections_by_template_id(self, template_id: str) -> list[SectionDescriptor]:
        return [d for d in self._descriptors if template_id in d.template_ids]

    def sections_for_extraction(self, kind: DocumentKind | str) -> list[SectionDescriptor]:
        """Baseline sections plus those supported for ``kind``, in table order."""
        kind = DocumentKind.parse(kind)
        return [d for d in self._descriptors if d.baseline or d.applies_to(kind)]

    def validate(self, document: Any, kind: DocumentKind | str) -> list[MissingSection]:
        """Report required sections that are absent or empty on ``document``.

        ``document`` is a ClinicalDocument or a mapping of section id to value.
        """
        missing = []
        for descriptor in self.required_sections(kind):
            if isinstance(document, Mapping):
                value = document.get(descriptor.id)
            else:
                value = getattr(document, descriptor.id, None)
            if value is None or (isinstance(value, list) and not value):
                missing.append(MissingSection(
                    section_id=descriptor.id,
                    label=descriptor.label,
                    message=f"Missing required section: {descriptor.label}",
                ))
        return missing

    def kind_stats(self, kind: DocumentKind | str) -> dict:
        supported = self.supported_sections(kind)
        required = [d for d in supported if d.required]
        return {
            "total_sections": len(supported),
            "required_sections": len(required),
            "optional_sections": len(supported) - len(required),
            "section_ids": [d.id for d in supported],
        }

    def with_template_overrides(self, overrides: Mapping[str, Iterable[str]]) -> SectionCatalog:
        """Return a new catalog with extra candidate template ids per section.

        Extra ids are tried after the built-in ones.

        Raises:
            KeyError: If an override names a section the catalog doesn't have.
        """
        updated = []
        for descriptor in self._descriptors:
            extra = [t for t in overrides.get(descriptor.id, ()) if t not in descriptor.template_ids]
            if extra:
                descriptor = replace(descriptor, template_ids=descriptor.template_ids + tuple(extra))
            updated.append(descriptor)
        unknown = set(overrides) - set(self._by_id)
        if unknown:
            raise KeyError(f"Unknown section id(s): {', '.join(sorted(unknown))}")
        return SectionCatalog(updated)


def default_catalog() -> SectionCatalog:
    return SectionCatalog(DEFAULT_SECTIONS)

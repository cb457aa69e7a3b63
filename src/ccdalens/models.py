"""Normalized data model for extracted C-CDA content.

A ClinicalDocument is built once per extraction call and handed to the
caller. Every list-shaped field is always a list, possibly empty. Dates are
raw CDA timestamp strings (YYYY, YYYYMMDD, YYYYMMDDHHMMSS-ZZZZ, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# --- Shared building blocks ---


@dataclass(frozen=True)
class TemplateIdentifier:
    """A templateId instance: an OID root plus optional extension date."""

    root: str
    extension: str | None = None

    def key(self) -> tuple[str, str | None]:
        return (self.root, self.extension)


@dataclass
class Identifier:
    """An II data type value, tagged with an inferred identifier type."""

    root: str | None = None
    extension: str | None = None
    id_type: str | None = None  # SSN, MRN, NPI, ... (patients and providers only)
    assigning_authority: str | None = None


@dataclass
class PersonName:
    """A structured PN value."""

    given: list[str] = field(default_factory=list)
    family: str | None = None
    prefix: str | None = None
    suffix: str | None = None
    qualifiers: list[str] = field(default_factory=list)  # e.g. CL (call me), BR (birth)
    use: str | None = None  # L, P, ...
    full: str = ""


@dataclass
class Address:
    lines: list[str] = field(default_factory=list)
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    use: str | None = None


@dataclass
class Telecom:
    value: str
    use: str | None = None


@dataclass
class Organization:
    name: str | None = None
    identifiers: list[Identifier] = field(default_factory=list)
    address: Address | None = None
    telecoms: list[Telecom] = field(default_factory=list)


@dataclass
class Author:
    """A document or entry author."""

    identifier: Identifier | None = None
    name: PersonName | None = None
    organization: Organization | None = None
    time: str | None = None
    display: str | None = None  # "Name (Organization)"


@dataclass
class Performer:
    """An assignedEntity acting as performer, provider or examiner."""

    identifier: Identifier | None = None
    name: PersonName | None = None
    role: str | None = None
    organization: Organization | None = None
    display: str | None = None


@dataclass
class Guardian:
    name: PersonName | None = None
    relationship: str | None = None
    telecoms: list[Telecom] = field(default_factory=list)
    address: Address | None = None


# --- Header and patient ---


@dataclass
class DocumentHeader:
    """ClinicalDocument header fields."""

    identifier: Identifier | None = None
    title: str | None = None
    effective_time: str | None = None
    confidentiality_code: str | None = None
    language_code: str | None = None
    set_id: str | None = None
    version_number: str | None = None
    type_code: str | None = None  # LOINC document type code
    type_display: str | None = None
    template_ids: list[TemplateIdentifier] = field(default_factory=list)
    author: Author | None = None
    custodian: Organization | None = None


@dataclass
class Patient:
    """recordTarget/patientRole demographics."""

    identifiers: list[Identifier] = field(default_factory=list)
    mrn: str | None = None
    name: PersonName | None = None
    gender: str | None = None  # administrativeGenderCode/@code
    birth_time: str | None = None
    race: str | None = None
    ethnicity: str | None = None
    language: str | None = None
    marital_status: str | None = None
    addresses: list[Address] = field(default_factory=list)
    telecoms: list[Telecom] = field(default_factory=list)
    guardians: list[Guardian] = field(default_factory=list)


# --- Core clinical sections ---


@dataclass
class Allergy:
    substance: str
    identifier: str | None = None
    substance_code: str | None = None
    reaction: str | None = None
    severity: str | None = None
    status: str | None = None
    onset: str | None = None
    notes: str | None = None


@dataclass
class Medication:
    name: str
    identifier: str | None = None
    generic_name: str | None = None
    code: str | None = None  # RxNorm, usually
    dose: str | None = None  # "40 mg"
    frequency: str | None = None  # "every 12 h"
    route: str | None = None
    status: str | None = None
    start: str | None = None
    end: str | None = None
    prescriber: str | None = None
    instructions: str | None = None
    refills: str | None = None


@dataclass
class Problem:
    name: str
    identifier: str | None = None
    code: str | None = None
    code_system: str | None = None
    status: str | None = None
    onset: str | None = None
    resolved: str | None = None
    severity: str | None = None
    notes: str | None = None


@dataclass
class Procedure:
    name: str
    identifier: str | None = None
    code: str | None = None
    date: str | None = None
    status: str | None = None
    performer: Performer | None = None
    body_site: str | None = None
    notes: str | None = None


@dataclass
class Encounter:
    type: str
    identifier: str | None = None
    code: str | None = None
    date: str | None = None
    end: str | None = None
    provider: Performer | None = None
    location: str | None = None
    reason: str | None = None
    discharge_disposition: str | None = None


@dataclass
class Immunization:
    vaccine: str
    identifier: str | None = None
    code: str | None = None  # CVX
    date: str | None = None
    status: str | None = None
    route: str | None = None
    site: str | None = None
    lot: str | None = None
    manufacturer: str | None = None
    performer: Performer | None = None
    refused: bool = False


@dataclass
class VitalMeasurement:
    value: str | None = None
    unit: str | None = None


@dataclass
class VitalSignPanel:
    """One grouped vital-signs reading sharing a date."""

    identifier: str | None = None
    date: str | None = None
    systolic_bp: VitalMeasurement | None = None
    diastolic_bp: VitalMeasurement | None = None
    heart_rate: VitalMeasurement | None = None
    respiratory_rate: VitalMeasurement | None = None
    temperature: VitalMeasurement | None = None
    height: VitalMeasurement | None = None
    weight: VitalMeasurement | None = None
    bmi: VitalMeasurement | None = None
    oxygen_saturation: VitalMeasurement | None = None


@dataclass
class LabResult:
    test: str
    code: str | None = None  # LOINC
    value: str | None = None
    unit: str | None = None
    reference_range: str | None = None
    interpretation: str | None = None  # H, L, N, A, ...
    status: str | None = None
    date: str | None = None


@dataclass
class LabPanel:
    identifier: str | None = None
    panel: str | None = None
    code: str | None = None
    date: str | None = None
    status: str | None = None
    results: list[LabResult] = field(default_factory=list)


@dataclass
class SocialHistoryItem:
    type: str
    identifier: str | None = None
    value: str | None = None
    status: str | None = None
    date: str | None = None


@dataclass
class FunctionalStatusItem:
    assessment: str
    identifier: str | None = None
    result: str | None = None
    date: str | None = None
    status: str | None = None


@dataclass
class PlanOfCareItem:
    plan: str
    identifier: str | None = None
    mood: str | None = None  # INT, RQO, PRMS, ...
    planned_date: str | None = None
    status: str | None = None
    notes: str | None = None


@dataclass
class ClinicalNoteEntry:
    content: str
    identifier: str | None = None
    type: str = "Clinical Note"
    date: str | None = None
    author: str | None = None
    status: str | None = None


@dataclass
class AdvanceDirective:
    type: str
    identifier: str | None = None
    status: str | None = None
    effective_date: str | None = None
    custodian: str | None = None
    description: str | None = None


@dataclass
class FamilyCondition:
    condition: str
    code: str | None = None
    onset_age: str | None = None
    status: str | None = None


@dataclass
class FamilyHistoryEntry:
    relationship: str
    identifier: str | None = None
    relative_gender: str | None = None
    status: str | None = None
    conditions: list[FamilyCondition] = field(default_factory=list)


@dataclass
class Goal:
    goal: str
    identifier: str | None = None
    priority: str | None = None
    status: str | None = None
    start: str | None = None
    target_date: str | None = None
    progress: str | None = None
    author: Author | None = None
    notes: str | None = None


@dataclass
class HealthConcern:
    concern: str
    identifier: str | None = None
    category: str | None = None
    status: str | None = None
    date: str | None = None
    priority: str | None = None
    author: Author | None = None
    notes: str | None = None


@dataclass
class Intervention:
    intervention: str
    identifier: str | None = None
    status: str | None = None
    planned_date: str | None = None
    completed_date: str | None = None
    author: Author | None = None
    notes: str | None = None


@dataclass
class Instruction:
    instruction: str
    identifier: str | None = None
    code: str | None = None
    status: str | None = None
    date: str | None = None


@dataclass
class MedicalEquipment:
    device: str
    identifier: str | None = None
    udi: str | None = None
    model: str | None = None
    software: str | None = None
    date: str | None = None
    status: str | None = None


@dataclass
class MentalStatusObservation:
    assessment: str
    identifier: str | None = None
    result: str | None = None
    date: str | None = None
    examiner: Performer | None = None
    status: str | None = None


@dataclass
class NutritionEntry:
    diet_type: str
    identifier: str | None = None
    restrictions: str | None = None
    calories: str | None = None
    protein: str | None = None
    date: str | None = None
    status: str | None = None


@dataclass
class Payer:
    payer_name: str
    identifier: str | None = None
    policy_number: str | None = None
    group_number: str | None = None
    policy_type: str | None = None
    effective_date: str | None = None
    expiration_date: str | None = None


@dataclass
class PhysicalExamFinding:
    body_system: str
    identifier: str | None = None
    findings: str | None = None
    abnormal: bool = False
    date: str | None = None
    examiner: Performer | None = None


# --- Procedure and imaging document sections ---


@dataclass
class Complication:
    complication: str
    identifier: str | None = None
    severity: str | None = None
    date: str | None = None
    status: str | None = None
    notes: str | None = None


@dataclass
class AnesthesiaRecord:
    type: str
    identifier: str | None = None
    code: str | None = None
    performer: Performer | None = None
    start: str | None = None
    end: str | None = None
    notes: str | None = None


@dataclass
class DicomStudy:
    study_instance_uid: str
    accession_number: str | None = None
    study_date: str | None = None
    modality: str | None = None
    description: str | None = None
    series_count: int = 0
    image_count: int = 0


# --- Narrative sections ---


@dataclass
class NarrativeBlock:
    """A list or paragraph lifted out of a section's narrative block."""

    kind: str  # "list" | "paragraph"
    text: str | None = None
    items: list[str] = field(default_factory=list)


@dataclass
class NarrativeSection:
    """A section consumed for its human-readable text rather than entries."""

    title: str | None = None
    text: str | None = None
    blocks: list[NarrativeBlock] = field(default_factory=list)
    code: str | None = None
    code_system: str | None = None


# --- Metadata ---


@dataclass
class VersionValidation:
    """Advisory result of checking a document kind against its C-CDA release."""

    valid: bool
    version: str
    document_kind: str
    message: str | None = None
    supported_kinds: list[str] = field(default_factory=list)


@dataclass
class MissingSection:
    section_id: str
    label: str
    message: str


@dataclass
class SectionMetadata:
    """What was found for one located body section."""

    section_id: str | None  # None when no catalog entry matched
    title: str | None = None
    code: str | None = None
    template_id: str | None = None  # the candidate id that matched, if any
    narrative: str | None = None
    entry_count: int = 0


@dataclass
class DocumentMetadata:
    document_kind: str
    effective_kind: str  # kind whose sections were extracted
    document_version: str
    validation: VersionValidation
    supported_sections: list[str] = field(default_factory=list)
    missing_required: list[MissingSection] = field(default_factory=list)
    sections: dict[str, SectionMetadata] = field(default_factory=dict)
    unrecognized_sections: list[SectionMetadata] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# --- The document ---


@dataclass
class ClinicalDocument:
    """Everything extracted from one C-CDA document."""

    header: DocumentHeader
    metadata: DocumentMetadata
    patient: Patient | None = None
    # Sections found in most document kinds
    allergies: list[Allergy] = field(default_factory=list)
    medications: list[Medication] = field(default_factory=list)
    problems: list[Problem] = field(default_factory=list)
    procedures: list[Procedure] = field(default_factory=list)
    encounters: list[Encounter] = field(default_factory=list)
    immunizations: list[Immunization] = field(default_factory=list)
    vital_signs: list[VitalSignPanel] = field(default_factory=list)
    lab_results: list[LabPanel] = field(default_factory=list)
    social_history: list[SocialHistoryItem] = field(default_factory=list)
    functional_status: list[FunctionalStatusItem] = field(default_factory=list)
    plan_of_care: list[PlanOfCareItem] = field(default_factory=list)
    notes: list[ClinicalNoteEntry] = field(default_factory=list)
    advance_directives: list[AdvanceDirective] = field(default_factory=list)
    family_history: list[FamilyHistoryEntry] = field(default_factory=list)
    medical_equipment: list[MedicalEquipment] = field(default_factory=list)
    mental_status: list[MentalStatusObservation] = field(default_factory=list)
    nutrition: list[NutritionEntry] = field(default_factory=list)
    payers: list[Payer] = field(default_factory=list)
    reason_for_visit: NarrativeSection | None = None
    # Care plan
    health_concerns: list[HealthConcern] = field(default_factory=list)
    goals: list[Goal] = field(default_factory=list)
    interventions: list[Intervention] = field(default_factory=list)
    # History and physical, progress note
    chief_complaint: NarrativeSection | None = None
    present_illness: NarrativeSection | None = None
    review_of_systems: NarrativeSection | None = None
    physical_exam: list[PhysicalExamFinding] = field(default_factory=list)
    assessment: NarrativeSection | None = None
    plan_of_treatment: NarrativeSection | None = None
    subjective_data: NarrativeSection | None = None
    objective_data: NarrativeSection | None = None
    instructions: list[Instruction] = field(default_factory=list)
    # Operative and procedure notes
    preoperative_dx: NarrativeSection | None = None
    postoperative_dx: NarrativeSection | None = None
    procedure_description: NarrativeSection | None = None
    anesthesia: list[AnesthesiaRecord] = field(default_factory=list)
    complications: list[Complication] = field(default_factory=list)
    blood_loss: NarrativeSection | None = None
    surgical_specimens: NarrativeSection | None = None
    procedure_indications: NarrativeSection | None = None
    procedure_findings: NarrativeSection | None = None
    # Discharge summary
    admission_dx: NarrativeSection | None = None
    discharge_dx: NarrativeSection | None = None
    hospital_course: NarrativeSection | None = None
    discharge_instructions: NarrativeSection | None = None
    hospital_consultations: NarrativeSection | None = None
    # Diagnostic imaging
    dicom_catalog: list[DicomStudy] = field(default_factory=list)
    findings: NarrativeSection | None = None
    impressions: NarrativeSection | None = None
    # Consultation, referral and transfer
    reason_for_referral: NarrativeSection | None = None
    consultation_request: NarrativeSection | None = None
    recommendations: NarrativeSection | None = None
    referral_reason: NarrativeSection | None = None
    referral_request: NarrativeSection | None = None
    referring_provider: NarrativeSection | None = None
    transfer_dx: NarrativeSection | None = None
    transfer_summary: NarrativeSection | None = None
    receiving_provider: NarrativeSection | None = None
    # The ClinicalDocument sub-tree, untouched
    raw: dict[str, Any] = field(default_factory=dict)

    def counts(self) -> dict[str, int]:
        """Return entry counts for every list-shaped section."""
        return {
            name: len(value)
            for name, value in vars(self).items()
            if isinstance(value, list)
        }

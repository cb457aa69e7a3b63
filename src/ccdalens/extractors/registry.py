"""Extraction routine lookup, keyed by SectionDescriptor.extractor."""

from __future__ import annotations

from types import MappingProxyType

from ccdalens.extractors.base import Extractor
from ccdalens.extractors.care_plan import extract_goals, extract_health_concerns, extract_interventions
from ccdalens.extractors.clinical import (
    extract_advance_directives,
    extract_allergies,
    extract_encounters,
    extract_family_history,
    extract_functional_status,
    extract_immunizations,
    extract_instructions,
    extract_medical_equipment,
    extract_medications,
    extract_mental_status,
    extract_notes,
    extract_nutrition,
    extract_payers,
    extract_physical_exam,
    extract_plan_of_care,
    extract_problems,
    extract_procedures,
    extract_social_history,
)
from ccdalens.extractors.header import extract_header, extract_patient
from ccdalens.extractors.narrative import extract_narrative
from ccdalens.extractors.procedural import extract_anesthesia, extract_complications, extract_dicom_catalog
from ccdalens.extractors.results import extract_lab_results, extract_vital_signs

EXTRACTORS: MappingProxyType[str, Extractor] = MappingProxyType({
    "header": extract_header,
    "patient": extract_patient,
    "allergies": extract_allergies,
    "medications": extract_medications,
    "problems": extract_problems,
    "procedures": extract_procedures,
    "encounters": extract_encounters,
    "immunizations": extract_immunizations,
    "vital_signs": extract_vital_signs,
    "lab_results": extract_lab_results,
    "social_history": extract_social_history,
    "functional_status": extract_functional_status,
    "plan_of_care": extract_plan_of_care,
    "notes": extract_notes,
    "advance_directives": extract_advance_directives,
    "family_history": extract_family_history,
    "medical_equipment": extract_medical_equipment,
    "mental_status": extract_mental_status,
    "nutrition": extract_nutrition,
    "payers": extract_payers,
    "physical_exam": extract_physical_exam,
    "instructions": extract_instructions,
    "health_concerns": extract_health_concerns,
    "goals": extract_goals,
    "interventions": extract_interventions,
    "anesthesia": extract_anesthesia,
    "complications": extract_complications,
    "dicom_catalog": extract_dicom_catalog,
    "narrative": extract_narrative,
})

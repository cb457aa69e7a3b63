"""Header and patient demographics from the ClinicalDocument node."""

from __future__ import annotations

from typing import Any

from ccdalens.core.hl7 import (
    DEFAULT_ID_TYPES,
    IdTypeTable,
    code_display,
    parse_addresses,
    parse_address,
    parse_author,
    parse_identifier,
    parse_identifiers,
    parse_name,
    parse_organization,
    parse_telecoms,
)
from ccdalens.core.tree import child, children, text_or_attr
from ccdalens.models import DocumentHeader, Guardian, Patient, TemplateIdentifier


def extract_header(doc: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> DocumentHeader:
    """Read the document-level header fields. Always returns a header."""
    set_id = child(doc, "setId")
    code = child(doc, "code")
    template_ids = []
    for tid in children(doc, "templateId"):
        root = text_or_attr(tid, "root")
        if root:
            template_ids.append(TemplateIdentifier(root, text_or_attr(tid, "extension")))

    return DocumentHeader(
        identifier=parse_identifier(child(doc, "id")),
        title=_strip(text_or_attr(child(doc, "title"))),
        effective_time=text_or_attr(child(doc, "effectiveTime"), "value"),
        confidentiality_code=text_or_attr(child(doc, "confidentialityCode"), "code"),
        language_code=text_or_attr(child(doc, "languageCode"), "code"),
        set_id=text_or_attr(set_id, "extension") or text_or_attr(set_id, "root"),
        version_number=text_or_attr(child(doc, "versionNumber"), "value"),
        type_code=text_or_attr(code, "code"),
        type_display=code_display(code),
        template_ids=template_ids,
        author=parse_author(child(doc, "author"), id_types),
        custodian=parse_organization(
            child(doc, "custodian", "assignedCustodian", "representedCustodianOrganization"),
            id_types,
        ),
    )


def extract_patient(doc: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> Patient | None:
    """Read recordTarget/patientRole. Returns None when there is no patient."""
    role = child(doc, "recordTarget", "patientRole")
    patient = child(role, "patient")
    if not isinstance(patient, (dict, list)):
        return None

    identifiers = parse_identifiers(child(role, "id"), id_types)
    return Patient(
        identifiers=identifiers,
        mrn=_medical_record_number(identifiers),
        name=parse_name(child(patient, "name")),
        gender=text_or_attr(child(patient, "administrativeGenderCode"), "code"),
        birth_time=text_or_attr(child(patient, "birthTime"), "value"),
        race=code_display(child(patient, "raceCode")),
        ethnicity=code_display(child(patient, "ethnicGroupCode")),
        language=text_or_attr(child(patient, "languageCommunication", "languageCode"), "code"),
        marital_status=code_display(child(patient, "maritalStatusCode")),
        addresses=parse_addresses(child(role, "addr")),
        telecoms=parse_telecoms(child(role, "telecom")),
        guardians=_guardians(patient),
    )


def _medical_record_number(identifiers) -> str | None:
    # First MRN-typed extension, else the first extension of any type
    for ident in identifiers:
        if ident.id_type == "MRN" and ident.extension:
            return ident.extension
    for ident in identifiers:
        if ident.extension:
            return ident.extension
    return None


def _guardians(patient: Any) -> list[Guardian]:
    result = []
    for node in children(patient, "guardian"):
        guardian = Guardian(
            name=parse_name(child(node, "guardianPerson", "name")),
            relationship=code_display(child(node, "code")),
            telecoms=parse_telecoms(child(node, "telecom")),
            address=parse_address(child(node, "addr")),
        )
        if guardian.name or guardian.relationship:
            result.append(guardian)
    return result


def _strip(value: str | None) -> str | None:
    return value.strip() if value else value

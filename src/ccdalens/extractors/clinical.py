"""Entry-based clinical summary sections: allergies, medications, problems, etc."""

from __future__ import annotations

from typing import Any

from ccdalens.core.hl7 import (
    DEFAULT_ID_TYPES,
    IdTypeTable,
    author_display,
    code_display,
    effective_high,
    effective_low,
    effective_time,
    entry_text,
    format_party,
    has_template,
    id_root,
    parse_name,
    parse_performer,
    physical_quantity,
    related_observations,
    relationships,
)
from ccdalens.core.tree import child, children, first, narrative_text, text_or_attr
from ccdalens.extractors.base import (
    INSTRUCTION_TEMPLATE,
    REACTION_TEMPLATE,
    clinical_status,
    component_statements,
    entry_acts,
    entry_statements,
    find_severity,
    is_negated,
    is_severity,
    is_status,
    keep,
    section_entries,
    status_code,
    value_display,
)
from ccdalens.models import (
    AdvanceDirective,
    Allergy,
    ClinicalNoteEntry,
    Encounter,
    FamilyCondition,
    FamilyHistoryEntry,
    FunctionalStatusItem,
    Immunization,
    Instruction,
    MedicalEquipment,
    Medication,
    MentalStatusObservation,
    NutritionEntry,
    Payer,
    PhysicalExamFinding,
    PlanOfCareItem,
    Problem,
    Procedure,
    SocialHistoryItem,
)

INDICATION_TEMPLATE = "2.16.840.1.113883.10.20.22.4.19"
ABNORMAL_FLAGS = frozenset({"A", "AA", "H", "HH", "L", "LL"})


def _concern_observations(section: Any) -> list[dict]:
    """Observations under concern acts, or bare observation entries."""
    result = []
    for entry in section_entries(section):
        acts = children(entry, "act")
        if acts:
            for act in acts:
                result.extend(related_observations(act))
        else:
            result.extend(o for o in children(entry, "observation") if isinstance(o, dict))
    return result


# --- Allergies ---


def extract_allergies(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Allergy]:
    return keep(_allergy(obs) for obs in _concern_observations(section))


def _allergy(obs: dict) -> Allergy | None:
    # negated entries assert "no known allergy to X"
    if is_negated(obs):
        return None
    entity = None
    for participant in children(obs, "participant"):
        entity = child(participant, "participantRole", "playingEntity")
        if entity is not None:
            break
    entity_code = child(entity, "code")
    substance = code_display(entity_code) or _stripped(text_or_attr(child(entity, "name")))
    if not substance:
        return None
    return Allergy(
        substance=substance,
        identifier=id_root(child(obs, "id")),
        substance_code=text_or_attr(entity_code, "code"),
        reaction=find_reaction(obs),
        severity=find_severity(obs),
        status=clinical_status(obs),
        onset=effective_low(child(obs, "effectiveTime")),
        notes=entry_text(obs),
    )


def find_reaction(obs: Any) -> str | None:
    """Reaction of an allergy observation.

    Matched by the reaction template or an MFST relationship. Failing that,
    falls back to the first related observation that carries a displayable
    value and is not a severity or status observation. The fallback is a
    heuristic: vendors that omit both markers are assumed to list the
    reaction first.
    """
    for rel in relationships(obs):
        for related in children(rel, "observation"):
            if has_template(related, REACTION_TEMPLATE) or text_or_attr(rel, "typeCode") == "MFST":
                display = value_display(related)
                if display:
                    return display
    for related in related_observations(obs):
        if is_severity(related) or is_status(related):
            continue
        display = code_display(child(related, "value"))
        if display:
            return display
    return None


# --- Medications ---


def extract_medications(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Medication]:
    return keep(_medication(sa) for sa in entry_acts(section, "substanceAdministration"))


def _medication(sa: dict) -> Medication | None:
    material = child(sa, "consumable", "manufacturedProduct", "manufacturedMaterial")
    material_code = child(material, "code")
    generic = _stripped(text_or_attr(child(material, "name")))
    name = code_display(material_code) or generic
    if not name:
        return None
    interval = _interval_time(sa)
    return Medication(
        name=name,
        identifier=id_root(child(sa, "id")),
        generic_name=generic,
        code=text_or_attr(material_code, "code"),
        dose=physical_quantity(child(sa, "doseQuantity")),
        frequency=medication_frequency(sa),
        route=code_display(child(sa, "routeCode")),
        status=status_code(sa),
        start=effective_low(interval),
        end=effective_high(interval),
        prescriber=author_display(child(sa, "author")),
        instructions=entry_text(sa) or _instruction_text(sa),
        refills=text_or_attr(child(sa, "repeatNumber"), "value") or _supply_refills(sa),
    )


def _interval_time(sa: dict) -> Any:
    # the effectiveTime that is not a periodic or event-based schedule
    for et in children(sa, "effectiveTime"):
        if text_or_attr(et, "type") not in ("PIVL_TS", "EIVL_TS"):
            return et
    return None


def medication_frequency(sa: Any) -> str | None:
    """Render a PIVL_TS or EIVL_TS schedule, e.g. "every 12 h"."""
    for et in children(sa, "effectiveTime"):
        kind = text_or_attr(et, "type")
        if kind == "PIVL_TS":
            period = child(et, "period")
            value = text_or_attr(period, "value")
            if value:
                unit = text_or_attr(period, "unit")
                return f"every {value} {unit}" if unit else f"every {value}"
        elif kind == "EIVL_TS":
            event = text_or_attr(child(et, "event"), "code")
            if event:
                return f"event {event}"
    return None


def _instruction_text(sa: dict) -> str | None:
    for rel in relationships(sa):
        act = first(child(rel, "act"))
        if act is not None and has_template(act, INSTRUCTION_TEMPLATE):
            return entry_text(act) or code_display(child(act, "code"))
    return None


def _supply_refills(sa: dict) -> str | None:
    for rel in relationships(sa, "REFR"):
        value = text_or_attr(child(rel, "supply", "repeatNumber"), "value")
        if value:
            return value
    return None


# --- Problems ---


def extract_problems(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Problem]:
    return keep(_problem(obs) for obs in _concern_observations(section))


def _problem(obs: dict) -> Problem | None:
    if is_negated(obs):
        return None
    value = first(child(obs, "value"))
    name = code_display(value)
    if not name:
        return None
    et = child(obs, "effectiveTime")
    return Problem(
        name=name,
        identifier=id_root(child(obs, "id")),
        code=text_or_attr(value, "code"),
        code_system=text_or_attr(value, "codeSystem"),
        status=clinical_status(obs),
        onset=effective_low(et),
        resolved=effective_high(et),
        severity=find_severity(obs),
        notes=entry_text(obs),
    )


# --- Procedures ---


def extract_procedures(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Procedure]:
    result = []
    for proc in entry_acts(section, "procedure", "observation", "act"):
        code = child(proc, "code")
        name = code_display(code)
        if not name:
            continue
        result.append(Procedure(
            name=name,
            identifier=id_root(child(proc, "id")),
            code=text_or_attr(code, "code"),
            date=effective_time(child(proc, "effectiveTime")),
            status=status_code(proc),
            performer=parse_performer(child(proc, "performer"), id_types),
            body_site=code_display(child(proc, "targetSiteCode")),
            notes=entry_text(proc),
        ))
    return result


# --- Encounters ---


def extract_encounters(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Encounter]:
    result = []
    for enc in entry_acts(section, "encounter"):
        code = child(enc, "code")
        enc_type = code_display(code)
        if not enc_type:
            continue
        et = child(enc, "effectiveTime")
        result.append(Encounter(
            type=enc_type,
            identifier=id_root(child(enc, "id")),
            code=text_or_attr(code, "code"),
            date=effective_time(et),
            end=effective_high(et),
            provider=parse_performer(child(enc, "performer"), id_types),
            location=_encounter_location(enc),
            reason=_encounter_reason(enc),
            discharge_disposition=code_display(child(enc, "dischargeDispositionCode")),
        ))
    return result


def _encounter_location(enc: dict) -> str | None:
    for participant in children(enc, "participant"):
        if text_or_attr(participant, "typeCode") != "LOC":
            continue
        role = child(participant, "participantRole")
        name = _stripped(text_or_attr(child(role, "playingEntity", "name")))
        return name or code_display(child(role, "code"))
    return None


def _encounter_reason(enc: dict) -> str | None:
    for rel in relationships(enc):
        for obs in children(rel, "observation"):
            if text_or_attr(rel, "typeCode") == "RSON" or has_template(obs, INDICATION_TEMPLATE):
                display = value_display(obs)
                if display:
                    return display
    return None


# --- Immunizations ---


def extract_immunizations(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Immunization]:
    result = []
    for sa in entry_acts(section, "substanceAdministration"):
        product = child(sa, "consumable", "manufacturedProduct")
        material = child(product, "manufacturedMaterial")
        vaccine_code = child(material, "code")
        vaccine = code_display(vaccine_code) or _stripped(text_or_attr(child(material, "name")))
        if not vaccine:
            continue
        result.append(Immunization(
            vaccine=vaccine,
            identifier=id_root(child(sa, "id")),
            code=text_or_attr(vaccine_code, "code"),
            date=effective_time(first(child(sa, "effectiveTime"))),
            status=status_code(sa),
            route=code_display(child(sa, "routeCode")),
            site=code_display(child(sa, "approachSiteCode")),
            lot=_stripped(text_or_attr(child(material, "lotNumberText"))),
            manufacturer=_stripped(text_or_attr(child(product, "manufacturerOrganization", "name"))),
            performer=parse_performer(child(sa, "performer"), id_types),
            refused=is_negated(sa),
        ))
    return result


# --- Social history, functional and mental status ---


def extract_social_history(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[SocialHistoryItem]:
    result = []
    for obs in entry_acts(section, "observation"):
        item_type = code_display(child(obs, "code"))
        if not item_type:
            continue
        result.append(SocialHistoryItem(
            type=item_type,
            identifier=id_root(child(obs, "id")),
            value=value_display(obs),
            status=status_code(obs),
            date=effective_time(child(obs, "effectiveTime")),
        ))
    return result


def extract_functional_status(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[FunctionalStatusItem]:
    result = []
    for obs in entry_statements(section, "observation"):
        assessment = code_display(child(obs, "code"))
        if not assessment:
            continue
        result.append(FunctionalStatusItem(
            assessment=assessment,
            identifier=id_root(child(obs, "id")),
            result=value_display(obs),
            date=effective_time(child(obs, "effectiveTime")),
            status=status_code(obs),
        ))
    return result


def extract_mental_status(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[MentalStatusObservation]:
    result = []
    for obs in entry_statements(section, "observation"):
        assessment = code_display(child(obs, "code"))
        if not assessment:
            continue
        result.append(MentalStatusObservation(
            assessment=assessment,
            identifier=id_root(child(obs, "id")),
            result=value_display(obs),
            date=effective_time(child(obs, "effectiveTime")),
            examiner=parse_performer(child(obs, "performer"), id_types),
            status=status_code(obs),
        ))
    return result


# --- Plan of care, instructions ---


_PLANNED_SHAPES = ("act", "observation", "procedure", "encounter", "substanceAdministration", "supply")


def extract_plan_of_care(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[PlanOfCareItem]:
    result = []
    for act in entry_acts(section, *_PLANNED_SHAPES):
        plan = code_display(child(act, "code")) or code_display(
            child(act, "consumable", "manufacturedProduct", "manufacturedMaterial", "code")
        )
        if not plan:
            continue
        result.append(PlanOfCareItem(
            plan=plan,
            identifier=id_root(child(act, "id")),
            mood=text_or_attr(act, "moodCode"),
            planned_date=effective_time(first(child(act, "effectiveTime"))),
            status=status_code(act),
            notes=entry_text(act),
        ))
    return result


def extract_instructions(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Instruction]:
    result = []
    for act in entry_acts(section, "act"):
        code = code_display(child(act, "code"))
        text = entry_text(act) or code
        if not text:
            continue
        result.append(Instruction(
            instruction=text,
            identifier=id_root(child(act, "id")),
            code=code,
            status=status_code(act),
            date=effective_time(child(act, "effectiveTime")),
        ))
    return result


# --- Notes ---


def extract_notes(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[ClinicalNoteEntry]:
    """Section narrative as one note, plus one note per entry with text."""
    if section is None:
        return []
    notes = []
    text = narrative_text(child(section, "text"))
    if text:
        notes.append(ClinicalNoteEntry(
            content=text,
            identifier="section-text",
            type="Section Text",
            date=effective_time(child(section, "effectiveTime")),
        ))

    for act in entry_acts(section, "act", "observation", "encounter"):
        content = entry_text(act)
        for rel in relationships(act):
            related = first(child(rel, "observation")) or first(child(rel, "act"))
            extra = entry_text(related)
            if extra:
                content = f"{content}\n\n{extra}" if content else extra
        if not content:
            continue
        notes.append(ClinicalNoteEntry(
            content=content,
            identifier=id_root(child(act, "id")),
            type=code_display(child(act, "code")) or "Clinical Note",
            date=effective_time(child(act, "effectiveTime")),
            author=author_display(child(act, "author")),
            status=status_code(act),
        ))
    return notes


# --- Advance directives ---


def extract_advance_directives(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[AdvanceDirective]:
    result = []
    for obs in entry_statements(section, "observation"):
        directive_type = code_display(child(obs, "code"))
        if not directive_type:
            continue
        result.append(AdvanceDirective(
            type=directive_type,
            identifier=id_root(child(obs, "id")),
            status=status_code(obs),
            effective_date=effective_time(child(obs, "effectiveTime")),
            custodian=_custodian(obs),
            description=entry_text(obs) or value_display(obs),
        ))
    return result


def _custodian(obs: dict) -> str | None:
    for participant in children(obs, "participant"):
        role = child(participant, "participantRole")
        if role is None:
            continue
        name = parse_name(child(role, "playingEntity", "name"))
        org = _stripped(text_or_attr(child(role, "scopingEntity", "name")))
        return format_party(name, org)
    return None


# --- Family history ---


def extract_family_history(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[FamilyHistoryEntry]:
    result = []
    for organizer in entry_acts(section, "organizer"):
        relative = child(organizer, "subject", "relatedSubject")
        relationship = code_display(child(relative, "code"))
        if not relationship:
            continue
        gender = child(relative, "subject", "administrativeGenderCode")
        result.append(FamilyHistoryEntry(
            relationship=relationship,
            identifier=id_root(child(organizer, "id")),
            relative_gender=code_display(gender) or text_or_attr(gender, "code"),
            status=status_code(organizer),
            conditions=keep(_family_condition(obs) for obs in component_statements(organizer)),
        ))
    return result


def _family_condition(obs: dict) -> FamilyCondition | None:
    value = first(child(obs, "value"))
    condition = code_display(value)
    if not condition:
        return None
    onset_age = None
    for related in related_observations(obs):
        onset_age = physical_quantity(child(related, "value"))
        if onset_age:
            break
    return FamilyCondition(
        condition=condition,
        code=text_or_attr(value, "code"),
        onset_age=onset_age,
        status=status_code(obs),
    )


# --- Medical equipment ---


def extract_medical_equipment(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[MedicalEquipment]:
    statements = []
    for shape in ("supply", "procedure"):
        statements.extend(entry_statements(section, shape))
    result = []
    for stmt in statements:
        role = None
        for participant in children(stmt, "participant"):
            role = child(participant, "participantRole")
            if child(role, "playingDevice") is not None:
                break
        device = child(role, "playingDevice")
        name = code_display(child(device, "code"))
        if not name:
            continue
        result.append(MedicalEquipment(
            device=name,
            identifier=id_root(child(stmt, "id")),
            udi=text_or_attr(child(role, "id"), "extension") or id_root(child(role, "id")),
            model=_stripped(text_or_attr(child(device, "manufacturerModelName"))),
            software=_stripped(text_or_attr(child(device, "softwareName"))),
            date=effective_time(child(stmt, "effectiveTime")),
            status=status_code(stmt),
        ))
    return result


# --- Nutrition ---


def extract_nutrition(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[NutritionEntry]:
    result = []
    for obs in entry_acts(section, "observation"):
        diet_type = code_display(child(obs, "code"))
        if not diet_type:
            continue
        result.append(NutritionEntry(
            diet_type=diet_type,
            identifier=id_root(child(obs, "id")),
            restrictions=entry_text(obs) or value_display(obs),
            calories=_nutrient(obs, "calories"),
            protein=_nutrient(obs, "protein"),
            date=effective_time(child(obs, "effectiveTime")),
            status=status_code(obs),
        ))
    return result


def _nutrient(obs: dict, keyword: str) -> str | None:
    # matched by display name, e.g. "Calories intake"
    for related in related_observations(obs):
        display = text_or_attr(child(related, "code"), "displayName") or ""
        if keyword in display.lower():
            return physical_quantity(child(related, "value"))
    return None


# --- Payers ---


def extract_payers(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Payer]:
    result = []
    for act in entry_acts(section, "act"):
        coverage = None
        for rel in relationships(act):
            coverage = first(child(rel, "act"))
            if coverage is not None:
                break
        payer_name = None
        for performer in children(coverage, "performer"):
            payer_name = _stripped(text_or_attr(
                child(performer, "assignedEntity", "representedOrganization", "name")
            ))
            if payer_name:
                break
        if not payer_name:
            continue
        participant = first(child(coverage, "participant"))
        period = child(coverage, "effectiveTime") or child(participant, "time")
        result.append(Payer(
            payer_name=payer_name,
            identifier=id_root(child(act, "id")),
            policy_number=text_or_attr(child(coverage, "id"), "extension"),
            group_number=text_or_attr(child(participant, "participantRole", "id"), "extension"),
            policy_type=code_display(child(coverage, "code")),
            effective_date=effective_low(period),
            expiration_date=effective_high(period),
        ))
    return result


# --- Physical exam ---


def extract_physical_exam(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[PhysicalExamFinding]:
    result = []
    for obs in entry_statements(section, "observation"):
        body_system = code_display(child(obs, "code"))
        if not body_system:
            continue
        result.append(PhysicalExamFinding(
            body_system=body_system,
            identifier=id_root(child(obs, "id")),
            findings=value_display(obs) or entry_text(obs),
            abnormal=text_or_attr(child(obs, "interpretationCode"), "code") in ABNORMAL_FLAGS,
            date=effective_time(child(obs, "effectiveTime")),
            examiner=parse_performer(child(obs, "performer"), id_types),
        ))
    return result


def _stripped(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None

"""Organizer-shaped sections: vital signs and lab results."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any

from ccdalens.core.hl7 import (
    DEFAULT_ID_TYPES,
    IdTypeTable,
    code_display,
    effective_time,
    id_root,
    physical_quantity,
)
from ccdalens.core.tree import child, children, first, narrative_text, text_or_attr
from ccdalens.extractors.base import component_statements, section_entries, status_code, value_display
from ccdalens.models import LabPanel, LabResult, VitalMeasurement, VitalSignPanel

# LOINC code -> VitalSignPanel slot
VITAL_SLOTS = MappingProxyType({
    "8480-6": "systolic_bp",
    "8462-4": "diastolic_bp",
    "8867-4": "heart_rate",
    "9279-1": "respiratory_rate",
    "8310-5": "temperature",
    "8331-1": "temperature",  # oral
    "8302-2": "height",
    "8306-3": "height",  # lying
    "3141-9": "weight",
    "29463-7": "weight",
    "39156-5": "bmi",
    "2708-6": "oxygen_saturation",
    "59408-5": "oxygen_saturation",  # by pulse oximetry
})


def extract_vital_signs(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[VitalSignPanel]:
    """One grouped reading per organizer (or per stray observation entry).

    Observations are routed into slots by LOINC code; unrecognized codes are
    ignored, and a reading with no filled slot is dropped. When a code
    repeats inside one organizer the first observation wins.
    """
    panels = []
    for entry in section_entries(section):
        for organizer in children(entry, "organizer"):
            panel = _vital_panel(organizer, component_statements(organizer))
            if panel is not None:
                panels.append(panel)
        for obs in children(entry, "observation"):
            panel = _vital_panel(obs, [obs])
            if panel is not None:
                panels.append(panel)
    return panels


def _vital_panel(group: Any, observations: list[dict]) -> VitalSignPanel | None:
    slots: dict[str, VitalMeasurement] = {}
    date = effective_time(child(group, "effectiveTime"))
    for obs in observations:
        slot = VITAL_SLOTS.get(text_or_attr(child(obs, "code"), "code") or "")
        if slot is None or slot in slots:
            continue
        value = first(child(obs, "value"))
        slots[slot] = VitalMeasurement(
            value=text_or_attr(value, "value"),
            unit=text_or_attr(value, "unit"),
        )
        date = date or effective_time(child(obs, "effectiveTime"))
    if not slots:
        return None
    return VitalSignPanel(identifier=id_root(child(group, "id")), date=date, **slots)


def extract_lab_results(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[LabPanel]:
    """Result organizers as panels; stray result observations as one-result panels."""
    panels = []
    for entry in section_entries(section):
        for organizer in children(entry, "organizer"):
            results = [r for r in (_lab_result(o) for o in component_statements(organizer)) if r]
            code = child(organizer, "code")
            name = code_display(code)
            if not name and not results:
                continue
            panels.append(LabPanel(
                identifier=id_root(child(organizer, "id")),
                panel=name,
                code=text_or_attr(code, "code"),
                date=effective_time(child(organizer, "effectiveTime"))
                or (results[0].date if results else None),
                status=status_code(organizer),
                results=results,
            ))
        for obs in children(entry, "observation"):
            result = _lab_result(obs)
            if result is None:
                continue
            panels.append(LabPanel(
                identifier=id_root(child(obs, "id")),
                date=result.date,
                status=result.status,
                results=[result],
            ))
    return panels


def _lab_result(obs: Any) -> LabResult | None:
    if not isinstance(obs, dict):
        return None
    code = child(obs, "code")
    test = code_display(code)
    if not test:
        return None
    value = first(child(obs, "value"))
    if text_or_attr(value, "value") is not None:
        result_value = text_or_attr(value, "value")
        unit = text_or_attr(value, "unit")
    else:
        result_value = value_display(obs)
        unit = None
    return LabResult(
        test=test,
        code=text_or_attr(code, "code"),
        value=result_value,
        unit=unit,
        reference_range=_reference_range(obs),
        interpretation=text_or_attr(child(obs, "interpretationCode"), "code"),
        status=status_code(obs),
        date=effective_time(child(obs, "effectiveTime")),
    )


def _reference_range(obs: dict) -> str | None:
    obs_range = child(obs, "referenceRange", "observationRange")
    if obs_range is None:
        return None
    text = child(obs_range, "text")
    if text is not None:
        rendered = text_or_attr(text) or narrative_text(text)
        if rendered:
            return rendered.strip()
    value = child(obs_range, "value")
    low = physical_quantity(child(value, "low"))
    high = physical_quantity(child(value, "high"))
    if low and high:
        return f"{low} - {high}"
    if low:
        return f">= {low}"
    if high:
        return f"<= {high}"
    return None

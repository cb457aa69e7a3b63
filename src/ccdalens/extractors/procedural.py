"""Operative, procedure and imaging note sections with structured entries."""

from __future__ import annotations

from typing import Any

from ccdalens.core.hl7 import (
    DEFAULT_ID_TYPES,
    IdTypeTable,
    code_display,
    effective_high,
    effective_low,
    effective_time,
    entry_text,
    id_root,
    parse_performer,
    relationships,
)
from ccdalens.core.tree import child, children, first, text_or_attr
from ccdalens.extractors.base import entry_acts, find_severity, status_code
from ccdalens.models import AnesthesiaRecord, Complication, DicomStudy


def extract_anesthesia(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[AnesthesiaRecord]:
    result = []
    for proc in entry_acts(section, "procedure"):
        code = child(proc, "code")
        anesthesia_type = code_display(code)
        if not anesthesia_type:
            continue
        et = child(proc, "effectiveTime")
        result.append(AnesthesiaRecord(
            type=anesthesia_type,
            identifier=id_root(child(proc, "id")),
            code=text_or_attr(code, "code"),
            performer=parse_performer(child(proc, "performer"), id_types),
            start=effective_low(et),
            end=effective_high(et),
            notes=entry_text(proc),
        ))
    return result


def extract_complications(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Complication]:
    result = []
    for obs in entry_acts(section, "observation"):
        value = first(child(obs, "value"))
        complication = code_display(value) or code_display(child(obs, "code"))
        if not complication:
            continue
        result.append(Complication(
            complication=complication,
            identifier=id_root(child(obs, "id")),
            severity=code_display(child(value, "qualifier", "value")) or find_severity(obs),
            date=effective_time(child(obs, "effectiveTime")),
            status=status_code(obs),
            notes=entry_text(obs),
        ))
    return result


def extract_dicom_catalog(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[DicomStudy]:
    """Study acts from a DICOM Object Catalog.

    Series are the study's COMP-related acts; images are the COMP-related
    observations under those series.
    """
    result = []
    for act in entry_acts(section, "act"):
        ids = children(act, "id")
        uid = text_or_attr(first(ids), "root")
        if not uid:
            continue
        series = [
            s for rel in relationships(act, "COMP") for s in children(rel, "act") if isinstance(s, dict)
        ]
        images = sum(
            len([o for o in children(rel, "observation") if isinstance(o, dict)])
            for s in series
            for rel in relationships(s, "COMP")
        )
        result.append(DicomStudy(
            study_instance_uid=uid,
            accession_number=text_or_attr(ids[1], "extension") if len(ids) > 1 else None,
            study_date=effective_time(child(act, "effectiveTime")),
            modality=code_display(child(act, "code")),
            description=entry_text(act),
            series_count=len(series),
            image_count=images,
        ))
    return result

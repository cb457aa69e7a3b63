"""Care plan sections: health concerns, goals and interventions."""

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
    parse_author,
    related_observations,
)
from ccdalens.core.tree import child, first, text_or_attr
from ccdalens.extractors.base import entry_acts, status_code
from ccdalens.models import Goal, HealthConcern, Intervention


def extract_health_concerns(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[HealthConcern]:
    """Health concern acts; the concern itself is the first related observation."""
    result = []
    for act in entry_acts(section, "act"):
        observations = related_observations(act)
        obs = observations[0] if observations else None
        value_text = code_display(first(child(obs, "value")))
        code_text = code_display(child(obs, "code"))
        concern = value_text or code_text or entry_text(act)
        if not concern:
            continue
        result.append(HealthConcern(
            concern=concern,
            identifier=id_root(child(act, "id")),
            category=code_text if value_text else text_or_attr(child(obs, "code"), "codeSystemName"),
            status=status_code(act),
            date=effective_time(child(act, "effectiveTime")) or effective_time(child(obs, "effectiveTime")),
            priority=code_display(child(obs, "priorityCode")) or code_display(child(act, "priorityCode")),
            author=parse_author(child(act, "author"), id_types),
            notes=entry_text(act),
        ))
    return result


def extract_goals(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Goal]:
    result = []
    for obs in entry_acts(section, "observation"):
        goal = (
            code_display(first(child(obs, "value")))
            or code_display(child(obs, "code"))
            or entry_text(obs)
        )
        if not goal:
            continue
        et = child(obs, "effectiveTime")
        result.append(Goal(
            goal=goal,
            identifier=id_root(child(obs, "id")),
            priority=code_display(child(obs, "priorityCode")),
            status=status_code(obs),
            start=effective_low(et),
            target_date=effective_high(et),
            progress=_goal_progress(obs),
            author=parse_author(child(obs, "author"), id_types),
            notes=entry_text(obs),
        ))
    return result


def _goal_progress(obs: dict) -> str | None:
    # progress is asserted by a related observation coded ASSERTION
    for related in related_observations(obs):
        if text_or_attr(child(related, "code"), "code") == "ASSERTION":
            return code_display(first(child(related, "value")))
    return None


def extract_interventions(section: Any, id_types: IdTypeTable = DEFAULT_ID_TYPES) -> list[Intervention]:
    result = []
    for act in entry_acts(section, "act"):
        intervention = code_display(child(act, "code")) or entry_text(act)
        if not intervention:
            continue
        et = child(act, "effectiveTime")
        result.append(Intervention(
            intervention=intervention,
            identifier=id_root(child(act, "id")),
            status=status_code(act),
            planned_date=effective_low(et),
            completed_date=effective_high(et),
            author=parse_author(child(act, "author"), id_types),
            notes=entry_text(act),
        ))
    return result

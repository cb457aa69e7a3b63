"""Entry-walking helpers shared by the per-section extraction routines.

Every routine has the signature ``(node, id_types) -> value`` where ``node``
is the located section (or the ClinicalDocument node for header-level
routines) and may be None. Routines never raise for missing structure: an
absent section gives [] or None, and an entry missing its primary field is
dropped.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, TypeVar

from ccdalens.core.hl7 import IdTypeTable, code_display, has_template, related_observations
from ccdalens.core.tree import child, children, first, text_or_attr

T = TypeVar("T")

Extractor = Callable[[Any, IdTypeTable], Any]

# Entry templates reached through entryRelationship
SEVERITY_TEMPLATES = ("2.16.840.1.113883.10.20.22.4.8", "2.16.840.1.113883.10.20.22.4.8.2")
REACTION_TEMPLATE = "2.16.840.1.113883.10.20.22.4.9"
STATUS_TEMPLATES = (
    "2.16.840.1.113883.10.20.22.4.28",  # allergy status
    "2.16.840.1.113883.10.20.22.4.6",  # problem status
)
INSTRUCTION_TEMPLATE = "2.16.840.1.113883.10.20.22.4.20"


def section_entries(section: Any) -> list[dict]:
    """The section's <entry> elements as a list."""
    return [e for e in children(section, "entry") if isinstance(e, dict)]


def entry_acts(section: Any, *shapes: str) -> list[dict]:
    """For each entry, the first clinical statement of one of ``shapes``.

    Entries carrying none of the expected shapes are skipped.
    """
    result = []
    for entry in section_entries(section):
        for shape in shapes:
            act = first(child(entry, shape))
            if isinstance(act, dict):
                result.append(act)
                break
    return result


def component_statements(organizer: Any, shape: str = "observation") -> list[dict]:
    """Statements of ``shape`` inside an organizer's components."""
    result = []
    for comp in children(organizer, "component"):
        for node in children(comp, shape):
            if isinstance(node, dict):
                result.append(node)
    return result


def entry_statements(section: Any, shape: str) -> list[dict]:
    """Statements of ``shape``, whether direct entries or organizer components."""
    result = []
    for entry in section_entries(section):
        for node in children(entry, shape):
            if isinstance(node, dict):
                result.append(node)
        for organizer in children(entry, "organizer"):
            result.extend(component_statements(organizer, shape))
    return result


def status_code(node: Any) -> str | None:
    return text_or_attr(child(node, "statusCode"), "code")


def is_negated(node: Any) -> bool:
    return (text_or_attr(node, "negationInd") or "").lower() == "true"


def value_display(node: Any) -> str | None:
    """Displayable text of an observation's value, whatever its data type."""
    value = child(node, "value")
    display = code_display(value)
    if display:
        return display
    text = text_or_attr(value)
    if text:
        return text.strip()
    amount = text_or_attr(value, "value")
    if amount is None:
        return None
    unit = text_or_attr(value, "unit")
    return f"{amount} {unit}" if unit and unit != "1" else amount


def is_severity(obs: dict) -> bool:
    return text_or_attr(child(obs, "code"), "code") == "SEV" or any(
        has_template(obs, t) for t in SEVERITY_TEMPLATES
    )


def is_status(obs: dict) -> bool:
    return any(has_template(obs, t) for t in STATUS_TEMPLATES)


def find_severity(node: Any) -> str | None:
    """Severity of a statement, from a related SEV-coded or severity-template observation.

    Severity may hang off the statement itself or, in C-CDA 2.1, off one of
    its reaction observations, so both levels are searched.
    """
    observations = related_observations(node)
    for obs in observations:
        if is_severity(obs):
            return value_display(obs)
    for obs in observations:
        for nested in related_observations(obs):
            if is_severity(nested):
                return value_display(nested)
    return None


def clinical_status(obs: Any) -> str | None:
    """Status from a related status observation, else the statusCode."""
    for related in related_observations(obs):
        if is_status(related):
            status = value_display(related)
            if status:
                return status
    return status_code(obs)


def keep(items: Iterable[T | None]) -> list[T]:
    """Drop the entries a routine could not build."""
    return [item for item in items if item is not None]

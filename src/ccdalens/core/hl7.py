"""Shared HL7 v3 data-type readers: identifiers, names, addresses, parties, times.

Each reader takes a tree node (or None, or a list of nodes) and returns a
model object or None. None in, None out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from ccdalens.core.tree import (
    as_sequence,
    child,
    children,
    first,
    iter_nodes,
    narrative_text,
    text_or_attr,
)
from ccdalens.models import (
    Address,
    Author,
    Identifier,
    Organization,
    Performer,
    PersonName,
    Telecom,
    TemplateIdentifier,
)

LOINC = "2.16.840.1.113883.6.1"


# --- Identifier types ---


@dataclass(frozen=True)
class IdTypeTable:
    """Root-OID to identifier-type labels.

    Exact roots are checked first, then root prefixes (for OID arcs that
    carry a per-state or per-country suffix), then the default.
    """

    exact: Mapping[str, str] = field(default_factory=dict)
    prefixes: tuple[tuple[str, str], ...] = ()
    default: str = "MRN"

    def classify(self, root: str | None) -> str:
        if not root:
            return self.default
        if root in self.exact:
            return self.exact[root]
        for prefix, label in self.prefixes:
            if root.startswith(prefix):
                return label
        return self.default

    def with_overrides(self, mapping: Mapping[str, str]) -> IdTypeTable:
        merged = dict(self.exact)
        merged.update(mapping)
        return IdTypeTable(MappingProxyType(merged), self.prefixes, self.default)


DEFAULT_ID_TYPES = IdTypeTable(
    exact=MappingProxyType({
        "2.16.840.1.113883.4.1": "SSN",
        "2.16.840.1.113883.4.6": "NPI",
        "2.16.840.1.113883.4.927": "MBI",
        "2.16.840.1.113883.4.572": "MEDICARE",
        "2.16.840.1.113883.4.2": "TAX_ID",
    }),
    prefixes=(
        ("2.16.840.1.113883.4.3.", "DRIVERS_LICENSE"),  # + state FIPS code
        ("2.16.840.1.113883.4.330.", "PASSPORT"),  # + ISO 3166 country code
    ),
)


def parse_identifier(node: Any, id_types: IdTypeTable | None = None) -> Identifier | None:
    """Read one II node. ``id_types`` given means the identifier is typed."""
    node = first(node)
    root = text_or_attr(node, "root")
    extension = text_or_attr(node, "extension")
    if root is None and extension is None:
        return None
    return Identifier(
        root=root,
        extension=extension,
        id_type=id_types.classify(root) if id_types is not None else None,
        assigning_authority=text_or_attr(node, "assigningAuthorityName"),
    )


def parse_identifiers(nodes: Any, id_types: IdTypeTable | None = None) -> list[Identifier]:
    result = []
    for node in as_sequence(nodes):
        ident = parse_identifier(node, id_types)
        if ident is not None:
            result.append(ident)
    return result


def id_root(node: Any) -> str | None:
    """The root of the first id, which is what entries are keyed by."""
    return text_or_attr(node, "root")


# --- Codes and times ---


def code_display(code: Any) -> str | None:
    """Human-readable text for a CD value: displayName, then originalText."""
    display = text_or_attr(code, "displayName")
    if display:
        return display
    original = child(code, "originalText")
    if original is None:
        return None
    return text_or_attr(original) or narrative_text(original)


def effective_time(node: Any) -> str | None:
    """Point-in-time value of an effectiveTime, falling back to its low bound."""
    node = first(node)
    return text_or_attr(node, "value") or text_or_attr(child(node, "low"), "value")


def effective_low(node: Any) -> str | None:
    return text_or_attr(child(node, "low"), "value") or text_or_attr(node, "value")


def effective_high(node: Any) -> str | None:
    return text_or_attr(child(node, "high"), "value")


def physical_quantity(node: Any) -> str | None:
    """Format a PQ value as "value unit"."""
    value = text_or_attr(node, "value")
    if value is None:
        return None
    unit = text_or_attr(node, "unit")
    return f"{value} {unit}" if unit and unit != "1" else value


def entry_text(node: Any) -> str | None:
    """Inline text of an entry's <text>, or its flattened content."""
    text = child(node, "text")
    if text is None:
        return None
    return text_or_attr(text) or narrative_text(text)


# --- Names, addresses, telecoms ---


def parse_name(names: Any) -> PersonName | None:
    """Read a PN value. Of several names, the legal one (use="L") wins."""
    candidates = as_sequence(names)
    if not candidates:
        return None
    node = candidates[0]
    for candidate in candidates:
        if "L" in (text_or_attr(candidate, "use") or "").split():
            node = candidate
            break

    if not isinstance(node, dict):
        # <name>Dr. Jane Smith</name>
        text = text_or_attr(node)
        return PersonName(full=text.strip()) if text else None

    given = []
    qualifiers = []
    for part_name in ("prefix", "given", "family", "suffix"):
        for part in children(node, part_name):
            qualifier = text_or_attr(part, "qualifier")
            if qualifier and qualifier not in qualifiers:
                qualifiers.append(qualifier)
            if part_name == "given":
                text = text_or_attr(part)
                if text:
                    given.append(text.strip())

    family = _joined(children(node, "family"))
    name = PersonName(
        given=given,
        family=family,
        prefix=_joined(children(node, "prefix")),
        suffix=_joined(children(node, "suffix")),
        qualifiers=qualifiers,
        use=text_or_attr(node, "use"),
    )
    parts = given + ([family] if family else [])
    name.full = " ".join(parts) or (text_or_attr(node) or "").strip()
    if not name.full:
        return None
    return name


def _joined(nodes: list) -> str | None:
    texts = [text_or_attr(n).strip() for n in nodes if text_or_attr(n)]
    return " ".join(texts) or None


def parse_address(node: Any) -> Address | None:
    node = first(node)
    if not isinstance(node, dict):
        return None
    addr = Address(
        lines=[text_or_attr(n).strip() for n in children(node, "streetAddressLine") if text_or_attr(n)],
        city=text_or_attr(child(node, "city")),
        state=text_or_attr(child(node, "state")),
        postal_code=text_or_attr(child(node, "postalCode")),
        country=text_or_attr(child(node, "country")),
        use=text_or_attr(node, "use"),
    )
    if not (addr.lines or addr.city or addr.state or addr.postal_code or addr.country):
        return None
    return addr


def parse_addresses(nodes: Any) -> list[Address]:
    return [a for a in (parse_address(n) for n in as_sequence(nodes)) if a is not None]


def parse_telecoms(nodes: Any) -> list[Telecom]:
    """Read TEL values; entries without a value are skipped."""
    result = []
    for node in as_sequence(nodes):
        value = text_or_attr(node, "value")
        if value:
            result.append(Telecom(value=value, use=text_or_attr(node, "use")))
    return result


# --- Parties ---


def format_party(name: PersonName | None, org_name: str | None) -> str | None:
    """Render a person and organization as "Name (Organization)"."""
    if name and name.full:
        return f"{name.full} ({org_name})" if org_name else name.full
    return org_name


def parse_organization(node: Any, id_types: IdTypeTable | None = None) -> Organization | None:
    node = first(node)
    if not isinstance(node, dict):
        return None
    org = Organization(
        name=text_or_attr(child(node, "name")),
        identifiers=parse_identifiers(child(node, "id"), id_types),
        address=parse_address(child(node, "addr")),
        telecoms=parse_telecoms(child(node, "telecom")),
    )
    if org.name is None and not org.identifiers:
        return None
    return org


def parse_author(node: Any, id_types: IdTypeTable | None = None) -> Author | None:
    """Read the first <author>/assignedAuthor."""
    node = first(node)
    assigned = child(node, "assignedAuthor")
    if not isinstance(first(assigned), dict):
        return None
    name = parse_name(child(assigned, "assignedPerson", "name"))
    org = parse_organization(child(assigned, "representedOrganization"), id_types)
    software = text_or_attr(child(assigned, "assignedAuthoringDevice", "softwareName"))
    if name is None and org is None and software is None:
        return None
    return Author(
        identifier=parse_identifier(child(assigned, "id"), id_types),
        name=name,
        organization=org,
        time=text_or_attr(child(node, "time"), "value"),
        display=format_party(name, org.name if org else None) or software,
    )


def author_display(node: Any) -> str | None:
    author = parse_author(node)
    return author.display if author else None


def parse_performer(node: Any, id_types: IdTypeTable | None = None) -> Performer | None:
    """Read the first <performer>/assignedEntity."""
    node = first(node)
    entity = child(node, "assignedEntity")
    if not isinstance(first(entity), dict):
        return None
    name = parse_name(child(entity, "assignedPerson", "name"))
    org = parse_organization(child(entity, "representedOrganization"), id_types)
    if name is None and org is None:
        return None
    return Performer(
        identifier=parse_identifier(child(entity, "id"), id_types),
        name=name,
        role=code_display(child(node, "functionCode")) or code_display(child(entity, "code")),
        organization=org,
        display=format_party(name, org.name if org else None),
    )


# --- Relationships ---


def relationships(node: Any, type_code: str | None = None) -> list[dict]:
    """entryRelationship nodes of ``node``, optionally filtered by typeCode."""
    result = []
    for rel in children(node, "entryRelationship"):
        if not isinstance(rel, dict):
            continue
        if type_code is not None and text_or_attr(rel, "typeCode") != type_code:
            continue
        result.append(rel)
    return result


def related_observations(node: Any, type_code: str | None = None) -> list[dict]:
    """Observations reached through entryRelationship."""
    result = []
    for rel in relationships(node, type_code):
        for obs in children(rel, "observation"):
            if isinstance(obs, dict):
                result.append(obs)
    return result


def has_template(node: Any, root: str) -> bool:
    return any(text_or_attr(t, "root") == root for t in children(node, "templateId"))


# --- Document-wide scans ---


def collect_template_ids(tree: Any) -> list[TemplateIdentifier]:
    """Every templateId anywhere in the tree, in document order."""
    result = []
    for node in iter_nodes(tree):
        for tid in children(node, "templateId"):
            root = text_or_attr(tid, "root")
            if root:
                result.append(TemplateIdentifier(root, text_or_attr(tid, "extension")))
    return result


def collect_codes(tree: Any, code_system: str = LOINC) -> list[str]:
    """Every <code>/@code anywhere in the tree drawn from ``code_system``."""
    result = []
    for node in iter_nodes(tree):
        for code in children(node, "code"):
            if text_or_attr(code, "codeSystem") == code_system:
                value = text_or_attr(code, "code")
                if value:
                    result.append(value)
    return result

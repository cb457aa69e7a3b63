"""Tests for ccdalens.core.hl7 data-type readers."""

from ccdalens.core.hl7 import (
    DEFAULT_ID_TYPES,
    code_display,
    collect_codes,
    collect_template_ids,
    effective_high,
    effective_low,
    effective_time,
    format_party,
    parse_author,
    parse_identifier,
    parse_name,
    parse_performer,
    physical_quantity,
)
from ccdalens.core.tree import xml_to_tree
from ccdalens.models import TemplateIdentifier

from conftest import NS


def _node(xml: str):
    tree = xml_to_tree(f'<root xmlns="{NS}">{xml}</root>')
    return tree["root"]


class TestIdTypeTable:
    def test_exact_roots(self):
        assert DEFAULT_ID_TYPES.classify("2.16.840.1.113883.4.1") == "SSN"
        assert DEFAULT_ID_TYPES.classify("2.16.840.1.113883.4.6") == "NPI"

    def test_prefix_roots(self):
        assert DEFAULT_ID_TYPES.classify("2.16.840.1.113883.4.3.17") == "DRIVERS_LICENSE"
        assert DEFAULT_ID_TYPES.classify("2.16.840.1.113883.4.330.840") == "PASSPORT"

    def test_unknown_root_defaults_to_mrn(self):
        assert DEFAULT_ID_TYPES.classify("1.2.3.4") == "MRN"
        assert DEFAULT_ID_TYPES.classify(None) == "MRN"

    def test_overrides_do_not_mutate_default(self):
        table = DEFAULT_ID_TYPES.with_overrides({"1.2.3.4": "EMPI"})
        assert table.classify("1.2.3.4") == "EMPI"
        assert DEFAULT_ID_TYPES.classify("1.2.3.4") == "MRN"


class TestIdentifiers:
    def test_untyped_by_default(self):
        ident = parse_identifier({"@_root": "2.16.840.1.113883.4.1", "@_extension": "111"})
        assert ident.extension == "111"
        assert ident.id_type is None

    def test_typed_with_table(self):
        ident = parse_identifier({"@_root": "2.16.840.1.113883.4.1", "@_extension": "111"}, DEFAULT_ID_TYPES)
        assert ident.id_type == "SSN"

    def test_empty_is_none(self):
        assert parse_identifier({"@_nullFlavor": "UNK"}) is None


class TestCodesAndTimes:
    def test_display_name_preferred(self):
        code = {"@_displayName": "Penicillin", "originalText": "PCN"}
        assert code_display(code) == "Penicillin"

    def test_original_text_fallback(self):
        assert code_display({"@_code": "1", "originalText": "Free text"}) == "Free text"

    def test_no_display(self):
        assert code_display({"@_code": "1"}) is None
        assert code_display(None) is None

    def test_effective_time_point_and_interval(self):
        assert effective_time({"@_value": "20250101"}) == "20250101"
        interval = {"low": {"@_value": "20240101"}, "high": {"@_value": "20241231"}}
        assert effective_time(interval) == "20240101"
        assert effective_low(interval) == "20240101"
        assert effective_high(interval) == "20241231"
        assert effective_high({"@_value": "20250101"}) is None

    def test_physical_quantity(self):
        assert physical_quantity({"@_value": "81", "@_unit": "mg"}) == "81 mg"
        assert physical_quantity({"@_value": "1", "@_unit": "1"}) == "1"
        assert physical_quantity(None) is None


class TestNames:
    def test_legal_name_preferred(self):
        node = _node("""
            <name use="P"><given>Johnny</given><family>Doe</family></name>
            <name use="L"><given>John</given><given>Q</given><family>Doe</family></name>
        """)
        name = parse_name(node["name"])
        assert name.full == "John Q Doe"
        assert name.given == ["John", "Q"]
        assert name.use == "L"

    def test_plain_text_name(self):
        assert parse_name("Dr. Jane Smith").full == "Dr. Jane Smith"

    def test_prefix_suffix_and_qualifiers(self):
        node = _node("""<name>
            <prefix>Dr.</prefix><given qualifier="CL">Jim</given><family>Ray</family><suffix>Jr.</suffix>
        </name>""")
        name = parse_name(node["name"])
        assert name.prefix == "Dr."
        assert name.suffix == "Jr."
        assert name.qualifiers == ["CL"]
        assert name.full == "Jim Ray"

    def test_missing(self):
        assert parse_name(None) is None


class TestParties:
    def test_format_party(self):
        name = parse_name({"given": "Ann", "family": "Lee"})
        assert format_party(name, "General Hospital") == "Ann Lee (General Hospital)"
        assert format_party(name, None) == "Ann Lee"
        assert format_party(None, "General Hospital") == "General Hospital"
        assert format_party(None, None) is None

    def test_author_with_person_and_org(self):
        node = _node("""<author>
            <time value="20250101"/>
            <assignedAuthor>
                <id root="2.16.840.1.113883.4.6" extension="1234567890"/>
                <assignedPerson><name><given>Ann</given><family>Lee</family></name></assignedPerson>
                <representedOrganization><name>General Hospital</name></representedOrganization>
            </assignedAuthor>
        </author>""")
        author = parse_author(node["author"], DEFAULT_ID_TYPES)
        assert author.display == "Ann Lee (General Hospital)"
        assert author.identifier.id_type == "NPI"
        assert author.time == "20250101"

    def test_device_author(self):
        node = _node("""<author><assignedAuthor>
            <assignedAuthoringDevice><softwareName>EHR 9000</softwareName></assignedAuthoringDevice>
        </assignedAuthor></author>""")
        assert parse_author(node["author"]).display == "EHR 9000"

    def test_performer_role(self):
        node = _node("""<performer>
            <functionCode displayName="Primary surgeon"/>
            <assignedEntity>
                <assignedPerson><name><given>Sam</given><family>Cole</family></name></assignedPerson>
            </assignedEntity>
        </performer>""")
        performer = parse_performer(node["performer"])
        assert performer.display == "Sam Cole"
        assert performer.role == "Primary surgeon"

    def test_empty_author(self):
        assert parse_author(None) is None
        assert parse_author({"assignedAuthor": {"id": {"@_root": "1"}}}) is None


class TestDocumentScans:
    def test_collect_template_ids_in_order(self):
        node = xml_to_tree(f"""<ClinicalDocument xmlns="{NS}">
            <templateId root="1.1" extension="2015-08-01"/>
            <component><section><templateId root="2.2"/></section></component>
        </ClinicalDocument>""")
        assert collect_template_ids(node) == [
            TemplateIdentifier("1.1", "2015-08-01"),
            TemplateIdentifier("2.2", None),
        ]

    def test_collect_codes_filters_system(self):
        node = xml_to_tree(f"""<ClinicalDocument xmlns="{NS}">
            <code code="34133-9" codeSystem="2.16.840.1.113883.6.1"/>
            <component><section><code code="X" codeSystem="9.9"/></section></component>
        </ClinicalDocument>""")
        assert collect_codes(node) == ["34133-9"]

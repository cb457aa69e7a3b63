"""Tests for document kind detection."""

from ccdalens.classifier import (
    KIND_TABLE,
    DocumentKind,
    detect_document_type,
    display_info,
    kind_by_template_id,
    kind_by_type_code,
    supported_kinds,
)
from ccdalens.core.tree import xml_to_tree

from conftest import NS, make_document


def _doc(templates="", code=""):
    return xml_to_tree(make_document(templates, code=code))


class TestDetectDocumentType:
    def test_ccd_by_template(self, ccd_tree):
        assert detect_document_type(ccd_tree) is DocumentKind.CONTINUITY_OF_CARE

    def test_care_plan_by_template(self, care_plan_tree):
        assert detect_document_type(care_plan_tree) is DocumentKind.CARE_PLAN

    def test_each_kind_by_template(self):
        for info in KIND_TABLE:
            tree = _doc(f'<templateId root="{info.template_id}"/>')
            assert detect_document_type(tree) is info.kind

    def test_type_code_fallback(self):
        tree = _doc(code='<code code="18842-5" codeSystem="2.16.840.1.113883.6.1"/>')
        assert detect_document_type(tree) is DocumentKind.DISCHARGE_SUMMARY

    def test_type_code_from_other_system_ignored(self):
        tree = _doc(code='<code code="18842-5" codeSystem="9.9.9"/>')
        assert detect_document_type(tree) is DocumentKind.UNKNOWN

    def test_unrecognized_template_is_unknown(self):
        tree = _doc('<templateId root="1.2.3.4.5.6"/>')
        assert detect_document_type(tree) is DocumentKind.UNKNOWN

    def test_priority_order_wins(self):
        # progress note template and CCD template both present: CCD comes first
        tree = _doc(
            '<templateId root="2.16.840.1.113883.10.20.22.1.9"/>'
            '<templateId root="2.16.840.1.113883.10.20.22.1.2"/>'
        )
        assert detect_document_type(tree) is DocumentKind.CONTINUITY_OF_CARE

    def test_template_found_anywhere_in_tree(self):
        tree = xml_to_tree(f"""<ClinicalDocument xmlns="{NS}">
            <component><structuredBody><component><section>
                <templateId root="2.16.840.1.113883.10.20.22.1.5"/>
            </section></component></structuredBody></component>
        </ClinicalDocument>""")
        assert detect_document_type(tree) is DocumentKind.DIAGNOSTIC_IMAGING


class TestKindLookups:
    def test_by_template_id(self):
        assert kind_by_template_id("2.16.840.1.113883.10.20.22.1.7") is DocumentKind.OPERATIVE_NOTE
        assert kind_by_template_id("nope") is None

    def test_by_type_code(self):
        assert kind_by_type_code("57133-1") is DocumentKind.REFERRAL_NOTE
        assert kind_by_type_code("0000-0") is None

    def test_display_info(self):
        assert display_info(DocumentKind.PROGRESS_NOTE)["name"] == "Progress Note"
        assert display_info("care-plan")["description"] == "Patient care planning and goals"

    def test_display_info_unknown(self):
        assert display_info("not-a-kind") == {
            "name": "Unknown Document Type",
            "description": "Unrecognized document type",
        }

    def test_parse(self):
        assert DocumentKind.parse("transfer-summary") is DocumentKind.TRANSFER_SUMMARY
        assert DocumentKind.parse("bogus") is DocumentKind.UNKNOWN

    def test_supported_kinds_excludes_unknown(self):
        kinds = supported_kinds()
        assert len(kinds) == 11
        assert DocumentKind.UNKNOWN not in kinds

"""Tests for ccdalens.core.tree: XML conversion and tree accessors."""

import pytest

from ccdalens.core.tree import (
    as_sequence,
    child,
    children,
    first,
    iter_nodes,
    narrative_text,
    parse_file,
    text_or_attr,
    xml_to_tree,
)
from ccdalens.errors import XMLTreeError

from conftest import NS


class TestXmlToTree:
    def test_attributes_and_text(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><code code="X1" displayName="Thing"/></root>')
        assert tree == {"root": {"code": {"@_code": "X1", "@_displayName": "Thing"}}}

    def test_text_only_element_collapses_to_string(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><title>Summary</title></root>')
        assert tree["root"]["title"] == "Summary"

    def test_text_with_attributes_uses_text_key(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><name use="L">Jane</name></root>')
        assert tree["root"]["name"] == {"@_use": "L", "#text": "Jane"}

    def test_repeated_elements_become_list(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><id root="a"/><id root="b"/></root>')
        assert [i["@_root"] for i in tree["root"]["id"]] == ["a", "b"]

    def test_single_element_stays_bare(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><id root="a"/></root>')
        assert isinstance(tree["root"]["id"], dict)

    def test_namespace_prefixes_dropped(self):
        tree = xml_to_tree(
            '<root xmlns="urn:hl7-org:v3" xmlns:sdtc="urn:hl7-org:sdtc">'
            '<sdtc:deceasedInd value="false"/></root>'
        )
        assert tree["root"]["deceasedInd"] == {"@_value": "false"}

    def test_comments_skipped(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><!-- note --><title>T</title></root>')
        assert tree["root"] == {"title": "T"}

    def test_mixed_content_keeps_document_order(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><p>Take <b>two</b> daily</p></root>')
        p = tree["root"]["p"]
        assert p["b"] == "two"
        assert p["#text"] == "Take daily"
        assert p["#content"] == ["Take", "two", "daily"]

    def test_interleaved_siblings_keep_document_order(self):
        tree = xml_to_tree(
            f'<root xmlns="{NS}"><text><paragraph>A</paragraph><list><item>B</item></list>'
            "<paragraph>C</paragraph></text></root>"
        )
        node = tree["root"]["text"]
        assert node["paragraph"] == ["A", "C"]
        assert node["#content"] == ["A", {"item": "B"}, "C"]

    def test_grouped_children_have_no_order_record(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><id root="a"/><id root="b"/><title>T</title></root>')
        assert "#content" not in tree["root"]

    def test_order_record_shares_child_nodes(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><p>See <content ID="c1">note</content> below</p></root>')
        p = tree["root"]["p"]
        assert p["#content"][1] is p["content"]

    def test_malformed_raises(self):
        with pytest.raises(XMLTreeError):
            xml_to_tree("<root><unclosed></root>")

    def test_recover_mode_tolerates_damage(self):
        tree = xml_to_tree(f'<root xmlns="{NS}"><title>T</title><bad></root>', recover=True)
        assert tree["root"]["title"] == "T"

    def test_parse_file(self, tmp_path):
        path = tmp_path / "doc.xml"
        path.write_text(f'<root xmlns="{NS}"><title>From disk</title></root>')
        assert parse_file(str(path)) == {"root": {"title": "From disk"}}


class TestTextOrAttr:
    def test_attribute(self):
        assert text_or_attr({"@_code": "123"}, "code") == "123"

    def test_missing_attribute(self):
        assert text_or_attr({"@_code": "123"}, "displayName") is None

    def test_inline_text_of_string_node(self):
        assert text_or_attr("Aspirin") == "Aspirin"

    def test_inline_text_of_dict_node(self):
        assert text_or_attr({"@_use": "L", "#text": "Jane"}) == "Jane"

    def test_list_reads_first(self):
        assert text_or_attr([{"@_root": "a"}, {"@_root": "b"}], "root") == "a"

    def test_none_and_empty(self):
        assert text_or_attr(None) is None
        assert text_or_attr([]) is None
        assert text_or_attr({"@_code": "  "}, "code") is None
        assert text_or_attr("") is None

    def test_attribute_of_string_node_is_none(self):
        assert text_or_attr("text", "code") is None


class TestSequences:
    def test_singleton_becomes_one_element_list(self):
        node = {"@_root": "a"}
        assert as_sequence(node) == [node]

    def test_idempotent(self):
        node = {"@_root": "a"}
        assert as_sequence(as_sequence(node)) == as_sequence(node)

    def test_none_is_empty(self):
        assert as_sequence(None) == []

    def test_list_unchanged(self):
        items = [1, 2]
        assert as_sequence(items) is items

    def test_first(self):
        assert first([3, 4]) == 3
        assert first(5) == 5
        assert first(None) is None


class TestChildAccessors:
    TREE = {
        "component": [
            {"section": {"title": "A"}},
            {"section": {"title": "B"}},
        ],
        "author": {"assignedAuthor": {"id": [{"@_root": "x"}, {"@_root": "y"}]}},
    }

    def test_child_reads_through_lists(self):
        assert child(self.TREE, "component", "section", "title") == "A"

    def test_child_missing_step(self):
        assert child(self.TREE, "author", "assignedPerson", "name") is None
        assert child(None, "anything") is None

    def test_children_always_list(self):
        assert len(children(self.TREE, "author", "assignedAuthor", "id")) == 2
        assert children(self.TREE, "custodian") == []
        assert len(children(self.TREE, "component")) == 2

    def test_iter_nodes_depth_first(self):
        titles = [n["title"] for n in iter_nodes(self.TREE) if "title" in n]
        assert titles == ["A", "B"]


class TestNarrativeText:
    def test_flattens_and_collapses_whitespace(self):
        node = {"paragraph": ["First   line", {"content": "Second", "@_ID": "c1"}]}
        assert narrative_text(node) == "First line Second"

    def test_mixed_content_in_document_order(self):
        tree = xml_to_tree(
            f'<paragraph xmlns="{NS}">Patient denies <content>chest pain</content>, reports nausea</paragraph>'
        )
        assert narrative_text(tree) == "Patient denies chest pain, reports nausea"

    def test_interleaved_blocks_in_document_order(self):
        tree = xml_to_tree(
            f'<text xmlns="{NS}"><paragraph>First</paragraph><list><item>Second</item></list>'
            "<paragraph>Third</paragraph></text>"
        )
        assert narrative_text(tree) == "First Second Third"

    def test_leading_text_first_without_order_record(self):
        node = {"content": "severe", "#text": "Patient reports"}
        assert narrative_text(node) == "Patient reports severe"

    def test_iter_nodes_skips_order_record(self):
        tree = xml_to_tree(f'<p xmlns="{NS}">One <b x="1">two</b> three</p>')
        assert [n for n in iter_nodes(tree["p"]) if "@_x" in n] == [{"@_x": "1", "#text": "two"}]

    def test_ignores_attributes(self):
        assert narrative_text({"@_ID": "x", "#text": "Visible"}) == "Visible"

    def test_empty(self):
        assert narrative_text(None) is None
        assert narrative_text({"@_ID": "x"}) is None

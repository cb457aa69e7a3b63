"""Tests for directory discovery and batch extraction."""

import pytest

from ccdalens.sources.base import discover_files, process_directory


@pytest.fixture
def export_dir(tmp_path, ccd_xml):
    (tmp_path / "b_summary.xml").write_text(ccd_xml)
    (tmp_path / "a_summary.XML").write_text(ccd_xml)
    (tmp_path / "broken.xml").write_text("<ClinicalDocument><unclosed>")
    (tmp_path / "other.xml").write_text("<Bundle/>")
    (tmp_path / "readme.txt").write_text("not a document")
    (tmp_path / "nested.xml").mkdir()
    return tmp_path


class TestDiscoverFiles:
    def test_sorted_and_case_insensitive(self, export_dir):
        names = [p.rsplit("/", 1)[-1] for p in discover_files(str(export_dir))]
        assert names == ["a_summary.XML", "b_summary.xml", "broken.xml", "other.xml"]

    def test_custom_pattern(self, export_dir):
        names = [p.rsplit("/", 1)[-1] for p in discover_files(str(export_dir), r".*summary.*")]
        assert names == ["a_summary.XML", "b_summary.xml"]


class TestProcessDirectory:
    def test_collects_documents_and_errors(self, export_dir, capsys):
        data = process_directory(str(export_dir))
        assert [name for name, _ in data["documents"]] == ["a_summary.XML", "b_summary.xml"]
        assert sorted(e["filename"] for e in data["errors"]) == ["broken.xml", "other.xml"]
        out = capsys.readouterr().out
        assert "Found 4 documents to process" in out
        assert "ERROR broken.xml" in out

    def test_inventory(self, export_dir):
        data = process_directory(str(export_dir), pattern=r"a_.*")
        item = data["inventory"][0]
        assert item["filename"] == "a_summary.XML"
        assert item["document_kind"] == "continuity-of-care"
        assert item["document_version"] == "2.1"
        assert item["title"] == "Test Document"
        assert item["warnings"] == 0

    def test_recover_mode(self, export_dir):
        data = process_directory(str(export_dir), pattern=r"broken.*", recover=True)
        assert data["errors"] == []
        assert data["inventory"][0]["document_kind"] == "unknown"

"""Unit tests for databank.documents.paths — stored path normalization."""

import pytest

from databank.documents.paths import (
    make_stored_name,
    normalize_db_path,
    public_path,
    resolve_storage_path,
    safe_filename,
)
from databank.engine.errors import InvalidInputError


class TestNormalizeDbPath:
    """Each legacy shape maps onto uploads/documents/<name>."""

    def test_canonical_unchanged(self):
        assert normalize_db_path("uploads/documents/1700_x.pdf") == "uploads/documents/1700_x.pdf"

    def test_missing_separator(self):
        assert normalize_db_path("uploadsdocuments/1700_x.pdf") == "uploads/documents/1700_x.pdf"

    def test_missing_separator_in_absolute_path(self):
        assert normalize_db_path("/srv/app/uploadsdocuments/1700_x.pdf") == "uploads/documents/1700_x.pdf"

    def test_absolute_unix_path(self):
        assert normalize_db_path("/srv/app/uploads/documents/1700_x.pdf") == "uploads/documents/1700_x.pdf"

    def test_relative_prefix(self):
        assert normalize_db_path("public/uploads/documents/a.txt") == "uploads/documents/a.txt"

    def test_windows_path(self):
        assert normalize_db_path("C:\\app\\uploads\\documents\\a.txt") == "uploads/documents/a.txt"

    def test_documents_without_prefix(self):
        assert normalize_db_path("documents/a.txt") == "uploads/documents/a.txt"

    def test_unrecognized_left_alone(self):
        assert normalize_db_path("elsewhere/a.txt") == "elsewhere/a.txt"

    def test_empty(self):
        assert normalize_db_path("") == ""

    @pytest.mark.parametrize("raw", [
        "uploadsdocuments/1700_x.pdf",
        "/srv/app/uploadsdocuments/1700_x.pdf",
        "/var/www/uploads/documents/b.pdf",
        "documents/c.pdf",
        "D:\\data\\uploads\\documents\\d.pdf",
        "notes/e.txt",
    ])
    def test_idempotent(self, raw):
        once = normalize_db_path(raw)
        assert normalize_db_path(once) == once


class TestStoredNames:

    def test_public_path(self):
        assert public_path("1700_a.pdf") == "uploads/documents/1700_a.pdf"
        assert public_path("b.pdf", documents_dir="scans") == "uploads/scans/b.pdf"

    def test_safe_filename_strips_directories(self):
        assert safe_filename("../../etc/passwd") == "passwd"
        assert safe_filename("C:\\temp\\report.pdf") == "report.pdf"

    def test_safe_filename_replaces_unsafe_characters(self):
        assert safe_filename("q1<>report?.pdf") == "q1_report_.pdf"

    def test_safe_filename_never_empty(self):
        assert safe_filename("...") == "file"

    def test_make_stored_name(self):
        assert make_stored_name("Budget 2024.xlsx", now_ms=1700000000000) == "1700000000000_Budget 2024.xlsx"

    def test_make_stored_name_uses_clock(self):
        prefix, _, rest = make_stored_name("a.txt").partition("_")
        assert prefix.isdigit()
        assert rest == "a.txt"


class TestResolveStoragePath:

    def test_resolves_under_root(self, tmp_path):
        resolved = resolve_storage_path(tmp_path, "uploads/documents/a.pdf")
        assert resolved == (tmp_path / "documents" / "a.pdf").resolve()

    def test_legacy_shape_resolves(self, tmp_path):
        resolved = resolve_storage_path(tmp_path, "uploadsdocuments/a.pdf")
        assert resolved == (tmp_path / "documents" / "a.pdf").resolve()

    def test_rejects_traversal(self, tmp_path):
        with pytest.raises(InvalidInputError):
            resolve_storage_path(tmp_path, "uploads/../../etc/passwd")

    def test_rejects_paths_outside_uploads(self, tmp_path):
        with pytest.raises(InvalidInputError):
            resolve_storage_path(tmp_path, "elsewhere/a.pdf")

    def test_rejects_root_itself(self, tmp_path):
        with pytest.raises(InvalidInputError):
            resolve_storage_path(tmp_path, "uploads/")

"""Tests for path utilities."""

import os
import sys

import pytest
from pathlib import Path
from wxbackup.common.path_utils import combine_path, is_writable_directory, normalize_path


class TestNormalizePath:
    """Tests for normalize_path function."""

    def test_forward_slashes(self):
        """Test that backslashes are converted to forward slashes."""
        result = normalize_path(r"Documents\abc\DB\MM.sqlite")
        assert result == "Documents/abc/DB/MM.sqlite"

    def test_unicode_normalization(self):
        """Test Unicode NFC normalization."""
        decomposed = "cafe\u0301"
        assert normalize_path(decomposed) == "caf\u00e9"

    def test_path_input(self):
        """Test that Path input works."""
        assert normalize_path(Path("Documents/abc")) == "Documents/abc"


class TestCombinePath:
    """Tests for combine_path function."""

    def test_joins_with_single_slashes(self):
        assert combine_path("Documents/", "/abc", "DB") == "Documents/abc/DB"

    def test_skips_empty_parts(self):
        assert combine_path("", "Documents", "", "abc") == "Documents/abc"

    def test_no_parts(self):
        assert combine_path() == ""


class TestIsWritableDirectory:
    """Tests for is_writable_directory function."""

    def test_existing_directory(self, tmp_path):
        assert is_writable_directory(tmp_path)

    def test_missing_directory(self, tmp_path):
        assert not is_writable_directory(tmp_path / "missing")

    def test_file_is_not_a_directory(self, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("x")
        assert not is_writable_directory(path)

    @pytest.mark.skipif(sys.platform == "win32" or os.geteuid() == 0, reason="permission bits not enforced")
    def test_read_only_directory(self, tmp_path):
        path = tmp_path / "ro"
        path.mkdir()
        path.chmod(0o500)
        try:
            assert not is_writable_directory(path)
        finally:
            path.chmod(0o700)

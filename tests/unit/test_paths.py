"""
Unit tests for the path sanitizer.
"""

import os

import pytest

from filebridge.handlers.paths import (
    InvalidPathError,
    PathError,
    PathTooLongError,
    TraversalError,
    is_root,
    normalize_path,
    resolve,
)


class TestNormalizePath:
    """Tests for normalize_path()."""

    @pytest.mark.parametrize("url_path", [None, "", "/", "//", "///", "/./", "."])
    def test_empty_inputs_yield_root(self, url_path):
        """Anything without a real segment is the root marker."""
        assert normalize_path(url_path) == "."

    def test_simple_path(self):
        assert normalize_path("/docs/a.txt") == "./docs/a.txt"

    def test_collapses_repeated_slashes(self):
        """Empty segments are discarded."""
        assert normalize_path("//docs///a.txt/") == "./docs/a.txt"

    def test_relative_input(self):
        """A leading slash is optional."""
        assert normalize_path("docs/a.txt") == "./docs/a.txt"

    def test_drops_current_dir_segments(self):
        assert normalize_path("/./docs/./a.txt") == "./docs/a.txt"

    @pytest.mark.parametrize("url_path", [
        "..",
        "/..",
        "/../etc/passwd",
        "/docs/../../etc/passwd",
        "/docs/a/../b",    # rejected even though it would stay inside
        "a/b/..",
    ])
    def test_parent_segment_rejected(self, url_path):
        """Any '..' segment fails the whole path."""
        with pytest.raises(TraversalError):
            normalize_path(url_path)

    def test_dots_inside_names_allowed(self):
        """Only a segment that is exactly '..' is a traversal."""
        assert normalize_path("/a..b/...") == "./a..b/..."

    def test_nul_byte_rejected(self):
        with pytest.raises(InvalidPathError):
            normalize_path("/docs/a\x00b")

    def test_errors_are_value_errors(self):
        """All rejections share PathError, itself a ValueError."""
        for bad in ("/..", "/a\x00"):
            with pytest.raises(PathError):
                normalize_path(bad)
        assert issubclass(PathError, ValueError)

    def test_too_long_rejected(self):
        with pytest.raises(PathTooLongError) as exc_info:
            normalize_path("/" + "a" * 600)
        assert exc_info.value.max_length == 512

    def test_length_bound_is_exclusive(self):
        """The result must stay strictly below max_length bytes."""
        # "./" + 9 chars = 11 bytes
        assert normalize_path("/" + "a" * 8, max_length=11) == "./" + "a" * 8
        with pytest.raises(PathTooLongError):
            normalize_path("/" + "a" * 9, max_length=11)

    def test_length_counts_bytes(self):
        """Multi-byte characters count by their encoded size."""
        name = "é" * 5  # 10 bytes in UTF-8
        assert normalize_path(name, max_length=13) == "./" + name
        with pytest.raises(PathTooLongError):
            normalize_path(name, max_length=12)

    @pytest.mark.parametrize("url_path", [
        "/",
        "/docs",
        "//docs//img/",
        "/./a/./b/c.txt",
        "/with space/and%percent",
    ])
    def test_idempotent(self, url_path):
        """Normalizing a normalized path changes nothing."""
        once = normalize_path(url_path)
        assert normalize_path(once) == once

    def test_never_touches_filesystem(self, tmp_path):
        """Nonexistent paths normalize fine."""
        assert normalize_path("/does/not/exist") == "./does/not/exist"


class TestHelpers:
    """Tests for is_root() and resolve()."""

    def test_is_root(self):
        assert is_root(".")
        assert not is_root("./a")

    def test_resolve_root(self, tmp_path):
        assert resolve(str(tmp_path), ".") == str(tmp_path)

    def test_resolve_nested(self, tmp_path):
        assert resolve(str(tmp_path), "./docs/a.txt") == os.path.join(str(tmp_path), "docs", "a.txt")

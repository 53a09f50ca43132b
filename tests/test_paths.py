"""Tests for path normalization."""

import pytest

from mdimgsize.paths import get_basename, get_image_name, normalize_path


class TestNormalizePath:
    """Tests for normalize_path."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("./a/../b//c.png", "b/c.png"),
            ("a/./b/./c.png", "a/b/c.png"),
            ("../../x.png", "../../x.png"),
            ("a/../../x.png", "../x.png"),
            ("/a/b/../c.png", "/a/c.png"),
            ("/../x.png", "/x.png"),
            ("/", "/"),
            ("a/b/c/", "a/b/c"),
            ("https://example.com/a/./b/../c.png", "https://example.com/a/c.png"),
            ("https://example.com//a.png", "https://example.com/a.png"),
            ("file:///home/me/../cat.png", "file:///home/cat.png"),
            ("", ""),
        ],
    )
    def test_normalizes(self, path, expected):
        assert normalize_path(path) == expected

    @pytest.mark.parametrize(
        "path",
        [
            "./a/../b//c.png",
            "../../x/./y.png",
            "/../a/b/..",
            "https://example.com/a/./b/../c/",
            "a/b/c/",
        ],
    )
    def test_idempotent(self, path):
        """Normalizing twice gives the same result as normalizing once."""
        once = normalize_path(path)
        assert normalize_path(once) == once


class TestNames:
    """Tests for get_basename and get_image_name."""

    def test_basename(self):
        assert get_basename("a/b/cat.png?v=1") == "cat.png"
        assert get_basename("a\\b\\cat.png") == "cat.png"
        assert get_basename("my%20cat.png") == "my cat.png"

    def test_image_name(self):
        assert get_image_name("images/cat@2x.png") == "cat@2x"
        assert get_image_name("scan_300dpi.jpg#x") == "scan_300dpi"
        assert get_image_name("dir.v2/noext") == "noext"

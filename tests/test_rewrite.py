"""Tests for reference rewriting."""

import pytest

from mdimgsize.config import SharedOptions
from mdimgsize.context import build_document_context
from mdimgsize.rewrite import ImageReference, rewrite_reference, strip_logical_root
from mdimgsize.urls import Kind


def rewrite(src, frontmatter=None, output_mode="absolute", resolve=True, **options):
    ctx = build_document_context(frontmatter, SharedOptions(**options))
    return rewrite_reference(ImageReference.parse(src), ctx, output_mode, resolve)


class TestImageReference:
    """Tests for ImageReference.parse."""

    def test_parse(self):
        ref = ImageReference.parse("./images/cat.jpg?ver=1#top")
        assert ref.base == "./images/cat.jpg"
        assert ref.suffix == "?ver=1#top"
        assert ref.kind is Kind.LOCAL_PATH
        assert ref.is_local

    def test_remote(self):
        assert ImageReference.parse("//cdn.example.com/a.png").is_remote
        assert ImageReference.parse("https://x.com/a.png").is_remote
        assert not ImageReference.parse("file:///a.png").is_remote

    def test_none(self):
        assert ImageReference.parse(None).raw == ""


class TestStripLogicalRoot:
    """Tests for strip_logical_root."""

    @pytest.mark.parametrize(
        "path,lid,expected",
        [
            ("images/cat.jpg", "images/", "cat.jpg"),
            ("./images/cat.jpg", "images/", "cat.jpg"),
            ("./content/cat.jpg", "../content/", "cat.jpg"),
            ("other/cat.jpg", "images/", "other/cat.jpg"),
            ("cat.jpg", "", "cat.jpg"),
        ],
    )
    def test_strip(self, path, lid, expected):
        assert strip_logical_root(path, lid) == expected


class TestRewriteReference:
    """Tests for rewrite_reference."""

    def test_lid_and_url_keep_suffix(self):
        result = rewrite(
            "./images/cat.jpg?ver=1#top", {"url": "https://example.com/", "lid": "images/"}
        )
        assert result == "https://example.com/cat.jpg?ver=1#top"

    def test_urlimagebase_with_page_path(self):
        frontmatter = {
            "url": "https://example.com/page",
            "urlimagebase": "https://img.example.com/assets/",
        }
        assert rewrite("foo/bar/cat.jpg", frontmatter) == (
            "https://img.example.com/assets/page/foo/bar/cat.jpg"
        )

    def test_empty_urlimage_flattens_to_basename(self):
        frontmatter = {
            "url": "https://example.com/page",
            "urlimagebase": "https://img.example.com/assets/",
            "urlimage": "",
        }
        assert rewrite("foo/bar/cat.jpg", frontmatter) == (
            "https://img.example.com/assets/page/cat.jpg"
        )

    def test_relative_urlimage_directory(self):
        frontmatter = {"url": "https://example.com/page", "urlimage": "pics"}
        assert rewrite("foo/cat.jpg", frontmatter) == "https://example.com/page/pics/cat.jpg"

    def test_absolute_urlimage(self):
        frontmatter = {"url": "https://example.com/page", "urlimage": "https://cdn.example.com/i"}
        assert rewrite("cat.jpg", frontmatter) == "https://cdn.example.com/i/cat.jpg"

    def test_fallback_image_base_option(self):
        assert rewrite("a/../cat.jpg", url_image_base="https://img.example.com") == (
            "https://img.example.com/cat.jpg"
        )

    def test_absolute_path_not_prefixed(self):
        assert rewrite("/img/./cat.png", {"url": "https://example.com/"}) == "/img/cat.png"

    def test_no_frontmatter_leaves_path(self):
        assert rewrite("./images/cat.jpg") == "./images/cat.jpg"

    def test_resolve_disabled(self):
        result = rewrite("images/my%20cat.jpg", {"url": "https://example.com/"}, resolve=False)
        assert result == "images/my cat.jpg"

    @pytest.mark.parametrize(
        "src",
        [
            "//cdn.example.com/cat.png",
            "https://x.com/a/cat.png?x=1",
            "data:image/png;base64,AAAA%20",
        ],
    )
    def test_non_local_references_untouched(self, src):
        assert rewrite(src, {"url": "https://example.com/", "lid": "images/"}) == src

    def test_decodes_final_src(self):
        assert rewrite("my%20cat.png", {"url": "https://example.com/"}) == (
            "https://example.com/my cat.png"
        )

    def test_empty_query_preserved(self):
        assert rewrite("cat.png?", {"url": "https://example.com/"}) == "https://example.com/cat.png?"

    def test_path_only_mode(self):
        result = rewrite("cat.png?v=2", {"url": "https://example.com/blog/"}, "path-only")
        assert result == "/blog/cat.png?v=2"

    def test_protocol_relative_mode(self):
        result = rewrite("cat.png", {"url": "https://example.com/"}, "protocol-relative")
        assert result == "//example.com/cat.png"

    def test_empty_src(self):
        assert rewrite("", {"url": "https://example.com/"}) == ""

    def test_path_only_keeps_escapes(self):
        result = rewrite("a%20b.png?x=1#h", {"url": "https://example.com/p/"}, "path-only")
        assert result == "/p/a%20b.png?x=1#h"


SUFFIX_CASES = [
    ({"url": "https://example.com/page", "lid": "foo/"}, "https://example.com/page/cat.jpg"),
    ({"url": "https://example.com/page", "urlimage": "pics"}, "https://example.com/page/pics/cat.jpg"),
    (
        {"url": "https://example.com/page", "urlimagebase": "https://img.example.com/assets/"},
        "https://img.example.com/assets/page/foo/cat.jpg",
    ),
    (
        {
            "url": "https://example.com/page",
            "urlimagebase": "https://img.example.com/assets/",
            "urlimage": "",
        },
        "https://img.example.com/assets/page/cat.jpg",
    ),
    (
        {"url": "https://example.com/page", "urlimage": "https://cdn.example.com/i"},
        "https://cdn.example.com/i/foo/cat.jpg",
    ),
]


def shape(url, mode):
    if mode == "protocol-relative":
        return url.replace("https://", "//", 1)
    if mode == "path-only":
        return "/" + url.split("/", 3)[3]
    return url


class TestSuffixPreserved:
    """The query/hash suffix survives every rewriting rule and output mode."""

    @pytest.mark.parametrize("mode", ["absolute", "protocol-relative", "path-only"])
    @pytest.mark.parametrize("suffix", ["?ver=1#top", "?a=1&b=2", "#only-hash", "?"])
    @pytest.mark.parametrize("frontmatter,expected", SUFFIX_CASES)
    def test_suffix(self, frontmatter, expected, suffix, mode):
        result = rewrite(f"foo/cat.jpg{suffix}", frontmatter, mode)
        assert result == shape(expected, mode) + suffix

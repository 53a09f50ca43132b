"""Tests for reference classification and URL helpers."""

import pytest

from mdimgsize.urls import (
    Kind,
    apply_output_url_mode,
    classify,
    ensure_trailing_slash,
    get_url_path,
    has_special_scheme,
    is_absolute_url,
    join_url,
    safe_decode_uri,
    split_query_hash,
    strip_query_hash,
    to_absolute_remote,
)


class TestClassify:
    """Tests for classify."""

    @pytest.mark.parametrize(
        "ref,kind",
        [
            ("https://example.com/cat.png", Kind.HTTP),
            ("HTTP://EXAMPLE.COM/cat.png", Kind.HTTP),
            ("//cdn.example.com/cat.png", Kind.PROTOCOL_RELATIVE),
            ("file:///home/me/cat.png", Kind.FILE_URL),
            ("data:image/png;base64,AAAA", Kind.SPECIAL_SCHEME),
            ("blob:https://example.com/1234", Kind.SPECIAL_SCHEME),
            ("vscode-webview-resource://abc/cat.png", Kind.SPECIAL_SCHEME),
            ("cat.png", Kind.LOCAL_PATH),
            ("./images/cat.png", Kind.LOCAL_PATH),
            ("/abs/cat.png", Kind.LOCAL_PATH),
            ("C:/pictures/cat.png", Kind.LOCAL_PATH),
            ("", Kind.LOCAL_PATH),
        ],
    )
    def test_each_reference_has_one_kind(self, ref, kind):
        """Every string maps to exactly one kind."""
        assert classify(ref) is kind

    def test_non_string_is_local(self):
        """Non-strings are treated as empty local references."""
        assert classify(None) is Kind.LOCAL_PATH


class TestQueryHash:
    """Tests for strip_query_hash and split_query_hash."""

    def test_strip(self):
        assert strip_query_hash("cat.png?v=1#top") == "cat.png"
        assert strip_query_hash("cat.png#a?b") == "cat.png"
        assert strip_query_hash(None) == ""

    def test_split_keeps_suffix_verbatim(self):
        """Suffix is everything from the first ? or #, unchanged."""
        assert split_query_hash("a/cat.png?v=1#top") == ("a/cat.png", "?v=1#top")
        assert split_query_hash("cat.png?") == ("cat.png", "?")
        assert split_query_hash("cat.png") == ("cat.png", "")


class TestSafeDecodeUri:
    """Tests for safe_decode_uri."""

    def test_decodes_utf8(self):
        assert safe_decode_uri("%E7%8C%AB.png") == "猫.png"
        assert safe_decode_uri("my%20cat.png") == "my cat.png"

    def test_keeps_reserved_characters_encoded(self):
        """Characters decodeURI leaves alone stay percent-encoded."""
        assert safe_decode_uri("a%3Fb%23c%20d.png") == "a%3Fb%23c d.png"

    def test_encoded_separator_blocks_decoding(self):
        assert safe_decode_uri("a%2Fb%20c.png") == "a%2Fb%20c.png"
        assert safe_decode_uri("a%5cb%20c.png") == "a%5cb%20c.png"

    def test_malformed_returns_input(self):
        assert safe_decode_uri("%E7%8C.png") == "%E7%8C.png"
        assert safe_decode_uri("%FF.png") == "%FF.png"

    def test_plain_text_untouched(self):
        assert safe_decode_uri("cat.png") == "cat.png"
        assert safe_decode_uri("100%.png") == "100%.png"
        assert safe_decode_uri(None) == ""


class TestUrlHelpers:
    """Tests for small URL helpers."""

    def test_ensure_trailing_slash(self):
        assert ensure_trailing_slash("https://example.com") == "https://example.com/"
        assert ensure_trailing_slash("a/") == "a/"
        assert ensure_trailing_slash("") == ""

    def test_join_url(self):
        assert join_url("https://img.example.com/assets", "/page/") == (
            "https://img.example.com/assets/page/"
        )
        assert join_url("", "/page/") == "/page/"
        assert join_url("https://x.com/a/", "") == "https://x.com/a/"

    def test_to_absolute_remote(self):
        assert to_absolute_remote("//cdn.example.com/a.png") == "https://cdn.example.com/a.png"
        assert to_absolute_remote("http://x.com/a.png") == "http://x.com/a.png"

    def test_is_absolute_url(self):
        assert is_absolute_url("https://x.com/")
        assert is_absolute_url("//x.com/")
        assert not is_absolute_url("images/")

    def test_has_special_scheme(self):
        assert has_special_scheme("DATA:image/png;base64,AA")
        assert not has_special_scheme("https://x.com/a.png")


class TestGetUrlPath:
    """Tests for get_url_path."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://example.com/page", "/page/"),
            ("https://example.com/page/", "/page/"),
            ("https://example.com/post/index.html", "/post/"),
            ("https://example.com/", "/"),
            ("https://example.com", "/"),
            ("https://example.com/page?x=1#y", "/page/"),
            ("/docs/page", "/docs/page/"),
        ],
    )
    def test_directory_of_page(self, url, expected):
        assert get_url_path(url) == expected

    def test_empty(self):
        assert get_url_path("") == ""


class TestApplyOutputUrlMode:
    """Tests for apply_output_url_mode."""

    def test_absolute_is_identity(self):
        assert apply_output_url_mode("https://x.com/a.png", "absolute") == "https://x.com/a.png"

    def test_protocol_relative(self):
        assert apply_output_url_mode("https://x.com/a.png", "protocol-relative") == "//x.com/a.png"
        assert apply_output_url_mode("images/a.png", "protocol-relative") == "images/a.png"

    def test_path_only(self):
        assert apply_output_url_mode("https://x.com/a/b.png?v=1#t", "path-only") == "/a/b.png?v=1#t"
        assert apply_output_url_mode("//x.com/a.png", "path-only") == "/a.png"
        assert apply_output_url_mode("https://x.com", "path-only") == "/"

    def test_path_only_leaves_local_paths(self):
        assert apply_output_url_mode("images/a.png", "path-only") == "images/a.png"

    def test_path_only_reencodes_path(self):
        assert apply_output_url_mode("https://x.com/p/a b.png", "path-only") == "/p/a%20b.png"
        assert apply_output_url_mode("https://x.com/p/a%20b.png", "path-only") == "/p/a%20b.png"
        assert apply_output_url_mode("https://x.com/p/@2x,(1).png", "path-only") == "/p/@2x,(1).png"
        assert apply_output_url_mode("https://x.com/p/ねこ.png", "path-only") == (
            "/p/%E3%81%AD%E3%81%93.png"
        )

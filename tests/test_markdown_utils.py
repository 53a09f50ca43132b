"""Tests for mdimgsize markdown utilities."""

from mdimgsize import markdown_utils
from mdimgsize.config import RenderOptions


class TestParseMarkdownFile:
    """Tests for parse_markdown_file() function."""

    def test_reads_frontmatter(self, tmp_path):
        page = tmp_path / "page.md"
        page.write_text("---\nurl: https://example.com/\n---\n# Title\n", encoding="utf-8")

        metadata, content = markdown_utils.parse_markdown_file(page)

        assert metadata == {"url": "https://example.com/"}
        assert content.strip() == "# Title"

    def test_without_frontmatter(self, tmp_path):
        page = tmp_path / "page.md"
        page.write_text("Just text", encoding="utf-8")

        metadata, content = markdown_utils.parse_markdown_file(page)

        assert metadata == {}
        assert content == "Just text"


class TestRenderMarkdown:
    """Tests for render_markdown() function."""

    def test_renders_with_frontmatter(self):
        html = markdown_utils.render_markdown(
            "![cat](cat.png)",
            frontmatter={"url": "https://example.com/post/"},
            options={"suppress_errors": "all"},
        )
        assert 'src="https://example.com/post/cat.png"' in html

    def test_standard_extensions_enabled(self):
        html = markdown_utils.render_markdown("| a |\n|---|\n| b |")
        assert "<table>" in html

    def test_frontmatter_does_not_leak_between_renders(self):
        options = RenderOptions(suppress_errors="all")
        markdown_utils.render_markdown(
            "![cat](cat.png)", frontmatter={"url": "https://example.com/"}, options=options
        )
        html = markdown_utils.render_markdown("![cat](cat.png)", options=options)
        assert 'src="cat.png"' in html

    def test_converter_cached_per_options(self):
        options = RenderOptions(lazy_load=True)
        first = markdown_utils.get_markdown_converter(options)
        second = markdown_utils.get_markdown_converter(RenderOptions(lazy_load=True))
        assert first is second
        assert markdown_utils.get_markdown_converter(RenderOptions()) is not first

    def test_sizes_from_md_path(self, make_image, tmp_path):
        make_image("images/cat.png", 64, 32)
        html = markdown_utils.render_markdown(
            "![cat](images/cat.png)", md_path=tmp_path / "page.md"
        )
        assert 'width="64"' in html
        assert 'height="32"' in html


class TestRenderMarkdownFile:
    """Tests for render_markdown_file() function."""

    def test_uses_file_frontmatter_and_location(self, make_image, tmp_path):
        make_image("images/cat.png", 20, 10)
        page = tmp_path / "page.md"
        page.write_text(
            "---\nurl: https://example.com/post/\nlid: images/\n---\n![cat](images/cat.png)\n",
            encoding="utf-8",
        )

        html = markdown_utils.render_markdown_file(page)

        assert 'src="https://example.com/post/cat.png"' in html
        assert 'width="20"' in html
        assert 'height="10"' in html


class TestRenderDirectory:
    """Tests for render_directory() function."""

    def test_mirrors_tree(self, tmp_path):
        source = tmp_path / "src"
        (source / "notes").mkdir(parents=True)
        (source / "index.md").write_text("# Home")
        (source / "notes" / "page.md").write_text("# Page")
        (source / "notes" / "readme.txt").write_text("skip")

        count = markdown_utils.render_directory(source, tmp_path / "out")

        assert count == 2
        assert (tmp_path / "out" / "index.html").read_text() == "<h1>Home</h1>"
        assert (tmp_path / "out" / "notes" / "page.html").exists()
        assert not (tmp_path / "out" / "notes" / "readme.html").exists()

    def test_only_given_files(self, tmp_path):
        source = tmp_path / "src"
        source.mkdir()
        (source / "a.md").write_text("a")
        (source / "b.md").write_text("b")

        count = markdown_utils.render_directory(source, tmp_path / "out", files=[source / "b.md"])

        assert count == 1
        assert not (tmp_path / "out" / "a.html").exists()
        assert (tmp_path / "out" / "b.html").exists()

    def test_skips_files_outside_source(self, tmp_path, capsys):
        source = tmp_path / "src"
        source.mkdir()
        outside = tmp_path / "outside.md"
        outside.write_text("x")

        count = markdown_utils.render_directory(source, tmp_path / "out", files=[outside])

        assert count == 0
        assert "is outside" in capsys.readouterr().err

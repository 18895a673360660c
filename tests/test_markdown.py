"""Tests for the markdown compiler pipeline."""

from pathlib import Path

import pytest
from markdown_it.token import Token

from docgen.parser.markdown import (
    CompileContext,
    CompileError,
    CompileOptions,
    MarkdownCompiler,
    compile_markdown,
    is_markdown_file,
    parse_markdown_file,
    parse_markdown_with_frontmatter,
)


class TestBasicRendering:
    """Core markdown and GFM rendering."""

    def test_heading_becomes_anchored_h1(self):
        """A level-1 heading renders as h1 with a slug id and self-link."""
        result = compile_markdown("# Hello World")

        assert '<h1 id="hello-world"><a href="#hello-world">Hello World</a></h1>' in result.code
        assert "<section>" in result.code
        assert "</section>" in result.code

    def test_empty_document(self):
        """Empty input compiles to empty html with an empty TOC."""
        result = compile_markdown("")

        assert result.code == ""
        assert result.data == {"toc": []}

    def test_table(self):
        """Pipe tables are recognized."""
        result = compile_markdown("| a | b |\n|---|---|\n| 1 | 2 |\n")

        assert "<table>" in result.code
        assert "<td>1</td>" in result.code

    def test_strikethrough(self):
        """Double tildes become a strikethrough element."""
        assert "<s>gone</s>" in compile_markdown("~~gone~~").code

    def test_autolink(self):
        """Bare URLs are linked."""
        result = compile_markdown("Visit https://example.com today")

        assert '<a href="https://example.com">https://example.com</a>' in result.code

    def test_task_list(self):
        """Checkbox list items render as task items."""
        result = compile_markdown("- [ ] todo\n- [x] done\n")

        assert "task-list-item" in result.code
        assert 'type="checkbox"' in result.code

    def test_definition_list(self):
        """Term / definition pairs render as dl."""
        result = compile_markdown("Term\n: The definition\n")

        assert "<dl>" in result.code
        assert "<dt>Term</dt>" in result.code

    def test_raw_html_passthrough(self):
        """Inline HTML blocks are emitted untouched."""
        result = compile_markdown('<div class="custom">hi</div>\n')

        assert '<div class="custom">hi</div>' in result.code

    def test_leading_indented_code(self):
        """An indented block at the very start is code, not a paragraph."""
        result = compile_markdown("    x = 1\n")

        assert "<pre><code>x = 1\n</code></pre>" in result.code

    def test_indented_code_after_frontmatter(self):
        """The frontmatter split keeps the body's indentation."""
        result = compile_markdown("---\ntitle: T\n---\n    x = 1\n")

        assert "<pre><code>x = 1\n</code></pre>" in result.code
        assert result.data["title"] == "T"


# ─────────────────────────────────────────────────────────────────────────────
# Fenced code
# ─────────────────────────────────────────────────────────────────────────────


class TestCodeLanguages:
    """Full language names on fenced code blocks."""

    @pytest.mark.parametrize(
        "lang,expected",
        [
            ("ts", "typescript"),
            ("py", "python"),
            ("yml", "YAML"),
            ("cpp", "C++"),
        ],
    )
    def test_short_names_expanded(self, lang: str, expected: str):
        """Known short names get their long form as data-language."""
        result = compile_markdown(f"```{lang}\ncode\n```\n")

        assert f'data-language="{expected}"' in result.code
        assert f'class="language-{lang}"' in result.code

    def test_unknown_name_kept(self):
        """Unmapped languages are labelled as written."""
        result = compile_markdown("```rust {.numbered}\nfn main() {}\n```\n")

        assert 'data-language="rust"' in result.code

    def test_no_language(self):
        """Fences without info get no label."""
        result = compile_markdown("```\nplain\n```\n")

        assert "data-language" not in result.code
        assert "<pre><code>plain\n</code></pre>" in result.code

    def test_parsed_tokens_untouched(self):
        """The stage copies fence tokens rather than editing them."""
        from docgen.parser.markdown import create_parser, expand_code_languages

        tokens = create_parser().parse("```ts\nx\n```\n", {})
        context = CompileContext(options=CompileOptions())

        result = expand_code_languages(tokens, context)

        assert tokens[0].attrs == {}
        assert result[0].attrs == {"data-language": "typescript"}


# ─────────────────────────────────────────────────────────────────────────────
# Frontmatter and data
# ─────────────────────────────────────────────────────────────────────────────


class TestCompileData:
    """Frontmatter merge and TOC data."""

    def test_frontmatter_in_data_not_html(self):
        """Frontmatter attributes land in data; the block is not rendered."""
        result = compile_markdown("---\ntitle: My Page\ntags: [a]\n---\n\n## Intro\n")

        assert result.data["title"] == "My Page"
        assert result.data["tags"] == ["a"]
        assert "title:" not in result.code
        assert "<hr" not in result.code

    def test_toc_in_data(self):
        """Headings below level 1 are listed with numbering."""
        content = "# Title\n\n## Intro\n\n### Details\n\n## Usage\n"

        toc = compile_markdown(content).data["toc"]

        assert [entry["value"] for entry in toc] == ["Intro", "Details", "Usage"]
        assert [entry["numbering"] for entry in toc] == [[1], [1, 1], [2]]
        assert toc[0]["href"] == "#intro"

    def test_duplicate_headings_match_toc(self):
        """Repeated headings get -1 suffixes, identical in ids and TOC."""
        result = compile_markdown("## Setup\n\n## Setup\n")

        assert [entry["href"] for entry in result.data["toc"]] == ["#setup", "#setup-1"]
        assert 'id="setup"' in result.code
        assert 'id="setup-1"' in result.code

    def test_parse_markdown_with_frontmatter(self):
        """The html/meta view mirrors code/data."""
        page = parse_markdown_with_frontmatter("---\ntitle: T\n---\n# T\n")

        assert page.meta["title"] == "T"
        assert "<h1" in page.html


# ─────────────────────────────────────────────────────────────────────────────
# Wikirefs
# ─────────────────────────────────────────────────────────────────────────────


class TestWikirefs:
    """[[Name]] references in compiled output."""

    def test_default_placeholder_link(self):
        """Without a resolver references point at the placeholder href."""
        result = compile_markdown("See [[Some Page]].")

        assert '<a class="wikilink" href="/docs" data-href="Some Page">Some Page</a>' in result.code

    def test_alias(self):
        """The text after a pipe is the link text."""
        result = compile_markdown("[[target|Shown]]")

        assert ">Shown</a>" in result.code
        assert 'data-href="target"' in result.code

    def test_custom_resolver(self):
        """A configured resolver decides href and text."""
        options = CompileOptions(wikiref_resolver=lambda target: (f"/wiki/{target.lower()}", target.upper()))

        result = compile_markdown("[[Page]]", options)

        assert 'href="/wiki/page"' in result.code
        assert ">PAGE</a>" in result.code

    def test_missing_marker_left_as_text(self):
        """Unresolved-UUID markers are not turned into links."""
        result = compile_markdown("[[MISSING UUID: 1234]]")

        assert "wikilink" not in result.code
        assert "[[MISSING UUID: 1234]]" in result.code


# ─────────────────────────────────────────────────────────────────────────────
# Stages and errors
# ─────────────────────────────────────────────────────────────────────────────


class TestMarkdownCompiler:
    """Stage registration and error wrapping."""

    def test_register_stage_before_named(self):
        """A stage registered before anchors sees headings without ids."""
        seen: list[dict] = []

        def capture(tokens: list[Token], context: CompileContext) -> list[Token]:
            seen.extend(dict(t.attrs) for t in tokens if t.type == "heading_open")
            return tokens

        compiler = MarkdownCompiler()
        compiler.register_stage(capture, before="anchor_headings")
        compiler.compile("## A\n")

        assert seen == [{}]

    def test_register_stage_appends(self):
        """Without before, the stage runs last and can add data."""

        def count_headings(tokens: list[Token], context: CompileContext) -> list[Token]:
            context.data["headings"] = sum(t.type == "heading_open" for t in tokens)
            return tokens

        compiler = MarkdownCompiler()
        compiler.register_stage(count_headings)

        assert compiler.compile("# A\n## B\n").data["headings"] == 2

    def test_register_stage_unknown(self):
        """Naming an unknown stage is an error."""
        with pytest.raises(ValueError):
            MarkdownCompiler().register_stage(lambda t, c: t, before="nope")

    def test_failing_stage_is_compile_error(self):
        """Exceptions from stages are wrapped with the source path."""

        def boom(tokens: list[Token], context: CompileContext) -> list[Token]:
            raise RuntimeError("kaput")

        compiler = MarkdownCompiler(stages=[boom])

        with pytest.raises(CompileError) as exc_info:
            compiler.compile("text", source_path="docs/page.md")

        assert exc_info.value.path == "docs/page.md"
        assert "boom" in str(exc_info.value)
        assert "kaput" in str(exc_info.value)

    def test_diagram_error_without_fallback(self, tmp_path: Path):
        """With fallback off a broken diagram fails the compile."""
        options = CompileOptions(base_dir=tmp_path, error_fallback=False)

        with pytest.raises(CompileError, match="Failed to process BPMN file"):
            compile_markdown('::bpmn{src="missing.bpmn"}\n', options)

    def test_stages_do_not_mutate_input(self):
        """The default stages leave the parsed token list alone."""
        from docgen.parser.markdown import DEFAULT_STAGES, create_parser

        tokens = create_parser().parse("# A\n\n## B\n", {})
        types_before = [t.type for t in tokens]
        context = CompileContext(options=CompileOptions())

        for stage in DEFAULT_STAGES:
            stage(tokens, context)

        assert [t.type for t in tokens] == types_before
        assert all("id" not in t.attrs for t in tokens if t.type == "heading_open")


class TestFiles:
    """File-level helpers."""

    def test_parse_markdown_file(self, tmp_path: Path):
        """Files are read and compiled."""
        path = tmp_path / "page.md"
        path.write_text("---\ntitle: File\n---\n# File\n", encoding="utf-8")

        page = parse_markdown_file(path)

        assert page.meta["title"] == "File"
        assert 'id="file"' in page.html

    def test_missing_file(self, tmp_path: Path):
        """Unreadable files raise CompileError naming the path."""
        with pytest.raises(CompileError) as exc_info:
            parse_markdown_file(tmp_path / "nope.md")

        assert exc_info.value.path == tmp_path / "nope.md"

    @pytest.mark.parametrize(
        "name, expected",
        [("a.md", True), ("a.svx", True), ("A.MDX", True), ("a.txt", False), ("a.ts", False)],
    )
    def test_is_markdown_file(self, name: str, expected: bool):
        """Markdown-family suffixes are recognized case-insensitively."""
        assert is_markdown_file(name) is expected

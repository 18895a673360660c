"""Directive-aware markdown to HTML compiler.

Documents go through a fixed, linear pipeline:

1. frontmatter extraction, then markdown-it parsing of the body (GFM tables,
   strikethrough, autolinks, task lists, definition lists, ``[[Name]]``
   references and directive syntax are recognized here)
2. frontmatter merge into the document data
3. section wrapping of top-level headings
4. diagram directives
5. remaining (generic) directives
6. table-of-contents extraction
7. heading slugs and self-link anchors
8. full language names on fenced code
9. HTML rendering, raw HTML passed through

Every stage takes the token stream and returns a new one; none of them
mutate the list they iterate. Extra stages can be registered on a
MarkdownCompiler.
"""

from __future__ import annotations

import functools
import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from markdown_it import MarkdownIt
from markdown_it.token import Token
from mdit_py_plugins.deflist import deflist_plugin
from mdit_py_plugins.tasklists import tasklists_plugin

from ..config import MARKDOWN_EXTENSIONS, MAX_DIAGRAM_FILE_SIZE
from ..frontmatter import extract_frontmatter
from ..models import CompileResult, ParsedMarkdown
from .diagram import DiagramCache, DiagramError, render_diagrams
from .directives import directives_plugin, lower_directives
from .toc import anchor_headings, extract_toc, wrap_sections
from .wikirefs import ENV_RESOLVER_KEY, WikirefResolver, default_wikiref_resolver, wikirefs_plugin

log = logging.getLogger(__name__)


class CompileError(Exception):
    """Raised when a document cannot be compiled."""

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


@dataclass
class CompileOptions:
    """Per-compile settings.

    Attributes:
        base_dir: Directory that relative diagram ``src`` paths resolve
            against. Defaults to the resolved base path.
        error_fallback: Render failed diagrams as an inline error block
            instead of failing the compile.
        diagram_cache: Cache for rendered diagrams (process-wide TTL cache
            when None).
        wikiref_resolver: Maps a ``[[Name]]`` target to (href, text).
        toc_skip_levels: Heading levels left out of the table of contents.
        max_diagram_file_size: Largest diagram file accepted, in bytes.
        diagram_directive: Directive name handled by the diagram stage.
    """

    base_dir: Path | None = None
    error_fallback: bool = True
    diagram_cache: DiagramCache | None = None
    wikiref_resolver: WikirefResolver | None = None
    toc_skip_levels: tuple[int, ...] = (1,)
    max_diagram_file_size: int = MAX_DIAGRAM_FILE_SIZE
    diagram_directive: str = "bpmn"


@dataclass
class CompileContext:
    """State shared by the stages of one compile."""

    options: CompileOptions
    env: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    frontmatter: dict[str, Any] = field(default_factory=dict)
    source_path: Path | None = None


Stage = Callable[[list[Token], CompileContext], list[Token]]


@functools.cache
def create_parser() -> MarkdownIt:
    """The shared markdown-it parser with all syntax extensions enabled."""
    md = MarkdownIt("commonmark", {"html": True, "linkify": True})
    md.enable(["table", "strikethrough", "linkify"])
    md.use(deflist_plugin)
    md.use(tasklists_plugin)
    md.use(wikirefs_plugin)
    md.use(directives_plugin)
    return md


def merge_frontmatter(tokens: list[Token], context: CompileContext) -> list[Token]:
    """Expose the frontmatter attributes as document data."""
    context.data.update(context.frontmatter)
    return tokens


# Fence info short names and the language label shown for them
CODE_LANGUAGE_NAMES = {
    "ts": "typescript",
    "js": "javascript",
    "py": "python",
    "sh": "bash",
    "md": "markdown",
    "yml": "YAML",
    "yaml": "YAML",
    "json": "JSON",
    "html": "HTML",
    "css": "CSS",
    "scss": "SCSS",
    "toml": "TOML",
    "cpp": "C++",
    "cs": "C#",
    "asm": "assembly",
}


def expand_code_languages(tokens: list[Token], context: CompileContext) -> list[Token]:
    """Label fenced code with its full language name.

    Adds ``data-language`` to the ``<code>`` element; the ``language-*`` class
    keeps the name as written.
    """
    result: list[Token] = []
    for token in tokens:
        lang = token.info.split(maxsplit=1)[0] if token.type == "fence" and token.info.strip() else ""
        if lang:
            attrs = dict(token.attrs)
            attrs["data-language"] = CODE_LANGUAGE_NAMES.get(lang, lang)
            result.append(token.copy(attrs=attrs))
        else:
            result.append(token)
    return result


DEFAULT_STAGES: tuple[Stage, ...] = (
    merge_frontmatter,
    wrap_sections,
    render_diagrams,
    lower_directives,
    extract_toc,
    anchor_headings,
    expand_code_languages,
)


class MarkdownCompiler:
    """Runs documents through an ordered list of token-stream stages."""

    def __init__(self, stages: Iterable[Stage] | None = None) -> None:
        self.stages: list[Stage] = list(DEFAULT_STAGES if stages is None else stages)

    def register_stage(self, stage: Stage, before: Stage | str | None = None) -> None:
        """Add a stage, by default just before rendering.

        Args:
            stage: The stage function.
            before: An existing stage (or its name) to insert ahead of.

        Raises:
            ValueError: If before names no registered stage.
        """
        if before is None:
            self.stages.append(stage)
            return

        for index, existing in enumerate(self.stages):
            if existing is before or getattr(existing, "__name__", None) == before:
                self.stages.insert(index, stage)
                return
        raise ValueError(f"No stage named {before!r}")

    def compile(
        self,
        content: str,
        options: CompileOptions | None = None,
        source_path: str | os.PathLike[str] | None = None,
    ) -> CompileResult:
        """Compile markdown text to HTML plus document data.

        Raises:
            CompileError: If parsing, a stage or rendering fails. Diagram
                failures only raise when error_fallback is off.
        """
        options = options or CompileOptions()
        path = Path(source_path) if source_path is not None else None
        label = str(path) if path is not None else "<string>"

        attributes, body = extract_frontmatter(content)
        env = {ENV_RESOLVER_KEY: options.wikiref_resolver or default_wikiref_resolver}
        context = CompileContext(options=options, env=env, frontmatter=attributes, source_path=path)

        md = create_parser()
        try:
            tokens = md.parse(body, env)
        except Exception as e:
            raise CompileError(label, f"Failed to parse markdown: {e}") from e

        for stage in self.stages:
            try:
                tokens = stage(tokens, context)
            except DiagramError as e:
                raise CompileError(label, str(e)) from e
            except CompileError:
                raise
            except Exception as e:
                name = getattr(stage, "__name__", repr(stage))
                raise CompileError(label, f"Stage {name} failed: {e}") from e

        try:
            html = md.renderer.render(tokens, md.options, env)
        except Exception as e:
            raise CompileError(label, f"Failed to render HTML: {e}") from e

        data = dict(context.data)
        data.setdefault("toc", [])
        return CompileResult(code=html, data=data)


_default_compiler = MarkdownCompiler()


def compile_markdown(
    content: str,
    options: CompileOptions | None = None,
    source_path: str | os.PathLike[str] | None = None,
) -> CompileResult:
    """Compile markdown text with the default stages."""
    return _default_compiler.compile(content, options, source_path)


def parse_markdown_with_frontmatter(
    content: str,
    options: CompileOptions | None = None,
    source_path: str | os.PathLike[str] | None = None,
) -> ParsedMarkdown:
    """Compile markdown text into html and meta."""
    result = compile_markdown(content, options, source_path)
    return ParsedMarkdown(html=result.code, meta=result.data)


def parse_markdown_file(
    path: str | os.PathLike[str],
    options: CompileOptions | None = None,
) -> ParsedMarkdown:
    """Read and compile a markdown file.

    Raises:
        CompileError: If the file cannot be read or compiled.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CompileError(path, f"Cannot read file: {e}") from e

    log.debug("Compiling %s", path)
    return parse_markdown_with_frontmatter(raw, options, path)


def is_markdown_file(filename: str | os.PathLike[str]) -> bool:
    """True for the markdown-family suffixes (.md, .svx, .mdx)."""
    return Path(filename).suffix.lower() in MARKDOWN_EXTENSIONS

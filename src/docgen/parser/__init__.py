"""Markdown compilation and source-code doc extraction."""

from .diagram import DiagramError, NullDiagramCache, TTLDiagramCache
from .markdown import (
    CompileError,
    CompileOptions,
    MarkdownCompiler,
    compile_markdown,
    is_markdown_file,
    parse_markdown_file,
    parse_markdown_with_frontmatter,
)
from .pydoc import parse_python_docs
from .tsdoc import parse_typescript_docs

__all__ = [
    "CompileError",
    "CompileOptions",
    "DiagramError",
    "MarkdownCompiler",
    "NullDiagramCache",
    "TTLDiagramCache",
    "compile_markdown",
    "is_markdown_file",
    "parse_markdown_file",
    "parse_markdown_with_frontmatter",
    "parse_python_docs",
    "parse_typescript_docs",
]

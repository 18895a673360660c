"""docgen: markdown compilation, code doc extraction and UUID cross-linking."""

__version__ = "0.4.0"

from .content import (  # noqa: E402
    DocGenPreprocessor,
    get_all_sites,
    get_entries,
    get_frontmatter,
    get_page_by_slug,
    get_site_toc,
    resolve_links_in_content,
    track_backlinks,
)
from .frontmatter import build_frontmatter, extract_frontmatter  # noqa: E402
from .parser import CompileError, CompileOptions, compile_markdown  # noqa: E402

__all__ = [
    "__version__",
    "CompileError",
    "CompileOptions",
    "DocGenPreprocessor",
    "build_frontmatter",
    "compile_markdown",
    "extract_frontmatter",
    "get_all_sites",
    "get_entries",
    "get_frontmatter",
    "get_page_by_slug",
    "get_site_toc",
    "resolve_links_in_content",
    "track_backlinks",
]

"""Content loading for site generators.

These functions tie the compiler, the UUID index and the link tools
together into the calls a site generator makes: list entries, build a site
TOC, load every page or a single page by slug. The DocGenPreprocessor
wraps the compiler for build pipelines that must never fail on one file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from .backlinks import build_backlink_index, write_backlink_index
from .config import PathConfig
from .discovery import gather_bounded, glob_files
from .frontmatter import extract_frontmatter
from .link_resolver import resolve_uuid_links
from .models import BacklinkEntry, CompileResult, Entry, ParsedMarkdown, UUIDEntry
from .parser.markdown import (
    CompileError,
    CompileOptions,
    compile_markdown,
    is_markdown_file,
    parse_markdown_file,
)
from .uuid_index import build_uuid_index

log = logging.getLogger(__name__)


def _uuids_by_file(index: dict[str, UUIDEntry]) -> dict[str, str]:
    return {entry.file_path: uuid for uuid, entry in index.items()}


def get_frontmatter(path: str | os.PathLike[str]) -> ParsedMarkdown:
    """Frontmatter of a file, without compiling the body."""
    attributes, _ = extract_frontmatter(Path(path).read_text(encoding="utf-8"))
    return ParsedMarkdown(html="", meta=attributes)


async def get_entries(
    content_path: str | os.PathLike[str],
    config: PathConfig | None = None,
) -> list[Entry]:
    """Slug and uuid of every content file under content_path."""
    config = config or PathConfig.resolve()
    uuids = _uuids_by_file(await build_uuid_index(content_path))
    files = glob_files(Path(content_path), config.file_patterns())
    return [Entry(slug=config.path_to_slug(path), uuid=uuids.get(str(path))) for path in files]


async def get_site_toc(
    content_path: str | os.PathLike[str],
    config: PathConfig | None = None,
    *,
    strict: bool = False,
) -> list[ParsedMarkdown]:
    """Frontmatter of every content file, with ``slug`` and ``uuid`` added.

    Unreadable files are skipped (logged) unless strict is set.
    """
    config = config or PathConfig.resolve()
    uuids = _uuids_by_file(await build_uuid_index(content_path))
    files = glob_files(Path(content_path), config.file_patterns())

    def load(path: Path) -> ParsedMarkdown | None:
        try:
            page = get_frontmatter(path)
        except (OSError, UnicodeDecodeError) as e:
            if strict:
                raise
            log.warning("Skipping %s in site TOC: %s", path, e)
            return None
        page.meta["slug"] = config.path_to_slug(path)
        page.meta["uuid"] = uuids.get(str(path))
        return page

    pages = await gather_bounded(load, files)
    return [page for page in pages if page is not None]


async def get_all_sites(
    path: str | os.PathLike[str],
    config: PathConfig | None = None,
    options: CompileOptions | None = None,
    *,
    strict: bool = False,
) -> list[ParsedMarkdown]:
    """Compile every content file under path.

    Each page's meta gets a ``slug``. Documents that fail to compile are
    skipped (logged) unless strict is set, in which case the first
    CompileError propagates.
    """
    config = config or PathConfig.resolve()
    files = glob_files(Path(path), config.file_patterns())

    def load(file: Path) -> ParsedMarkdown | None:
        try:
            page = parse_markdown_file(file, options)
        except CompileError as e:
            if strict:
                raise
            log.warning("Skipping page: %s", e)
            return None
        page.meta["slug"] = config.path_to_slug(file)
        return page

    pages = await gather_bounded(load, files)
    return [page for page in pages if page is not None]


def get_page_by_slug(
    content_root: str | os.PathLike[str],
    slug: str,
    options: CompileOptions | None = None,
) -> ParsedMarkdown:
    """Compile ``<content_root>/<slug>.md``.

    Relative diagram sources resolve against content_root unless the options
    name another base directory.

    Raises:
        CompileError: If the page does not exist or fails to compile.
    """
    root = Path(content_root)
    options = options or CompileOptions()
    if options.base_dir is None:
        options = replace(options, base_dir=root)

    page = parse_markdown_file(root / f"{slug.strip('/')}.md", options)
    page.meta["slug"] = slug
    return page


async def resolve_links_in_content(
    content_dir: str | os.PathLike[str],
    cache_path: str | os.PathLike[str] | None = None,
) -> list[Path]:
    """Resolve ``[[uuid:...]]`` references in place; returns rewritten files."""
    return await resolve_uuid_links(content_dir, cache_path)


async def track_backlinks(
    content_dir: str | os.PathLike[str],
    out_path: str | os.PathLike[str] | None = None,
) -> dict[str, BacklinkEntry]:
    """Build the backlink index and, when out_path is given, write it."""
    index = await build_backlink_index(content_dir)
    if out_path:
        write_backlink_index(index, out_path)
    return index


class DocGenPreprocessor:
    """Markup preprocessor for build pipelines.

    ``markup`` returns None for files it does not handle, so other
    preprocessors can take them, and never raises: a failed compile hands
    back the original content with empty data.
    """

    name = "docgen"

    def __init__(self, options: CompileOptions | None = None) -> None:
        self.options = options or CompileOptions()

    def markup(self, content: str, filename: str) -> CompileResult | None:
        if not is_markdown_file(filename):
            return None
        try:
            return compile_markdown(content, self.options, filename)
        except Exception as e:
            log.error("docgen processing failed for %s: %s", filename, e)
            return CompileResult(code=content, data={})

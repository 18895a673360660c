"""Rewrite ``[[uuid:<id>]]`` references into relative markdown links."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from .config import LINK_SCAN_EXTENSIONS
from .discovery import discover_files, gather_bounded
from .models import UUIDEntry
from .parser.wikirefs import WikirefResolver, default_wikiref_resolver
from .patterns import UUID_TOKEN_PATTERN, missing_uuid_marker
from .uuid_index import build_uuid_index

log = logging.getLogger(__name__)

# Link text used when the target has no title
DEFAULT_LINK_TITLE = "Link"


def relative_link(source_file: str | os.PathLike[str], target_file: str | os.PathLike[str]) -> str:
    """Forward-slash path from source_file's directory to target_file.

    Always starts with a relative marker (``./`` or ``../``).
    """
    relative = os.path.relpath(os.fspath(target_file), os.path.dirname(os.fspath(source_file)))
    relative = relative.replace("\\", "/")
    if not relative.startswith("."):
        relative = f"./{relative}"
    return relative


def _lookup(index: Mapping[str, UUIDEntry], uuid: str) -> UUIDEntry | None:
    entry = index.get(uuid)
    if entry is not None:
        return entry
    # Hex is case-insensitive
    lowered = uuid.lower()
    return next((e for key, e in index.items() if key.lower() == lowered), None)


def replace_uuid_links(
    content: str,
    source_file: str | os.PathLike[str],
    index: Mapping[str, UUIDEntry],
) -> str:
    """Replace every reference token in content.

    Known UUIDs become ``[title](relative/path)``; unknown ones become the
    literal ``[[MISSING UUID: <uuid>]]`` marker.
    """
    missing = 0

    def replace(match) -> str:
        nonlocal missing
        uuid = match.group(1)
        entry = _lookup(index, uuid)
        if entry is None:
            missing += 1
            return missing_uuid_marker(uuid)
        title = entry.title or DEFAULT_LINK_TITLE
        return f"[{title}]({relative_link(source_file, entry.file_path)})"

    updated = UUID_TOKEN_PATTERN.sub(replace, content)
    if missing:
        log.debug("%s: %d unresolved UUID reference(s)", source_file, missing)
    return updated


def _resolve_file(path: Path, index: Mapping[str, UUIDEntry]) -> bool:
    content = path.read_text(encoding="utf-8")
    updated = replace_uuid_links(content, path, index)
    if updated == content:
        return False
    path.write_text(updated, encoding="utf-8")
    return True


async def resolve_uuid_links(
    content_dir: str | os.PathLike[str],
    cache_path: str | os.PathLike[str] | None = None,
    *,
    max_concurrency: int | None = None,
) -> list[Path]:
    """Resolve reference tokens in place across content_dir.

    Builds a fresh UUID index (writing it to cache_path when given), then
    rewrites each md/svx/ts/py file whose content changes. Files with nothing
    to resolve are not touched, so a second run writes nothing.

    Returns:
        The files that were rewritten, in sorted order.
    """
    index = await build_uuid_index(content_dir, cache_path, max_concurrency=max_concurrency)
    files = discover_files(Path(content_dir), LINK_SCAN_EXTENSIONS)

    def resolve(path: Path) -> bool:
        try:
            return _resolve_file(path, index)
        except Exception as e:
            log.warning("Skipping %s while resolving links: %s", path, e)
            return False

    changed = await gather_bounded(resolve, files, max_concurrency)
    rewritten = [path for path, was_changed in zip(files, changed) if was_changed]
    log.info("Resolved UUID links in %d of %d files", len(rewritten), len(files))
    return rewritten


def uuid_wikiref_resolver(
    index: Mapping[str, UUIDEntry],
    source_file: str | os.PathLike[str],
) -> WikirefResolver:
    """A ``[[Name]]`` resolver that understands ``[[uuid:<id>]]`` targets.

    Other targets fall through to the default placeholder link.
    """

    def resolve(target: str) -> tuple[str, str]:
        if target.lower().startswith("uuid:"):
            entry = _lookup(index, target[5:].strip())
            if entry is not None:
                return relative_link(source_file, entry.file_path), entry.title or DEFAULT_LINK_TITLE
        return default_wikiref_resolver(target)

    return resolve

"""Backlink index: who references each UUID."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from .config import LINK_SCAN_EXTENSIONS
from .discovery import discover_files, gather_bounded
from .models import BacklinkEntry
from .patterns import UUID_TOKEN_PATTERN

log = logging.getLogger(__name__)


def find_references(content: str) -> list[str]:
    """UUIDs of every reference token in content, one per occurrence."""
    return [match.group(1) for match in UUID_TOKEN_PATTERN.finditer(content)]


def _scan_file(path: Path) -> list[str]:
    try:
        return find_references(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        log.warning("Skipping %s while collecting backlinks: %s", path, e)
        return []


async def build_backlink_index(
    content_dir: str | os.PathLike[str],
    *,
    max_concurrency: int | None = None,
) -> dict[str, BacklinkEntry]:
    """Count ``[[uuid:<id>]]`` tokens across every md/svx/ts/py file.

    Targets are not checked against the UUID index. Each occurrence counts
    and appends its file to sources, so a file referencing the same UUID
    twice appears twice.
    """
    files = discover_files(Path(content_dir), LINK_SCAN_EXTENSIONS)
    references = await gather_bounded(_scan_file, files, max_concurrency)

    index: dict[str, BacklinkEntry] = {}
    for path, uuids in zip(files, references):
        for uuid in uuids:
            entry = index.setdefault(uuid, BacklinkEntry())
            entry.count += 1
            entry.sources.append(str(path))

    log.info("Collected backlinks for %d UUIDs from %d files", len(index), len(files))
    return index


def write_backlink_index(index: dict[str, BacklinkEntry], out_path: str | os.PathLike[str]) -> None:
    """Persist the backlink index as JSON."""
    payload = {uuid: entry.model_dump() for uuid, entry in index.items()}
    Path(out_path).write_text(json.dumps(payload, indent=2), encoding="utf-8")

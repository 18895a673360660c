"""UUID index: which file owns each stable identifier."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from .config import LINK_SCAN_EXTENSIONS, MARKDOWN_EXTENSIONS
from .discovery import discover_files, gather_bounded
from .frontmatter import extract_frontmatter
from .models import DocType, ExtractedDoc, UUIDEntry
from .parser.pydoc import parse_python_docs
from .parser.tsdoc import parse_typescript_docs

log = logging.getLogger(__name__)


def _entries_from_docs(docs: list[ExtractedDoc], doc_type: DocType) -> list[UUIDEntry]:
    return [
        UUIDEntry(uuid=doc.uuid, file_path=doc.file_path, type=doc_type, title=doc.name)
        for doc in docs
        if doc.uuid
    ]


def index_file(path: Path) -> list[UUIDEntry]:
    """UUID entries declared by one file, dispatched on its extension.

    Markdown-family files contribute their frontmatter ``uuid`` (titled by the
    frontmatter ``title``, or ""); TypeScript and Python files contribute
    every extracted doc that carries a uuid, titled by the symbol name.
    """
    suffix = path.suffix.lower()

    if suffix in MARKDOWN_EXTENSIONS:
        attributes, _ = extract_frontmatter(path.read_text(encoding="utf-8"))
        uuid = attributes.get("uuid")
        if not uuid:
            return []
        title = attributes.get("title")
        return [
            UUIDEntry(
                uuid=str(uuid),
                file_path=str(path),
                type="markdown",
                title=str(title) if title else "",
            )
        ]

    if suffix == ".ts":
        return _entries_from_docs(parse_typescript_docs(path), "typescript")
    if suffix == ".py":
        return _entries_from_docs(parse_python_docs(path), "python")
    return []


def _index_file_safely(path: Path) -> list[UUIDEntry]:
    try:
        return index_file(path)
    except Exception as e:
        log.warning("Skipping %s while indexing UUIDs: %s", path, e)
        return []


def merge_entries(batches: list[list[UUIDEntry]]) -> dict[str, UUIDEntry]:
    """Fold per-file entries into one index; later entries win.

    A UUID declared in two different files is logged and the later file kept.
    """
    index: dict[str, UUIDEntry] = {}
    for entries in batches:
        for entry in entries:
            previous = index.get(entry.uuid)
            if previous is not None and previous.file_path != entry.file_path:
                log.warning(
                    "UUID %s declared in %s and %s; using %s",
                    entry.uuid,
                    previous.file_path,
                    entry.file_path,
                    entry.file_path,
                )
            index[entry.uuid] = entry
    return index


def write_uuid_index(index: dict[str, UUIDEntry], output_file: str | os.PathLike[str]) -> bool:
    """Write the index as JSON. Failures are logged, never raised.

    Returns:
        True if the file was written.
    """
    payload = {uuid: entry.model_dump(by_alias=True) for uuid, entry in index.items()}
    try:
        Path(output_file).write_text(json.dumps(payload, indent=2), encoding="utf-8")
    except OSError as e:
        log.error("Failed to write UUID index cache to %s: %s", output_file, e)
        return False
    return True


async def build_uuid_index(
    content_dir: str | os.PathLike[str],
    output_file: str | os.PathLike[str] | None = None,
    *,
    max_concurrency: int | None = None,
) -> dict[str, UUIDEntry]:
    """Build a fresh UUID index for every md/svx/ts/py file under content_dir.

    Files are read concurrently; the merge runs afterwards in sorted path
    order, so the result does not depend on completion order.

    Args:
        content_dir: Directory to scan recursively.
        output_file: Optional JSON cache to write (write-only, best effort).
        max_concurrency: Upper bound on files processed at once.

    Returns:
        Mapping of uuid to UUIDEntry.
    """
    files = discover_files(Path(content_dir), LINK_SCAN_EXTENSIONS)
    batches = await gather_bounded(_index_file_safely, files, max_concurrency)
    index = merge_entries(batches)

    log.info("Indexed %d UUIDs from %d files under %s", len(index), len(files), content_dir)

    if output_file:
        write_uuid_index(index, output_file)
    return index

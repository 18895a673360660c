"""File discovery and bounded concurrent per-file processing."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import TypeVar

from .config import DEFAULT_MAX_CONCURRENCY

T = TypeVar("T")
R = TypeVar("R")


def _is_hidden(path: Path, root: Path) -> bool:
    return any(part.startswith(".") for part in path.relative_to(root).parts)


def discover_files(root: Path, extensions: Iterable[str]) -> list[Path]:
    """Find files under root with any of the given extensions.

    Hidden files and anything inside hidden directories are skipped.

    Args:
        root: Directory to search recursively.
        extensions: Extensions with or without the leading dot.

    Returns:
        Sorted, de-duplicated absolute paths. Empty if root is not a directory.
    """
    root = Path(root).resolve()
    if not root.is_dir():
        return []

    found: set[Path] = set()
    for ext in extensions:
        suffix = ext.lstrip(".")
        for path in root.rglob(f"*.{suffix}"):
            if path.is_file() and not _is_hidden(path, root):
                found.add(path)

    return sorted(found)


def glob_files(root: Path, patterns: Sequence[str]) -> list[Path]:
    """Find files under root matching glob patterns such as ``**/*.md``."""
    root = Path(root).resolve()
    if not root.is_dir():
        return []

    found: set[Path] = set()
    for pattern in patterns:
        for path in root.glob(pattern):
            if path.is_file() and not _is_hidden(path, root):
                found.add(path)

    return sorted(found)


async def gather_bounded(
    func: Callable[[T], R],
    items: Sequence[T],
    max_concurrency: int | None = None,
) -> list[R]:
    """Run a blocking function over items in worker threads.

    At most max_concurrency calls run at once. Results come back in input
    order regardless of completion order.
    """
    limit = max(1, max_concurrency or DEFAULT_MAX_CONCURRENCY)
    semaphore = asyncio.Semaphore(limit)

    async def run(item: T) -> R:
        async with semaphore:
            return await asyncio.to_thread(func, item)

    return await asyncio.gather(*(run(item) for item in items))


"""Tests for file discovery and bounded concurrency."""

import threading
import time
from pathlib import Path

import pytest
from conftest import write_file

from docgen.discovery import discover_files, gather_bounded, glob_files


class TestDiscoverFiles:
    """Tests for discover_files and glob_files."""

    def test_sorted_and_filtered(self, content_dir: Path):
        """Only matching extensions, sorted, hidden paths skipped."""
        write_file(content_dir, "b.md", "")
        write_file(content_dir, "a/z.py", "")
        write_file(content_dir, "c.txt", "")
        write_file(content_dir, ".git/x.md", "")
        write_file(content_dir, ".hidden.md", "")

        found = discover_files(content_dir, ["md", ".py"])

        root = content_dir.resolve()
        assert found == [root / "a" / "z.py", root / "b.md"]

    def test_missing_root(self, tmp_path: Path):
        """A missing root yields nothing."""
        assert discover_files(tmp_path / "nope", ["md"]) == []

    def test_glob_patterns(self, content_dir: Path):
        """Glob patterns select files the same way."""
        write_file(content_dir, "docs/a.md", "")
        write_file(content_dir, "docs/b.mdx", "")
        write_file(content_dir, "docs/c.svx", "")

        found = glob_files(content_dir, ["**/*.md", "**/*.mdx"])

        assert [path.name for path in found] == ["a.md", "b.mdx"]


class TestGatherBounded:
    """Tests for gather_bounded."""

    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        """Results line up with inputs even when completion order differs."""

        def slow_square(n: int) -> int:
            time.sleep(0.01 * (5 - n))
            return n * n

        assert await gather_bounded(slow_square, [1, 2, 3, 4]) == [1, 4, 9, 16]

    @pytest.mark.asyncio
    async def test_concurrency_limit(self):
        """No more than max_concurrency calls run at once."""
        lock = threading.Lock()
        active = 0
        peak = 0

        def work(_: int) -> None:
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with lock:
                active -= 1

        await gather_bounded(work, list(range(8)), max_concurrency=2)

        assert peak <= 2

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        """An exception in one call surfaces to the caller."""

        def fail(n: int) -> int:
            raise ValueError(f"bad {n}")

        with pytest.raises(ValueError):
            await gather_bounded(fail, [1])

"""Shared test fixtures for the docgen test suite.

Design:
- content_dir: isolated content tree in a temp directory
- bpmn_file: a minimal valid BPMN diagram next to the content
- runner: CliRunner with proper isolation
- Logging and the process-wide diagram cache are reset around every test
"""

import logging
from pathlib import Path
from typing import Generator

import pytest
from click.testing import CliRunner

from docgen.parser.diagram import default_diagram_cache

MINIMAL_BPMN = """<?xml version="1.0" encoding="UTF-8"?>
<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL" id="Definitions_1">
  <bpmn:process id="Process_1" isExecutable="false">
    <bpmn:startEvent id="StartEvent_1" />
  </bpmn:process>
</bpmn:definitions>
"""

UUID_A = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
UUID_B = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"
UUID_C = "cccccccc-cccc-cccc-cccc-cccccccccccc"
UUID_D = "dddddddd-dddd-dddd-dddd-dddddddddddd"
UUID_MISSING = "99999999-9999-9999-9999-999999999999"


# ─────────────────────────────────────────────────────────────────────────────
# Isolation
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo configure_logging so caplog sees docgen records."""
    logger = logging.getLogger("docgen")
    logger.propagate = True
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    yield
    logger.propagate = True
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def clear_diagram_cache() -> Generator[None, None, None]:
    """Keep rendered diagrams from leaking between tests."""
    default_diagram_cache.evict()
    yield
    default_diagram_cache.evict()


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    """Empty content directory.

    Usage:
        def test_something(content_dir):
            write_file(content_dir, "a.md", "# A")
    """
    root = tmp_path / "content"
    root.mkdir()
    return root


@pytest.fixture
def bpmn_file(tmp_path: Path) -> Path:
    """A minimal valid diagram at <tmp>/test-workflow.bpmn."""
    path = tmp_path / "test-workflow.bpmn"
    path.write_text(MINIMAL_BPMN, encoding="utf-8")
    return path


@pytest.fixture
def linked_content(content_dir: Path) -> Path:
    """Content tree with one markdown target and one referencing page.

    Creates:
    - a.md (uuid UUID_A, title "Target")
    - sub/b.md referencing UUID_A and an unknown UUID
    """
    write_file(content_dir, "a.md", f"---\nuuid: {UUID_A}\ntitle: Target\n---\n\n# Target\n")
    write_file(
        content_dir,
        "sub/b.md",
        f"See [[uuid:{UUID_A}]] and [[uuid:{UUID_MISSING}]].\n",
    )
    return content_dir


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions (for test code, not fixtures)
# ─────────────────────────────────────────────────────────────────────────────


def write_file(root: Path, relative: str, content: str) -> Path:
    """Create a file (and its parents) under root.

    Usage in tests:
        from conftest import write_file
        path = write_file(content_dir, "guide/intro.md", "# Intro")
    """
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path

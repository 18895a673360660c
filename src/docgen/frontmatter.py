"""Frontmatter extraction and serialization.

Documents may start with a YAML block delimited by ``---`` lines. Extraction
never fails: a malformed block leaves the whole text as body.
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple

import frontmatter
import yaml

log = logging.getLogger(__name__)


class FrontmatterResult(NamedTuple):
    """Attributes parsed from the leading block, and the remaining body."""

    attributes: dict[str, Any]
    body: str


def extract_frontmatter(content: str) -> FrontmatterResult:
    """Split a document into frontmatter attributes and body.

    The body is the text after the closing delimiter line, whitespace intact,
    so leading indented code stays code. Without a block the content is
    returned unchanged.

    Args:
        content: Raw document text.

    Returns:
        FrontmatterResult; attributes is empty when there is no block or the
        block cannot be parsed.
    """
    handler = frontmatter.YAMLHandler()
    if not handler.detect(content):
        return FrontmatterResult({}, content)

    try:
        fm, body = handler.split(content)
        metadata = handler.load(fm)
    except Exception as e:
        log.debug("Ignoring malformed frontmatter block: %s", e)
        return FrontmatterResult({}, content)

    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        return FrontmatterResult({}, content)

    # split() leaves the newline that ends the closing delimiter
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]
    return FrontmatterResult(dict(metadata), body)


def _yaml_quote_if_needed(value: str) -> str:
    """Quote a string value if it contains YAML special characters.

    Tests whether the value roundtrips through YAML parsing unquoted; if not,
    PyYAML decides the escaping.
    """
    test_yaml = f"key: {value}"
    try:
        parsed = yaml.safe_load(test_yaml)
        if isinstance(parsed, dict) and parsed.get("key") == value:
            return value
    except yaml.YAMLError:
        pass
    dumped = yaml.safe_dump({"key": value}, default_flow_style=False).strip()
    # 'key: VALUE' -> VALUE
    return dumped[5:]


def build_frontmatter(attributes: dict[str, Any]) -> str:
    """Build a YAML frontmatter block from attributes.

    Scalar strings are written inline (quoted only when needed); lists of
    strings use block style; everything else is left to PyYAML.

    Returns:
        The block including ``---`` delimiters and a trailing newline, or an
        empty string when there are no attributes.
    """
    if not attributes:
        return ""

    parts = ["---"]
    for key, value in attributes.items():
        if isinstance(value, str):
            parts.append(f"{key}: {_yaml_quote_if_needed(value)}")
        elif isinstance(value, list) and value and all(isinstance(v, str) for v in value):
            parts.append(f"{key}:")
            parts.extend(f"  - {_yaml_quote_if_needed(item)}" for item in value)
        else:
            dumped = yaml.safe_dump({key: value}, default_flow_style=False, sort_keys=False)
            parts.append(dumped.rstrip("\n"))
    parts.append("---\n")
    return "\n".join(parts)


def compose_document(attributes: dict[str, Any], body: str) -> str:
    """Recombine attributes and body into document text.

    extract_frontmatter(compose_document(a, b)).attributes == a for any
    YAML-representable attributes.
    """
    header = build_frontmatter(attributes)
    if not header:
        return body
    return f"{header}\n{body}"

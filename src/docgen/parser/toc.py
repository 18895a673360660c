"""Heading structure: section wrapping, table of contents and anchors."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from markdown_it.token import Token

from ..models import TocEntry

if TYPE_CHECKING:
    from .markdown import CompileContext

# Container tokens reported as a TOC entry's parent
_PARENT_KINDS = {
    "section_open": "section",
    "blockquote_open": "blockquote",
    "list_item_open": "list_item",
    "directive_container_open": "directive",
}

_SLUG_STRIP = re.compile(r"[^\w\- ]", re.UNICODE)


class Slugger:
    """GitHub-style heading slugs, unique within one document."""

    def __init__(self) -> None:
        self._seen: dict[str, int] = {}

    def slug(self, value: str) -> str:
        base = _SLUG_STRIP.sub("", value.strip().lower()).replace(" ", "-")
        slug = base
        count = self._seen.get(base, 0)
        while slug in self._seen:
            count += 1
            slug = f"{base}-{count}"
        self._seen[base] = count
        self._seen[slug] = 0
        return slug


def heading_text(inline: Token) -> str:
    """Plain text of a heading's inline token."""
    parts = []
    for child in inline.children or []:
        if child.type in ("text", "code_inline"):
            parts.append(child.content)
        elif child.type in ("softbreak", "hardbreak"):
            parts.append(" ")
    return "".join(parts) if inline.children else inline.content


def _heading_level(token: Token) -> int:
    return int(token.tag[1])


def wrap_sections(tokens: list[Token], context: CompileContext) -> list[Token]:
    """Wrap each top-level heading and the content after it in a section.

    A section runs until the next heading of the same or a higher level, so
    deeper headings end up in nested sections.
    """
    result: list[Token] = []
    open_levels: list[int] = []

    def close_to(level: int) -> None:
        while open_levels and open_levels[-1] >= level:
            open_levels.pop()
            result.append(Token("section_close", "section", -1, block=True, level=len(open_levels)))

    for token in tokens:
        if token.type == "heading_open" and token.level == 0:
            level = _heading_level(token)
            close_to(level)
            result.append(
                Token(
                    "section_open",
                    "section",
                    1,
                    block=True,
                    level=len(open_levels),
                    meta={"depth": level},
                )
            )
            open_levels.append(level)

        if open_levels:
            result.append(token.copy(level=token.level + len(open_levels)))
        else:
            result.append(token)

    close_to(0)
    return result


def build_toc(tokens: list[Token], skip_levels: tuple[int, ...] = (1,)) -> list[TocEntry]:
    """Flatten headings into TOC entries in document order.

    Numbering counts headings per level starting at the shallowest
    non-skipped level; skipped levels still take part in slug generation.
    """
    slugger = Slugger()
    first_level = next((level for level in range(1, 7) if level not in skip_levels), 1)
    counters = [0] * 7
    parents: list[str] = []
    entries: list[TocEntry] = []

    for index, token in enumerate(tokens):
        if token.type in _PARENT_KINDS:
            parents.append(_PARENT_KINDS[token.type])
            continue
        if token.nesting == -1 and token.type.replace("_close", "_open") in _PARENT_KINDS:
            parents.pop()
            continue
        if token.type != "heading_open":
            continue

        level = _heading_level(token)
        text = heading_text(tokens[index + 1])
        slug = slugger.slug(text)
        if level in skip_levels:
            continue

        counters[level] += 1
        for deeper in range(level + 1, 7):
            counters[deeper] = 0

        entries.append(
            TocEntry(
                value=text,
                href=f"#{slug}",
                depth=level,
                numbering=counters[first_level : level + 1],
                parent=parents[-1] if parents else "root",
            )
        )

    return entries


def extract_toc(tokens: list[Token], context: CompileContext) -> list[Token]:
    """Record the table of contents under ``toc`` in the compile data."""
    entries = build_toc(tokens, context.options.toc_skip_levels)
    context.data["toc"] = [entry.model_dump() for entry in entries]
    return tokens


def anchor_headings(tokens: list[Token], context: CompileContext) -> list[Token]:
    """Give every heading a slug id and wrap its content in a self-link."""
    slugger = Slugger()
    result: list[Token] = []
    pending_slug: str | None = None

    for index, token in enumerate(tokens):
        if token.type == "heading_open":
            attrs = dict(token.attrs)
            attrs.setdefault("id", slugger.slug(heading_text(tokens[index + 1])))
            pending_slug = str(attrs["id"])
            result.append(token.copy(attrs=attrs))
        elif token.type == "inline" and pending_slug is not None:
            children = [
                Token("link_open", "a", 1, attrs={"href": f"#{pending_slug}"}),
                *(token.children or []),
                Token("link_close", "a", -1),
            ]
            result.append(token.copy(children=children))
            pending_slug = None
        else:
            result.append(token)

    return result

"""Directive syntax and the generic directive stage.

Three forms are recognized, following the common directive convention:

    :name[label]{attrs}            text (inline)
    ::name[label]{attrs}           leaf (a whole line)
    :::name[label]{attrs}          container, closed by a line of at least
    ...                            as many colons
    :::

Parsing yields ``directive_<kind>_open`` / ``directive_<kind>_close`` token
pairs whose ``meta`` holds ``name`` and ``attributes``. The generic stage then
lowers them to HTML elements; specialised stages (the diagram stage) run first
and replace the directives they own.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from markdown_it import MarkdownIt
from markdown_it.rules_block import StateBlock
from markdown_it.rules_inline import StateInline
from markdown_it.token import Token

if TYPE_CHECKING:
    from .markdown import CompileContext

CONTAINER = "container"
LEAF = "leaf"
TEXT = "text"

# Styling applied to :::note containers
NOTE_CLASSES = (
    "p-4 gap-3 text-sm bg-primary-50 dark:bg-gray-800 "
    "text-primary-800 dark:text-primary-400 rounded-lg"
)

# Styling applied to a collapsed :rdfterm[prefix:localname]
RDFTERM_CLASSES = "mr-1 px-2 py-1 bg-gray-200 rounded-lg"

_NAME = re.compile(r"[A-Za-z][\w-]*")
_BLOCK_OPEN = re.compile(r"^(:{2,})([A-Za-z][\w-]*)")
_FENCE_CLOSE = re.compile(r"^(:{3,})[ \t]*$")

_ATTRIBUTE = re.compile(
    r"""
    [ \t\n]*
    (?:
        \#(?P<id>[^\s#.{}"'=]+)
      | \.(?P<cls>[^\s#.{}"'=]+)
      | (?P<key>[^\s#.{}"'=]+)
        (?:[ \t]*=[ \t]*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s"'=<>`{}]+)))?
    )
    """,
    re.VERBOSE,
)


# ─────────────────────────────────────────────────────────────────────────────
# Attribute and label parsing
# ─────────────────────────────────────────────────────────────────────────────


def parse_attributes(text: str) -> dict[str, str] | None:
    """Parse the inside of a ``{...}`` attribute block.

    Supports ``key="v"``, ``key='v'``, ``key=v``, bare ``key``, ``#id`` and
    ``.class``; repeated classes accumulate.

    Returns:
        The attributes, or None when the text is not a valid attribute list.
    """
    attributes: dict[str, str] = {}
    classes: list[str] = []
    pos = 0

    while pos < len(text):
        if not text[pos:].strip():
            break
        match = _ATTRIBUTE.match(text, pos)
        if not match or match.end() == pos:
            return None
        if match.group("id"):
            attributes["id"] = match.group("id")
        elif match.group("cls"):
            classes.append(match.group("cls"))
        else:
            value = next(
                (v for v in (match.group("dq"), match.group("sq"), match.group("bare")) if v is not None),
                "",
            )
            if match.group("key") == "class":
                classes.extend(value.split())
            else:
                attributes[match.group("key")] = value
        pos = match.end()

    if classes:
        attributes["class"] = " ".join(classes)
    return attributes


def _find_closing(text: str, start: int, opener: str, closer: str) -> int:
    """Index of the closer matching the opener at start, or -1.

    Backslash escapes are skipped; double quotes are honoured inside braces.
    """
    depth = 0
    in_quote = False
    pos = start
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 2
            continue
        if opener == "{" and char == '"':
            in_quote = not in_quote
        elif not in_quote:
            if char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    return pos
        pos += 1
    return -1


def _parse_block_tail(text: str) -> tuple[str | None, dict[str, str]] | None:
    """Parse the ``[label]{attrs}`` remainder of a leaf or container line."""
    label = None
    pos = 0
    if text.startswith("["):
        end = _find_closing(text, 0, "[", "]")
        if end < 0:
            return None
        label = text[1:end]
        pos = end + 1

    attributes: dict[str, str] = {}
    if text.startswith("{", pos):
        end = _find_closing(text, pos, "{", "}")
        if end < 0:
            return None
        parsed = parse_attributes(text[pos + 1 : end])
        if parsed is None:
            return None
        attributes = parsed
        pos = end + 1

    if text[pos:].strip():
        return None
    return label, attributes


# ─────────────────────────────────────────────────────────────────────────────
# Block rules
# ─────────────────────────────────────────────────────────────────────────────


def _directive_block(state: StateBlock, startLine: int, endLine: int, silent: bool) -> bool:
    if state.sCount[startLine] - state.blkIndent >= 4:
        return False

    start = state.bMarks[startLine] + state.tShift[startLine]
    maximum = state.eMarks[startLine]
    line = state.src[start:maximum]

    match = _BLOCK_OPEN.match(line)
    if not match:
        return False

    marker, name = match.group(1), match.group(2)
    tail = _parse_block_tail(line[match.end() :])
    if tail is None:
        return False
    label, attributes = tail

    if silent:
        return True

    meta = {"name": name, "attributes": attributes}

    if len(marker) == 2:
        token = state.push("directive_leaf_open", "div", 1)
        token.info = name
        token.markup = marker
        token.meta = meta
        token.map = [startLine, startLine + 1]

        if label:
            token = state.push("inline", "", 0)
            token.content = label
            token.map = [startLine, startLine + 1]
            token.children = []

        token = state.push("directive_leaf_close", "div", -1)
        token.markup = marker
        token.meta = meta
        state.line = startLine + 1
        return True

    # Container: scan for the closing fence, skipping nested containers that
    # use a fence at least as long as ours
    nextLine = startLine
    auto_closed = False
    depth = 0
    while True:
        nextLine += 1
        if nextLine >= endLine:
            break

        start = state.bMarks[nextLine] + state.tShift[nextLine]
        maximum = state.eMarks[nextLine]

        if start < maximum and state.sCount[nextLine] < state.blkIndent:
            # non-empty line with negative indent closes the parent block
            break
        if state.sCount[nextLine] - state.blkIndent >= 4:
            continue

        text = state.src[start:maximum]
        opener = _BLOCK_OPEN.match(text)
        if opener and len(opener.group(1)) >= len(marker):
            depth += 1
            continue

        closer = _FENCE_CLOSE.match(text)
        if closer and len(closer.group(1)) >= len(marker):
            if depth:
                depth -= 1
                continue
            auto_closed = True
            break

    old_parent = state.parentType
    old_line_max = state.lineMax
    state.parentType = "directive"  # type: ignore[assignment]
    state.lineMax = nextLine

    token = state.push("directive_container_open", "div", 1)
    token.info = name
    token.markup = marker
    token.meta = meta
    token.map = [startLine, nextLine]

    if label:
        token = state.push("paragraph_open", "p", 1)
        token.map = [startLine, startLine + 1]
        token.meta = {"directive_label": True}
        token = state.push("inline", "", 0)
        token.content = label
        token.map = [startLine, startLine + 1]
        token.children = []
        token = state.push("paragraph_close", "p", -1)

    state.md.block.tokenize(state, startLine + 1, nextLine)

    token = state.push("directive_container_close", "div", -1)
    token.markup = state.src[state.bMarks[nextLine] : state.eMarks[nextLine]].strip() if auto_closed else ""
    token.meta = meta

    state.parentType = old_parent
    state.lineMax = old_line_max
    state.line = nextLine + (1 if auto_closed else 0)
    return True


# ─────────────────────────────────────────────────────────────────────────────
# Inline rule
# ─────────────────────────────────────────────────────────────────────────────


def _directive_text(state: StateInline, silent: bool) -> bool:
    src = state.src
    pos = state.pos
    maximum = state.posMax

    if src[pos] != ":":
        return False
    # '::' belongs to leaf and container syntax
    if pos > 0 and src[pos - 1] == ":":
        return False
    if pos + 1 < maximum and src[pos + 1] == ":":
        return False

    name_match = _NAME.match(src, pos + 1, maximum)
    if not name_match:
        return False
    name = name_match.group(0)
    cursor = name_match.end()

    label_start = label_end = -1
    if cursor < maximum and src[cursor] == "[":
        label_end = state.md.helpers.parseLinkLabel(state, cursor)
        if label_end < 0:
            return False
        label_start = cursor + 1
        cursor = label_end + 1

    attributes: dict[str, str] = {}
    if cursor < maximum and src[cursor] == "{":
        close = _find_closing(src[:maximum], cursor, "{", "}")
        if close < 0:
            return False
        parsed = parse_attributes(src[cursor + 1 : close])
        if parsed is None:
            return False
        attributes = parsed
        cursor = close + 1

    if not silent:
        meta = {"name": name, "attributes": attributes}
        token = state.push("directive_text_open", "span", 1)
        token.info = name
        token.markup = ":"
        token.meta = meta

        if label_start >= 0:
            old_pos, old_max = state.pos, state.posMax
            state.pos = label_start
            state.posMax = label_end
            state.md.inline.tokenize(state)
            state.pos, state.posMax = old_pos, old_max

        token = state.push("directive_text_close", "span", -1)
        token.meta = meta

    state.pos = cursor
    return True


def directives_plugin(md: MarkdownIt) -> None:
    """Register leaf, container and text directive syntax."""
    md.block.ruler.before(
        "fence",
        "directive",
        _directive_block,
        {"alt": ["paragraph", "reference", "blockquote", "list"]},
    )
    md.inline.ruler.after("emphasis", "directive_text", _directive_text)


# ─────────────────────────────────────────────────────────────────────────────
# Token helpers
# ─────────────────────────────────────────────────────────────────────────────


def directive_kind(token: Token) -> str | None:
    """Directive kind of an opening directive token, else None."""
    if token.nesting != 1 or not token.type.startswith("directive_"):
        return None
    return token.type[len("directive_") : -len("_open")]


def find_close(tokens: list[Token], open_index: int) -> int:
    """Index of the token closing the one opened at open_index."""
    depth = 0
    for index in range(open_index, len(tokens)):
        depth += tokens[index].nesting
        if depth == 0:
            return index
    raise ValueError(f"Unbalanced token stream at index {open_index}")


def _group_nodes(children: list[Token]) -> list[list[Token]]:
    """Split a flat inline token run into top-level nodes."""
    nodes: list[list[Token]] = []
    index = 0
    while index < len(children):
        if children[index].nesting == 1:
            end = find_close(children, index)
            nodes.append(children[index : end + 1])
            index = end + 1
        else:
            nodes.append([children[index]])
            index += 1
    return nodes


# ─────────────────────────────────────────────────────────────────────────────
# Generic directive stage
# ─────────────────────────────────────────────────────────────────────────────


def _lower_rdfterm(nodes: list[list[Token]], open_token: Token) -> list[Token] | None:
    """Collapse ``:rdfterm[prefix:localname]`` into one emphasized term."""
    if len(nodes) != 2:
        return None
    first, second = nodes
    if len(first) != 1 or first[0].type != "text" or not first[0].content:
        return None
    if directive_kind(second[0]) != TEXT or not second[0].meta.get("name"):
        return None

    value = f"{first[0].content}:{second[0].meta['name']}"
    return [
        Token("em_open", "em", 1, attrs={"class": RDFTERM_CLASSES}, markup="*", meta=open_token.meta),
        Token("text", "", 0, content=value),
        Token("em_close", "em", -1, markup="*"),
    ]


def _lower_inline(children: list[Token]) -> list[Token]:
    result: list[Token] = []
    for node in _group_nodes(children):
        head = node[0]
        if directive_kind(head) != TEXT:
            result.extend(node)
            continue

        inner = node[1:-1]
        if head.meta.get("name") == "rdfterm":
            collapsed = _lower_rdfterm(_group_nodes(inner), head)
            if collapsed is not None:
                result.extend(collapsed)
                continue

        result.append(head.copy(attrs=dict(head.meta.get("attributes", {}))))
        result.extend(_lower_inline(inner))
        result.append(node[-1].copy())
    return result


def _has_text_directive(children: list[Token] | None) -> bool:
    return bool(children) and any(directive_kind(child) == TEXT for child in children)


def lower_directives(tokens: list[Token], context: CompileContext) -> list[Token]:
    """Turn remaining directive tokens into generic HTML elements.

    Text directives become ``span``; leaf and container directives become
    ``div``; each carries its attributes as element attributes. A ``note``
    container becomes an alert box and an ``rdfterm`` text directive whose
    label is exactly ``prefix`` plus a nested ``:localname`` collapses into
    emphasized ``prefix:localname``.
    """
    result: list[Token] = []
    for token in tokens:
        kind = directive_kind(token)
        if kind in (LEAF, CONTAINER):
            attrs = dict(token.meta.get("attributes", {}))
            if kind == CONTAINER and token.meta.get("name") == "note":
                attrs = {"class": NOTE_CLASSES, "role": "alert"}
            result.append(token.copy(attrs=attrs))
        elif token.type == "inline" and _has_text_directive(token.children):
            result.append(token.copy(children=_lower_inline(token.children or [])))
        else:
            result.append(token)
    return result

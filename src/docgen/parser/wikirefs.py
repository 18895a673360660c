"""``[[Name]]`` reference syntax for markdown-it.

The inline rule turns ``[[target]]`` and ``[[target|label]]`` into a
``wikilink_open`` / ``text`` / ``wikilink_close`` token triple. Where the link
points is decided by a resolver callback looked up in the render env, so the
same parser serves static placeholder links and real UUID/slug resolution.
"""

from __future__ import annotations

from collections.abc import Callable

from markdown_it import MarkdownIt
from markdown_it.rules_inline import StateInline

# Maps a raw reference target to (href, display text)
WikirefResolver = Callable[[str], "tuple[str, str]"]

# Key under which the resolver is passed through the markdown-it env
ENV_RESOLVER_KEY = "wikiref_resolver"

# Placeholder href used when no resolver is configured
DEFAULT_WIKIREF_HREF = "/docs"

# Left alone so broken references stay visible as plain text
MISSING_MARKER_PREFIX = "MISSING UUID:"


def default_wikiref_resolver(target: str) -> tuple[str, str]:
    """Resolve every reference to the static placeholder href."""
    return DEFAULT_WIKIREF_HREF, target


def _wikiref_rule(state: StateInline, silent: bool) -> bool:
    src = state.src
    start = state.pos

    if not src.startswith("[[", start):
        return False

    end = src.find("]]", start + 2, state.posMax)
    if end < 0:
        return False

    inner = src[start + 2 : end]
    if not inner.strip() or "[" in inner or "]" in inner or "\n" in inner:
        return False

    target, _, alias = inner.partition("|")
    target = target.strip()
    if not target or target.startswith(MISSING_MARKER_PREFIX):
        return False

    if not silent:
        resolver = state.env.get(ENV_RESOLVER_KEY) or default_wikiref_resolver
        href, text = resolver(target)
        if alias.strip():
            text = alias.strip()

        token = state.push("wikilink_open", "a", 1)
        token.attrs = {"class": "wikilink", "href": href, "data-href": target}
        token.markup = "[["
        token.meta = {"target": target}

        token = state.push("text", "", 0)
        token.content = text

        token = state.push("wikilink_close", "a", -1)
        token.markup = "]]"

    state.pos = end + 2
    return True


def wikirefs_plugin(md: MarkdownIt) -> None:
    """Register the ``[[Name]]`` inline rule ahead of regular links."""
    md.inline.ruler.before("link", "wikiref", _wikiref_rule)

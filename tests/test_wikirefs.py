"""Tests for the [[Name]] inline rule."""

from markdown_it import MarkdownIt

from docgen.parser.wikirefs import ENV_RESOLVER_KEY, default_wikiref_resolver, wikirefs_plugin


def _inline_tokens(text: str, env: dict | None = None):
    md = MarkdownIt("commonmark").use(wikirefs_plugin)
    return md.parseInline(text, env if env is not None else {})[0].children


class TestWikirefRule:
    """Tests for wikirefs_plugin."""

    def test_token_triple(self):
        """A reference becomes open / text / close tokens."""
        tokens = _inline_tokens("[[Page]]")

        assert [t.type for t in tokens] == ["wikilink_open", "text", "wikilink_close"]
        assert tokens[0].attrs == {"class": "wikilink", "href": "/docs", "data-href": "Page"}
        assert tokens[0].meta == {"target": "Page"}
        assert tokens[1].content == "Page"

    def test_alias_replaces_text(self):
        """The part after | is the link text."""
        tokens = _inline_tokens("[[guide/intro|the intro]]")

        assert tokens[0].attrs["data-href"] == "guide/intro"
        assert tokens[1].content == "the intro"

    def test_resolver_from_env(self):
        """The resolver passed in the env decides href and text."""
        env = {ENV_RESOLVER_KEY: lambda target: (f"/x/{target}", target.upper())}

        tokens = _inline_tokens("[[page]]", env)

        assert tokens[0].attrs["href"] == "/x/page"
        assert tokens[1].content == "PAGE"

    def test_missing_marker_not_a_link(self):
        """Unresolved-UUID markers stay plain text."""
        tokens = _inline_tokens("[[MISSING UUID: 1234]]")

        assert all(t.type != "wikilink_open" for t in tokens)

    def test_empty_brackets_not_a_link(self):
        """[[ ]] is not a reference."""
        tokens = _inline_tokens("[[ ]]")

        assert all(t.type != "wikilink_open" for t in tokens)

    def test_default_resolver(self):
        """The default resolver points everything at /docs."""
        assert default_wikiref_resolver("Page") == ("/docs", "Page")

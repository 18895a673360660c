#!/usr/bin/env python3
"""
docgen: CLI for the documentation content pipeline

Usage:
    docgen compile docs/intro.md        # Markdown to HTML
    docgen index docs/                  # Build the UUID index
    docgen resolve docs/                # Rewrite [[uuid:...]] references
    docgen backlinks docs/              # Count references per UUID
    docgen extract src/api.ts           # Doc comments as JSON
    docgen entries docs/                # Slug/uuid listing
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import click

from . import __version__ as DOCGEN_VERSION

log = logging.getLogger(__name__)


def run_async(coro):
    """Run async function synchronously."""
    return asyncio.run(coro)


def output(data, as_json: bool = False):
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def _dump(models: dict[str, Any]) -> dict[str, Any]:
    return {key: value.model_dump(by_alias=True) for key, value in models.items()}


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=DOCGEN_VERSION, prog_name="docgen")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
def cli(verbose: bool):
    """docgen: compile documentation and maintain its UUID link graph.

    \b
    Quick start:
      docgen compile docs/intro.md --json   # HTML plus frontmatter and TOC
      docgen resolve docs/                  # [[uuid:...]] -> relative links
      docgen backlinks docs/ -o links.json  # Who references what
    """
    if verbose:
        from ._logging import configure_logging

        configure_logging("DEBUG")


@cli.command("compile")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory relative diagram sources resolve against",
)
@click.option("--no-fallback", is_flag=True, help="Fail instead of rendering diagram errors inline")
@click.option("--json", "as_json", is_flag=True, help="Output html and meta as JSON")
def compile_cmd(file: Path, base_dir: Path | None, no_fallback: bool, as_json: bool):
    """Compile a markdown file to HTML.

    \b
    Examples:
      docgen compile docs/intro.md
      docgen compile docs/flows.md --base-dir docs/ --no-fallback
    """
    from .parser.diagram import default_diagram_cache
    from .parser.markdown import CompileError, CompileOptions, parse_markdown_file

    options = CompileOptions(base_dir=base_dir, error_fallback=not no_fallback)
    try:
        page = parse_markdown_file(file, options)
    except CompileError as e:
        raise click.ClickException(str(e)) from e
    log.debug("Diagram cache holds %d rendered diagram(s)", default_diagram_cache.stats()["size"])

    if as_json:
        output(page.model_dump(), as_json=True)
    else:
        click.echo(page.html, nl=False)


@cli.command("index")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--output", "-o", "output_file", type=click.Path(dir_okay=False, path_type=Path), help="Write the index JSON here"
)
def index_cmd(directory: Path, output_file: Path | None):
    """Build the UUID index for a content directory."""
    from .uuid_index import build_uuid_index

    index = run_async(build_uuid_index(directory, output_file))
    if not output_file:
        output(_dump(index), as_json=True)
    else:
        click.echo(f"Indexed {len(index)} UUIDs -> {output_file}")


@cli.command("resolve")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--cache", type=click.Path(dir_okay=False, path_type=Path), help="Also write the UUID index here")
def resolve_cmd(directory: Path, cache: Path | None):
    """Rewrite [[uuid:...]] references into relative links, in place."""
    from .link_resolver import resolve_uuid_links

    changed = run_async(resolve_uuid_links(directory, cache))
    for path in changed:
        click.echo(f"updated {path}")
    click.echo(f"{len(changed)} file(s) updated")


@cli.command("backlinks")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--output", "-o", "out_path", type=click.Path(dir_okay=False, path_type=Path), help="Write the index JSON here")
def backlinks_cmd(directory: Path, out_path: Path | None):
    """Count [[uuid:...]] references per UUID."""
    from .backlinks import build_backlink_index, write_backlink_index

    index = run_async(build_backlink_index(directory))
    if out_path:
        write_backlink_index(index, out_path)
        click.echo(f"Backlinks for {len(index)} UUIDs -> {out_path}")
    else:
        output(_dump(index), as_json=True)


@cli.command("extract")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def extract_cmd(file: Path):
    """Extract doc comments from a TypeScript or Python file as JSON."""
    from .parser.pydoc import parse_python_docs
    from .parser.tsdoc import parse_typescript_docs

    suffix = file.suffix.lower()
    if suffix == ".ts":
        docs = parse_typescript_docs(file)
    elif suffix == ".py":
        docs = parse_python_docs(file)
    else:
        raise click.ClickException(f"Unsupported file type: {file.suffix or file.name}")

    output([doc.model_dump(by_alias=True, exclude_none=True) for doc in docs], as_json=True)


@cli.command("entries")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--base-path", help="Base path (or environment variable name) slugs are relative to")
def entries_cmd(directory: Path, base_path: str | None):
    """List slug and uuid for every content file."""
    from .config import ConfigurationError, PathConfig, load_project_config
    from .content import get_entries

    try:
        config = PathConfig.resolve(base_path) if base_path else load_project_config()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    entries = run_async(get_entries(directory, config))
    output([entry.model_dump() for entry in entries], as_json=True)


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main():
    """Entry point for docgen CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()

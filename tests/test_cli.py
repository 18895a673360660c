"""Tests for the docgen CLI."""

import json
import logging
from pathlib import Path

from click.testing import CliRunner
from conftest import UUID_A, UUID_B, UUID_MISSING, write_file

from docgen import __version__
from docgen._logging import configure_logging
from docgen.cli import cli


class TestCliBasics:
    """Group-level options."""

    def test_version(self, runner: CliRunner):
        """--version prints the package version."""
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner: CliRunner):
        """Every command appears in --help."""
        result = runner.invoke(cli, ["--help"])

        for command in ("compile", "index", "resolve", "backlinks", "extract", "entries"):
            assert command in result.output

    def test_verbose_logs_debug(self, runner: CliRunner, tmp_path: Path):
        """--verbose sends debug records to stderr."""
        page = write_file(tmp_path, "page.md", "# Hello\n")

        result = runner.invoke(cli, ["--verbose", "compile", str(page)])

        assert result.exit_code == 0
        assert "Compiling" in result.output
        assert "Diagram cache holds 0 rendered diagram(s)" in result.output

    def test_verbose_after_startup_configuration(self, runner: CliRunner, tmp_path: Path, capsys):
        """--verbose lowers the handler level set up by main()."""
        page = write_file(tmp_path, "page.md", "# Hello\n")
        configure_logging()

        result = runner.invoke(cli, ["--verbose", "compile", str(page)])

        assert result.exit_code == 0
        handler_levels = [h.level for h in logging.getLogger("docgen").handlers]
        assert handler_levels == [logging.DEBUG]
        assert "Compiling" in capsys.readouterr().err

    def test_default_level_hides_debug(self, runner: CliRunner, tmp_path: Path, capsys):
        """Without --verbose debug records are dropped."""
        page = write_file(tmp_path, "page.md", "# Hello\n")
        configure_logging("INFO")

        result = runner.invoke(cli, ["compile", str(page)])

        assert result.exit_code == 0
        assert "Compiling" not in capsys.readouterr().err


# ─────────────────────────────────────────────────────────────────────────────
# compile
# ─────────────────────────────────────────────────────────────────────────────


class TestCompileCommand:
    """Tests for `docgen compile`."""

    def test_html_output(self, runner: CliRunner, tmp_path: Path):
        """HTML is written to stdout."""
        page = write_file(tmp_path, "page.md", "# Hello World\n")

        result = runner.invoke(cli, ["compile", str(page)])

        assert result.exit_code == 0
        assert '<h1 id="hello-world">' in result.output

    def test_json_output(self, runner: CliRunner, tmp_path: Path):
        """--json emits html and meta."""
        page = write_file(tmp_path, "page.md", "---\ntitle: T\n---\n## Part\n")

        result = runner.invoke(cli, ["compile", str(page), "--json"])

        data = json.loads(result.output)
        assert data["meta"]["title"] == "T"
        assert data["meta"]["toc"][0]["href"] == "#part"
        assert "<h2" in data["html"]

    def test_no_fallback_fails(self, runner: CliRunner, tmp_path: Path):
        """Diagram errors become a CLI error when fallback is off."""
        page = write_file(tmp_path, "page.md", '::bpmn{src="missing.bpmn"}\n')

        result = runner.invoke(cli, ["compile", str(page), "--base-dir", str(tmp_path), "--no-fallback"])

        assert result.exit_code == 1
        assert "Failed to process BPMN file" in result.output

    def test_fallback_renders_error_block(self, runner: CliRunner, tmp_path: Path):
        """By default diagram errors are rendered inline."""
        page = write_file(tmp_path, "page.md", '::bpmn{src="missing.bpmn"}\n')

        result = runner.invoke(cli, ["compile", str(page), "--base-dir", str(tmp_path)])

        assert result.exit_code == 0
        assert "bpmn-error" in result.output


# ─────────────────────────────────────────────────────────────────────────────
# index / resolve / backlinks
# ─────────────────────────────────────────────────────────────────────────────


class TestLinkCommands:
    """Tests for index, resolve and backlinks."""

    def test_index_json(self, runner: CliRunner, linked_content: Path):
        """Without --output the index is printed."""
        result = runner.invoke(cli, ["index", str(linked_content)])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data[UUID_A]["title"] == "Target"
        assert data[UUID_A]["filePath"].endswith("a.md")

    def test_index_output_file(self, runner: CliRunner, linked_content: Path, tmp_path: Path):
        """--output writes the index to disk."""
        out = tmp_path / "index.json"

        result = runner.invoke(cli, ["index", str(linked_content), "-o", str(out)])

        assert result.exit_code == 0
        assert "Indexed 1 UUIDs" in result.output
        assert UUID_A in json.loads(out.read_text())

    def test_resolve(self, runner: CliRunner, linked_content: Path):
        """resolve rewrites files and reports them."""
        result = runner.invoke(cli, ["resolve", str(linked_content)])

        assert result.exit_code == 0
        assert "1 file(s) updated" in result.output
        text = (linked_content / "sub" / "b.md").read_text()
        assert "[Target](../a.md)" in text
        assert f"[[MISSING UUID: {UUID_MISSING}]]" in text

        again = runner.invoke(cli, ["resolve", str(linked_content)])
        assert "0 file(s) updated" in again.output

    def test_backlinks(self, runner: CliRunner, content_dir: Path):
        """backlinks prints counts per uuid."""
        write_file(content_dir, "a.md", f"[[uuid:{UUID_A}]] [[uuid:{UUID_B}]] [[uuid:{UUID_A}]]\n")

        result = runner.invoke(cli, ["backlinks", str(content_dir)])

        data = json.loads(result.output)
        assert data[UUID_A]["count"] == 2
        assert data[UUID_B]["count"] == 1

    def test_missing_directory(self, runner: CliRunner, tmp_path: Path):
        """Nonexistent directories are rejected by argument validation."""
        result = runner.invoke(cli, ["index", str(tmp_path / "nope")])

        assert result.exit_code == 2


# ─────────────────────────────────────────────────────────────────────────────
# extract / entries
# ─────────────────────────────────────────────────────────────────────────────


class TestExtractCommand:
    """Tests for `docgen extract`."""

    def test_python(self, runner: CliRunner, tmp_path: Path):
        """Python docs are printed with camelCase keys."""
        source = write_file(tmp_path, "m.py", f'def run(x):\n    """Run.\n\n    uuid: {UUID_A}\n    """\n')

        result = runner.invoke(cli, ["extract", str(source)])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data[0]["name"] == "run"
        assert data[0]["uuid"] == UUID_A
        assert data[0]["codeInfo"]["parameters"][0]["name"] == "x"

    def test_typescript(self, runner: CliRunner, tmp_path: Path):
        """TypeScript docs are printed."""
        source = write_file(tmp_path, "m.ts", f"/**\n * Go.\n * @uuid {UUID_B}\n */\nexport function go() {{}}\n")

        result = runner.invoke(cli, ["extract", str(source)])

        data = json.loads(result.output)
        assert data[0]["kind"] == "FunctionDeclaration"
        assert data[0]["filePath"] == str(source)

    def test_unsupported(self, runner: CliRunner, tmp_path: Path):
        """Other file types are an error."""
        source = write_file(tmp_path, "notes.txt", "x")

        result = runner.invoke(cli, ["extract", str(source)])

        assert result.exit_code == 1
        assert "Unsupported file type" in result.output


class TestEntriesCommand:
    """Tests for `docgen entries`."""

    def test_entries(self, runner: CliRunner, tmp_path: Path):
        """Slugs are relative to the base path."""
        site = tmp_path / "site"
        write_file(site, "docs/intro.md", f"---\nuuid: {UUID_A}\n---\n# Intro\n")

        result = runner.invoke(cli, ["entries", str(site / "docs"), "--base-path", str(site)])

        assert result.exit_code == 0
        assert json.loads(result.output) == [{"slug": "intro", "uuid": UUID_A}]

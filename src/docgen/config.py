"""Configuration management for docgen.

Path rules are carried by an explicit PathConfig value that callers build once
and pass to whatever needs it. All tunable constants live here rather than
being scattered throughout the codebase.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field


class ConfigurationError(Exception):
    """Raised when a project configuration file is invalid."""

    pass


# =============================================================================
# Base Path Resolution
# =============================================================================

# Environment variables consulted for the base path, highest priority first.
BASE_PATH_ENV_VARS = ("DOC_GEN_BASE_PATH", "PROJECT_ROOT", "WORKSPACE_ROOT", "PWD")

# Name of the project configuration file discovered by walking up from cwd
PROJECT_CONFIG_FILENAME = ".docgen.yaml"

_WINDOWS_DRIVE_PATH = re.compile(r"^[A-Za-z]:[\\/]")


def _resolve_path_value(value: str, environ: Mapping[str, str]) -> Path:
    """Resolve a configured path that may name an environment variable."""
    env_value = environ.get(value)
    if env_value:
        return Path(env_value).resolve()

    if _WINDOWS_DRIVE_PATH.match(value):
        return Path(value.replace("\\", "/"))

    path = Path(value)
    if path.is_absolute():
        return path
    return path.resolve()


def resolve_base_path(
    explicit: str | os.PathLike[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Path:
    """Resolve the documentation base path.

    Resolution order:
    1. Explicit value (an environment variable name, a Windows drive path,
       an absolute path, or a path relative to cwd)
    2. The first set variable of DOC_GEN_BASE_PATH, PROJECT_ROOT,
       WORKSPACE_ROOT, PWD
    3. The current working directory

    Args:
        explicit: Value supplied by the caller, if any.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        The resolved base path.
    """
    env = os.environ if environ is None else environ

    if explicit:
        return _resolve_path_value(os.fspath(explicit), env)

    for name in BASE_PATH_ENV_VARS:
        value = env.get(name)
        if value:
            return Path(value).resolve()

    return Path.cwd()


# =============================================================================
# Path Configuration
# =============================================================================


class PathConfig(BaseModel):
    """Slug and discovery rules for a documentation tree."""

    model_config = ConfigDict(frozen=True)

    base_path: Path
    content_roots: list[str] = Field(default_factory=lambda: ["docs", "platforms"])
    slug_prefixes: list[str] = Field(default_factory=lambda: ["/docs/", "/platforms/"])
    file_extensions: list[str] = Field(default_factory=lambda: ["md", "mdx"])

    @classmethod
    def resolve(
        cls,
        base_path: str | os.PathLike[str] | None = None,
        *,
        content_roots: list[str] | None = None,
        slug_prefixes: list[str] | None = None,
        file_extensions: list[str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> PathConfig:
        """Build a config, falling back to defaults for anything not given."""
        values: dict = {"base_path": resolve_base_path(base_path, environ)}
        if content_roots is not None:
            values["content_roots"] = list(content_roots)
        if slug_prefixes is not None:
            values["slug_prefixes"] = list(slug_prefixes)
        if file_extensions is not None:
            values["file_extensions"] = [ext.lstrip(".") for ext in file_extensions]
        return cls(**values)

    def content_root_paths(self) -> list[Path]:
        """Content roots as absolute paths (relative roots hang off base_path)."""
        roots = []
        for root in self.content_roots:
            path = Path(root)
            roots.append(path if path.is_absolute() else self.base_path / path)
        return roots

    def file_patterns(self) -> list[str]:
        """Glob patterns for content discovery, one per configured extension."""
        return [f"**/*.{ext}" for ext in self.file_extensions]

    def path_to_slug(self, file_path: str | os.PathLike[str]) -> str:
        """Convert a file path to a slug.

        Strips the extension, the base path, a Windows drive prefix and then
        the first matching slug prefix.

        Examples:
            /site/docs/guide/intro.md -> guide/intro   (base_path=/site)
        """
        normalized = os.path.normpath(os.fspath(file_path)).replace("\\", "/")
        base = os.path.normpath(os.fspath(self.base_path)).replace("\\", "/")

        slug = re.sub(r"\.[^/.]+$", "", normalized)

        if slug.startswith(base):
            slug = slug[len(base):]

        slug = re.sub(r"^/[A-Za-z]:", "", slug)

        for prefix in self.slug_prefixes:
            if slug.startswith(prefix):
                slug = slug[len(prefix):]
                break

        return slug


def load_project_config(
    start_dir: Path | None = None,
    max_depth: int = 10,
    environ: Mapping[str, str] | None = None,
) -> PathConfig:
    """Walk up from start_dir looking for .docgen.yaml and build a PathConfig.

    Relative base_path values in the file are taken relative to the directory
    holding the file. Without a config file the defaults apply.

    Raises:
        ConfigurationError: If the config file cannot be read or parsed.
    """
    env = os.environ if environ is None else environ
    current = Path(start_dir or os.getcwd()).resolve()

    for _ in range(max_depth):
        config_file = current / PROJECT_CONFIG_FILENAME
        if config_file.exists():
            try:
                data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Cannot read {config_file}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigurationError(f"{config_file}: expected a mapping at top level")

            base_path = data.get("base_path")
            if base_path and not Path(base_path).is_absolute() and base_path not in env:
                base_path = str(current / base_path)
            return PathConfig.resolve(
                base_path or str(current),
                content_roots=data.get("content_roots"),
                slug_prefixes=data.get("slug_prefixes"),
                file_extensions=data.get("file_extensions"),
                environ=environ,
            )

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    return PathConfig.resolve(environ=environ)


# =============================================================================
# File Discovery
# =============================================================================

# Extensions scanned by the UUID index, link resolver and backlink indexer
LINK_SCAN_EXTENSIONS = ("md", "svx", "ts", "py")

# Suffixes compiled as markdown
MARKDOWN_EXTENSIONS = (".md", ".svx", ".mdx")

# Upper bound on concurrently processed files in one index/resolve/backlink pass
DEFAULT_MAX_CONCURRENCY = 16


# =============================================================================
# Diagram Directive
# =============================================================================

# Diagram source files larger than this are rejected (5 MiB)
MAX_DIAGRAM_FILE_SIZE = 5 * 1024 * 1024

# Rendered diagrams are reused for this long before the source is re-read
DIAGRAM_CACHE_TTL_SECONDS = 5 * 60

# Container dimensions used when the directive gives none
DEFAULT_DIAGRAM_WIDTH = 800
DEFAULT_DIAGRAM_HEIGHT = 600
DEFAULT_DIAGRAM_ZOOM = 1.0

"""Pydantic models for the documentation pipeline."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

DocType = Literal["markdown", "typescript", "python"]


class TocEntry(BaseModel):
    """A flattened table-of-contents entry for one heading."""

    value: str  # Heading text
    href: str  # "#slug" anchor
    depth: int  # Heading level (1-6)
    numbering: list[int] = Field(default_factory=list)  # Hierarchical counters, e.g. [2, 1]
    parent: str = "root"  # Enclosing container kind


class PostMeta(BaseModel):
    """Document metadata: frontmatter plus compiler and loader fields.

    Unknown frontmatter keys are kept as extra fields.
    """

    model_config = ConfigDict(extra="allow")

    title: str = ""
    description: str = ""
    date: Any = None
    tags: list[str] = Field(default_factory=list)
    published: Any = None
    toc: list[TocEntry] = Field(default_factory=list)
    uuid: str | None = None
    slug: str | None = None  # Assigned by the caller, never by the compiler


class CompileResult(BaseModel):
    """Output of the markdown compiler."""

    code: str  # Serialized HTML
    data: dict[str, Any] = Field(default_factory=dict)  # Frontmatter + toc + stage fields


class ParsedMarkdown(BaseModel):
    """A compiled document as served to a site generator."""

    html: str
    meta: dict[str, Any] = Field(default_factory=dict)

    @property
    def post_meta(self) -> PostMeta:
        """meta as a typed PostMeta; unknown keys are kept as extras."""
        return PostMeta.model_validate(self.meta)


class ParameterInfo(BaseModel):
    """A documented function parameter."""

    name: str
    type: str | None = None
    description: str = ""


class ReturnInfo(BaseModel):
    """A documented return value."""

    type: str | None = None
    description: str | None = None


class CodeInfo(BaseModel):
    """Source position and signature details for functions and methods."""

    line: int
    column: int
    parameters: list[ParameterInfo] = Field(default_factory=list)
    returns: ReturnInfo = Field(default_factory=ReturnInfo)


class ExtractedDoc(BaseModel):
    """Documentation extracted from one code construct."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    kind: str  # e.g. FunctionDeclaration, method, file
    documentation: str = ""
    file_path: str = Field(alias="filePath")
    uuid: str | None = None
    tags: dict[str, list[str]] = Field(default_factory=dict)
    code_info: CodeInfo | None = Field(default=None, alias="codeInfo")


class UUIDEntry(BaseModel):
    """Where a UUID lives."""

    model_config = ConfigDict(populate_by_name=True)

    uuid: str
    file_path: str = Field(alias="filePath")
    type: DocType
    title: str | None = None


class BacklinkEntry(BaseModel):
    """References to one UUID across the scanned files."""

    count: int = 0
    sources: list[str] = Field(default_factory=list)  # One item per occurrence


class Entry(BaseModel):
    """A content entry listed for site navigation."""

    slug: str
    uuid: str | None = None

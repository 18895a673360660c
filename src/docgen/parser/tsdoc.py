"""TypeScript doc extractor built on tree-sitter."""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from tree_sitter import Parser
from tree_sitter_language_pack import get_language

from ..models import CodeInfo, ExtractedDoc, ParameterInfo, ReturnInfo
from ..patterns import find_doc_uuid

if TYPE_CHECKING:
    from tree_sitter import Language, Node

log = logging.getLogger(__name__)

# tree-sitter node type -> reported kind
DOCUMENTABLE_KINDS: dict[str, str] = {
    "function_declaration": "FunctionDeclaration",
    "generator_function_declaration": "FunctionDeclaration",
    "class_declaration": "ClassDeclaration",
    "abstract_class_declaration": "ClassDeclaration",
    "interface_declaration": "InterfaceDeclaration",
    "type_alias_declaration": "TypeAliasDeclaration",
    "enum_declaration": "EnumDeclaration",
    "method_definition": "MethodDeclaration",
    "method_signature": "MethodSignature",
    "abstract_method_signature": "MethodSignature",
    "property_signature": "PropertySignature",
    "public_field_definition": "PropertyDeclaration",
    "lexical_declaration": "VariableStatement",
}

_FUNCTION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "method_definition",
    "method_signature",
    "abstract_method_signature",
    "arrow_function",
    "function_expression",
}

# Tags whose value starts with a parameter or property name
_NAMED_TAGS = {"param", "arg", "argument", "property", "prop", "template"}

_TAG_LINE = re.compile(r"^@(\w+)\s*(.*)$")
_TYPE_PREFIX = re.compile(r"^\{[^}]*\}\s*")


@functools.cache
def _typescript() -> Language:
    return get_language("typescript")


@dataclass
class DocComment:
    """A parsed leading comment."""

    description: str = ""
    tags: dict[str, list[str]] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)  # name -> description
    returns: str | None = None
    uuid: str | None = None

    @property
    def documentation(self) -> str:
        examples = self.tags.get("example", [])
        return "\n\n".join(part for part in [self.description, *examples] if part)


def _strip_comment(text: str) -> str:
    """Comment body without delimiters or leading ``*`` gutters."""
    if text.startswith("//"):
        return text[2:].strip()
    body = text[2:-2] if text.endswith("*/") else text[2:]
    if body.startswith("*"):
        body = body[1:]
    lines = []
    for line in body.splitlines():
        line = line.strip()
        if line.startswith("*"):
            line = line[1:]
            if line.startswith(" "):
                line = line[1:]
        lines.append(line.rstrip())
    return "\n".join(lines).strip()


def parse_doc_comment(text: str) -> DocComment:
    """Split a JSDoc (or plain) comment into description and tags."""
    description: list[str] = []
    tags: list[tuple[str, list[str]]] = []

    for line in text.splitlines():
        match = _TAG_LINE.match(line.strip())
        if match:
            tags.append((match.group(1), [match.group(2)]))
        elif tags:
            tags[-1][1].append(line)
        else:
            description.append(line)

    doc = DocComment(description="\n".join(description).strip())
    for name, lines in tags:
        raw = "\n".join(lines).strip()
        value = raw if name == "example" else _TYPE_PREFIX.sub("", raw)
        if name in _NAMED_TAGS:
            param, _, rest = value.partition(" ")
            param = param.strip("[]").split("=", 1)[0]
            value = rest.strip().removeprefix("-").strip()
            if name in ("param", "arg", "argument"):
                doc.params[param] = value
        elif name in ("returns", "return"):
            doc.returns = value
        doc.tags.setdefault(name, []).append(value)

    uuid_values = doc.tags.get("uuid")
    doc.uuid = find_doc_uuid(f"uuid: {uuid_values[0]}") if uuid_values else None
    if doc.uuid is None:
        doc.uuid = find_doc_uuid(text)
    return doc


def _text(node: Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def _leading_comments(node: Node) -> list[Node]:
    """Contiguous comments directly above a node (or its export wrapper)."""
    anchor = node
    if anchor.parent is not None and anchor.parent.type == "export_statement":
        anchor = anchor.parent

    comments: list[Node] = []
    current = anchor
    sibling = anchor.prev_sibling
    while sibling is not None and sibling.type == "comment":
        if current.start_point[0] - sibling.end_point[0] > 1:
            break
        comments.append(sibling)
        current = sibling
        sibling = sibling.prev_sibling
    comments.reverse()
    return comments


def _comment_for(node: Node) -> DocComment | None:
    comments = _leading_comments(node)
    if not comments:
        return None
    structured = [c for c in comments if _text(c).startswith("/**")]
    chosen = structured[-1:] if structured else comments
    return parse_doc_comment("\n".join(_strip_comment(_text(c)) for c in chosen))


def _node_name(node: Node) -> str:
    if node.type == "lexical_declaration":
        for child in node.named_children:
            if child.type == "variable_declarator":
                return _text(child.child_by_field_name("name"))
        return ""
    return _text(node.child_by_field_name("name"))


def _function_node(node: Node) -> Node | None:
    if node.type in _FUNCTION_TYPES:
        return node
    if node.type == "lexical_declaration":
        for child in node.named_children:
            if child.type == "variable_declarator":
                value = child.child_by_field_name("value")
                if value is not None and value.type in _FUNCTION_TYPES:
                    return value
    return None


def _type_annotation(node: Node | None) -> str | None:
    text = _text(node).lstrip(":").strip()
    return text or None


def _code_info(node: Node, function: Node, doc: DocComment) -> CodeInfo:
    parameters = []
    params_node = function.child_by_field_name("parameters")
    for param in params_node.named_children if params_node is not None else []:
        if param.type not in ("required_parameter", "optional_parameter"):
            continue
        pattern = param.child_by_field_name("pattern")
        name = _text(pattern)
        if name == "this":
            continue
        parameters.append(
            ParameterInfo(
                name=name,
                type=_type_annotation(param.child_by_field_name("type")),
                description=doc.params.get(name, ""),
            )
        )

    return CodeInfo(
        line=node.start_point[0] + 1,
        column=node.start_point[1] + 1,
        parameters=parameters,
        returns=ReturnInfo(
            type=_type_annotation(function.child_by_field_name("return_type")),
            description=doc.returns,
        ),
    )


def _file_header(root: Node, attached: set[int], file_path: str) -> ExtractedDoc | None:
    """A uuid-bearing comment block at the top of the file, if unattached."""
    header: list[Node] = []
    for child in root.children:
        if child.type != "comment":
            break
        if header and child.start_point[0] - header[-1].end_point[0] > 1:
            break
        header.append(child)

    if not header or any(comment.id in attached for comment in header):
        return None

    doc = parse_doc_comment("\n".join(_strip_comment(_text(c)) for c in header))
    if doc.uuid is None:
        return None
    return ExtractedDoc(
        name=Path(file_path).name,
        kind="file",
        documentation=doc.documentation,
        file_path=file_path,
        uuid=doc.uuid,
        tags=doc.tags,
    )


def extract_typescript_docs(source: bytes, file_path: str = "") -> list[ExtractedDoc]:
    """Extract documented declarations from TypeScript source."""
    # Parsers are not thread-safe; one per call
    parser = Parser(_typescript())
    tree = parser.parse(source)

    docs: list[ExtractedDoc] = []
    attached: set[int] = set()
    stack = [tree.root_node]
    while stack:
        node = stack.pop()
        stack.extend(reversed(node.named_children))

        kind = DOCUMENTABLE_KINDS.get(node.type)
        if kind is None:
            continue
        name = _node_name(node)
        doc = _comment_for(node)
        if not name or doc is None:
            continue
        attached.update(comment.id for comment in _leading_comments(node))

        function = _function_node(node)
        docs.append(
            ExtractedDoc(
                name=name,
                kind=kind,
                documentation=doc.documentation,
                file_path=file_path,
                uuid=doc.uuid,
                tags=doc.tags,
                code_info=_code_info(node, function, doc) if function is not None else None,
            )
        )

    header = _file_header(tree.root_node, attached, file_path)
    if header is not None:
        docs.insert(0, header)
    return docs


def parse_typescript_docs(path: str | os.PathLike[str]) -> list[ExtractedDoc]:
    """Extract documented declarations from a TypeScript file.

    Errors for this file are logged and yield an empty list.
    """
    path = Path(path)
    try:
        return extract_typescript_docs(path.read_bytes(), str(path))
    except Exception as e:
        log.warning("Failed to extract docs from %s: %s", path, e)
        return []

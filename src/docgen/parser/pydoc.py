"""Python doc extractor.

A line scanner, not a parser: ``def``/``async def``/``class`` lines open a
record, the first triple-quoted string after it is taken as its docstring,
and a ``uuid: <id>`` line inside the docstring tags it. Only records with
both a name and a uuid are returned.
"""

from __future__ import annotations

import inspect
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..models import CodeInfo, ExtractedDoc, ParameterInfo, ReturnInfo
from ..patterns import find_doc_uuid

log = logging.getLogger(__name__)

_DEFINITION = re.compile(r"^(?P<indent>\s*)(?:(?P<async>async\s+)?def|(?P<cls>class))\s+(?P<name>\w+)")
_SIGNATURE = re.compile(r"\((?P<params>.*)\)\s*(?:->\s*(?P<returns>[^:]+?))?\s*:\s*(?:#.*)?$")
# Optional string prefix, then the opening triple quote
_DOCSTRING_OPEN = re.compile(r"^[rRuU]?('{3}|\"{3})")


class _State(Enum):
    OUTSIDE = "outside"
    INSIDE_DOCSTRING = "inside-docstring"


@dataclass
class _Record:
    name: str
    kind: str
    line: int
    column: int
    signature: str
    lines: list[str] = field(default_factory=list)
    uuid: str | None = None
    has_docstring: bool = False
    emitted: bool = False

    def add(self, text: str) -> None:
        self.lines.append(text)
        if self.uuid is None:
            self.uuid = find_doc_uuid(text)


def _split_params(params: str) -> list[str]:
    parts, depth, current = [], 0, []
    for char in params:
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]


def _code_info(record: _Record) -> CodeInfo:
    parameters: list[ParameterInfo] = []
    returns = ReturnInfo()
    match = _SIGNATURE.search(record.signature)
    if match:
        for param in _split_params(match.group("params")):
            name, _, annotation = param.split("=", 1)[0].partition(":")
            name = name.strip()
            if name in ("self", "cls", "*", "/"):
                continue
            parameters.append(ParameterInfo(name=name, type=annotation.strip() or None))
        if match.group("returns"):
            returns = ReturnInfo(type=match.group("returns").strip())
    return CodeInfo(line=record.line, column=record.column, parameters=parameters, returns=returns)


def _to_doc(record: _Record, file_path: str) -> ExtractedDoc:
    return ExtractedDoc(
        name=record.name,
        kind=record.kind,
        documentation=inspect.cleandoc("\n".join(record.lines)),
        file_path=file_path,
        uuid=record.uuid,
        code_info=_code_info(record) if record.kind != "class" else None,
    )


class _Scanner:
    """Two-state scanner; every transition that can complete a record emits it."""

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        self.state = _State.OUTSIDE
        self.record: _Record | None = None
        self.delimiter = ""
        self.docs: list[ExtractedDoc] = []

    def emit(self) -> None:
        record = self.record
        if record is None or record.emitted:
            return
        if record.name and record.uuid:
            self.docs.append(_to_doc(record, self.file_path))
            record.emitted = True

    def feed(self, number: int, line: str) -> None:
        if self.state is _State.INSIDE_DOCSTRING:
            self._inside(line)
        else:
            self._outside(number, line)

    def _outside(self, number: int, line: str) -> None:
        definition = _DEFINITION.match(line)
        if definition:
            self.emit()
            indent = len(definition.group("indent"))
            if definition.group("cls"):
                kind = "class"
            else:
                kind = "method" if indent else "function"
            self.record = _Record(
                name=definition.group("name"),
                kind=kind,
                line=number,
                column=indent + 1,
                signature=line.strip(),
            )
            return

        record = self.record
        stripped = line.strip()
        opening = _DOCSTRING_OPEN.match(stripped)
        if record is None or record.has_docstring or opening is None:
            return

        self.delimiter = opening.group(1)
        record.has_docstring = True
        rest = stripped[opening.end() :]
        if self.delimiter in rest:
            # One-line docstring
            record.add(rest.split(self.delimiter, 1)[0])
            self.emit()
            return

        self.state = _State.INSIDE_DOCSTRING
        if rest.strip():
            record.add(rest)

    def _inside(self, line: str) -> None:
        record = self.record
        assert record is not None
        if self.delimiter in line:
            before = line.split(self.delimiter, 1)[0]
            if before.strip():
                record.add(before)
            self.state = _State.OUTSIDE
            self.emit()
            return
        record.add(line)

    def finish(self) -> list[ExtractedDoc]:
        # End of file closes whatever is open
        self.state = _State.OUTSIDE
        self.emit()
        return self.docs


def extract_python_docs(source: str, file_path: str = "") -> list[ExtractedDoc]:
    """Extract uuid-tagged definitions from Python source text."""
    scanner = _Scanner(file_path)
    for number, line in enumerate(source.splitlines(), start=1):
        scanner.feed(number, line)
    return scanner.finish()


def parse_python_docs(path: str | os.PathLike[str]) -> list[ExtractedDoc]:
    """Extract uuid-tagged definitions from a Python file.

    Returns:
        One ExtractedDoc per definition whose docstring declares a uuid.
        Unreadable files yield an empty list (logged).
    """
    path = Path(path)
    try:
        source = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        log.warning("Cannot read %s: %s", path, e)
        return []
    return extract_python_docs(source, str(path))

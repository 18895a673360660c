"""UUID patterns shared by the indexers, extractors and link resolver."""

import re

# [[uuid:<36-char id>]] reference token
UUID_TOKEN_PATTERN = re.compile(r"\[\[uuid:([0-9a-fA-F-]{36})\]\]")

# uuid: <id> / uuid=<id> inside a comment or docstring, not a [[uuid:...]] reference
DOC_UUID_PATTERN = re.compile(r"(?<!\[\[)uuid\s*[:=]\s*([0-9a-fA-F-]{36})", re.IGNORECASE)


def missing_uuid_marker(uuid: str) -> str:
    """Visible placeholder left where a reference could not be resolved."""
    return f"[[MISSING UUID: {uuid}]]"


def find_doc_uuid(text: str) -> str | None:
    """First uuid declared in free text, if any."""
    match = DOC_UUID_PATTERN.search(text)
    return match.group(1) if match else None

"""Front-matter normalizer: split a raw markdown file into body + metadata.

The returned ``front_matter_line_offset`` maps body lines back to file lines:
body line ``n`` (1-indexed) is file line ``n + front_matter_line_offset``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import yaml

from docgrounder.errors import MalformedDocumentError

logger = logging.getLogger(__name__)

_MARKER = "---"


@dataclass
class NormalizedDocument:
    body: str
    metadata: dict[str, Any] = field(default_factory=dict)
    front_matter_line_offset: int = 0


def normalize(raw: str, source_path: str = "") -> NormalizedDocument:
    """Strip a ``---`` delimited YAML block from the top of *raw*.

    Malformed front matter is not fatal: it is logged and the document is
    treated as having none, with the raw text passed through unchanged.
    """
    text = raw.replace("\r\n", "\n")
    try:
        metadata, body, offset = _split_front_matter(text)
    except MalformedDocumentError as exc:
        logger.warning("Ignoring malformed front matter in %s: %s", source_path or "<input>", exc)
        metadata, body, offset = {}, text, 0

    body, trimmed = _trim_leading_blank_lines(body)
    return NormalizedDocument(
        body=body,
        metadata=metadata,
        front_matter_line_offset=offset + trimmed,
    )


def _split_front_matter(text: str) -> tuple[dict[str, Any], str, int]:
    """Return ``(metadata, body, closing_marker_line)``.

    Raises:
        MalformedDocumentError: If the block is unterminated, is not valid
            YAML, or does not parse to a mapping.
    """
    lines = text.split("\n")
    if not lines or lines[0].rstrip() != _MARKER:
        return {}, text, 0

    closing = next(
        (i for i in range(1, len(lines)) if lines[i].rstrip() == _MARKER), None
    )
    if closing is None:
        raise MalformedDocumentError("opening '---' has no closing marker")

    block = "\n".join(lines[1:closing])
    try:
        data = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as exc:
        raise MalformedDocumentError(f"invalid YAML: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedDocumentError(
            f"front matter must be a mapping, got {type(data).__name__}"
        )

    body = "\n".join(lines[closing + 1:])
    # closing is 0-indexed, so the closing marker's 1-indexed line is closing + 1
    return {str(k): v for k, v in data.items()}, body, closing + 1


def _trim_leading_blank_lines(body: str) -> tuple[str, int]:
    lines = body.split("\n")
    trimmed = 0
    # Keep at least one line so an all-blank body stays an (empty) body.
    while trimmed < len(lines) - 1 and not lines[trimmed].strip():
        trimmed += 1
    if trimmed == len(lines) - 1 and not lines[trimmed].strip():
        return "", trimmed
    return "\n".join(lines[trimmed:]), trimmed

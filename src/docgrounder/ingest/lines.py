"""Line-number and heading attribution heuristics for split chunks.

The text splitter returns chunk text only, not source offsets, so each chunk
is re-located in the body by string matching. This is approximate: repeated
lines inside the search window, or whitespace normalisation by the splitter,
can shift a chunk's reported range. The functions here are pure so they can
be tested on pathological inputs in isolation.
"""

from __future__ import annotations

import re

DEFAULT_HEADING = "Introduction"
DEFAULT_HEADING_LEVEL = 1

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_FENCE_RE = re.compile(r"^\s{0,3}(`{3,}|~{3,})")

# Prefix length used by the containment fallback.
_CONTAINS_PREFIX = 50


def fenced_line_mask(lines: list[str]) -> list[bool]:
    """Return a parallel list that is True for lines inside a fenced code block.

    Fence delimiter lines themselves are marked True. An unterminated fence
    extends to the end of the document.
    """
    mask: list[bool] = []
    fence: str | None = None
    for line in lines:
        match = _FENCE_RE.match(line)
        if fence is None:
            if match:
                fence = match.group(1)
                mask.append(True)
            else:
                mask.append(False)
        else:
            mask.append(True)
            if match and match.group(1)[0] == fence[0] and len(match.group(1)) >= len(fence):
                fence = None
    return mask


def parse_heading(line: str) -> tuple[str, int] | None:
    """Return ``(text, level)`` if *line* is an ATX heading, else None."""
    match = HEADING_RE.match(line)
    if not match:
        return None
    text = match.group(2).strip()
    if not text:
        return None
    return text, len(match.group(1))


def find_heading(
    body_lines: list[str],
    start_line: int,
    chunk_text: str,
    fenced: list[bool] | None = None,
) -> tuple[str, int]:
    """Return the heading that encloses a chunk starting at body line *start_line*.

    Scans backward from *start_line* (1-indexed, inclusive) to the top of the
    body, then falls back to the first heading inside *chunk_text*, then to
    ``("Introduction", 1)``. Lines inside fenced code blocks never count.
    """
    if fenced is None:
        fenced = fenced_line_mask(body_lines)

    for i in range(min(start_line, len(body_lines)) - 1, -1, -1):
        if fenced[i]:
            continue
        heading = parse_heading(body_lines[i])
        if heading:
            return heading

    chunk_lines = chunk_text.split("\n")
    chunk_fenced = fenced_line_mask(chunk_lines)
    for line, in_fence in zip(chunk_lines, chunk_fenced):
        if in_fence:
            continue
        heading = parse_heading(line)
        if heading:
            return heading

    return DEFAULT_HEADING, DEFAULT_HEADING_LEVEL


def locate_chunk_lines(
    body_lines: list[str],
    chunk_text: str,
    min_line: int = 1,
    fallback_line: int = 1,
) -> tuple[int, int]:
    """Return the 1-indexed, inclusive ``(start_line, end_line)`` of a chunk in the body.

    The chunk's first non-empty line is searched for from *min_line* forward,
    never before it: first as an exact (whitespace-stripped) line match, then
    as containment of its first 50 characters. When neither matches, the
    chunk is placed at *fallback_line*. ``end_line`` is ``start_line`` plus the
    chunk's line count minus one, clamped to the body.
    """
    n = max(len(body_lines), 1)
    chunk_lines = chunk_text.split("\n")
    lead = next((i for i, line in enumerate(chunk_lines) if line.strip()), 0)
    needle = chunk_lines[lead].strip() if chunk_lines else ""
    lo = max(min_line, 1) - 1

    match = None
    if needle:
        match = next(
            (i for i in range(lo, len(body_lines)) if body_lines[i].strip() == needle),
            None,
        )
        if match is None:
            prefix = needle[:_CONTAINS_PREFIX]
            match = next(
                (i for i in range(lo, len(body_lines)) if prefix in body_lines[i]),
                None,
            )

    if match is None:
        start = min(max(fallback_line, min_line, 1), n)
    else:
        start = max(match + 1 - lead, min_line, 1)

    end = min(start + len(chunk_lines) - 1, n)
    return start, max(start, end)


def body_line_count(body: str) -> int:
    """Number of lines in *body*; a terminating newline does not open a new line."""
    lines = body.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return len(lines)


def close_line_gaps(spans: list[tuple[int, int]], line_count: int) -> list[tuple[int, int]]:
    """Stretch each span's end so consecutive spans leave no body line uncovered.

    The splitter strips the blank lines between pieces, so located spans skip
    them. Each end is raised to just before the next span's start, and the
    last span runs to *line_count*. Starts never move.
    """
    closed: list[tuple[int, int]] = []
    for i, (start, end) in enumerate(spans):
        reach = spans[i + 1][0] - 1 if i + 1 < len(spans) else line_count
        closed.append((start, max(end, reach)))
    return closed

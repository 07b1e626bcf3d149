"""Markdown chunker: heading-priority recursive splits with line provenance.

Strategy:
- Split with RecursiveCharacterTextSplitter using structural separators in
  strict priority order: H2, H3, H4, H5, paragraph, line, sentence, word,
  character. A coarser boundary is abandoned only while a piece still
  exceeds ``target_size``.
- Consecutive chunks share up to ``overlap`` characters.
- Every chunk is re-located in the body to recover its line range, shifted
  by the front-matter offset so lines are file-absolute. Blank lines the
  splitter dropped between chunks are folded into the preceding chunk.
- Every chunk is labelled with its nearest enclosing heading.
"""

from __future__ import annotations

import re
from typing import Any

from langchain_text_splitters import RecursiveCharacterTextSplitter

from docgrounder.db.models import Chunk
from docgrounder.errors import ChunkingError
from docgrounder.ingest.lines import (
    body_line_count,
    close_line_gaps,
    fenced_line_mask,
    find_heading,
    locate_chunk_lines,
)

SEPARATORS: list[str] = [
    "\n## ",    # H2 headings
    "\n### ",   # H3 headings
    "\n#### ",  # H4 headings
    "\n##### ", # H5 headings
    "\n\n",     # Paragraphs
    "\n",       # Lines
    ". ",       # Sentences
    " ",        # Words
    "",         # Characters
]

# Splitter patterns. The sentence boundary is a zero-width match after ". ",
# so the period closes the previous piece instead of opening the next one.
_SENTENCE_END = r"(?<=\. )"
_SEPARATOR_PATTERNS: list[str] = [
    _SENTENCE_END if sep == ". " else re.escape(sep) for sep in SEPARATORS
]

_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]+$")


def source_slug(source_path: str) -> str:
    """``functions/index.md`` -> ``functions_index``."""
    return re.sub(r"[\\/]", "_", _EXTENSION_RE.sub("", source_path))


def chunk_id(source_path: str, chunk_index: int) -> str:
    """Deterministic chunk id: same path + index always yields the same id."""
    return f"{source_slug(source_path)}_chunk_{chunk_index}"


def document_metadata(front_matter: dict[str, Any]) -> dict[str, Any]:
    """Copy *front_matter* and lift the well-known page fields to stable keys."""
    metadata = dict(front_matter)
    metadata["title"] = front_matter.get("title")
    metadata["slug"] = front_matter.get("slug")
    metadata["pageType"] = front_matter.get("page-type", front_matter.get("pageType"))
    metadata["sidebar"] = front_matter.get("sidebar")
    return metadata


class MarkdownChunker:
    """Split a normalized markdown body into overlapping, line-addressed chunks.

    Args:
        target_size: Maximum chunk length in characters.
        overlap: Characters of the previous chunk repeated at the head of the
            next one. Must be smaller than ``target_size``.
    """

    def __init__(self, target_size: int = 1000, overlap: int = 200) -> None:
        if target_size < 1:
            raise ValueError("target_size must be >= 1")
        if overlap < 1:
            raise ValueError("overlap must be >= 1")
        if overlap >= target_size:
            raise ValueError("overlap must be smaller than target_size")
        self.target_size = target_size
        self.overlap = overlap
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=target_size,
            chunk_overlap=overlap,
            separators=_SEPARATOR_PATTERNS,
            is_separator_regex=True,
            length_function=len,
        )

    def split_text(self, body: str) -> list[str]:
        """Return the raw chunk texts for *body* (no provenance)."""
        return [t for t in self._splitter.split_text(body) if t.strip()]

    def chunk(
        self,
        source_path: str,
        body: str,
        metadata: dict[str, Any] | None = None,
        front_matter_line_offset: int = 0,
    ) -> list[Chunk]:
        """Split *body* into Chunk objects for *source_path*.

        Args:
            source_path: Corpus-relative path; the basis of chunk ids.
            body: Document text after front matter and leading blank lines
                were removed.
            metadata: Front-matter fields, copied onto every chunk.
            front_matter_line_offset: File line that precedes body line 1.

        Returns:
            Ordered list of Chunk objects with sequential ``chunk_index``.

        Raises:
            ChunkingError: If the body is empty or the splitter fails.
        """
        if not body.strip():
            raise ChunkingError(source_path, "document body is empty")

        try:
            texts = self.split_text(body)
        except Exception as exc:
            raise ChunkingError(source_path, f"splitter failed: {exc}") from exc
        if not texts:
            raise ChunkingError(source_path, "splitter produced no chunks")

        doc_meta = document_metadata(metadata or {})
        body_lines = body.split("\n")
        fenced = fenced_line_mask(body_lines)

        spans: list[tuple[int, int]] = []
        prev_start = prev_end = 0
        prev_text = ""
        for index, text in enumerate(texts):
            min_line = 1
            if index > 0:
                # The next chunk can begin no earlier than the previous
                # chunk's overlap tail.
                tail_lines = prev_text[-self.overlap:].count("\n")
                min_line = max(prev_start, prev_end - tail_lines)

            start, end = locate_chunk_lines(
                body_lines, text, min_line=min_line, fallback_line=prev_end + 1
            )
            spans.append((start, end))
            prev_start, prev_end, prev_text = start, end, text

        spans = close_line_gaps(spans, body_line_count(body))

        chunks: list[Chunk] = []
        for index, (text, (start, end)) in enumerate(zip(texts, spans)):
            heading, level = find_heading(body_lines, start, text, fenced)
            chunks.append(
                Chunk(
                    id=chunk_id(source_path, index),
                    source_path=source_path,
                    chunk_index=index,
                    text=text,
                    start_line=start + front_matter_line_offset,
                    end_line=end + front_matter_line_offset,
                    heading=heading,
                    heading_level=level,
                    metadata=dict(doc_meta),
                )
            )

        return chunks

"""Context assembler and citation mapper.

Turns ranked search results into a numbered context block for the
generation prompt plus a parallel citation list. Document ``i`` in the
context text is citation ``i``; both follow result order.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from docgrounder.db.models import Citation, SearchResult

DEFAULT_SITE_BASE_URL = "https://developer.mozilla.org/en-US/docs"
NO_CONTEXT_SENTINEL = "No relevant documentation found."
EXCERPT_LENGTH = 200


@dataclass
class AssembledContext:
    context_text: str = NO_CONTEXT_SENTINEL
    citations: list[Citation] = field(default_factory=list)


def assemble(
    results: list[SearchResult],
    site_base_url: str = DEFAULT_SITE_BASE_URL,
) -> AssembledContext:
    """Build the context block and citations for *results*.

    Args:
        results: Ranked results from the retriever, best first.
        site_base_url: Base URL joined with a document's slug for locators.

    Returns:
        AssembledContext. With no results the text is NO_CONTEXT_SENTINEL
        and the citation list is empty.
    """
    if not results:
        return AssembledContext()

    blocks: list[str] = []
    citations: list[Citation] = []
    for index, result in enumerate(results, start=1):
        locator = chunk_locator(result, site_base_url)
        blocks.append(_render_block(index, result, locator))
        citations.append(
            Citation(
                index=index,
                title=citation_title(result),
                locator=locator,
                excerpt=excerpt(result.chunk.text),
                chunk_id=result.chunk.id,
            )
        )
    return AssembledContext(context_text="\n\n".join(blocks), citations=citations)


def chunk_locator(result: SearchResult, site_base_url: str = DEFAULT_SITE_BASE_URL) -> str:
    """``{base}/{slug}#line-{n}``, or ``{source_path}#line-{n}`` without a slug."""
    chunk = result.chunk
    if chunk.slug:
        return f"{site_base_url.rstrip('/')}/{chunk.slug}#line-{chunk.start_line}"
    return f"{chunk.source_path}#line-{chunk.start_line}"


def citation_title(result: SearchResult) -> str:
    chunk = result.chunk
    if chunk.title:
        return f"{chunk.title} - {chunk.heading}"
    return chunk.heading


def excerpt(text: str, length: int = EXCERPT_LENGTH) -> str:
    if len(text) <= length:
        return text
    return text[:length] + "..."


def _render_block(index: int, result: SearchResult, locator: str) -> str:
    chunk = result.chunk
    lines = [
        f"--- Document {index} ---",
        f"Title: {chunk.title or 'N/A'}",
        f"Source: {chunk.source_path}",
    ]
    if chunk.heading:
        lines.append(f"Section: {chunk.heading}")
    lines.append(f"URL: {locator}")
    lines.append(f"Relevance: {result.similarity * 100:.1f}%")
    lines.append("")
    lines.append("Content:")
    lines.append(chunk.text)
    return "\n".join(lines)

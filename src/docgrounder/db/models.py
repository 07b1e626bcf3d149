"""Domain models for the docgrounder store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Document:
    source_path: str
    title: str | None = None
    slug: str | None = None
    page_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    content_hash: str = ""
    target_size: int = 0
    overlap: int = 0
    embedding_model: str = ""
    ingested_at: str | None = None


@dataclass
class Chunk:
    id: str
    source_path: str
    chunk_index: int
    text: str
    start_line: int
    end_line: int
    heading: str = "Introduction"
    heading_level: int = 1
    metadata: dict[str, Any] = field(default_factory=dict)
    embedding: list[float] | None = None  # None = pending, not retrievable
    created_at: str | None = None
    updated_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved chunks

    @property
    def character_count(self) -> int:
        return len(self.text)

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    @property
    def title(self) -> str | None:
        return _str_or_none(self.metadata.get("title"))

    @property
    def slug(self) -> str | None:
        return _str_or_none(self.metadata.get("slug"))

    @property
    def page_type(self) -> str | None:
        return _str_or_none(self.metadata.get("pageType") or self.metadata.get("page-type"))


@dataclass(frozen=True)
class SearchResult:
    """A retrieved chunk with its cosine similarity (1.0 = identical direction)."""

    chunk: Chunk
    similarity: float

    @property
    def id(self) -> str:
        return self.chunk.id

    @property
    def text(self) -> str:
        return self.chunk.text


@dataclass(frozen=True)
class Citation:
    index: int
    title: str
    locator: str
    excerpt: str
    chunk_id: str = ""


def _str_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)

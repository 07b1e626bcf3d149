"""Ingestion pipeline: documents → normalize → chunk → embed → upsert.

Documents are processed in bounded file batches. Per-document failures
(chunking) are recorded and the run continues; store write failures are
recorded per batch; an embedding failure aborts the whole run.
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from docgrounder.db.models import Chunk, Document
from docgrounder.db.repository import Repository
from docgrounder.embeddings import DOCUMENT_MODE
from docgrounder.errors import ChunkingError, EmbeddingServiceError
from docgrounder.ingest.embedder import EmbeddingBatcher
from docgrounder.ingest.frontmatter import normalize
from docgrounder.ingest.index_writer import IndexWriter
from docgrounder.ingest.markdown import MarkdownChunker, document_metadata

logger = logging.getLogger(__name__)

_MD_EXTS = {".md", ".markdown"}


@dataclass
class IngestReport:
    documents_seen: int = 0
    documents_processed: int = 0
    documents_skipped: int = 0
    chunks_created: int = 0
    inserted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def summary(self, max_errors: int = 5) -> str:
        """Counts plus the first *max_errors* error messages."""
        lines = [
            f"Documents: {self.documents_processed}/{self.documents_seen} processed, "
            f"{self.documents_skipped} unchanged",
            f"Chunks: {self.chunks_created} created, {self.inserted} inserted, "
            f"{self.failed} failed",
        ]
        if self.errors:
            lines.append(f"Errors: {len(self.errors)}")
            lines.extend(f"  - {e}" for e in self.errors[:max_errors])
            if len(self.errors) > max_errors:
                lines.append(f"  ... and {len(self.errors) - max_errors} more")
        return "\n".join(lines)


@dataclass
class _Prepared:
    document: Document
    chunks: list[Chunk]


def iter_markdown_files(source: Path, root: Path | None = None) -> Iterator[tuple[str, str]]:
    """Yield ``(relative_posix_path, text)`` for the markdown files in *source*.

    *source* is a single file or a directory walked in sorted order. Paths
    are relative to the corpus *root*, so a file keeps the same source path
    whether it is ingested alone or with its whole tree. *root* defaults to
    *source* itself for a directory and to its parent for a file.

    Raises:
        ValueError: If *source* does not lie inside *root*.
    """
    source = Path(source)
    if root is None:
        root = source if source.is_dir() else source.parent
    base = Path(root).resolve()
    if source.is_file():
        files = [source]
    else:
        files = [p for p in sorted(source.rglob("*")) if p.is_file() and p.suffix.lower() in _MD_EXTS]
    for path in files:
        try:
            rel = path.resolve().relative_to(base).as_posix()
        except ValueError:
            raise ValueError(f"'{path}' is not inside the corpus root '{root}'") from None
        yield rel, path.read_text(encoding="utf-8", errors="replace")


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class IngestPipeline:
    """Run full ingestion over a stream of ``(source_path, text)`` documents.

    Args:
        conn: Open connection with schema initialised.
        chunker: Structural chunker.
        batcher: Embedding batcher; always called with ``DOCUMENT_MODE``.
        writer: Index writer bound to the model's vec table.
        file_batch_size: Documents chunked and embedded together.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        chunker: MarkdownChunker,
        batcher: EmbeddingBatcher,
        writer: IndexWriter,
        file_batch_size: int = 10,
    ) -> None:
        if file_batch_size < 1:
            raise ValueError("file_batch_size must be >= 1")
        self._conn = conn
        self._repo = Repository(conn)
        self._chunker = chunker
        self._batcher = batcher
        self._writer = writer
        self.file_batch_size = file_batch_size

    def run(
        self,
        sources: Iterable[tuple[str, str]],
        force: bool = False,
        on_document: Callable[[str, str], None] | None = None,
    ) -> IngestReport:
        """Ingest *sources*. Returns the end-of-run report.

        Args:
            sources: ``(source_path, text)`` pairs.
            force: Re-ingest documents even when unchanged.
            on_document: Optional callback ``(source_path, status)``; status is
                one of ``chunked``, ``unchanged``, ``error``, ``stored``.

        Raises:
            EmbeddingServiceError: On any embedding failure, with the partial
                report attached as ``exc.report``.
        """
        report = IngestReport()
        notify = on_document or (lambda path, status: None)

        batch: list[_Prepared] = []
        for source_path, text in sources:
            report.documents_seen += 1
            prepared = self._prepare(source_path, text, force, report, notify)
            if prepared is not None:
                batch.append(prepared)
            if len(batch) >= self.file_batch_size:
                self._flush(batch, report, notify)
                batch = []
        if batch:
            self._flush(batch, report, notify)

        logger.info("Ingestion finished\n%s", report.summary())
        return report

    # ------------------------------------------------------------------
    # Per-document preparation
    # ------------------------------------------------------------------

    def _prepare(
        self,
        source_path: str,
        text: str,
        force: bool,
        report: IngestReport,
        notify: Callable[[str, str], None],
    ) -> _Prepared | None:
        digest = content_hash(text)
        if not force and self._is_unchanged(source_path, digest):
            report.documents_skipped += 1
            notify(source_path, "unchanged")
            return None

        normalized = normalize(text, source_path)
        try:
            chunks = self._chunker.chunk(
                source_path,
                normalized.body,
                normalized.metadata,
                normalized.front_matter_line_offset,
            )
        except ChunkingError as exc:
            logger.warning("Chunking failed: %s", exc)
            report.errors.append(str(exc))
            self._drop_stale(source_path, report)
            notify(source_path, "error")
            return None

        meta = document_metadata(normalized.metadata)
        document = Document(
            source_path=source_path,
            title=_opt_str(meta.get("title")),
            slug=_opt_str(meta.get("slug")),
            page_type=_opt_str(meta.get("pageType")),
            metadata=normalized.metadata,
            content_hash=digest,
            target_size=self._chunker.target_size,
            overlap=self._chunker.overlap,
            embedding_model=self._batcher.model,
        )
        report.chunks_created += len(chunks)
        notify(source_path, "chunked")
        return _Prepared(document=document, chunks=chunks)

    def _is_unchanged(self, source_path: str, digest: str) -> bool:
        existing = self._repo.get_document(source_path)
        if existing is None:
            return False
        return (
            existing.content_hash == digest
            and existing.target_size == self._chunker.target_size
            and existing.overlap == self._chunker.overlap
            and existing.embedding_model == self._batcher.model
            and self._repo.count_chunks_by_source(source_path) > 0
        )

    def _drop_stale(self, source_path: str, report: IngestReport) -> None:
        """Remove what an earlier run stored for a document that no longer chunks."""
        try:
            deleted = self._repo.delete_document(source_path)
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            logger.error("Could not remove stale chunks of %s: %s", source_path, exc)
            report.errors.append(f"{source_path}: could not remove stale chunks: {exc}")
            return
        if deleted:
            logger.info("Removed %d stale chunks of %s", deleted, source_path)

    # ------------------------------------------------------------------
    # Batch embed + write
    # ------------------------------------------------------------------

    def _flush(
        self,
        batch: list[_Prepared],
        report: IngestReport,
        notify: Callable[[str, str], None],
    ) -> None:
        chunks = [c for p in batch for c in p.chunks]
        try:
            self._batcher.embed_batch(chunks, DOCUMENT_MODE)
        except EmbeddingServiceError as exc:
            report.errors.append(f"Embedding failed: {exc}")
            exc.report = report
            raise

        result = self._writer.upsert(chunks)
        report.inserted += result.inserted
        report.failed += result.failed
        report.errors.extend(str(e) for e in result.errors)

        for prepared in batch:
            path = prepared.document.source_path
            if any(c.id in result.failed_ids for c in prepared.chunks):
                # Leave the document unregistered so the next run retries it.
                notify(path, "error")
                continue
            try:
                self._repo.prune_chunks(path, len(prepared.chunks))
                self._repo.upsert_document(prepared.document)
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                logger.error("Could not register document %s: %s", path, exc)
                report.errors.append(f"{path}: could not register document: {exc}")
                notify(path, "error")
                continue
            report.documents_processed += 1
            notify(path, "stored")


def _opt_str(value: object) -> str | None:
    return None if value in (None, "") else str(value)

"""Repository pattern for all docgrounder database operations.

Single interface for: documents, chunks, vec embeddings, KNN search and the
embedding_stats view. Vec tables are model-managed (ensure_vec_table);
repository handles read + write.

Write methods do not commit. Callers own the transaction boundary so that a
batch of chunks is written (or rolled back) as a unit.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from docgrounder.db.models import Chunk, Document
from docgrounder.db.vectors import FILTER_COLUMNS, list_vec_tables

_CHUNK_COLUMNS = (
    "seq AS rowid, id, source_path, chunk_index, text, start_line, end_line, heading, "
    "heading_level, metadata, created_at, updated_at"
)


class Repository:
    """Data access layer for all docgrounder database entities.

    Wraps an open sqlite3.Connection and provides typed methods for documents,
    chunks, vec embeddings and nearest-neighbour search. The connection is
    owned by the caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see docgrounder.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def upsert_document(self, document: Document) -> None:
        """Insert or replace the document record keyed by ``source_path``."""
        self._conn.execute(
            """
            INSERT INTO documents (
                source_path, title, slug, page_type, metadata,
                content_hash, target_size, overlap, embedding_model
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(source_path) DO UPDATE SET
                title = excluded.title,
                slug = excluded.slug,
                page_type = excluded.page_type,
                metadata = excluded.metadata,
                content_hash = excluded.content_hash,
                target_size = excluded.target_size,
                overlap = excluded.overlap,
                embedding_model = excluded.embedding_model,
                ingested_at = datetime('now')
            """,
            (
                document.source_path,
                document.title,
                document.slug,
                document.page_type,
                _dump_metadata(document.metadata),
                document.content_hash,
                document.target_size,
                document.overlap,
                document.embedding_model,
            ),
        )

    def get_document(self, source_path: str) -> Document | None:
        """Return the document stored for *source_path*, or None."""
        row = self._conn.execute(
            "SELECT * FROM documents WHERE source_path = ?", (source_path,)
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self) -> list[Document]:
        """Return all documents ordered by source path."""
        rows = self._conn.execute(
            "SELECT * FROM documents ORDER BY source_path"
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def delete_document(self, source_path: str) -> int:
        """Delete a document with its chunks and vectors. Returns chunks deleted."""
        deleted = self.delete_chunks_by_source(source_path)
        self._conn.execute("DELETE FROM documents WHERE source_path = ?", (source_path,))
        return deleted

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def upsert_chunk(self, chunk: Chunk) -> int:
        """Insert or overwrite *chunk* keyed by its id. Returns the stable rowid."""
        self._conn.execute(
            """
            INSERT INTO chunks (
                id, source_path, chunk_index, text, character_count, word_count,
                start_line, end_line, heading, heading_level,
                title, slug, page_type, metadata
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                source_path = excluded.source_path,
                chunk_index = excluded.chunk_index,
                text = excluded.text,
                character_count = excluded.character_count,
                word_count = excluded.word_count,
                start_line = excluded.start_line,
                end_line = excluded.end_line,
                heading = excluded.heading,
                heading_level = excluded.heading_level,
                title = excluded.title,
                slug = excluded.slug,
                page_type = excluded.page_type,
                metadata = excluded.metadata,
                updated_at = datetime('now')
            """,
            (
                chunk.id,
                chunk.source_path,
                chunk.chunk_index,
                chunk.text,
                chunk.character_count,
                chunk.word_count,
                chunk.start_line,
                chunk.end_line,
                chunk.heading,
                chunk.heading_level,
                chunk.title,
                chunk.slug,
                chunk.page_type,
                _dump_metadata(chunk.metadata),
            ),
        )
        # lastrowid is unreliable for the UPDATE branch of an upsert.
        rowid = self._conn.execute(
            "SELECT rowid FROM chunks WHERE id = ?", (chunk.id,)
        ).fetchone()[0]
        chunk.rowid = rowid
        return rowid

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        """Return a chunk by its id, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id = ?", (chunk_id,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def get_chunks_by_rowids(self, rowids: list[int]) -> dict[int, Chunk]:
        """Return ``{rowid: Chunk}`` for the given rowids (missing ones omitted)."""
        if not rowids:
            return {}
        placeholders = ",".join("?" * len(rowids))
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE rowid IN ({placeholders})",
            rowids,
        ).fetchall()
        return {r["rowid"]: _row_to_chunk(r) for r in rows}

    def list_chunks_by_source(self, source_path: str) -> list[Chunk]:
        """Return the chunks of *source_path* in chunk_index order."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE source_path = ? ORDER BY chunk_index",
            (source_path,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks_by_source(self, source_path: str) -> int:
        """Return the number of chunks stored for *source_path*."""
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE source_path = ?", (source_path,)
        ).fetchone()[0]

    def prune_chunks(self, source_path: str, keep_count: int) -> int:
        """Delete chunks of *source_path* with ``chunk_index >= keep_count``.

        Used after re-ingestion so a document that shrank does not keep stale
        trailing chunks. Returns the number of chunks deleted.
        """
        return self._delete_chunks_where(
            "source_path = ? AND chunk_index >= ?", (source_path, keep_count)
        )

    def delete_chunks_by_source(self, source_path: str) -> int:
        """Delete chunks + vec rows for a document. Returns chunks deleted."""
        return self._delete_chunks_where("source_path = ?", (source_path,))

    def _delete_chunks_where(self, where: str, params: tuple[Any, ...]) -> int:
        rowids = [
            r[0]
            for r in self._conn.execute(
                f"SELECT rowid FROM chunks WHERE {where}", params
            ).fetchall()
        ]
        if not rowids:
            return 0
        placeholders = ",".join("?" * len(rowids))
        for table in list_vec_tables(self._conn):
            # vec0 deletes are point lookups; one statement per rowid.
            self._conn.executemany(
                f"DELETE FROM [{table}] WHERE rowid = ?",  # noqa: S608
                [(r,) for r in rowids],
            )
        self._conn.execute(
            f"DELETE FROM chunks WHERE rowid IN ({placeholders})", rowids
        )
        return len(rowids)

    # ------------------------------------------------------------------
    # Vec embeddings
    # ------------------------------------------------------------------

    def put_embedding(self, table: str, chunk: Chunk) -> None:
        """Replace the vec row for *chunk* (rowid = chunk rowid).

        vec0 tables do not support upsert, so the old row is deleted first.
        """
        if chunk.rowid is None:
            raise ValueError(f"chunk '{chunk.id}' has no rowid; upsert it first")
        self.delete_embedding(table, chunk.rowid)
        if chunk.embedding is None:
            return
        self._conn.execute(
            f"INSERT INTO {table}(rowid, embedding, source_path, page_type, slug) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                chunk.rowid,
                json.dumps(chunk.embedding),
                chunk.source_path,
                chunk.page_type or "",
                chunk.slug or "",
            ),
        )

    def delete_embedding(self, table: str, rowid: int) -> None:
        self._conn.execute(f"DELETE FROM {table} WHERE rowid = ?", (rowid,))

    def count_embeddings(self, table: str) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def search_vec(
        self,
        table: str,
        embedding: list[float],
        limit: int = 10,
        filters: dict[str, str] | None = None,
    ) -> list[tuple[Chunk, float]]:
        """Nearest-neighbour search. Returns (chunk, cosine distance) sorted by distance.

        *filters* are equality constraints on the vec table's metadata columns;
        sqlite-vec applies them inside the KNN scan, so up to *limit* matching
        rows are returned even when most of the index is filtered out.
        """
        where = ["embedding MATCH ?", "k = ?"]
        params: list[Any] = [json.dumps(embedding), limit]
        for column, value in sorted((filters or {}).items()):
            if column not in FILTER_COLUMNS:
                raise ValueError(
                    f"Unknown filter '{column}'. Allowed: {', '.join(FILTER_COLUMNS)}"
                )
            where.append(f"{column} = ?")
            params.append(value)

        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {table} WHERE {' AND '.join(where)} ORDER BY distance",
            params,
        ).fetchall()

        chunks = self.get_chunks_by_rowids([r["rowid"] for r in vec_rows])
        results: list[tuple[Chunk, float]] = []
        for vec_row in vec_rows:
            chunk = chunks.get(vec_row["rowid"])
            if chunk is not None:
                results.append((chunk, vec_row["distance"]))
        return results

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def embedding_stats(self) -> dict[str, Any]:
        """Return the embedding_stats view as a dict."""
        row = self._conn.execute("SELECT * FROM embedding_stats").fetchone()
        return dict(row) if row else {}


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _dump_metadata(metadata: dict[str, Any]) -> str:
    # Front matter may contain YAML dates; serialise them as strings.
    return json.dumps(metadata, default=str, sort_keys=True)


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        source_path=row["source_path"],
        title=row["title"],
        slug=row["slug"],
        page_type=row["page_type"],
        metadata=json.loads(row["metadata"]),
        content_hash=row["content_hash"],
        target_size=row["target_size"],
        overlap=row["overlap"],
        embedding_model=row["embedding_model"],
        ingested_at=row["ingested_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        id=row["id"],
        source_path=row["source_path"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        heading=row["heading"],
        heading_level=row["heading_level"],
        metadata=json.loads(row["metadata"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )

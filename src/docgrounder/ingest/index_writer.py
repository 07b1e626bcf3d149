"""Vector index writer: idempotent, batch-tolerant chunk + vector upserts.

Each batch is one transaction. A failed batch is rolled back, logged with
its chunk ids and counted; the next batch is still attempted. Unlike the
embedding step, a write failure never aborts the run.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

from docgrounder.db.models import Chunk
from docgrounder.db.repository import Repository
from docgrounder.errors import StoreWriteError

logger = logging.getLogger(__name__)


@dataclass
class UpsertResult:
    inserted: int = 0
    failed: int = 0
    errors: list[StoreWriteError] = field(default_factory=list)
    failed_ids: set[str] = field(default_factory=set)


class IndexWriter:
    """Persist chunks and their embeddings keyed by chunk id.

    Args:
        conn: Open connection with schema initialised.
        vec_table: Vec table for the embedding model (see ensure_vec_table).
        batch_size: Chunks per transaction.
    """

    def __init__(self, conn: sqlite3.Connection, vec_table: str, batch_size: int = 100) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._conn = conn
        self._repo = Repository(conn)
        self.vec_table = vec_table
        self.batch_size = batch_size

    def upsert(self, chunks: list[Chunk]) -> UpsertResult:
        """Write *chunks* in batches. Returns inserted/failed counts."""
        result = UpsertResult()
        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start:start + self.batch_size]
            try:
                self._write_batch(batch)
            except (sqlite3.Error, ValueError) as exc:
                self._conn.rollback()
                ids = [c.id for c in batch]
                error = StoreWriteError(ids, exc)
                logger.error("Store write failed for chunks %s: %s", ", ".join(ids), exc)
                result.failed += len(batch)
                result.failed_ids.update(ids)
                result.errors.append(error)
            else:
                result.inserted += len(batch)
        return result

    def _write_batch(self, batch: list[Chunk]) -> None:
        for chunk in batch:
            self._repo.upsert_chunk(chunk)
            self._repo.put_embedding(self.vec_table, chunk)
        self._conn.commit()

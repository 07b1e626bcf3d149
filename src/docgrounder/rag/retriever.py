"""Query embedder and nearest-neighbour retriever (sqlite-vec, cosine).

The question is embedded in query mode and matched against chunk vectors
stored in document mode. sqlite-vec runs the KNN scan natively; metadata
filters are applied inside that scan, so ``k`` matching rows come back even
when most of the index is filtered out.

similarity = 1 - cosine_distance, clamped to [0, 1]
"""

from __future__ import annotations

import logging
import sqlite3
import time

from docgrounder.db.connection import ConnectionPool
from docgrounder.db.models import SearchResult
from docgrounder.db.repository import Repository
from docgrounder.db.vectors import vec_table_exists
from docgrounder.embeddings import QUERY_MODE, EmbeddingProvider
from docgrounder.errors import (
    EmbeddingServiceError,
    EmbeddingTimeoutError,
    RetrievalServiceError,
    RetrievalTimeoutError,
)

logger = logging.getLogger(__name__)

MAX_K = 4096  # sqlite-vec KNN limit
_PROGRESS_STEPS = 1000


class QueryEmbedder:
    """Embed a live question with the query-side encoding."""

    def __init__(self, provider: EmbeddingProvider) -> None:
        self._provider = provider

    @property
    def model(self) -> str:
        return self._provider.model

    def embed(self, question: str) -> list[float]:
        """Return the query vector for *question*.

        Raises:
            ValueError: If *question* is empty or whitespace.
            RetrievalTimeoutError: If the provider timed out.
            RetrievalServiceError: On any other provider failure.
        """
        if not question or not question.strip():
            raise ValueError("question must not be empty")
        try:
            vectors = self._provider.embed([question], QUERY_MODE)
        except EmbeddingTimeoutError as exc:
            raise RetrievalTimeoutError(str(exc)) from exc
        except EmbeddingServiceError as exc:
            raise RetrievalServiceError(str(exc)) from exc
        if len(vectors) != 1:
            raise RetrievalServiceError(
                f"Embedding service returned {len(vectors)} vectors for 1 question."
            )
        return list(vectors[0])


class Retriever:
    """Top-k chunk search over one model's vec table.

    Args:
        pool: Connection pool shared by concurrent queries.
        vec_table: Vec table holding the chunk vectors.
        timeout: Deadline in seconds for one nearest-neighbour query.
        min_similarity: Results below this similarity are dropped.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        vec_table: str,
        timeout: float = 10.0,
        min_similarity: float = 0.0,
    ) -> None:
        self._pool = pool
        self.vec_table = vec_table
        self.timeout = timeout
        self.min_similarity = min_similarity

    def retrieve(
        self,
        query_vector: list[float],
        k: int,
        filters: dict[str, str] | None = None,
    ) -> list[SearchResult]:
        """Return at most *k* results, best first.

        Ties on similarity are broken by chunk_index, then chunk id. An empty
        store or a fully filtered-out index yields ``[]``.

        Raises:
            ValueError: If *k* is outside 1..4096 or a filter key is unknown.
            RetrievalTimeoutError: If the query exceeds ``timeout``.
            RetrievalServiceError: On any other store failure.
        """
        if not 1 <= k <= MAX_K:
            raise ValueError(f"k must be between 1 and {MAX_K}, got {k}")

        with self._pool.connection() as conn:
            if not vec_table_exists(conn, self.vec_table):
                logger.info("Vec table %s does not exist yet; nothing to retrieve", self.vec_table)
                return []
            rows = self._search(conn, query_vector, k, filters)

        results = [
            SearchResult(chunk=chunk, similarity=_similarity(distance))
            for chunk, distance in rows
        ]
        results = [r for r in results if r.similarity >= self.min_similarity]
        results.sort(key=lambda r: (-round(r.similarity, 9), r.chunk.chunk_index, r.chunk.id))
        return results[:k]

    def _search(
        self,
        conn: sqlite3.Connection,
        query_vector: list[float],
        k: int,
        filters: dict[str, str] | None,
    ):
        deadline = time.monotonic() + self.timeout
        conn.set_progress_handler(lambda: int(time.monotonic() > deadline), _PROGRESS_STEPS)
        repo = Repository(conn)
        # Widen past the k-th row while it still ties, so chunk_index rather
        # than KNN scan order decides which tied chunks survive the cut.
        limit = min(k + 1, MAX_K)
        try:
            while True:
                rows = repo.search_vec(self.vec_table, query_vector, limit=limit, filters=filters)
                if len(rows) < limit or limit == MAX_K or not _tied(rows[k - 1][1], rows[-1][1]):
                    return rows
                limit = min(limit * 2, MAX_K)
        except sqlite3.OperationalError as exc:
            if "interrupted" in str(exc):
                raise RetrievalTimeoutError(
                    f"Nearest-neighbour search exceeded {self.timeout:.1f}s"
                ) from exc
            raise RetrievalServiceError(f"Nearest-neighbour search failed: {exc}") from exc
        except sqlite3.Error as exc:
            raise RetrievalServiceError(f"Nearest-neighbour search failed: {exc}") from exc
        finally:
            conn.set_progress_handler(None, 0)


def _similarity(distance: float) -> float:
    return min(1.0, max(0.0, 1.0 - float(distance)))


def _tied(a: float, b: float) -> bool:
    return round(_similarity(a), 9) == round(_similarity(b), 9)

"""Embedding batcher: bounded batches, inter-batch throttle, fail-fast.

Chunks are embedded in fixed-size batches with a short blocking pause
between batches to stay under provider rate limits. Any failed batch aborts
the run: a partially embedded corpus loses recall without any visible
signal, so no chunk is returned unless every chunk got its vector.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from docgrounder.db.models import Chunk
from docgrounder.embeddings import EmbeddingProvider, check_mode, check_vector_count
from docgrounder.errors import EmbeddingServiceError

logger = logging.getLogger(__name__)


class EmbeddingBatcher:
    """Attach embeddings to chunks, batch by batch.

    Args:
        provider: Embedding service handle.
        batch_size: Texts per embedding call.
        delay_seconds: Blocking pause between consecutive batches.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        batch_size: int = 50,
        delay_seconds: float = 0.1,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self._provider = provider
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds

    @property
    def model(self) -> str:
        return self._provider.model

    def embed_batch(
        self,
        chunks: list[Chunk],
        mode: str,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[Chunk]:
        """Embed *chunks* in order and attach each vector to ``chunk.embedding``.

        Args:
            chunks: Chunks to embed; returned in the same order.
            mode: ``"document"`` or ``"query"``; required, never defaulted.
            on_progress: Optional callback ``(embedded_so_far, total)`` fired
                after each batch.

        Raises:
            EmbeddingServiceError: If any batch fails or returns the wrong
                number of vectors. No chunk is modified in that case.
        """
        check_mode(mode)
        total = len(chunks)
        vectors: list[list[float]] = []

        for start in range(0, total, self.batch_size):
            if start > 0 and self.delay_seconds:
                time.sleep(self.delay_seconds)

            batch = chunks[start:start + self.batch_size]
            texts = [c.text for c in batch]
            try:
                batch_vectors = self._provider.embed(texts, mode)
            except EmbeddingServiceError:
                logger.error(
                    "Embedding batch %d-%d failed; aborting run", start, start + len(batch) - 1
                )
                raise
            except Exception as exc:
                raise EmbeddingServiceError(f"Embedding batch failed: {exc}") from exc
            check_vector_count(texts, batch_vectors)

            vectors.extend(batch_vectors)
            logger.debug("Embedded %d/%d chunks", len(vectors), total)
            if on_progress is not None:
                on_progress(len(vectors), total)

        for chunk, vector in zip(chunks, vectors):
            chunk.embedding = list(vector)
        return chunks

"""Embedding providers: ``embed(texts, mode) -> vectors``.

Two interchangeable variants, chosen by configuration:

* ``LiteLLMEmbeddingProvider`` calls a hosted model through LiteLLM.
* ``FakeEmbeddingProvider`` returns deterministic vectors for tests and
  offline runs.

``mode`` selects the asymmetric encoding: ``DOCUMENT_MODE`` for corpus
chunks at ingestion time, ``QUERY_MODE`` for the live user question. Vectors
from one mode are only ever compared with vectors from the other through the
store, so the mode is always passed explicitly.
"""

from __future__ import annotations

import hashlib
import logging
import math
import random
from typing import Protocol

import litellm

from docgrounder.errors import EmbeddingServiceError, EmbeddingTimeoutError
from docgrounder.rag.llm_client import validate_api_key

logger = logging.getLogger(__name__)

DOCUMENT_MODE = "document"
QUERY_MODE = "query"
EMBEDDING_MODES = frozenset({DOCUMENT_MODE, QUERY_MODE})


class EmbeddingProvider(Protocol):
    model: str
    dimensions: int

    def embed(self, texts: list[str], mode: str) -> list[list[float]]: ...


def check_mode(mode: str) -> None:
    if mode not in EMBEDDING_MODES:
        raise ValueError(
            f"Unknown embedding mode '{mode}'. Use '{DOCUMENT_MODE}' or '{QUERY_MODE}'."
        )


def check_vector_count(texts: list[str], vectors: list[list[float]]) -> None:
    """Raise EmbeddingServiceError unless there is exactly one vector per text."""
    if len(vectors) != len(texts):
        raise EmbeddingServiceError(
            f"Embedding service returned {len(vectors)} vectors for {len(texts)} texts."
        )


class LiteLLMEmbeddingProvider:
    """Embed through ``litellm.embedding()``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Requested output dimensions.
        timeout: Per-call timeout in seconds.
        num_retries: LiteLLM retries before a failure is raised. ``0`` keeps
            ingestion fail-fast.
    """

    def __init__(
        self,
        model: str = "voyage/voyage-code-3",
        dimensions: int = 1024,
        timeout: float = 30.0,
        num_retries: int = 0,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout
        self.num_retries = num_retries
        self._key_checked = False

    def embed(self, texts: list[str], mode: str) -> list[list[float]]:
        check_mode(mode)
        if not texts:
            return []
        if not self._key_checked:
            try:
                validate_api_key(self.model)
            except EnvironmentError as exc:
                raise EmbeddingServiceError(str(exc)) from exc
            self._key_checked = True

        try:
            response = litellm.embedding(
                model=self.model,
                input=texts,
                input_type=mode,
                dimensions=self.dimensions,
                timeout=self.timeout,
                num_retries=self.num_retries,
                drop_params=True,
            )
        except litellm.Timeout as exc:
            raise EmbeddingTimeoutError(
                f"Embedding call to '{self.model}' timed out after {self.timeout:.0f}s"
            ) from exc
        except Exception as exc:
            raise EmbeddingServiceError(
                f"Embedding call to '{self.model}' failed: {exc}"
            ) from exc

        vectors = [item["embedding"] for item in response.data]
        check_vector_count(texts, vectors)
        return vectors


class FakeEmbeddingProvider:
    """Deterministic unit vectors seeded by the SHA-256 of each text.

    The same text always maps to the same vector regardless of mode, so a
    query identical to a stored chunk has similarity 1.0. ``vectors`` pins
    exact vectors for chosen texts. Every call is recorded in ``calls`` as
    ``(texts, mode)``.
    """

    model = "fake/deterministic"

    def __init__(
        self,
        dimensions: int = 64,
        vectors: dict[str, list[float]] | None = None,
    ) -> None:
        self.dimensions = dimensions
        self.vectors = dict(vectors or {})
        self.calls: list[tuple[list[str], str]] = []

    def embed(self, texts: list[str], mode: str) -> list[list[float]]:
        check_mode(mode)
        self.calls.append((list(texts), mode))
        return [self._vector(t) for t in texts]

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = random.Random(seed)
        raw = [rng.uniform(-1.0, 1.0) for _ in range(self.dimensions)]
        norm = math.sqrt(sum(v * v for v in raw)) or 1.0
        return [v / norm for v in raw]


def make_embedding_provider(
    provider: str,
    model: str,
    dimensions: int,
    timeout: float = 30.0,
    num_retries: int = 0,
) -> EmbeddingProvider:
    """Build the configured provider variant (``litellm`` or ``fake``)."""
    if provider == "fake":
        logger.info("Using deterministic fake embeddings (%d dims)", dimensions)
        return FakeEmbeddingProvider(dimensions=dimensions)
    if provider == "litellm":
        return LiteLLMEmbeddingProvider(
            model=model, dimensions=dimensions, timeout=timeout, num_retries=num_retries
        )
    raise ValueError(f"Unknown embedding provider '{provider}'. Use 'litellm' or 'fake'.")

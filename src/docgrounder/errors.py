"""Error taxonomy for the docgrounder ingestion and retrieval pipeline.

Ingestion-time errors are collected into an end-of-run report, except
``EmbeddingServiceError`` which aborts the run. Query-time errors derive from
``RetrievalError`` and always propagate to the caller.
"""

from __future__ import annotations


class DocGrounderError(Exception):
    """Base class for all docgrounder errors."""


class MalformedDocumentError(DocGrounderError):
    """Front matter is present but cannot be parsed.

    Recovered inside the normalizer: the document is treated as having no
    front matter.
    """


class ChunkingError(DocGrounderError):
    """A document produced zero chunks or the splitter failed."""

    def __init__(self, source_path: str, message: str) -> None:
        super().__init__(f"{source_path}: {message}")
        self.source_path = source_path


class EmbeddingServiceError(DocGrounderError):
    """The embedding call failed or returned a mismatched number of vectors.

    Fatal to the current ingestion run. ``report`` is set by the pipeline to
    the partial IngestReport at the time of the failure.
    """

    report = None


class EmbeddingTimeoutError(EmbeddingServiceError):
    """The embedding provider did not answer within its timeout."""


class StoreWriteError(DocGrounderError):
    """A batch of chunk records could not be written to the store."""

    def __init__(self, chunk_ids: list[str], cause: BaseException) -> None:
        super().__init__(f"write failed for {len(chunk_ids)} chunks: {cause}")
        self.chunk_ids = chunk_ids
        self.cause = cause


class RetrievalError(DocGrounderError):
    """Grounding is unavailable for this query."""

    kind = "retrieval_unavailable"


class RetrievalTimeoutError(RetrievalError):
    """Query embedding or nearest-neighbour search exceeded its deadline."""

    kind = "retrieval_timeout"


class RetrievalServiceError(RetrievalError):
    """Query embedding or nearest-neighbour search failed."""

    kind = "retrieval_service_failure"


class GenerationError(DocGrounderError):
    """The generation model call failed after retries."""

"""docgrounder ingest pipeline: normalizer, chunker, embedding batcher, index writer."""

from docgrounder.ingest.embedder import EmbeddingBatcher
from docgrounder.ingest.frontmatter import NormalizedDocument, normalize
from docgrounder.ingest.index_writer import IndexWriter, UpsertResult
from docgrounder.ingest.markdown import MarkdownChunker
from docgrounder.ingest.pipeline import IngestPipeline, IngestReport, iter_markdown_files

__all__ = [
    "EmbeddingBatcher",
    "IndexWriter",
    "IngestPipeline",
    "IngestReport",
    "MarkdownChunker",
    "NormalizedDocument",
    "UpsertResult",
    "iter_markdown_files",
    "normalize",
]

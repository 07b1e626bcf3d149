"""Tests for the query embedder and the sqlite-vec retriever."""

from __future__ import annotations

import itertools
import sqlite3
from unittest.mock import MagicMock, patch

import pytest
from conftest import make_chunk, unit

from docgrounder.db.connection import ConnectionPool, Database
from docgrounder.db.repository import Repository
from docgrounder.embeddings import QUERY_MODE
from docgrounder.errors import (
    EmbeddingServiceError,
    EmbeddingTimeoutError,
    RetrievalServiceError,
    RetrievalTimeoutError,
)
from docgrounder.ingest.index_writer import IndexWriter
from docgrounder.rag.retriever import MAX_K, QueryEmbedder, Retriever


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


@pytest.fixture
def pool(tmp_path, tmp_db):
    p = ConnectionPool(Database(tmp_path / ".docgrounder.db"), size=2, acquire_timeout=1.0)
    yield p
    p.close()


def _store(conn, vec_table, chunks):
    IndexWriter(conn, vec_table).upsert(chunks)


@pytest.fixture
def three_chunks(tmp_db, vec_table):
    chunks = [
        make_chunk(0, "web/api/fetch.md", "exact", unit(1.0), pageType="guide"),
        make_chunk(1, "web/api/fetch.md", "close", unit(0.8, 0.6), pageType="reference"),
        make_chunk(2, "web/api/fetch.md", "orthogonal", unit(0.0, 1.0), pageType="guide"),
    ]
    _store(tmp_db, vec_table, chunks)
    return chunks


# ------------------------------------------------------------------
# Retriever
# ------------------------------------------------------------------


def test_results_sorted_by_similarity(pool, vec_table, three_chunks):
    results = Retriever(pool, vec_table).retrieve(unit(1.0), k=3)

    assert [r.text for r in results] == ["exact", "close", "orthogonal"]
    assert results[0].similarity == pytest.approx(1.0, abs=1e-5)
    assert results[1].similarity == pytest.approx(0.8, abs=1e-5)
    assert results[2].similarity == pytest.approx(0.0, abs=1e-5)


def test_k_larger_than_store_returns_all(pool, vec_table, three_chunks):
    assert len(Retriever(pool, vec_table).retrieve(unit(1.0), k=5)) == 3


def test_k_limits_results(pool, vec_table, three_chunks):
    results = Retriever(pool, vec_table).retrieve(unit(1.0), k=1)
    assert [r.text for r in results] == ["exact"]


@pytest.mark.parametrize("k", [0, -1, MAX_K + 1])
def test_k_out_of_range(pool, vec_table, k):
    with pytest.raises(ValueError, match="k must be between"):
        Retriever(pool, vec_table).retrieve(unit(1.0), k=k)


def test_empty_store_returns_empty(pool, vec_table):
    assert Retriever(pool, vec_table).retrieve(unit(1.0), k=5) == []


def test_missing_vec_table_returns_empty(pool):
    assert Retriever(pool, "vec_chunks_never_created").retrieve(unit(1.0), k=5) == []


def test_similarity_within_unit_interval(pool, vec_table, tmp_db):
    _store(tmp_db, vec_table, [make_chunk(0, text="opposite", embedding=unit(-1.0))])
    results = Retriever(pool, vec_table).retrieve(unit(1.0), k=1)
    assert results[0].similarity == 0.0


def test_ties_broken_by_chunk_index_then_id(pool, vec_table, tmp_db):
    _store(tmp_db, vec_table, [
        make_chunk(1, "a.md", "a1", unit(1.0)),
        make_chunk(0, "b.md", "b0", unit(1.0)),
        make_chunk(0, "a.md", "a0", unit(1.0)),
    ])
    results = Retriever(pool, vec_table).retrieve(unit(1.0), k=3)
    assert [r.id for r in results] == ["a_chunk_0", "b_chunk_0", "a_chunk_1"]


@pytest.mark.parametrize("order", list(itertools.permutations(range(4))))
def test_ties_beyond_k_keep_lowest_chunk_index(pool, vec_table, tmp_db, order):
    _store(tmp_db, vec_table, [make_chunk(i, "a.md", f"a{i}", unit(1.0)) for i in order])
    results = Retriever(pool, vec_table).retrieve(unit(1.0), k=2)
    assert [r.chunk.chunk_index for r in results] == [0, 1]


def test_widening_stops_when_ties_end(pool, vec_table, tmp_db):
    tied = [make_chunk(i, "a.md", f"a{i}", unit(1.0)) for i in (9, 4, 7, 2, 5, 3, 8, 6)]
    _store(tmp_db, vec_table, tied + [make_chunk(0, "b.md", "weaker", unit(0.6, 0.8))])
    with patch.object(Repository, "search_vec", autospec=True, side_effect=Repository.search_vec) as spy:
        results = Retriever(pool, vec_table).retrieve(unit(1.0), k=1)
    assert [r.text for r in results] == ["a2"]
    assert [c.kwargs["limit"] for c in spy.call_args_list] == [2, 4, 8, 16]


def test_retrieval_is_deterministic(pool, vec_table, three_chunks):
    retriever = Retriever(pool, vec_table)
    first = [(r.id, r.similarity) for r in retriever.retrieve(unit(0.6, 0.8), k=3)]
    second = [(r.id, r.similarity) for r in retriever.retrieve(unit(0.6, 0.8), k=3)]
    assert first == second


def test_filters_applied(pool, vec_table, three_chunks):
    results = Retriever(pool, vec_table).retrieve(unit(1.0), k=3, filters={"page_type": "guide"})
    assert [r.text for r in results] == ["exact", "orthogonal"]


def test_unknown_filter_rejected(pool, vec_table, three_chunks):
    with pytest.raises(ValueError, match="Unknown filter"):
        Retriever(pool, vec_table).retrieve(unit(1.0), k=3, filters={"author": "x"})


def test_min_similarity_drops_weak_results(pool, vec_table, three_chunks):
    results = Retriever(pool, vec_table, min_similarity=0.5).retrieve(unit(1.0), k=3)
    assert [r.text for r in results] == ["exact", "close"]


def test_results_carry_full_chunk(pool, vec_table, three_chunks):
    chunk = Retriever(pool, vec_table).retrieve(unit(1.0), k=1)[0].chunk
    assert chunk.source_path == "web/api/fetch.md"
    assert chunk.start_line == 1
    assert chunk.heading == "Overview"
    assert chunk.page_type == "guide"


def test_interrupted_search_maps_to_timeout(pool, vec_table, three_chunks):
    with patch(
        "docgrounder.rag.retriever.Repository.search_vec",
        side_effect=sqlite3.OperationalError("interrupted"),
    ):
        with pytest.raises(RetrievalTimeoutError) as exc_info:
            Retriever(pool, vec_table, timeout=0.5).retrieve(unit(1.0), k=3)
    assert exc_info.value.kind == "retrieval_timeout"


def test_store_failure_maps_to_service_error(pool, vec_table, three_chunks):
    with patch(
        "docgrounder.rag.retriever.Repository.search_vec",
        side_effect=sqlite3.DatabaseError("database disk image is malformed"),
    ):
        with pytest.raises(RetrievalServiceError, match="malformed") as exc_info:
            Retriever(pool, vec_table).retrieve(unit(1.0), k=3)
    assert exc_info.value.kind == "retrieval_service_failure"


def test_progress_handler_reset_after_search(pool, vec_table, three_chunks):
    conn = MagicMock()
    with patch("docgrounder.rag.retriever.Repository") as repo_cls:
        repo_cls.return_value.search_vec.return_value = []
        Retriever(pool, vec_table)._search(conn, unit(1.0), 3, None)
    assert conn.set_progress_handler.call_args_list[-1].args == (None, 0)


def test_pool_exhaustion_is_a_timeout(tmp_path, tmp_db, vec_table):
    small = ConnectionPool(Database(tmp_path / ".docgrounder.db"), size=1, acquire_timeout=0.01)
    try:
        with small.connection():
            with pytest.raises(RetrievalTimeoutError):
                Retriever(small, vec_table).retrieve(unit(1.0), k=1)
    finally:
        small.close()


# ------------------------------------------------------------------
# QueryEmbedder
# ------------------------------------------------------------------


def test_query_embedder_uses_query_mode(fake_provider):
    vector = QueryEmbedder(fake_provider).embed("how do closures work?")
    assert fake_provider.calls == [(["how do closures work?"], QUERY_MODE)]
    assert len(vector) == fake_provider.dimensions


@pytest.mark.parametrize("question", ["", "   ", "\n\t"])
def test_query_embedder_rejects_empty(fake_provider, question):
    with pytest.raises(ValueError, match="empty"):
        QueryEmbedder(fake_provider).embed(question)
    assert fake_provider.calls == []


def test_query_embedder_maps_timeout():
    provider = MagicMock(model="m")
    provider.embed.side_effect = EmbeddingTimeoutError("timed out after 30s")
    with pytest.raises(RetrievalTimeoutError, match="timed out"):
        QueryEmbedder(provider).embed("q")


def test_query_embedder_maps_service_failure():
    provider = MagicMock(model="m")
    provider.embed.side_effect = EmbeddingServiceError("401 unauthorized")
    with pytest.raises(RetrievalServiceError, match="401"):
        QueryEmbedder(provider).embed("q")


def test_query_embedder_rejects_wrong_vector_count():
    provider = MagicMock(model="m")
    provider.embed.return_value = []
    with pytest.raises(RetrievalServiceError, match="0 vectors"):
        QueryEmbedder(provider).embed("q")


def test_query_embedder_model(fake_provider):
    assert QueryEmbedder(fake_provider).model == fake_provider.model

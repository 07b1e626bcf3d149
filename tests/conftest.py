"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from docgrounder.db.connection import Database
from docgrounder.db.models import Chunk
from docgrounder.db.schema import initialize
from docgrounder.db.vectors import ensure_vec_table, model_to_slug
from docgrounder.embeddings import FakeEmbeddingProvider

DIMS = 8


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".docgrounder.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def fake_provider():
    """Deterministic 8-dimensional embedding provider."""
    return FakeEmbeddingProvider(dimensions=DIMS)


@pytest.fixture
def vec_table(tmp_db, fake_provider):
    """Vec table for the fake provider's model in tmp_db."""
    return ensure_vec_table(tmp_db, model_to_slug(fake_provider.model), DIMS)


def make_chunk(
    index: int = 0,
    source_path: str = "web/api/index.md",
    text: str | None = None,
    embedding: list[float] | None = None,
    **metadata,
) -> Chunk:
    """Build a Chunk with sensible defaults for store tests."""
    slug = source_path.rsplit(".", 1)[0].replace("/", "_")
    return Chunk(
        id=f"{slug}_chunk_{index}",
        source_path=source_path,
        chunk_index=index,
        text=text if text is not None else f"chunk {index} of {source_path}",
        start_line=index * 10 + 1,
        end_line=index * 10 + 10,
        heading="Overview",
        heading_level=2,
        metadata=dict(metadata),
        embedding=embedding,
    )


def unit(*components: float) -> list[float]:
    """Pad *components* with zeros to DIMS dimensions."""
    return list(components) + [0.0] * (DIMS - len(components))


FETCH_MD = """\
---
title: Fetch API
slug: Web/API/Fetch_API
page-type: web-api-overview
---
# Fetch API

The Fetch API provides an interface for fetching resources across the network.

## Concepts and usage

Fetch uses Request and Response objects and returns a promise.
"""

ARRAY_MD = """\
---
title: Array
slug: Web/JavaScript/Reference/Global_Objects/Array
page-type: javascript-class
---
# Array

The Array object enables storing a collection of multiple items under a single name.
"""


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Run CLI commands from tmp_path with no global config and no env overrides."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("docgrounder.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in ("DOCGROUNDER_GENERATION_MODEL", "DOCGROUNDER_EMBEDDING_MODEL", "DOCGROUNDER_DB"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


def write_docs(root) -> None:
    """Write a small two-page documentation tree under *root*/docs."""
    docs = root / "docs"
    (docs / "api").mkdir(parents=True)
    (docs / "api" / "fetch.md").write_text(FETCH_MD, encoding="utf-8")
    (docs / "array.md").write_text(ARRAY_MD, encoding="utf-8")

"""Shared CLI plumbing: config loading, DB opening, provider selection."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from docgrounder.cli.errors import err_config
from docgrounder.config import ConfigError, DocGrounderConfig, load_config
from docgrounder.db.connection import Database
from docgrounder.db.schema import initialize
from docgrounder.db.vectors import model_to_slug, vec_table_name
from docgrounder.embeddings import EmbeddingProvider, make_embedding_provider

console = Console()


def load_cfg() -> DocGrounderConfig:
    """Load config or exit 1 with an actionable message."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def resolve_db(db: Path | None, cfg: DocGrounderConfig) -> Path:
    return db if db is not None else Path(cfg.index.db)


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the project database and run migrations."""
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def embedding_provider(cfg: DocGrounderConfig, fake: bool = False) -> EmbeddingProvider:
    e = cfg.embedding
    return make_embedding_provider(
        "fake" if fake else e.provider,
        model=e.model,
        dimensions=e.dimensions,
        timeout=e.timeout,
        num_retries=e.num_retries,
    )


def vec_table_for(provider: EmbeddingProvider) -> str:
    return vec_table_name(model_to_slug(provider.model))


def parse_filters(
    source: str | None = None,
    page_type: str | None = None,
    slug: str | None = None,
) -> dict[str, str] | None:
    filters = {
        k: v
        for k, v in (("source_path", source), ("page_type", page_type), ("slug", slug))
        if v
    }
    return filters or None

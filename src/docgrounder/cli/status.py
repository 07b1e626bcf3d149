"""docgrounder status — index overview: embedding stats, vec tables, documents."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from docgrounder.cli.common import console, load_cfg, open_db, resolve_db
from docgrounder.config import DocGrounderConfig
from docgrounder.db.repository import Repository
from docgrounder.db.vectors import list_vec_tables, vec_table_dimensions


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database."),
    ] = None,
) -> None:
    """Show index status: chunk statistics, vector tables and documents."""
    cfg = load_cfg()
    db_path = resolve_db(db, cfg)

    _show_config_panel(db_path, cfg)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  docgrounder ingest --source <docs-dir>",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db_path)
    try:
        repo = Repository(conn)
        _show_index_panel(conn, repo)
        _show_documents(repo)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(db_path: Path, cfg: DocGrounderConfig) -> None:
    db_info = f"{db_path}"
    if db_path.exists():
        size_mb = db_path.stat().st_size / (1024 * 1024)
        db_info = f"{db_path} ({size_mb:.1f} MB)"
    lines = [
        f"Database:    {db_info}",
        f"Embedding:   {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Generation:  {cfg.generation.model}",
        f"Chunking:    {cfg.chunking.target_size} chars, {cfg.chunking.overlap} overlap",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Configuration[/]", expand=False))


def _show_index_panel(conn: sqlite3.Connection, repo: Repository) -> None:
    stats = repo.embedding_stats()
    total_chunks = stats.get("total_chunks") or 0
    lines = [
        f"Documents: [bold]{stats.get('total_documents') or 0}[/]  |  "
        f"Chunks: [bold]{total_chunks:,}[/]",
        f"Avg chunk: {stats.get('avg_characters') or 0:.0f} chars, "
        f"{stats.get('avg_words') or 0:.0f} words",
    ]
    vec_tables = list_vec_tables(conn)
    for table in vec_tables:
        count = repo.count_embeddings(table)
        pending = max(total_chunks - count, 0)
        dims = vec_table_dimensions(conn, table)
        lines.append(f"  {table} ({dims} dims): {count:,} vectors, {pending:,} pending")
    if not vec_tables:
        lines.append("[dim]No vector tables yet.[/]")
    if stats.get("last_updated"):
        lines.append(f"Last updated: [dim]{stats['last_updated']}[/]")
    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))


def _show_documents(repo: Repository) -> None:
    documents = repo.list_documents()
    if not documents:
        console.print("[dim]No documents ingested yet.[/]")
        return

    table = Table(title=f"Documents ({len(documents)})")
    table.add_column("Source")
    table.add_column("Title")
    table.add_column("Page type", style="dim")
    table.add_column("Chunks", justify="right")
    table.add_column("Ingested", style="dim")
    for doc in documents:
        table.add_row(
            doc.source_path,
            doc.title or "",
            doc.page_type or "",
            str(repo.count_chunks_by_source(doc.source_path)),
            doc.ingested_at or "",
        )
    console.print(table)

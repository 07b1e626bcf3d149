"""docgrounder ingest — index a markdown documentation tree into the database.

Pipeline per file batch: normalize front matter → structural chunking →
document-mode embedding (fail-fast) → batch-tolerant upsert. Unchanged
documents are skipped by content hash unless --force is given.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from docgrounder.cli.common import console, embedding_provider, load_cfg, open_db, resolve_db
from docgrounder.cli.errors import err_dimension_mismatch, err_embedding_failed, err_no_markdown
from docgrounder.db.vectors import ensure_vec_table, model_to_slug
from docgrounder.errors import EmbeddingServiceError
from docgrounder.ingest.embedder import EmbeddingBatcher
from docgrounder.ingest.index_writer import IndexWriter
from docgrounder.ingest.markdown import MarkdownChunker
from docgrounder.ingest.pipeline import IngestPipeline, IngestReport, iter_markdown_files

_STATUS_ICONS = {
    "stored": "[green]✓[/]",
    "unchanged": "[dim]↷[/]",
    "error": "[red]✗[/]",
}


def ingest_cmd(
    source: Annotated[
        Path,
        typer.Option("--source", "-s", help="Markdown file or documentation directory."),
    ],
    root: Annotated[
        Path,
        typer.Option(
            "--root",
            help="Corpus root; source paths and chunk ids are relative to it.",
        ),
    ] = Path("."),
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (default: index.db from config)."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Re-ingest documents even when unchanged."),
    ] = False,
    fake_embeddings: Annotated[
        bool,
        typer.Option("--fake-embeddings", help="Use deterministic offline embeddings."),
    ] = False,
) -> None:
    """Chunk, embed and index markdown documentation."""
    if not source.exists():
        console.print(err_no_markdown(str(source)))
        raise typer.Exit(1)

    cfg = load_cfg()
    try:
        sources = list(iter_markdown_files(source, root))
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
    if not sources:
        console.print(err_no_markdown(str(source)))
        raise typer.Exit(1)

    provider = embedding_provider(cfg, fake=fake_embeddings)
    db_path = resolve_db(db, cfg)
    conn = open_db(db_path)
    try:
        try:
            vec_table = ensure_vec_table(conn, model_to_slug(provider.model), provider.dimensions)
        except ValueError as exc:
            console.print(err_dimension_mismatch(provider.model, str(exc)))
            raise typer.Exit(1)

        pipeline = IngestPipeline(
            conn,
            MarkdownChunker(cfg.chunking.target_size, cfg.chunking.overlap),
            EmbeddingBatcher(provider, cfg.embedding.batch_size, cfg.embedding.delay_seconds),
            IndexWriter(conn, vec_table, cfg.index.write_batch_size),
            file_batch_size=cfg.chunking.file_batch_size,
        )

        console.print(
            f"[bold]→ {source}[/]  ({len(sources)} files, model {provider.model}, db {db_path})"
        )
        report = _run(pipeline, sources, force)
    finally:
        conn.close()

    _print_report(report)


def _run(pipeline: IngestPipeline, sources: list[tuple[str, str]], force: bool) -> IngestReport:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task("Chunking…", total=None)

        def _on_document(path: str, status: str) -> None:
            if status == "chunked":
                prog.update(task, description=f"Chunking {path}")
                return
            icon = _STATUS_ICONS.get(status, "")
            prog.console.print(f"  {icon} {path}")

        try:
            return pipeline.run(sources, force=force, on_document=_on_document)
        except EmbeddingServiceError as exc:
            console.print(err_embedding_failed(str(exc)))
            if exc.report is not None:
                _print_report(exc.report)
            raise typer.Exit(1)


def _print_report(report: IngestReport) -> None:
    colour = "yellow" if report.errors else "green"
    console.print(f"\n[{colour}]Ingestion summary[/]")
    for line in report.summary().splitlines():
        console.print(f"  {line}", markup=False, highlight=False)

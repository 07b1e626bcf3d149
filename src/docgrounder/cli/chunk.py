"""docgrounder chunk — export structural chunks as JSON for inspection.

Writes one ``<source_slug>.json`` per markdown file plus a
``_processing_log.json`` run summary. Nothing is embedded or stored.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

import typer

from docgrounder.cli.common import console, load_cfg
from docgrounder.cli.errors import err_no_markdown
from docgrounder.db.models import Chunk
from docgrounder.errors import ChunkingError
from docgrounder.ingest.frontmatter import normalize
from docgrounder.ingest.markdown import MarkdownChunker, source_slug
from docgrounder.ingest.pipeline import iter_markdown_files

PROCESSING_LOG = "_processing_log.json"


def chunk_cmd(
    input_dir: Annotated[
        Path,
        typer.Option("--input", "-i", help="Markdown file or documentation directory."),
    ],
    output_dir: Annotated[
        Path,
        typer.Option("--output", "-o", help="Directory for the JSON chunk files."),
    ],
    root: Annotated[
        Path,
        typer.Option(
            "--root",
            help="Corpus root; source paths and chunk ids are relative to it.",
        ),
    ] = Path("."),
    size: Annotated[
        int | None,
        typer.Option("--size", help="Target chunk size in characters."),
    ] = None,
    overlap: Annotated[
        int | None,
        typer.Option("--overlap", help="Overlap between consecutive chunks in characters."),
    ] = None,
) -> None:
    """Chunk markdown files and write the chunks to JSON."""
    if not input_dir.exists():
        console.print(err_no_markdown(str(input_dir)))
        raise typer.Exit(1)

    cfg = load_cfg()
    target_size = size if size is not None else cfg.chunking.target_size
    chunk_overlap = overlap if overlap is not None else cfg.chunking.overlap
    try:
        chunker = MarkdownChunker(target_size, chunk_overlap)
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)

    try:
        sources = list(iter_markdown_files(input_dir, root))
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
    if not sources:
        console.print(err_no_markdown(str(input_dir)))
        raise typer.Exit(1)

    output_dir.mkdir(parents=True, exist_ok=True)
    processed: list[str] = []
    errors: list[str] = []
    total_chunks = 0

    for source_path, text in sources:
        normalized = normalize(text, source_path)
        try:
            chunks = chunker.chunk(
                source_path,
                normalized.body,
                normalized.metadata,
                normalized.front_matter_line_offset,
            )
        except ChunkingError as exc:
            console.print(f"  [red]✗[/] {exc}")
            errors.append(f"Failed to process {source_path}: {exc}")
            continue

        out_name = f"{source_slug(source_path)}.json"
        payload = {
            "source": source_path,
            "total_chunks": len(chunks),
            "chunk_size": target_size,
            "chunk_overlap": chunk_overlap,
            "processed_at": _now(),
            "chunks": [_chunk_record(c) for c in chunks],
        }
        (output_dir / out_name).write_text(
            json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8"
        )
        processed.append(source_path)
        total_chunks += len(chunks)
        console.print(f"  [green]✓[/] {source_path}: {len(chunks)} chunks → {out_name}")

    log = {
        "total_files": len(processed),
        "total_chunks": total_chunks,
        "processed_files": processed,
        "errors": errors,
        "config": {
            "chunk_size": target_size,
            "chunk_overlap": chunk_overlap,
            "file_batch_size": cfg.chunking.file_batch_size,
        },
        "timestamp": _now(),
    }
    (output_dir / PROCESSING_LOG).write_text(json.dumps(log, indent=2), encoding="utf-8")

    avg = total_chunks / len(processed) if processed else 0.0
    console.print(
        f"\n[bold]Chunking complete:[/] {len(processed)}/{len(sources)} files, "
        f"{total_chunks} chunks ({avg:.1f} per file)"
    )
    if errors:
        console.print(f"[yellow]⚠ {len(errors)} errors[/], see {output_dir / PROCESSING_LOG}")


def _chunk_record(chunk: Chunk) -> dict:
    record = asdict(chunk)
    for key in ("embedding", "rowid", "created_at", "updated_at"):
        record.pop(key, None)
    record["character_count"] = chunk.character_count
    record["word_count"] = chunk.word_count
    return record


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

"""docgrounder remove — delete one document from the index.

Removes the document record, all of its chunks, and their vectors in every
vec table. Usage:
  docgrounder remove web/javascript/reference/functions/index.md
  docgrounder remove web/javascript/reference/functions/index.md --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from docgrounder.cli.common import console, load_cfg, open_db, resolve_db
from docgrounder.cli.errors import err_no_db, err_source_not_found
from docgrounder.db.repository import Repository
from docgrounder.db.vectors import list_vec_tables


def remove_cmd(
    source_path: Annotated[
        str,
        typer.Argument(help="Source path of the document, as shown by 'docgrounder status'."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a document and all its chunks and vectors from the index."""
    cfg = load_cfg()
    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn = open_db(db_path)
    repo = Repository(conn)
    try:
        chunk_count = repo.count_chunks_by_source(source_path)
        if repo.get_document(source_path) is None and chunk_count == 0:
            console.print(err_source_not_found(source_path))
            raise typer.Exit(0)

        vec_tables = len(list_vec_tables(conn))
        console.print(f"\nRemove document: [bold]{source_path}[/]")
        console.print(f"  Chunks: {chunk_count}  |  Vec tables: {vec_tables}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        deleted = repo.delete_document(source_path)
        conn.commit()
        console.print(f"\n[green]✓[/] Removed: {source_path}")
        console.print(f"  {deleted} chunks deleted")
    finally:
        conn.close()

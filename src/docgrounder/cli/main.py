"""docgrounder CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from docgrounder.cli.ask import ask_cmd, search_cmd
from docgrounder.cli.chunk import chunk_cmd
from docgrounder.cli.common import console
from docgrounder.cli.ingest import ingest_cmd
from docgrounder.cli.remove import remove_cmd
from docgrounder.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("docgrounder")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"docgrounder {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="docgrounder",
    help=(
        "docgrounder — documentation-grounded retrieval CLI.\n\n"
        "  docgrounder ingest  Chunk, embed and index a markdown docs tree.\n"
        "  docgrounder ask     Answer a question with citations from the index."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """docgrounder — documentation-grounded retrieval CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


app.command("ingest")(ingest_cmd)
app.command("chunk")(chunk_cmd)
app.command("search")(search_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed docgrounder version."""
    typer.echo(f"docgrounder {_installed_version()}")


if __name__ == "__main__":
    app()

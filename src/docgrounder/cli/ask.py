"""docgrounder search / ask — query the indexed documentation.

``search`` shows the ranked chunks for a question. ``ask`` additionally
generates a grounded answer with numbered citations.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from docgrounder.cli.common import (
    console,
    embedding_provider,
    load_cfg,
    parse_filters,
    resolve_db,
    vec_table_for,
)
from docgrounder.cli.errors import (
    err_generation_failed,
    err_no_api_key,
    err_no_db,
    err_retrieval_unavailable,
)
from docgrounder.config import DocGrounderConfig
from docgrounder.db.connection import ConnectionPool, Database
from docgrounder.errors import GenerationError, RetrievalError
from docgrounder.rag.answer import AnswerService
from docgrounder.rag.assembler import chunk_locator, citation_title
from docgrounder.rag.llm_client import LiteLLMGenerator, provider_of
from docgrounder.rag.retriever import QueryEmbedder, Retriever

_QuestionArg = Annotated[str, typer.Argument(help="Question to answer.")]
_KOpt = Annotated[int | None, typer.Option("--k", "-k", help="Number of chunks to retrieve.")]
_SourceOpt = Annotated[
    str | None, typer.Option("--source", help="Only search this document (source path).")
]
_PageTypeOpt = Annotated[
    str | None, typer.Option("--page-type", help="Only search pages of this page type.")
]
_SlugOpt = Annotated[str | None, typer.Option("--slug", help="Only search the page with this slug.")]
_DbOpt = Annotated[Path | None, typer.Option("--db", help="Path to the database.")]
_FakeOpt = Annotated[
    bool,
    typer.Option("--fake-embeddings", help="Query the index built with --fake-embeddings."),
]


def search_cmd(
    question: _QuestionArg,
    k: _KOpt = None,
    source: _SourceOpt = None,
    page_type: _PageTypeOpt = None,
    slug: _SlugOpt = None,
    db: _DbOpt = None,
    fake_embeddings: _FakeOpt = False,
) -> None:
    """Show the documentation chunks most similar to a question."""
    cfg = load_cfg()
    service, pool = _build_service(cfg, db, fake_embeddings, generator=None)
    try:
        results = service.search(question, k, parse_filters(source, page_type, slug))
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
    except RetrievalError as exc:
        console.print(err_retrieval_unavailable(exc.kind, str(exc)))
        raise typer.Exit(1)
    finally:
        pool.close()

    if not results:
        console.print("[yellow]No relevant documentation found.[/]")
        return

    table = Table(title=f"Top {len(results)} chunks")
    table.add_column("#", justify="right")
    table.add_column("Similarity", justify="right")
    table.add_column("Title")
    table.add_column("Location")
    for i, result in enumerate(results, start=1):
        table.add_row(
            str(i),
            f"{result.similarity * 100:.1f}%",
            citation_title(result),
            chunk_locator(result, cfg.site.base_url),
        )
    console.print(table)


def ask_cmd(
    question: _QuestionArg,
    k: _KOpt = None,
    source: _SourceOpt = None,
    page_type: _PageTypeOpt = None,
    slug: _SlugOpt = None,
    db: _DbOpt = None,
    fake_embeddings: _FakeOpt = False,
) -> None:
    """Answer a question from the indexed documentation, with citations."""
    cfg = load_cfg()
    g = cfg.generation
    generator = LiteLLMGenerator(g.model, g.temperature, g.max_tokens, g.num_retries)
    service, pool = _build_service(cfg, db, fake_embeddings, generator=generator)
    try:
        answer = service.ask(question, k, parse_filters(source, page_type, slug))
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
    except RetrievalError as exc:
        console.print(err_retrieval_unavailable(exc.kind, str(exc)))
        raise typer.Exit(1)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(g.model)))
        raise typer.Exit(1)
    except GenerationError as exc:
        console.print(err_generation_failed(str(exc)))
        raise typer.Exit(1)
    finally:
        pool.close()

    console.print(answer.text, markup=False, highlight=False)
    if not answer.grounded:
        return
    console.print("\n[bold]Sources[/]")
    for citation in answer.citations:
        console.print(f"  [{citation.index}] {citation.title}", markup=False, soft_wrap=True)
        console.print(f"      {citation.locator}", markup=False, soft_wrap=True)


def _build_service(
    cfg: DocGrounderConfig,
    db: Path | None,
    fake_embeddings: bool,
    generator: LiteLLMGenerator | None,
) -> tuple[AnswerService, ConnectionPool]:
    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    provider = embedding_provider(cfg, fake=fake_embeddings)
    r = cfg.retrieval
    pool = ConnectionPool(Database(db_path), size=r.pool_size, acquire_timeout=r.timeout)
    retriever = Retriever(pool, vec_table_for(provider), r.timeout, r.min_similarity)
    service = AnswerService(
        QueryEmbedder(provider),
        retriever,
        generator,
        top_k=r.top_k,
        site_base_url=cfg.site.base_url,
    )
    return service, pool

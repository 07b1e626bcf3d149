"""docgrounder rich error messages with actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from docgrounder.cli.errors import err_no_db
    console.print(err_no_db(str(db)))
    raise typer.Exit(1)
"""

from __future__ import annotations

from docgrounder.rag.llm_client import PROVIDER_ENV


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'voyage'. Set:  export VOYAGE_API_KEY=...
    """
    env_var = PROVIDER_ENV.get(provider.lower()) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_no_db(db_path: str = ".docgrounder.db") -> str:
    """No database found at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  docgrounder ingest --source <docs-dir>"
    )


def err_no_markdown(source: str) -> str:
    """Source path holds no markdown files."""
    return (
        f"[red]Error:[/] No markdown files found at '{source}'.\n"
        "  Use a .md file or a directory containing .md files."
    )


def err_dimension_mismatch(model: str, detail: str) -> str:
    """Stored vectors for *model* have a different dimension than configured."""
    return (
        f"[red]Error:[/] Embedding dimension mismatch for '{model}'.\n"
        f"  {detail}\n"
        "  Set embedding.dimensions in docgrounder.yaml to match, "
        "or re-ingest into a new database with --db."
    )


def err_config(detail: str) -> str:
    """Invalid configuration value."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {detail}\n"
        "  Fix the value in docgrounder.yaml or ~/.docgrounder/config.yaml."
    )


def err_embedding_failed(detail: str) -> str:
    """Embedding service failed; the ingestion run was aborted."""
    return (
        f"[red]Error:[/] Embedding failed, ingestion aborted.\n"
        f"  {detail}\n"
        "  Fix the cause and re-run:  docgrounder ingest --source <docs-dir>\n"
        "  Documents stored before the failure are skipped as unchanged."
    )


def err_retrieval_unavailable(kind: str, detail: str) -> str:
    """Grounding is unavailable: retrieval timed out or failed."""
    hint = (
        "Retry, or raise retrieval.timeout in docgrounder.yaml."
        if kind == "retrieval_timeout"
        else "Check the embedding provider and the database, then retry."
    )
    return (
        f"[red]Error:[/] Documentation search unavailable ({kind}).\n"
        f"  {detail}\n"
        f"  {hint}"
    )


def err_generation_failed(detail: str) -> str:
    """Generation model call failed after retries."""
    return (
        f"[red]Error:[/] Answer generation failed.\n"
        f"  {detail}\n"
        "  Check generation.model in docgrounder.yaml and retry."
    )


def err_source_not_found(source: str) -> str:
    """Document not found in database."""
    return (
        f"[yellow]Source not found:[/] '{source}' is not in the index.\n"
        "  Run:  docgrounder status  to see all ingested documents."
    )

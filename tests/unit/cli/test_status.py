"""Tests for the docgrounder status CLI command."""

from __future__ import annotations

from pathlib import Path

from conftest import write_docs
from typer.testing import CliRunner

from docgrounder.cli.common import open_db
from docgrounder.cli.main import app

runner = CliRunner()


def test_status_without_db_shows_hint(cli_env: Path) -> None:
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "Configuration" in result.output
    assert "voyage/voyage-code-3" in result.output
    assert "No database found" in result.output


def test_status_empty_db(cli_env: Path) -> None:
    open_db(cli_env / ".docgrounder.db").close()
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "No vector tables yet." in result.output
    assert "No documents ingested yet." in result.output


def test_status_after_ingest(cli_env: Path) -> None:
    write_docs(cli_env)
    runner.invoke(app, ["ingest", "--source", "docs", "--root", "docs", "--fake-embeddings"])

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0, result.output
    assert "Documents: 2" in result.output
    assert "vec_chunks_fake_deterministic" in result.output
    assert "0 pending" in result.output
    assert "Documents (2)" in result.output
    assert "array.md" in result.output


def test_status_custom_db(cli_env: Path) -> None:
    write_docs(cli_env)
    runner.invoke(
        app,
        ["ingest", "--source", "docs", "--root", "docs", "--fake-embeddings", "--db", "other.db"],
    )

    result = runner.invoke(app, ["status", "--db", "other.db"])
    assert result.exit_code == 0
    assert "other.db" in result.output
    assert "Documents (2)" in result.output

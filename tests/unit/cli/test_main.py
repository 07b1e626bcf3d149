"""Tests for the docgrounder CLI entry point."""

from __future__ import annotations

import logging

from typer.testing import CliRunner

from docgrounder.cli.main import app

runner = CliRunner()


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("docgrounder ")


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "docgrounder" in result.output


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("ingest", "chunk", "search", "ask", "status", "remove"):
        assert command in result.output


def test_verbose_enables_debug_logging(cli_env) -> None:
    runner.invoke(app, ["--verbose", "status"])
    assert logging.getLogger().level == logging.DEBUG
    runner.invoke(app, ["status"])
    assert logging.getLogger().level == logging.WARNING

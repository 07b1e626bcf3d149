"""Tests for docgrounder rich error messages."""

from __future__ import annotations

import pytest

from docgrounder.cli.errors import (
    err_config,
    err_dimension_mismatch,
    err_embedding_failed,
    err_generation_failed,
    err_no_api_key,
    err_no_db,
    err_no_markdown,
    err_retrieval_unavailable,
    err_source_not_found,
)


def _has_action(msg: str) -> bool:
    """Every error must contain an actionable instruction."""
    lower = msg.lower()
    return any(
        kw in lower
        for kw in ["run:", "set:", "use ", "export ", "docgrounder ", "fix ", "retry", "check "]
    )


@pytest.mark.parametrize("msg", [
    err_no_api_key("voyage"),
    err_no_db(),
    err_no_markdown("docs"),
    err_dimension_mismatch("voyage/voyage-code-3", "stores 512"),
    err_config("bad overlap"),
    err_embedding_failed("503"),
    err_retrieval_unavailable("retrieval_timeout", "slow"),
    err_retrieval_unavailable("retrieval_service_failure", "down"),
    err_generation_failed("overloaded"),
    err_source_not_found("a.md"),
])
def test_every_error_has_an_action(msg: str) -> None:
    assert _has_action(msg)


def test_err_no_api_key_known_provider() -> None:
    msg = err_no_api_key("anthropic")
    assert "'anthropic'" in msg
    assert "export ANTHROPIC_API_KEY=" in msg


def test_err_no_api_key_unknown_provider_guesses_env_var() -> None:
    assert "export ACME_API_KEY=" in err_no_api_key("acme")


def test_err_no_db_contains_path_and_ingest_hint() -> None:
    msg = err_no_db("/tmp/x.db")
    assert "/tmp/x.db" in msg
    assert "docgrounder ingest" in msg


def test_err_retrieval_unavailable_hint_depends_on_kind() -> None:
    timeout = err_retrieval_unavailable("retrieval_timeout", "slow")
    failure = err_retrieval_unavailable("retrieval_service_failure", "down")
    assert "retrieval.timeout" in timeout
    assert "retrieval.timeout" not in failure
    assert "(retrieval_service_failure)" in failure


def test_err_details_are_included() -> None:
    assert "stores 512" in err_dimension_mismatch("m", "stores 512")
    assert "bad overlap" in err_config("bad overlap")
    assert "503" in err_embedding_failed("503")
    assert "overloaded" in err_generation_failed("overloaded")

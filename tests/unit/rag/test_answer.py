"""Tests for AnswerService: decline path, grounded path, error propagation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import make_chunk

from docgrounder.db.models import SearchResult
from docgrounder.errors import GenerationError, RetrievalTimeoutError
from docgrounder.rag.answer import (
    NO_ANSWER_TEXT,
    SYSTEM_PROMPT,
    AnswerService,
    build_user_prompt,
)


def _service(results=None, top_k=5):
    embedder = MagicMock()
    embedder.embed.return_value = [0.1] * 8
    retriever = MagicMock()
    retriever.retrieve.return_value = results or []
    generator = MagicMock()
    generator.generate.return_value = "Closures capture scope [1]."
    service = AnswerService(embedder, retriever, generator, top_k=top_k)
    return service, embedder, retriever, generator


def _results(n=2):
    return [
        SearchResult(
            chunk=make_chunk(i, text=f"text {i}", title="Closures", slug="Web/JS/Closures"),
            similarity=0.9 - i / 10,
        )
        for i in range(n)
    ]


def test_no_results_declines_without_generation():
    service, _, _, generator = _service([])
    answer = service.ask("what is a monad?")

    assert answer.text == NO_ANSWER_TEXT
    assert answer.grounded is False
    assert answer.citations == []
    generator.generate.assert_not_called()


def test_grounded_answer_with_citations():
    results = _results(2)
    service, embedder, _, generator = _service(results)

    answer = service.ask("how do closures work?")

    assert answer.grounded is True
    assert answer.text == "Closures capture scope [1]."
    assert [c.index for c in answer.citations] == [1, 2]
    assert answer.results == results
    embedder.embed.assert_called_once_with("how do closures work?")

    system, user = generator.generate.call_args.args
    assert system == SYSTEM_PROMPT
    assert "--- Document 1 ---" in user
    assert user.endswith(
        "Question: how do closures work?\n\nPlease answer based on the provided context."
    )


def test_default_k_is_top_k():
    service, _, retriever, _ = _service(top_k=7)
    service.search("q")
    retriever.retrieve.assert_called_once_with([0.1] * 8, 7, None)


def test_explicit_k_and_filters_pass_through():
    service, _, retriever, _ = _service()
    service.search("q", k=2, filters={"page_type": "guide"})
    retriever.retrieve.assert_called_once_with([0.1] * 8, 2, {"page_type": "guide"})


def test_explicit_zero_k_is_not_replaced_by_default():
    service, _, retriever, _ = _service()
    service.search("q", k=0)
    assert retriever.retrieve.call_args.args[1] == 0


def test_retrieval_error_propagates():
    service, _, retriever, generator = _service()
    retriever.retrieve.side_effect = RetrievalTimeoutError("too slow")
    with pytest.raises(RetrievalTimeoutError):
        service.ask("q")
    generator.generate.assert_not_called()


def test_empty_question_propagates_value_error():
    service, embedder, _, _ = _service()
    embedder.embed.side_effect = ValueError("question must not be empty")
    with pytest.raises(ValueError, match="empty"):
        service.ask("")


def test_generation_error_propagates():
    service, _, _, generator = _service(_results(1))
    generator.generate.side_effect = GenerationError("rate limited")
    with pytest.raises(GenerationError):
        service.ask("q")


def test_build_user_prompt_layout():
    prompt = build_user_prompt("CTX", "Q?")
    assert prompt == (
        "Context from MDN Documentation:\n\nCTX\n\n---\n\n"
        "Question: Q?\n\nPlease answer based on the provided context."
    )

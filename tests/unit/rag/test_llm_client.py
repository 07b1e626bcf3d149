"""Tests for the LiteLLM client wrapper and generator."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from docgrounder.errors import GenerationError
from docgrounder.rag.llm_client import (
    LiteLLMGenerator,
    complete,
    provider_of,
    validate_api_key,
)


# ------------------------------------------------------------------
# validate_api_key / provider_of
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4o")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/gpt-4o")  # should not raise


def test_validate_api_key_voyage(monkeypatch):
    monkeypatch.delenv("VOYAGE_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="VOYAGE_API_KEY"):
        validate_api_key("voyage/voyage-code-3")


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/llama3")


def test_validate_api_key_unknown_provider_passes():
    validate_api_key("someprovider/some-model")


@pytest.mark.parametrize("model,provider", [
    ("anthropic/claude-3-haiku-20240307", "anthropic"),
    ("OpenAI/gpt-4o", "openai"),
    ("gpt-4o-mini", "openai"),
])
def test_provider_of(model, provider):
    assert provider_of(model) == provider


# ------------------------------------------------------------------
# complete()
# ------------------------------------------------------------------


def test_complete_returns_content():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = "Hello, world!"

    with patch("docgrounder.rag.llm_client.litellm.completion", return_value=mock_response):
        result = complete("openai/gpt-4o", [{"role": "user", "content": "Hi"}])

    assert result == "Hello, world!"


def test_complete_returns_empty_string_on_none_content():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = None

    with patch("docgrounder.rag.llm_client.litellm.completion", return_value=mock_response):
        result = complete("openai/gpt-4o", [{"role": "user", "content": "Hi"}])

    assert result == ""


def test_complete_passes_params_to_litellm():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = "ok"

    with patch(
        "docgrounder.rag.llm_client.litellm.completion", return_value=mock_response
    ) as mock_c:
        complete(
            "openai/gpt-4o-mini",
            [{"role": "user", "content": "test"}],
            max_tokens=512,
            temperature=0.5,
            num_retries=2,
        )

    call_kwargs = mock_c.call_args.kwargs
    assert call_kwargs["model"] == "openai/gpt-4o-mini"
    assert call_kwargs["max_tokens"] == 512
    assert call_kwargs["temperature"] == 0.5
    assert call_kwargs["num_retries"] == 2


# ------------------------------------------------------------------
# LiteLLMGenerator
# ------------------------------------------------------------------


def test_generator_sends_system_and_user_messages(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    mock_response = MagicMock()
    mock_response.choices[0].message.content = "answer [1]"

    with patch(
        "docgrounder.rag.llm_client.litellm.completion", return_value=mock_response
    ) as mock_c:
        text = LiteLLMGenerator(temperature=0.1, max_tokens=256).generate("SYS", "USER")

    assert text == "answer [1]"
    kwargs = mock_c.call_args.kwargs
    assert kwargs["model"] == "anthropic/claude-3-haiku-20240307"
    assert kwargs["messages"] == [
        {"role": "system", "content": "SYS"},
        {"role": "user", "content": "USER"},
    ]
    assert kwargs["temperature"] == 0.1
    assert kwargs["max_tokens"] == 256
    assert kwargs["num_retries"] == 3


def test_generator_missing_key_raises_before_call(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with patch("docgrounder.rag.llm_client.litellm.completion") as mock_c:
        with pytest.raises(EnvironmentError, match="ANTHROPIC_API_KEY"):
            LiteLLMGenerator().generate("SYS", "USER")
    mock_c.assert_not_called()


def test_generator_wraps_provider_failure(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    with patch(
        "docgrounder.rag.llm_client.litellm.completion",
        side_effect=RuntimeError("overloaded"),
    ):
        with pytest.raises(GenerationError, match="overloaded") as exc_info:
            LiteLLMGenerator().generate("SYS", "USER")
    assert isinstance(exc_info.value.__cause__, RuntimeError)

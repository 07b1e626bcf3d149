"""LiteLLM client wrapper with retry, backoff, and API key validation.

All completion calls in the answer pipeline route through this module, and
the embedding provider reuses its API key check. LiteLLM's built-in retry is
used (``num_retries``, exponential backoff). API key presence is validated
before the first call so a missing key fails with an actionable message.
"""

from __future__ import annotations

import os

import litellm

from docgrounder.errors import GenerationError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    """Return the provider prefix of a 'provider/model' string ('openai' if absent)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama) or unknown provider

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 1024,
    temperature: float = 0.3,
    num_retries: int = 3,
) -> str:
    """Call litellm.completion() with retry/backoff. Returns content string.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style message list.
        max_tokens: Maximum output tokens.
        temperature: Sampling temperature.
        num_retries: Number of retries on transient errors (exponential backoff).

    Returns:
        The text content of the first choice.

    Raises:
        litellm.exceptions.APIError: On persistent API failure after retries.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


class LiteLLMGenerator:
    """Generation service: ``generate(system_prompt, user_prompt) -> text``.

    Retries are LiteLLM's; timeouts and fallbacks beyond that belong to the
    caller.
    """

    def __init__(
        self,
        model: str = "anthropic/claude-3-haiku-20240307",
        temperature: float = 0.3,
        max_tokens: int = 1024,
        num_retries: int = 3,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.num_retries = num_retries

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Return the completion text.

        Raises:
            EnvironmentError: If the provider API key is missing.
            GenerationError: If the call still fails after retries.
        """
        validate_api_key(self.model)
        try:
            return complete(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                num_retries=self.num_retries,
            )
        except Exception as exc:
            raise GenerationError(f"Generation call to '{self.model}' failed: {exc}") from exc

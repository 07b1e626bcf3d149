"""Grounded answering: question → retrieve → assemble → generate.

Retrieval failures propagate as RetrievalError subclasses so a caller can
tell "grounding unavailable" from "nothing relevant". When nothing relevant
is found the service answers with a fixed decline and never calls the
generation model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from docgrounder.db.models import Citation, SearchResult
from docgrounder.rag.assembler import DEFAULT_SITE_BASE_URL, assemble
from docgrounder.rag.retriever import QueryEmbedder, Retriever

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an expert JavaScript/Web Development assistant with deep knowledge of MDN \
(Mozilla Developer Network) documentation.

Your role is to:
- Answer questions accurately based on the provided MDN documentation context
- Explain concepts clearly with examples when helpful
- Reference the specific MDN pages when relevant
- Admit when the provided context doesn't contain enough information to fully answer

When answering:
- Prioritize information from the provided context
- Include code examples from the context when available
- Cite documents with markers like [1], [2] matching the "Document n" numbers
- If the context is insufficient, say so clearly

Keep responses concise but thorough."""

NO_ANSWER_TEXT = (
    "I couldn't find any relevant documentation to answer your question. "
    "Please try rephrasing or asking about a different topic."
)


class Generator(Protocol):
    def generate(self, system_prompt: str, user_prompt: str) -> str: ...


@dataclass
class Answer:
    text: str
    citations: list[Citation] = field(default_factory=list)
    grounded: bool = False
    results: list[SearchResult] = field(default_factory=list)


def build_user_prompt(context_text: str, question: str) -> str:
    return (
        "Context from MDN Documentation:\n\n"
        f"{context_text}\n\n"
        "---\n\n"
        f"Question: {question}\n\n"
        "Please answer based on the provided context."
    )


class AnswerService:
    """Answer questions from the indexed documentation with citations.

    Args:
        query_embedder: Embeds the question in query mode.
        retriever: Nearest-neighbour search over chunk vectors.
        generator: Generation service (``generate(system, user) -> text``).
        top_k: Default number of chunks retrieved per question.
        site_base_url: Base URL for citation locators.
    """

    def __init__(
        self,
        query_embedder: QueryEmbedder,
        retriever: Retriever,
        generator: Generator,
        top_k: int = 5,
        site_base_url: str = DEFAULT_SITE_BASE_URL,
    ) -> None:
        self._embedder = query_embedder
        self._retriever = retriever
        self._generator = generator
        self.top_k = top_k
        self.site_base_url = site_base_url

    def search(
        self,
        question: str,
        k: int | None = None,
        filters: dict[str, str] | None = None,
    ) -> list[SearchResult]:
        """Embed *question* and return the ranked results (no generation)."""
        vector = self._embedder.embed(question)
        return self._retriever.retrieve(vector, self.top_k if k is None else k, filters)

    def ask(
        self,
        question: str,
        k: int | None = None,
        filters: dict[str, str] | None = None,
    ) -> Answer:
        """Answer *question*.

        Raises:
            ValueError: If *question* is empty.
            RetrievalError: If grounding is unavailable (timeout or failure).
            GenerationError: If the generation call fails.
        """
        results = self.search(question, k, filters)
        if not results:
            logger.info("No relevant chunks for question; declining to generate")
            return Answer(text=NO_ANSWER_TEXT, grounded=False)

        context = assemble(results, self.site_base_url)
        logger.debug("Assembled context from %d chunks", len(results))
        text = self._generator.generate(
            SYSTEM_PROMPT, build_user_prompt(context.context_text, question)
        )
        return Answer(
            text=text,
            citations=context.citations,
            grounded=True,
            results=results,
        )

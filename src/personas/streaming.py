"""Claude-powered streaming answers in a persona's voice."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from functools import lru_cache

from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic

from src.config import settings
from src.personas.context import build_system_prompt
from src.personas.models import Persona
from src.retrieval.models import SearchResult


@lru_cache(maxsize=1)
def get_anthropic_client() -> AsyncAnthropic:
    return AsyncAnthropic(api_key=settings.anthropic_api_key or None)


async def stream_persona_answer(
    persona: Persona,
    question: str,
    context: list[SearchResult],
    cancel_event: asyncio.Event | None = None,
) -> AsyncIterator[str]:
    """Yield text deltas of the persona's answer as Claude produces them.

    Stops early, without error, once *cancel_event* is set; leaving the
    ``async with`` block closes the underlying HTTP stream.
    """
    client = get_anthropic_client()
    async with client.messages.stream(
        model=settings.llm_model,
        max_tokens=settings.llm_max_tokens,
        system=build_system_prompt(persona, context),
        messages=[{"role": "user", "content": question}],
    ) as stream:
        async for text in stream.text_stream:
            if cancel_event is not None and cancel_event.is_set():
                return
            if text:
                yield text


def describe_provider_error(exc: BaseException) -> str:
    """User-facing message for a failed persona answer."""
    if isinstance(exc, APIStatusError):
        if exc.status_code == 429:
            return "Rate limit exceeded. Please try again in a moment."
        if exc.status_code == 401:
            return "Authentication error. Please check API configuration."
        if exc.status_code >= 500:
            return "Claude API is temporarily unavailable. Please try again later."
        return exc.message
    if isinstance(exc, APIConnectionError):
        return "Claude API is temporarily unavailable. Please try again later."
    return str(exc) or "Unable to generate response"

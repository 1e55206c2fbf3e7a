"""Embedding helpers using OpenAI text-embedding-3-small."""

from __future__ import annotations

from functools import lru_cache

from openai import AsyncOpenAI

from src.config import settings


@lru_cache(maxsize=1)
def get_openai_client() -> AsyncOpenAI:
    """Return a shared async OpenAI client (one connection pool per process)."""
    return AsyncOpenAI(api_key=settings.openai_api_key or None)


async def embed_text(text: str) -> list[float]:
    """Embed a single text.

    Raises:
        TypeError: If *text* is not a string.
        openai.OpenAIError: On any provider failure; callers decide whether
            the failure is fatal.
    """
    if not isinstance(text, str):
        raise TypeError(f"Expected text to be a string, got {type(text).__name__}")

    client = get_openai_client()
    response = await client.embeddings.create(
        input=[text],
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
    )
    return response.data[0].embedding

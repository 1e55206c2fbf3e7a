"""Channel-scoped retrieval context and prompt assembly for personas."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from supabase import Client

from src.ingestion.embeddings import embed_text
from src.personas.models import Persona
from src.pipeline_config import RetrievalStrategy
from src.retrieval.search import hybrid_search
from src.retrieval.models import SearchResult

# Over-fetch, since most hits belong to other channels
CONTEXT_SEARCH_LIMIT = 50
CONTEXT_CHUNKS = 10
CONTEXT_TOKEN_BUDGET = 3000


async def get_persona_context(
    channel_name: str,
    question: str,
    *,
    query_embedding: list[float] | None = None,
    embed: Callable[[str], Awaitable[list[float]]] = embed_text,
    client: Client | None = None,
) -> list[SearchResult]:
    """Top chunks for *question* drawn only from *channel_name*'s videos."""
    hits = await hybrid_search(
        question,
        RetrievalStrategy.HYBRID,
        CONTEXT_SEARCH_LIMIT,
        query_embedding=query_embedding,
        embed=embed,
        client=client,
    )
    return [h for h in hits if h.channel == channel_name][:CONTEXT_CHUNKS]


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return -(-len(text) // 4)


def limit_context_tokens(
    context: list[SearchResult],
    max_tokens: int = CONTEXT_TOKEN_BUDGET,
) -> list[SearchResult]:
    """Keep leading chunks until the next one would exceed *max_tokens*."""
    kept: list[SearchResult] = []
    used = 0
    for hit in context:
        tokens = estimate_tokens(hit.content)
        if used + tokens > max_tokens:
            break
        kept.append(hit)
        used += tokens
    return kept


def format_context_for_prompt(context: list[SearchResult]) -> str:
    """Numbered ``[n] From "title" (Ns):`` blocks, or "" for no context."""
    blocks: list[str] = []
    for number, hit in enumerate(context, start=1):
        timestamp = f" ({hit.start_time}s)" if hit.start_time is not None else ""
        blocks.append(f'[{number}] From "{hit.video_title}"{timestamp}:\n{hit.content}')
    return "\n\n".join(blocks)


def build_system_prompt(persona: Persona, context: list[SearchResult]) -> str:
    """Persona prompt followed by whatever retrieved context fits the budget."""
    formatted = format_context_for_prompt(limit_context_tokens(context))
    if not formatted:
        return persona.system_prompt
    return (
        f"{persona.system_prompt}\n\n"
        f"Context from your content:\n{formatted}\n\n"
        "Answer based on your content and expertise."
    )

"""Search implementations: semantic, keyword, and hybrid (RRF) retrieval."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, cast

from supabase import Client

from src.ingestion.embeddings import embed_text
from src.ingestion.storage import get_supabase_client
from src.pipeline_config import RetrievalStrategy
from src.retrieval.models import SearchResult

# Vector hits below this similarity are noise
VECTOR_MATCH_THRESHOLD = 0.3
RRF_K = 60


def vector_search(
    query_embedding: list[float],
    match_count: int = 10,
    threshold: float = VECTOR_MATCH_THRESHOLD,
    client: Client | None = None,
) -> list[SearchResult]:
    """Pure vector similarity search using the match_chunks function."""
    client = client or get_supabase_client()
    result = client.rpc(
        "match_chunks",
        {
            "query_embedding": query_embedding,
            "match_count": match_count,
            "match_threshold": threshold,
        },
    ).execute()
    # Supabase .data is typed as JSON (broad union); cast to concrete type.
    rows = cast(list[dict[str, Any]], result.data or [])
    return [SearchResult.from_row(r) for r in rows]


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def keyword_search(
    query: str,
    match_count: int = 20,
    client: Client | None = None,
) -> list[SearchResult]:
    """Case-insensitive substring match on chunk content; every hit scores 1.0."""
    client = client or get_supabase_client()
    result = (
        client.table("chunks")
        .select("id,content,start_time,end_time,video_id,videos!inner(id,title,channel,youtube_id,thumbnail,published_at)")
        .ilike("content", f"%{escape_like(query)}%")
        .limit(match_count)
        .execute()
    )
    rows = cast(list[dict[str, Any]], result.data or [])
    return [SearchResult.from_row(r, similarity=1.0) for r in rows]


def reciprocal_rank_fusion(*ranked_lists: list[SearchResult], k: int = RRF_K) -> list[SearchResult]:
    """Merge ranked lists by summing ``1 / (k + rank)`` per chunk.

    Chunks found by several lists rise to the top; the fused score replaces
    ``similarity`` on the returned results.
    """
    fused: dict[int, tuple[SearchResult, float]] = {}
    for results in ranked_lists:
        for rank, hit in enumerate(results, start=1):
            score = 1.0 / (k + rank)
            if hit.chunk_id in fused:
                kept, total = fused[hit.chunk_id]
                fused[hit.chunk_id] = (kept, total + score)
            else:
                fused[hit.chunk_id] = (hit, score)

    ordered = sorted(fused.values(), key=lambda pair: pair[1], reverse=True)
    merged: list[SearchResult] = []
    for hit, score in ordered:
        merged.append(
            SearchResult(
                chunk_id=hit.chunk_id,
                content=hit.content,
                similarity=score,
                video_id=hit.video_id,
                video_title=hit.video_title,
                channel=hit.channel,
                start_time=hit.start_time,
                end_time=hit.end_time,
                youtube_id=hit.youtube_id,
                thumbnail=hit.thumbnail,
                published_at=hit.published_at,
            )
        )
    return merged


async def hybrid_search(
    query: str,
    retrieval_strategy: str | RetrievalStrategy = RetrievalStrategy.HYBRID,
    match_count: int = 10,
    *,
    query_embedding: list[float] | None = None,
    embed: Callable[[str], Awaitable[list[float]]] = embed_text,
    client: Client | None = None,
) -> list[SearchResult]:
    """Dispatch to the appropriate search strategy.

    Args:
        query: The user's question or search text.
        retrieval_strategy: ``"semantic"``, ``"keyword"`` or ``"hybrid"``.
        match_count: Maximum number of chunks to return.
        query_embedding: Reuse an embedding already computed for *query*.
        embed: Embedding provider call (used only when no embedding is given).
        client: Supabase client (created from the environment if omitted).

    Returns:
        Matching chunks, most relevant first.
    """
    if isinstance(retrieval_strategy, str):
        retrieval_strategy = RetrievalStrategy(retrieval_strategy)

    client = client or get_supabase_client()

    if retrieval_strategy is RetrievalStrategy.KEYWORD:
        return await asyncio.to_thread(keyword_search, query, match_count, client)

    if query_embedding is None:
        query_embedding = await embed(query)

    if retrieval_strategy is RetrievalStrategy.SEMANTIC:
        return await asyncio.to_thread(vector_search, query_embedding, match_count, VECTOR_MATCH_THRESHOLD, client)

    # Fetch extra from each source so fusion has something to reorder
    vector_hits, keyword_hits = await asyncio.gather(
        asyncio.to_thread(vector_search, query_embedding, match_count * 2, VECTOR_MATCH_THRESHOLD, client),
        asyncio.to_thread(keyword_search, query, match_count * 2, client),
    )
    return reciprocal_rank_fusion(vector_hits, keyword_hits)[:match_count]

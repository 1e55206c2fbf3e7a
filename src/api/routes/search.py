"""Search endpoint: chunk hits plus the same hits grouped by video."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query
from openai import OpenAIError

from src.api.models import BestChunkResponse, ChunkHit, SearchResponse, VideoHit
from src.ingestion.storage import get_supabase_client, has_embeddings
from src.pipeline_config import RetrievalStrategy
from src.retrieval.aggregate import aggregate_by_video
from src.retrieval.search import hybrid_search
from src.retrieval.temporal import DEFAULT_HALF_LIFE_DAYS, apply_temporal_decay

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_QUERY_CHARS = 500
# Over-fetch chunks so video grouping has more than `limit` hits to work with
CHUNK_FETCH_FACTOR = 3


@router.get("/api/search", response_model=SearchResponse)
async def search(
    q: str = "",
    limit: int = Query(default=10, ge=1, le=100),
    mode: RetrievalStrategy = RetrievalStrategy.HYBRID,
    temporal_decay: bool = Query(default=False, alias="temporalDecay"),
    half_life_days: float = Query(default=DEFAULT_HALF_LIFE_DAYS, gt=0, alias="halfLifeDays"),
) -> SearchResponse:
    """Search transcript chunks.

    An empty query returns empty results without calling any provider.
    With ``temporalDecay=true`` similarities are scaled down by video age
    before grouping, halving every ``halfLifeDays``.
    """
    if not q.strip():
        return SearchResponse(query="", mode=mode, has_embeddings=True)
    if len(q) > MAX_QUERY_CHARS:
        raise HTTPException(status_code=400, detail=f"Search query must be {MAX_QUERY_CHARS} characters or fewer")

    client = get_supabase_client()
    try:
        hits = await hybrid_search(q, mode, limit * CHUNK_FETCH_FACTOR, client=client)
    except OpenAIError as exc:
        logger.warning("Query embedding failed: %s", exc)
        raise HTTPException(status_code=503, detail="Embedding service unavailable") from exc

    if temporal_decay:
        hits = apply_temporal_decay(hits, half_life_days)

    if mode is RetrievalStrategy.KEYWORD or hits:
        embedded = True
    else:
        embedded = await asyncio.to_thread(has_embeddings, client)

    videos = aggregate_by_video(hits)[:limit]
    return SearchResponse(
        chunks=[ChunkHit(**vars(h)) for h in hits[:limit]],
        videos=[
            VideoHit(
                video_id=v.video_id,
                title=v.title,
                score=v.score,
                matched_chunks=v.matched_chunks,
                best_chunk=BestChunkResponse(**vars(v.best_chunk)),
                channel=v.channel,
                youtube_id=v.youtube_id,
                thumbnail=v.thumbnail,
            )
            for v in videos
        ],
        query=q,
        mode=mode,
        has_embeddings=embedded,
    )

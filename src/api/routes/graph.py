"""Relationship graph endpoints: full backfill and per-video related chunks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query

from src.api.models import BackfillResponse, RelatedChunkResponse, RelatedChunksResponse
from src.config import settings
from src.errors import BackfillError
from src.graph.relationships import backfill_relationships, get_related_chunks

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/graph/backfill", response_model=BackfillResponse)
async def backfill() -> BackfillResponse:
    """Delete every relationship and rebuild the graph from stored embeddings."""
    try:
        result = await asyncio.to_thread(backfill_relationships)
    except BackfillError as exc:
        logger.error("Backfill failed at video %s: %s", exc.video_id, exc.cause)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return BackfillResponse(
        videos_processed=result.videos_processed,
        relationships_created=result.relationships_created,
    )


@router.get("/api/videos/{video_id}/related", response_model=RelatedChunksResponse)
async def related(
    video_id: int,
    limit: int = Query(default=10, ge=1, le=100),
) -> RelatedChunksResponse:
    chunks = await asyncio.to_thread(
        get_related_chunks,
        video_id,
        limit,
        settings.relationship_threshold,
    )
    return RelatedChunksResponse(
        video_id=video_id,
        related=[RelatedChunkResponse(**asdict(c)) for c in chunks],
    )

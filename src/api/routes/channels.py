"""Channel discovery endpoint."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query

from src.api.models import SimilarChannelResponse, SimilarChannelsResponse
from src.channels.similarity import find_similar_channels
from src.ingestion.storage import get_supabase_client, list_followed_channels
from src.pipeline_config import ChannelSimilarityConfig

logger = logging.getLogger(__name__)

router = APIRouter()


def _similar_channels(limit: int) -> SimilarChannelsResponse:
    client = get_supabase_client()
    followed = list_followed_channels(client)
    if not followed:
        return SimilarChannelsResponse(message="No followed channels to base recommendations on")

    matches = find_similar_channels(followed, ChannelSimilarityConfig.from_settings(limit=limit), client)
    if not matches:
        return SimilarChannelsResponse(message="No similar channels found")

    return SimilarChannelsResponse(
        suggestions=[
            SimilarChannelResponse(
                channel_name=m.channel_name,
                similarity=round(m.similarity, 4),
                video_count=m.video_count,
                sample_titles=m.sample_titles,
            )
            for m in matches
        ]
    )


@router.get("/api/channels/similar", response_model=SimilarChannelsResponse, response_model_exclude_none=True)
async def similar_channels(limit: int = Query(default=10, ge=1, le=100)) -> SimilarChannelsResponse:
    """Unfollowed channels whose content centroid is close to a followed channel's."""
    try:
        return await asyncio.to_thread(_similar_channels, limit)
    except Exception as exc:
        logger.exception("Similar channel lookup failed")
        raise HTTPException(status_code=500, detail="Failed to find similar channels") from exc

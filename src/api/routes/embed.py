"""Embed endpoint: (re-)embed one video's transcript."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException
from fastapi.responses import JSONResponse

from src.api.models import EmbedResponse
from src.config import settings
from src.errors import TranscriptMissingError, VideoNotFoundError
from src.graph.relationships import compute_relationships
from src.ingestion.pipeline import embed_video

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/embed/{video_id}", response_model=EmbedResponse, response_model_exclude_none=True)
async def embed(video_id: int, background_tasks: BackgroundTasks) -> EmbedResponse | JSONResponse:
    """Chunk, embed and store a video, replacing any chunks it already has.

    When any chunk fails to embed the response is a 500 with ``success``
    false; the chunks that did embed are still stored.  With
    ``COMPUTE_RELATIONSHIPS_INLINE=false`` relationships are built after the
    response is sent and ``relationshipsCreated`` is omitted.
    """
    inline = settings.compute_relationships_inline
    try:
        outcome = await embed_video(video_id, compute_graph=inline)
    except VideoNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TranscriptMissingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Embedding video %s failed", video_id)
        raise HTTPException(status_code=500, detail=f"Failed to embed video: {exc}") from exc

    if not inline and outcome.success_count > 0:
        background_tasks.add_task(compute_relationships, video_id)

    body = EmbedResponse(
        success=outcome.error_count == 0,
        video_id=outcome.video_id,
        already_embedded=outcome.already_embedded,
        chunk_count=outcome.chunk_count,
        success_count=outcome.success_count,
        error_count=outcome.error_count,
        duration_ms=round(outcome.duration_ms, 1),
        relationships_created=outcome.relationships_created,
        error=(
            f"{outcome.error_count} of {outcome.success_count + outcome.error_count} chunks failed to embed"
            if outcome.error_count
            else None
        ),
    )
    if outcome.error_count:
        return JSONResponse(
            status_code=500,
            content=body.model_dump(by_alias=True, exclude_none=True),
            background=background_tasks,
        )
    return body

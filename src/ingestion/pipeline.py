"""End-to-end embedding pipeline: parse -> chunk -> embed -> store -> relate."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from supabase import Client

from src.config import settings
from src.errors import TranscriptMissingError, VideoNotFoundError
from src.graph.relationships import compute_relationships
from src.ingestion.chunking import chunk_transcript
from src.ingestion.embeddings import embed_text
from src.ingestion.models import ChunkData, EmbeddedChunk, EmbedResult, VideoEmbedOutcome
from src.ingestion.parsers import parse_transcript
from src.ingestion.storage import (
    count_embedded_chunks,
    get_supabase_client,
    get_video,
    replace_video_chunks,
)

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], Awaitable[list[float]]]
ProgressFn = Callable[[int, int], None]


async def _embed_one(index: int, chunk: ChunkData, embed: EmbedFn) -> EmbeddedChunk:
    """Embed one chunk; a provider failure is recorded on the chunk, not raised."""
    try:
        vector = await embed(chunk.content)
        if not vector:
            raise ValueError("provider returned an empty embedding")
    except Exception as exc:
        logger.warning("Embedding failed for chunk %d: %s", index, exc)
        return EmbeddedChunk(chunk=chunk, error=str(exc) or type(exc).__name__)
    return EmbeddedChunk(chunk=chunk, embedding=list(vector))


async def embed_chunks(
    chunks: list[ChunkData],
    video_id: int | None = None,
    *,
    embed: EmbedFn = embed_text,
    batch_size: int | None = None,
    on_progress: ProgressFn | None = None,
    compute_graph: bool = True,
    client: Client | None = None,
) -> EmbedResult:
    """Embed chunks batch by batch and, for a video, persist and relate them.

    Chunks within a batch are embedded concurrently.  A failed chunk is
    counted in ``error_count`` and left out of persistence; its siblings
    carry on.  When *video_id* is given and at least one chunk succeeded,
    the video's stored chunks are replaced in one atomic step and, if
    *compute_graph* is set, relationships for the video are computed.

    Args:
        chunks: Chunks to embed.
        video_id: Owning video; omit to embed without touching storage.
        embed: Provider call, one text in, one vector out.
        batch_size: Chunks per concurrent batch (settings default).
        on_progress: Called with ``(done, total)`` after each batch.
        compute_graph: Whether to build relationship edges after storing.
        client: Supabase client (created from the environment if omitted).

    Returns:
        :class:`EmbedResult` with per-chunk outcomes and aggregate counts.
    """
    started = time.perf_counter()
    total = len(chunks)
    if total == 0:
        return EmbedResult(chunks=[])

    size = max(1, batch_size or settings.embed_batch_size)
    results: list[EmbeddedChunk] = []
    for start in range(0, total, size):
        batch = chunks[start : start + size]
        results.extend(
            await asyncio.gather(
                *(_embed_one(start + offset, c, embed) for offset, c in enumerate(batch))
            )
        )
        if on_progress:
            on_progress(min(start + size, total), total)

    success_count = sum(1 for r in results if r.ok)
    result = EmbedResult(
        chunks=results,
        total_chunks=total,
        success_count=success_count,
        error_count=total - success_count,
    )

    if video_id is not None:
        if success_count == 0:
            logger.warning("Video %s: no chunk embedded, stored chunks left unchanged", video_id)
        else:
            client = client or get_supabase_client()
            await asyncio.to_thread(replace_video_chunks, client, video_id, results)
            if compute_graph:
                relations = await asyncio.to_thread(compute_relationships, video_id, client)
                result.relationships_created = relations.created

    result.duration_ms = (time.perf_counter() - started) * 1000
    return result


async def embed_video(
    video_id: int,
    *,
    compute_graph: bool = True,
    embed: EmbedFn = embed_text,
    client: Client | None = None,
) -> VideoEmbedOutcome:
    """(Re-)embed one video's transcript.

    Any chunks the video already has are replaced, never mixed with the new
    set.

    Raises:
        VideoNotFoundError: The video does not exist.
        TranscriptMissingError: No transcript, or nothing chunkable in it.
    """
    client = client or get_supabase_client()

    video = await asyncio.to_thread(get_video, client, video_id)
    if video is None:
        raise VideoNotFoundError(video_id)
    transcript = video.get("transcript")
    if not transcript:
        raise TranscriptMissingError(video_id)

    existing = await asyncio.to_thread(count_embedded_chunks, client, video_id)

    chunks = chunk_transcript(
        parse_transcript(transcript),
        target_chars=settings.chunk_target_chars,
        min_chars=settings.chunk_min_chars,
    )
    if not chunks:
        raise TranscriptMissingError(video_id, "No chunks generated from transcript")

    result = await embed_chunks(
        chunks,
        video_id,
        embed=embed,
        compute_graph=compute_graph,
        client=client,
    )
    logger.info(
        "Video %s embedded: %d/%d chunks in %.0fms (%d relationships)",
        video_id,
        result.success_count,
        result.total_chunks,
        result.duration_ms,
        result.relationships_created,
    )

    return VideoEmbedOutcome(
        video_id=video_id,
        already_embedded=existing > 0,
        chunk_count=result.success_count,
        success_count=result.success_count,
        error_count=result.error_count,
        duration_ms=result.duration_ms,
        relationships_created=result.relationships_created if compute_graph else None,
    )

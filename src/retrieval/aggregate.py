"""Group chunk-level search hits into video-level results."""

from __future__ import annotations

from src.retrieval.models import BestChunk, SearchResult, VideoResult


def aggregate_by_video(hits: list[SearchResult]) -> list[VideoResult]:
    """Collapse chunk hits into one result per video.

    For each video the highest-similarity chunk becomes the representative
    snippet and its similarity becomes the video score.  Videos are ordered
    by score, highest first; ties keep the order in which each video first
    appeared in *hits*.
    """
    videos: dict[int, VideoResult] = {}

    for hit in hits:
        existing = videos.get(hit.video_id)
        if existing is None:
            videos[hit.video_id] = VideoResult(
                video_id=hit.video_id,
                title=hit.video_title,
                score=hit.similarity,
                matched_chunks=1,
                best_chunk=BestChunk(hit.content, hit.start_time, hit.similarity),
                channel=hit.channel,
                youtube_id=hit.youtube_id,
                thumbnail=hit.thumbnail,
                chunk_ids=[hit.chunk_id],
            )
            continue

        existing.matched_chunks += 1
        existing.chunk_ids.append(hit.chunk_id)
        if hit.similarity > existing.best_chunk.similarity:
            existing.best_chunk = BestChunk(hit.content, hit.start_time, hit.similarity)
            existing.score = hit.similarity

    # sorted() is stable, so equal scores keep first-seen order
    return sorted(videos.values(), key=lambda v: v.score, reverse=True)

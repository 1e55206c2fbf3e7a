"""Similarity-threshold relationship graph between transcript chunks."""

from __future__ import annotations

import logging
from collections import defaultdict

import numpy as np
from supabase import Client

from src.errors import BackfillError
from src.graph.models import BackfillResult, RelatedChunk, Relationship, RelationshipResult
from src.graph.similarity import similarity_matrix
from src.ingestion.models import StoredChunk
from src.ingestion.storage import (
    delete_all_relationships,
    fetch_embedded_chunks,
    fetch_relationships_for_chunks,
    get_chunks_with_videos,
    get_supabase_client,
    insert_relationships,
)
from src.pipeline_config import GraphConfig

logger = logging.getLogger(__name__)


def find_relationships(
    new_chunks: list[StoredChunk],
    existing_chunks: list[StoredChunk],
    threshold: float = 0.75,
) -> list[Relationship]:
    """Compare each new chunk with each existing chunk from a different video.

    Pure function: no storage access.  Each unordered pair appears at most
    once, normalised to ``source < target``, and only when its similarity is
    strictly above *threshold*.

    Returns:
        Edges sorted by ``(source_chunk_id, target_chunk_id)``.
    """
    if not new_chunks or not existing_chunks:
        return []

    sims = similarity_matrix(
        [c.embedding for c in new_chunks],
        [c.embedding for c in existing_chunks],
    )

    edges: dict[tuple[int, int], Relationship] = {}
    for i, j in np.argwhere(sims > threshold):
        new, other = new_chunks[int(i)], existing_chunks[int(j)]
        if new.video_id == other.video_id or new.id == other.id:
            continue
        edge = Relationship.between(new.id, other.id, float(sims[i, j]))
        edges.setdefault((edge.source_chunk_id, edge.target_chunk_id), edge)

    return [edges[key] for key in sorted(edges)]


def compute_relationships(
    video_id: int,
    client: Client | None = None,
    config: GraphConfig | None = None,
) -> RelationshipResult:
    """Link a newly embedded video's chunks to the rest of the corpus.

    Args:
        video_id: The video whose chunks were just (re-)embedded.
        client: Supabase client (created from the environment if omitted).
        config: Threshold and paging; defaults come from settings.

    Returns:
        How many edges were inserted and how many already existed.
    """
    client = client or get_supabase_client()
    config = config or GraphConfig.from_settings()

    new_chunks = fetch_embedded_chunks(client, video_id=video_id)
    if not new_chunks:
        return RelationshipResult()

    existing = fetch_embedded_chunks(client, exclude_video_id=video_id, page_size=config.page_size)
    edges = find_relationships(new_chunks, existing, config.relationship_threshold)
    if not edges:
        return RelationshipResult()

    created = insert_relationships(client, edges)
    logger.info(
        "Video %s: %d relationships created (%d already present)",
        video_id,
        created,
        len(edges) - created,
    )
    return RelationshipResult(created=created, skipped=len(edges) - created)


def backfill_relationships(
    client: Client | None = None,
    config: GraphConfig | None = None,
) -> BackfillResult:
    """Delete every edge and rebuild the graph video by video.

    Videos are processed in ascending id order and each one is compared with
    the videos after it, which covers every cross-video pair exactly once,
    so two consecutive runs produce the same graph.  Any failure aborts the
    whole run with :class:`BackfillError`.
    """
    client = client or get_supabase_client()
    config = config or GraphConfig.from_settings()

    removed = delete_all_relationships(client)
    logger.info("Backfill: removed %d existing relationships", removed)

    by_video: dict[int, list[StoredChunk]] = defaultdict(list)
    for chunk in fetch_embedded_chunks(client, page_size=config.page_size):
        by_video[chunk.video_id].append(chunk)

    video_ids = sorted(by_video)
    result = BackfillResult()
    for position, video_id in enumerate(video_ids):
        later = [c for vid in video_ids[position + 1 :] for c in by_video[vid]]
        try:
            edges = find_relationships(by_video[video_id], later, config.relationship_threshold)
            created = insert_relationships(client, edges) if edges else 0
        except Exception as exc:
            raise BackfillError(video_id, exc) from exc
        result.videos_processed += 1
        result.relationships_created += created

    logger.info(
        "Backfill complete: %d videos, %d relationships",
        result.videos_processed,
        result.relationships_created,
    )
    return result


def get_related_chunks(
    video_id: int,
    limit: int = 10,
    min_similarity: float = 0.75,
    client: Client | None = None,
) -> list[RelatedChunk]:
    """Chunks from other videos linked to this video's chunks, best first."""
    client = client or get_supabase_client()

    own_ids = {c.id for c in fetch_embedded_chunks(client, video_id=video_id)}
    if not own_ids:
        return []

    best: dict[int, float] = {}
    for edge in fetch_relationships_for_chunks(client, sorted(own_ids), min_similarity):
        source, target = int(edge["source_chunk_id"]), int(edge["target_chunk_id"])
        other = target if source in own_ids else source
        if other in own_ids:
            continue
        best[other] = max(best.get(other, -1.0), float(edge["similarity"]))

    ranked = sorted(best.items(), key=lambda item: item[1], reverse=True)
    rows = {int(r["id"]): r for r in get_chunks_with_videos(client, [cid for cid, _ in ranked])}

    related: list[RelatedChunk] = []
    for chunk_id, similarity in ranked:
        row = rows.get(chunk_id)
        if row is None or int(row["video_id"]) == video_id:
            continue
        video = row.get("videos") or {}
        related.append(
            RelatedChunk(
                chunk_id=chunk_id,
                content=row["content"],
                start_time=row.get("start_time") or 0,
                end_time=row.get("end_time") or 0,
                similarity=similarity,
                video_id=int(row["video_id"]),
                video_title=video.get("title", ""),
                channel=video.get("channel"),
                youtube_id=video.get("youtube_id"),
            )
        )
        if len(related) >= limit:
            break
    return related

"""Channel centroids and content-based discovery of similar channels."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from supabase import Client

from src.graph.similarity import centroid, cosine_similarity
from src.ingestion.storage import (
    fetch_channel_embeddings,
    get_supabase_client,
    list_followed_channels,
    list_video_channels,
    sample_channel_titles,
)
from src.pipeline_config import ChannelSimilarityConfig

logger = logging.getLogger(__name__)


@dataclass
class SimilarChannel:
    channel_name: str
    similarity: float
    video_count: int
    sample_titles: list[str] = field(default_factory=list)


def compute_channel_centroid(channel_name: str, client: Client | None = None) -> list[float] | None:
    """Mean embedding over every embedded chunk of the channel's videos.

    Returns None (never a zero vector) when the channel has no embedded chunks.
    """
    client = client or get_supabase_client()
    vectors = [vector for _, vector in fetch_channel_embeddings(client, channel_name)]
    return centroid(vectors)


def max_similarity(candidate: Sequence[float], references: list[list[float]]) -> float:
    """Highest cosine similarity between *candidate* and any reference centroid."""
    return max((cosine_similarity(ref, candidate) for ref in references), default=0.0)


def find_similar_channels(
    followed_channels: list[str],
    config: ChannelSimilarityConfig | None = None,
    client: Client | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> list[SimilarChannel]:
    """Rank unfollowed channels by how close their content is to followed ones.

    Candidates need at least ``config.min_videos`` embedded videos and a max
    similarity strictly above ``config.threshold`` against any followed
    centroid.  The wall-clock budget is checked before each candidate; once
    it is spent, the channels evaluated so far are returned.

    Args:
        followed_channels: Names whose centroids act as the reference set.
        config: Threshold, limit, minimum video count and time budget.
        client: Supabase client (created from the environment if omitted).
        clock: Monotonic clock in seconds (injectable for tests).

    Returns:
        Up to ``config.limit`` channels, most similar first.
    """
    config = config or ChannelSimilarityConfig.from_settings()
    if not followed_channels:
        return []

    client = client or get_supabase_client()
    excluded = set(list_followed_channels(client)) | set(followed_channels)

    followed_centroids: list[list[float]] = []
    for name in followed_channels:
        c = compute_channel_centroid(name, client)
        if c is not None:
            followed_centroids.append(c)
    if not followed_centroids:
        return []

    candidates = [name for name in list_video_channels(client) if name not in excluded]

    results: list[SimilarChannel] = []
    budget_s = config.timeout_ms / 1000.0
    started = clock()
    for evaluated, name in enumerate(candidates):
        if clock() - started > budget_s:
            logger.warning(
                "Channel similarity budget of %dms spent after %d/%d candidates",
                config.timeout_ms,
                evaluated,
                len(candidates),
            )
            break

        pairs = fetch_channel_embeddings(client, name)
        video_count = len({video_id for video_id, _ in pairs})
        if video_count < config.min_videos:
            continue

        candidate_centroid = centroid([vector for _, vector in pairs])
        if candidate_centroid is None:
            continue

        score = max_similarity(candidate_centroid, followed_centroids)
        if score > config.threshold:
            results.append(
                SimilarChannel(
                    channel_name=name,
                    similarity=score,
                    video_count=video_count,
                    sample_titles=sample_channel_titles(client, name),
                )
            )

    results.sort(key=lambda s: s.similarity, reverse=True)
    return results[: config.limit]

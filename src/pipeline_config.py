"""Pipeline configuration: retrieval strategy enum and tuning dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.config import settings


class RetrievalStrategy(str, Enum):
    """Available retrieval strategies for search and persona context."""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class GraphConfig:
    """Immutable configuration for relationship-graph construction.

    ``page_size`` bounds how many existing chunks are pulled from storage
    per request while scanning the corpus.
    """

    relationship_threshold: float = 0.75
    page_size: int = 1000

    @classmethod
    def from_settings(cls) -> GraphConfig:
        return cls(relationship_threshold=settings.relationship_threshold)


@dataclass(frozen=True)
class ChannelSimilarityConfig:
    """Immutable configuration for similar-channel discovery."""

    threshold: float = 0.6
    limit: int = 10
    min_videos: int = 3
    timeout_ms: int = 5000

    @classmethod
    def from_settings(cls, limit: int = 10) -> ChannelSimilarityConfig:
        return cls(
            threshold=settings.channel_similarity_threshold,
            limit=limit,
            min_videos=settings.channel_min_videos,
            timeout_ms=settings.channel_similarity_timeout_ms,
        )

"""Data models for the chunk relationship graph."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Relationship:
    """An undirected similarity edge, normalised so ``source < target``."""

    source_chunk_id: int
    target_chunk_id: int
    similarity: float

    @classmethod
    def between(cls, a: int, b: int, similarity: float) -> Relationship:
        low, high = (a, b) if a < b else (b, a)
        return cls(source_chunk_id=low, target_chunk_id=high, similarity=similarity)


@dataclass
class RelationshipResult:
    created: int = 0
    skipped: int = 0


@dataclass
class BackfillResult:
    videos_processed: int = 0
    relationships_created: int = 0


@dataclass
class RelatedChunk:
    chunk_id: int
    content: str
    start_time: int
    end_time: int
    similarity: float
    video_id: int
    video_title: str
    channel: str | None = None
    youtube_id: str | None = None

"""Data models for chunk search and video-level aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SearchResult:
    """A chunk hit with its owning video's metadata."""

    chunk_id: int
    content: str
    similarity: float
    video_id: int
    video_title: str
    channel: str | None = None
    start_time: int | None = None
    end_time: int | None = None
    youtube_id: str | None = None
    thumbnail: str | None = None
    published_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], similarity: float | None = None) -> SearchResult:
        """Build from a flat RPC row or a chunk row with an embedded ``videos`` object."""
        video = row.get("videos") or {}
        return cls(
            chunk_id=int(row.get("chunk_id", row.get("id"))),
            content=row["content"],
            similarity=float(similarity if similarity is not None else row.get("similarity", 0.0)),
            video_id=int(row.get("video_id", video.get("id"))),
            video_title=row.get("video_title", video.get("title", "")),
            channel=row.get("channel", video.get("channel")),
            start_time=row.get("start_time"),
            end_time=row.get("end_time"),
            youtube_id=row.get("youtube_id", video.get("youtube_id")),
            thumbnail=row.get("thumbnail", video.get("thumbnail")),
            published_at=row.get("published_at", video.get("published_at")),
        )


@dataclass
class BestChunk:
    content: str
    start_time: int | None
    similarity: float


@dataclass
class VideoResult:
    """Chunk hits grouped under one video."""

    video_id: int
    title: str
    score: float
    matched_chunks: int
    best_chunk: BestChunk
    channel: str | None = None
    youtube_id: str | None = None
    thumbnail: str | None = None
    chunk_ids: list[int] = field(default_factory=list)

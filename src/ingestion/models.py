"""Data models for the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TranscriptSegment:
    """One timestamped span of a raw transcript."""

    text: str
    offset_ms: int = 0


@dataclass
class ChunkData:
    """A bounded transcript span ready for embedding.

    Times are milliseconds from the start of the video.
    """

    content: str
    start_time: int = 0
    end_time: int = 0
    segment_indices: list[int] = field(default_factory=list)


@dataclass
class EmbeddedChunk:
    """A chunk paired with its embedding, or with the error that prevented it."""

    chunk: ChunkData
    embedding: list[float] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.embedding)


@dataclass
class StoredChunk:
    """An embedded chunk as read back from storage."""

    id: int
    video_id: int
    embedding: list[float]


@dataclass
class EmbedResult:
    """Aggregate outcome of embedding a set of chunks."""

    chunks: list[EmbeddedChunk]
    total_chunks: int = 0
    success_count: int = 0
    error_count: int = 0
    duration_ms: float = 0.0
    relationships_created: int = 0


@dataclass
class VideoEmbedOutcome:
    """Result of the end-to-end embed operation for one video."""

    video_id: int
    already_embedded: bool
    chunk_count: int
    success_count: int
    error_count: int
    duration_ms: float
    relationships_created: int | None = None

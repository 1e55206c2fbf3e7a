"""Pydantic request/response schemas for the Video Knowledge Bank API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.pipeline_config import RetrievalStrategy


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Embedding and graph ------------------------------------------------------


class EmbedResponse(ApiModel):
    """Response body for POST /api/embed/{video_id}."""

    success: bool
    video_id: int
    already_embedded: bool
    chunk_count: int
    success_count: int
    error_count: int
    duration_ms: float
    relationships_created: int | None = None
    error: str | None = None


class BackfillResponse(ApiModel):
    videos_processed: int
    relationships_created: int


class RelatedChunkResponse(ApiModel):
    chunk_id: int
    content: str
    start_time: int
    end_time: int
    similarity: float
    video_id: int
    video_title: str
    channel: str | None = None
    youtube_id: str | None = None


class RelatedChunksResponse(ApiModel):
    video_id: int
    related: list[RelatedChunkResponse] = []


# --- Channels -----------------------------------------------------------------


class SimilarChannelResponse(ApiModel):
    channel_name: str
    similarity: float
    video_count: int
    sample_titles: list[str] = []


class SimilarChannelsResponse(ApiModel):
    suggestions: list[SimilarChannelResponse] = []
    message: str | None = None


# --- Search -------------------------------------------------------------------


class ChunkHit(ApiModel):
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


class BestChunkResponse(ApiModel):
    content: str
    start_time: int | None = None
    similarity: float


class VideoHit(ApiModel):
    video_id: int
    title: str
    score: float
    matched_chunks: int
    best_chunk: BestChunkResponse
    channel: str | None = None
    youtube_id: str | None = None
    thumbnail: str | None = None


class SearchResponse(ApiModel):
    """Response body for GET /api/search."""

    chunks: list[ChunkHit] = []
    videos: list[VideoHit] = []
    query: str
    mode: RetrievalStrategy
    has_embeddings: bool


# --- Personas -----------------------------------------------------------------


class PersonaResponse(ApiModel):
    id: int
    channel_name: str
    name: str
    system_prompt: str
    expertise_topics: list[str] = []
    has_expertise_embedding: bool
    transcript_count: int
    created_at: str | None = None


class CreatePersonaRequest(ApiModel):
    channel_name: str = Field(min_length=1)


class PersonaSuggestion(ApiModel):
    channel_name: str
    video_count: int


class PersonaSuggestionsResponse(ApiModel):
    suggestions: list[PersonaSuggestion] = []


class EnsembleRequest(ApiModel):
    """Request body for POST /api/personas/ensemble.

    Omitting ``personaIds`` asks every persona; an empty list asks none.
    """

    question: str = Field(min_length=1)
    persona_ids: list[int] | None = None


class PersonaQueryRequest(ApiModel):
    """Request body for POST /api/personas/{id}/query."""

    question: str = Field(min_length=1)

"""Supabase storage helpers for videos, chunks, and chunk relationships."""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING, Any, cast

from postgrest import CountMethod
from supabase import Client, create_client

from src.ingestion.models import StoredChunk

if TYPE_CHECKING:
    from src.graph.models import Relationship
    from src.ingestion.models import EmbeddedChunk

# PostgREST caps responses at 1000 rows by default
PAGE_SIZE = 1000
INSERT_BATCH_SIZE = 500


def get_supabase_client() -> Client:
    """Create and return a Supabase client from environment variables."""
    return create_client(
        os.getenv("SUPABASE_URL", ""),
        os.getenv("SUPABASE_KEY", ""),
    )


def parse_vector(value: Any) -> list[float] | None:
    """Decode a pgvector column value.

    PostgREST returns vectors as text (``"[0.1,0.2]"``); RPC results and
    test fixtures may already be lists.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value)
    return [float(v) for v in value]


def _rows(result: Any) -> list[dict[str, Any]]:
    # Supabase .data is typed as JSON (broad union); cast to concrete type.
    return cast(list[dict[str, Any]], result.data or [])


def _paginate(build_query: Any, page_size: int = PAGE_SIZE) -> list[dict[str, Any]]:
    """Fetch every row of an ordered query, one page at a time."""
    rows: list[dict[str, Any]] = []
    start = 0
    while True:
        page = _rows(build_query().range(start, start + page_size - 1).execute())
        rows.extend(page)
        if len(page) < page_size:
            return rows
        start += page_size


# --- Videos ---------------------------------------------------------------


def get_video(client: Client, video_id: int) -> dict[str, Any] | None:
    """Return the video row, or None if it does not exist."""
    result = client.table("videos").select("*").eq("id", video_id).limit(1).execute()
    rows = _rows(result)
    return rows[0] if rows else None


def list_unembedded_video_ids(client: Client) -> list[int]:
    """IDs of videos that have a transcript but no chunks yet, ascending."""
    result = client.rpc("unembedded_video_ids", {}).execute()
    return [int(r["video_id"]) for r in _rows(result)]


# --- Chunks ---------------------------------------------------------------


def count_embedded_chunks(client: Client, video_id: int) -> int:
    """Number of the video's chunks that carry an embedding."""
    result = (
        client.table("chunks")
        .select("id", count=CountMethod.exact)
        .eq("video_id", video_id)
        .not_.is_("embedding", "null")
        .execute()
    )
    return result.count or 0


def replace_video_chunks(
    client: Client,
    video_id: int,
    embedded_chunks: list[EmbeddedChunk],
) -> int:
    """Atomically swap a video's chunks for a freshly embedded set.

    The ``replace_video_chunks`` Postgres function deletes the old rows and
    inserts the new ones inside one transaction, so a failure leaves the
    previous set intact.  Chunk times are stored in whole seconds.

    Returns:
        Number of chunks inserted.
    """
    rows = [
        {
            "content": ec.chunk.content,
            "start_time": ec.chunk.start_time // 1000,
            "end_time": ec.chunk.end_time // 1000,
            "segment_indices": ec.chunk.segment_indices,
            "embedding": ec.embedding,
        }
        for ec in embedded_chunks
        if ec.ok
    ]
    result = client.rpc(
        "replace_video_chunks",
        {"p_video_id": video_id, "p_chunks": rows},
    ).execute()
    return int(cast(Any, result.data) or 0)


def fetch_embedded_chunks(
    client: Client,
    video_id: int | None = None,
    exclude_video_id: int | None = None,
    page_size: int = PAGE_SIZE,
) -> list[StoredChunk]:
    """Load embedded chunks, optionally restricted to or excluding one video."""

    def build() -> Any:
        query = client.table("chunks").select("id,video_id,embedding").not_.is_("embedding", "null")
        if video_id is not None:
            query = query.eq("video_id", video_id)
        if exclude_video_id is not None:
            query = query.neq("video_id", exclude_video_id)
        return query.order("id")

    chunks: list[StoredChunk] = []
    for row in _paginate(build, page_size):
        vector = parse_vector(row.get("embedding"))
        if vector:
            chunks.append(StoredChunk(id=int(row["id"]), video_id=int(row["video_id"]), embedding=vector))
    return chunks


def get_chunks_with_videos(client: Client, chunk_ids: list[int]) -> list[dict[str, Any]]:
    """Chunk rows joined with their owning video's metadata."""
    if not chunk_ids:
        return []
    result = (
        client.table("chunks")
        .select("id,content,start_time,end_time,video_id,videos(id,title,channel,youtube_id)")
        .in_("id", chunk_ids)
        .execute()
    )
    return _rows(result)


# --- Relationships ----------------------------------------------------------


def delete_all_relationships(client: Client) -> int:
    """Delete every relationship row and return how many were removed."""
    # PostgREST refuses unfiltered deletes; every id is positive
    result = client.table("relationships").delete().gt("id", 0).execute()
    return len(_rows(result))


def insert_relationships(client: Client, relationships: list[Relationship]) -> int:
    """Insert edges, ignoring pairs that already exist.

    Returns:
        Number of rows actually inserted.
    """
    created = 0
    rows = [
        {
            "source_chunk_id": r.source_chunk_id,
            "target_chunk_id": r.target_chunk_id,
            "similarity": r.similarity,
        }
        for r in relationships
    ]
    for i in range(0, len(rows), INSERT_BATCH_SIZE):
        result = (
            client.table("relationships")
            .upsert(
                rows[i : i + INSERT_BATCH_SIZE],
                on_conflict="source_chunk_id,target_chunk_id",
                ignore_duplicates=True,
            )
            .execute()
        )
        created += len(_rows(result))
    return created


def fetch_relationships_for_chunks(
    client: Client,
    chunk_ids: list[int],
    min_similarity: float,
) -> list[dict[str, Any]]:
    """Edges touching any of *chunk_ids* at or above *min_similarity*.

    Edges are stored with ``source < target``, so both columns are searched.
    """
    if not chunk_ids:
        return []
    rows: list[dict[str, Any]] = []
    for column in ("source_chunk_id", "target_chunk_id"):
        result = (
            client.table("relationships")
            .select("source_chunk_id,target_chunk_id,similarity")
            .in_(column, chunk_ids)
            .gte("similarity", min_similarity)
            .execute()
        )
        rows.extend(_rows(result))
    return rows


# --- Channels ---------------------------------------------------------------


def list_followed_channels(client: Client) -> list[str]:
    """Names of the channels the user follows."""
    result = client.table("channels").select("name").execute()
    return [r["name"] for r in _rows(result)]


def list_video_channels(client: Client) -> list[str]:
    """Distinct, non-null channel names across all videos, sorted."""
    rows = _paginate(lambda: client.table("videos").select("id,channel").order("id"))
    return sorted({r["channel"] for r in rows if r.get("channel")})


def fetch_channel_embeddings(client: Client, channel: str) -> list[tuple[int, list[float]]]:
    """``(video_id, embedding)`` for every embedded chunk of the channel's videos."""

    def build() -> Any:
        return (
            client.table("chunks")
            .select("id,video_id,embedding,videos!inner(channel)")
            .eq("videos.channel", channel)
            .not_.is_("embedding", "null")
            .order("id")
        )

    pairs: list[tuple[int, list[float]]] = []
    for row in _paginate(build):
        vector = parse_vector(row.get("embedding"))
        if vector:
            pairs.append((int(row["video_id"]), vector))
    return pairs


def sample_channel_titles(client: Client, channel: str, limit: int = 3) -> list[str]:
    result = client.table("videos").select("title").eq("channel", channel).limit(limit).execute()
    return [r["title"] for r in _rows(result)]


def count_channel_videos(client: Client, channel: str) -> int:
    result = (
        client.table("videos")
        .select("id", count=CountMethod.exact)
        .eq("channel", channel)
        .execute()
    )
    return result.count or 0


def channel_video_counts(client: Client) -> dict[str, int]:
    """Video count per non-null channel."""
    counts: dict[str, int] = {}
    for row in _paginate(lambda: client.table("videos").select("id,channel").order("id")):
        channel = row.get("channel")
        if channel:
            counts[channel] = counts.get(channel, 0) + 1
    return counts


def sample_channel_transcripts(client: Client, channel: str, limit: int = 5) -> list[str]:
    """Up to *limit* non-empty transcripts from the channel's videos."""
    result = (
        client.table("videos")
        .select("transcript")
        .eq("channel", channel)
        .not_.is_("transcript", "null")
        .order("id")
        .limit(limit)
        .execute()
    )
    return [r["transcript"] for r in _rows(result) if r.get("transcript")]


def fetch_channel_chunk_contents(client: Client, channel: str) -> list[str]:
    def build() -> Any:
        return (
            client.table("chunks")
            .select("id,content,videos!inner(channel)")
            .eq("videos.channel", channel)
            .order("id")
        )

    return [r["content"] for r in _paginate(build)]


# --- Personas ---------------------------------------------------------------


def list_personas(client: Client) -> list[dict[str, Any]]:
    result = client.table("personas").select("*").order("id").execute()
    return _rows(result)


def get_personas_by_ids(client: Client, persona_ids: list[int]) -> list[dict[str, Any]]:
    if not persona_ids:
        return []
    result = client.table("personas").select("*").in_("id", persona_ids).order("id").execute()
    return _rows(result)


def get_persona_by_channel(client: Client, channel: str) -> dict[str, Any] | None:
    result = client.table("personas").select("*").eq("channel_name", channel).limit(1).execute()
    rows = _rows(result)
    return rows[0] if rows else None


def insert_persona(client: Client, row: dict[str, Any]) -> dict[str, Any]:
    """Insert a persona row and return it as stored.

    Raises:
        postgrest.exceptions.APIError: On constraint violations (``23505`` for a duplicate channel).
    """
    result = client.table("personas").insert(row).execute()
    return _rows(result)[0]


def delete_persona(client: Client, persona_id: int) -> bool:
    """Delete a persona; False when no row had that id."""
    result = client.table("personas").delete().eq("id", persona_id).execute()
    return bool(_rows(result))


def has_embeddings(client: Client) -> bool:
    """Whether any chunk in the corpus carries an embedding."""
    result = client.table("chunks").select("id").not_.is_("embedding", "null").limit(1).execute()
    return bool(_rows(result))

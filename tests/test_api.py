"""Tests for API endpoints (no external API keys required)."""

import json
from functools import partial
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
from fastapi.testclient import TestClient
from openai import APIConnectionError

from src.api.main import app
from src.config import settings
from src.errors import (
    BackfillError,
    ChannelNotFoundError,
    PersonaExistsError,
    TranscriptMissingError,
    VideoNotFoundError,
)
from src.graph.models import BackfillResult, RelatedChunk
from src.ingestion.models import VideoEmbedOutcome
from src.personas.ensemble import EnsembleOrchestrator
from src.personas.models import Persona
from src.retrieval.models import SearchResult

client = TestClient(app)
client_no_raise = TestClient(app, raise_server_exceptions=False)


def _outcome(**overrides) -> VideoEmbedOutcome:
    values = dict(
        video_id=7,
        already_embedded=False,
        chunk_count=4,
        success_count=4,
        error_count=0,
        duration_ms=812.44,
        relationships_created=3,
    )
    values.update(overrides)
    return VideoEmbedOutcome(**values)


def _persona(pid: int, embedding: list[float] | None = None) -> Persona:
    return Persona(
        id=pid,
        channel_name=f"Channel {pid}",
        name=f"Persona {pid}",
        system_prompt="You are helpful.",
        expertise_topics=["dough"],
        expertise_embedding=embedding,
        transcript_count=6,
    )


def _hit(chunk_id: int, video_id: int, similarity: float) -> SearchResult:
    return SearchResult(
        chunk_id=chunk_id,
        content=f"chunk {chunk_id}",
        similarity=similarity,
        video_id=video_id,
        video_title=f"Video {video_id}",
        start_time=chunk_id * 30,
    )


def _sse_events(body: str) -> list[dict]:
    return [json.loads(frame[len("data: "):]) for frame in body.split("\n\n") if frame.startswith("data: ")]


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


# --- Embed ---------------------------------------------------------------------


def test_embed_success_uses_camel_case():
    with patch("src.api.routes.embed.embed_video", AsyncMock(return_value=_outcome())):
        response = client.post("/api/embed/7")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["videoId"] == 7
    assert body["chunkCount"] == 4
    assert body["relationshipsCreated"] == 3
    assert body["durationMs"] == 812.4
    assert "error" not in body


def test_embed_unknown_video_returns_404():
    with patch("src.api.routes.embed.embed_video", AsyncMock(side_effect=VideoNotFoundError(99))):
        response = client.post("/api/embed/99")
    assert response.status_code == 404


def test_embed_without_transcript_returns_400():
    with patch("src.api.routes.embed.embed_video", AsyncMock(side_effect=TranscriptMissingError(7))):
        response = client.post("/api/embed/7")
    assert response.status_code == 400
    assert "transcript" in response.json()["detail"].lower()


def test_embed_partial_failure_returns_500_with_counts():
    outcome = _outcome(chunk_count=3, success_count=3, error_count=1)
    with patch("src.api.routes.embed.embed_video", AsyncMock(return_value=outcome)):
        response = client.post("/api/embed/7")
    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["successCount"] == 3
    assert body["errorCount"] == 1
    assert body["error"] == "1 of 4 chunks failed to embed"


def test_embed_unexpected_failure_returns_500():
    with patch("src.api.routes.embed.embed_video", AsyncMock(side_effect=RuntimeError("db down"))):
        response = client_no_raise.post("/api/embed/7")
    assert response.status_code == 500


def test_embed_defers_relationships_when_not_inline():
    mock_embed = AsyncMock(return_value=_outcome(relationships_created=None))
    with (
        patch.object(settings, "compute_relationships_inline", False),
        patch("src.api.routes.embed.embed_video", mock_embed),
        patch("src.api.routes.embed.compute_relationships") as mock_relate,
    ):
        response = client.post("/api/embed/7")
    assert response.status_code == 200
    assert "relationshipsCreated" not in response.json()
    assert mock_embed.await_args.kwargs["compute_graph"] is False
    mock_relate.assert_called_once_with(7)


def test_embed_rejects_non_integer_id():
    response = client.post("/api/embed/abc")
    assert response.status_code == 422


# --- Graph ---------------------------------------------------------------------


def test_backfill():
    result = BackfillResult(videos_processed=3, relationships_created=4)
    with patch("src.api.routes.graph.backfill_relationships", return_value=result):
        response = client.post("/api/graph/backfill")
    assert response.status_code == 200
    assert response.json() == {"videosProcessed": 3, "relationshipsCreated": 4}


def test_backfill_failure_names_video():
    error = BackfillError(2, RuntimeError("timeout"))
    with patch("src.api.routes.graph.backfill_relationships", side_effect=error):
        response = client.post("/api/graph/backfill")
    assert response.status_code == 500
    assert "2" in response.json()["detail"]


def test_related_chunks():
    related = [
        RelatedChunk(
            chunk_id=31,
            content="Fold the dough",
            start_time=60,
            end_time=90,
            similarity=0.91,
            video_id=3,
            video_title="Bread 101",
        )
    ]
    with patch("src.api.routes.graph.get_related_chunks", return_value=related) as mock_related:
        response = client.get("/api/videos/1/related?limit=5")
    assert response.status_code == 200
    body = response.json()
    assert body["videoId"] == 1
    assert body["related"][0]["chunkId"] == 31
    assert body["related"][0]["videoTitle"] == "Bread 101"
    assert mock_related.call_args.args[:2] == (1, 5)


def test_related_limit_bounds():
    assert client.get("/api/videos/1/related?limit=0").status_code == 422
    assert client.get("/api/videos/1/related?limit=101").status_code == 422


# --- Channels ------------------------------------------------------------------


def test_similar_channels_limit_bounds():
    assert client.get("/api/channels/similar?limit=0").status_code == 422
    assert client.get("/api/channels/similar?limit=101").status_code == 422


def test_similar_channels_without_followed():
    with (
        patch("src.api.routes.channels.get_supabase_client", return_value=MagicMock()),
        patch("src.api.routes.channels.list_followed_channels", return_value=[]),
    ):
        response = client.get("/api/channels/similar")
    assert response.status_code == 200
    assert response.json() == {"suggestions": [], "message": "No followed channels to base recommendations on"}


def test_similar_channels_none_found():
    with (
        patch("src.api.routes.channels.get_supabase_client", return_value=MagicMock()),
        patch("src.api.routes.channels.list_followed_channels", return_value=["Bakers"]),
        patch("src.api.routes.channels.find_similar_channels", return_value=[]),
    ):
        response = client.get("/api/channels/similar")
    assert response.json()["message"] == "No similar channels found"


def test_similar_channels_passes_limit():
    with (
        patch("src.api.routes.channels.get_supabase_client", return_value=MagicMock()),
        patch("src.api.routes.channels.list_followed_channels", return_value=["Bakers"]),
        patch("src.api.routes.channels.find_similar_channels", return_value=[]) as mock_find,
    ):
        client.get("/api/channels/similar?limit=4")
    assert mock_find.call_args.args[1].limit == 4


def test_similar_channels_failure_returns_500():
    with patch("src.api.routes.channels.get_supabase_client", side_effect=RuntimeError("no database")):
        response = client.get("/api/channels/similar")
    assert response.status_code == 500


# --- Search --------------------------------------------------------------------


def test_search_empty_query_skips_providers():
    with patch("src.api.routes.search.hybrid_search", AsyncMock()) as mock_search:
        response = client.get("/api/search?q=")
    assert response.status_code == 200
    assert response.json() == {"chunks": [], "videos": [], "query": "", "mode": "hybrid", "hasEmbeddings": True}
    mock_search.assert_not_awaited()


def test_search_query_too_long():
    response = client.get("/api/search", params={"q": "x" * 501})
    assert response.status_code == 400


def test_search_groups_hits_by_video():
    hits = [_hit(1, 1, 0.9), _hit(2, 1, 0.5), _hit(3, 2, 0.7)]
    with (
        patch("src.api.routes.search.get_supabase_client", return_value=MagicMock()),
        patch("src.api.routes.search.hybrid_search", AsyncMock(return_value=hits)) as mock_search,
    ):
        response = client.get("/api/search", params={"q": "bread", "limit": 5, "mode": "semantic"})
    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "semantic"
    assert body["hasEmbeddings"] is True
    assert [c["chunkId"] for c in body["chunks"]] == [1, 2, 3]
    assert [v["videoId"] for v in body["videos"]] == [1, 2]
    assert body["videos"][0]["matchedChunks"] == 2
    assert body["videos"][0]["bestChunk"]["startTime"] == 30
    assert mock_search.await_args.args[2] == 15


def test_search_reports_missing_embeddings():
    with (
        patch("src.api.routes.search.get_supabase_client", return_value=MagicMock()),
        patch("src.api.routes.search.hybrid_search", AsyncMock(return_value=[])),
        patch("src.api.routes.search.has_embeddings", return_value=False),
    ):
        response = client.get("/api/search", params={"q": "bread"})
    assert response.json()["hasEmbeddings"] is False


def test_search_embedding_outage_returns_503():
    error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/embeddings"))
    with (
        patch("src.api.routes.search.get_supabase_client", return_value=MagicMock()),
        patch("src.api.routes.search.hybrid_search", AsyncMock(side_effect=error)),
    ):
        response = client.get("/api/search", params={"q": "bread"})
    assert response.status_code == 503


# --- Personas ------------------------------------------------------------------


def test_list_personas():
    with patch("src.api.routes.personas.list_personas", return_value=[_persona(1, [0.1]), _persona(2)]):
        response = client.get("/api/personas")
    assert response.status_code == 200
    body = response.json()
    assert [p["id"] for p in body] == [1, 2]
    assert body[0]["channelName"] == "Channel 1"
    assert body[0]["hasExpertiseEmbedding"] is True
    assert body[1]["hasExpertiseEmbedding"] is False
    assert "expertiseEmbedding" not in body[0]


def test_create_persona():
    with patch("src.api.routes.personas.create_persona", AsyncMock(return_value=_persona(5, [0.2]))) as mock_create:
        response = client.post("/api/personas", json={"channelName": "Channel 5"})
    assert response.status_code == 201
    assert response.json()["id"] == 5
    mock_create.assert_awaited_once_with("Channel 5")


def test_create_persona_conflict():
    with patch("src.api.routes.personas.create_persona", AsyncMock(side_effect=PersonaExistsError("Bakers"))):
        response = client.post("/api/personas", json={"channelName": "Bakers"})
    assert response.status_code == 409


def test_create_persona_unknown_channel():
    with patch("src.api.routes.personas.create_persona", AsyncMock(side_effect=ChannelNotFoundError("Nobody"))):
        response = client.post("/api/personas", json={"channelName": "Nobody"})
    assert response.status_code == 400


def test_create_persona_requires_channel():
    assert client.post("/api/personas", json={}).status_code == 422
    assert client.post("/api/personas", json={"channelName": ""}).status_code == 422


def test_delete_persona():
    with patch("src.api.routes.personas.delete_persona", return_value=True):
        response = client.delete("/api/personas/3")
    assert response.status_code == 204
    assert response.content == b""


def test_delete_missing_persona():
    with patch("src.api.routes.personas.delete_persona", return_value=False):
        response = client.delete("/api/personas/3")
    assert response.status_code == 404


def test_suggest_personas():
    with patch("src.api.routes.personas.suggest_channels", return_value=[("Bakers", 9), ("Cars", 5)]):
        response = client.get("/api/personas/suggest")
    assert response.status_code == 200
    assert response.json() == {
        "suggestions": [
            {"channelName": "Bakers", "videoCount": 9},
            {"channelName": "Cars", "videoCount": 5},
        ]
    }


# --- Ensemble ------------------------------------------------------------------


def test_ensemble_requires_question():
    assert client.post("/api/personas/ensemble", json={}).status_code == 422
    assert client.post("/api/personas/ensemble", json={"question": ""}).status_code == 422


def test_ensemble_with_no_personas_only_finishes():
    response = client.post("/api/personas/ensemble", json={"question": "Why?", "personaIds": []})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert _sse_events(response.text) == [{"type": "all_done"}]


def test_ensemble_without_embedded_personas_skips_embedding():
    mock_embed = AsyncMock()
    with (
        patch("src.api.routes.personas.list_personas", return_value=[_persona(1), _persona(2)]),
        patch("src.api.routes.personas.embed_text", mock_embed),
    ):
        response = client.post("/api/personas/ensemble", json={"question": "Why?"})
    assert _sse_events(response.text) == [{"type": "all_done"}]
    mock_embed.assert_not_awaited()


def test_ensemble_embedding_outage_returns_503():
    error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/embeddings"))
    with (
        patch("src.api.routes.personas.list_personas", return_value=[_persona(1, [1.0, 0.0])]),
        patch("src.api.routes.personas.embed_text", AsyncMock(side_effect=error)),
    ):
        response = client.post("/api/personas/ensemble", json={"question": "Why?"})
    assert response.status_code == 503


def test_ensemble_streams_each_persona():
    async def retrieve(persona, question):
        return [_hit(persona.id * 10, persona.id, 0.8)]

    async def generate(persona, question, context, cancel_event):
        if persona.id == 1:
            raise RuntimeError("provider exploded")
        for word in ("Knead ", "gently."):
            yield word

    personas = [_persona(1, [1.0, 0.0]), _persona(2, [0.9, 0.1]), _persona(3, None)]
    with (
        patch("src.api.routes.personas.get_supabase_client", return_value=MagicMock()),
        patch(
            "src.api.routes.personas.get_personas_by_ids",
            return_value=[{"id": p.id, "channel_name": p.channel_name, "name": p.name,
                           "system_prompt": p.system_prompt, "expertise_embedding": p.expertise_embedding}
                          for p in personas],
        ),
        patch("src.api.routes.personas.embed_text", AsyncMock(return_value=[1.0, 0.0])),
        patch(
            "src.api.routes.personas.EnsembleOrchestrator",
            partial(EnsembleOrchestrator, retrieve=retrieve, generate=generate),
        ),
    ):
        response = client.post("/api/personas/ensemble", json={"question": "How?", "personaIds": [1, 2, 3]})

    assert response.status_code == 200
    events = _sse_events(response.text)
    assert events[-1] == {"type": "all_done"}
    assert sum(e["type"] == "all_done" for e in events) == 1

    # Persona 3 has no expertise embedding, so only 1 and 2 are selected
    assert {e["personaId"] for e in events if e["type"] == "persona_start"} == {1, 2}
    assert [e for e in events if e["type"] == "persona_error"] == [
        {"type": "persona_error", "personaId": 1, "error": "provider exploded"}
    ]
    persona_two = [e for e in events if e.get("personaId") == 2 and e["type"] != "best_match"]
    assert [e["type"] for e in persona_two] == ["persona_start", "delta", "delta", "sources", "persona_done"]
    assert "".join(e["text"] for e in persona_two if e["type"] == "delta") == "Knead gently."
    assert persona_two[3]["chunks"][0]["chunkId"] == 20

    best = [e for e in events if e["type"] == "best_match"]
    assert len(best) == 1
    assert best[0]["personaId"] == 1


# --- Single persona ------------------------------------------------------------


def test_query_persona_requires_question():
    assert client.post("/api/personas/1/query", json={}).status_code == 422
    assert client.post("/api/personas/1/query", json={"question": ""}).status_code == 422


def test_query_unknown_persona_returns_404():
    with (
        patch("src.api.routes.personas.get_supabase_client", return_value=MagicMock()),
        patch("src.api.routes.personas.get_personas_by_ids", return_value=[]),
    ):
        response = client.post("/api/personas/42/query", json={"question": "Why?"})
    assert response.status_code == 404


def test_query_persona_streams_one_answer():
    async def retrieve(persona, question):
        return [_hit(7, 3, 0.8)]

    async def generate(persona, question, context, cancel_event):
        for word in ("Use ", "a ", "starter."):
            yield word

    row = {"id": 4, "channel_name": "Bakers", "name": "Bakers", "system_prompt": "Hi", "expertise_embedding": [1.0]}
    with (
        patch("src.api.routes.personas.get_supabase_client", return_value=MagicMock()),
        patch("src.api.routes.personas.get_personas_by_ids", return_value=[row]) as mock_lookup,
        patch(
            "src.api.routes.personas.EnsembleOrchestrator",
            partial(EnsembleOrchestrator, retrieve=retrieve, generate=generate, embed=AsyncMock()),
        ),
    ):
        response = client.post("/api/personas/4/query", json={"question": "Sourdough?"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert mock_lookup.call_args.args[1] == [4]
    events = _sse_events(response.text)
    assert [e["type"] for e in events] == ["persona_start", "delta", "delta", "delta", "sources", "persona_done", "all_done"]
    assert events[0] == {"type": "persona_start", "personaId": 4, "personaName": "Bakers"}
    assert events[4]["chunks"][0]["chunkId"] == 7


# --- Search options ------------------------------------------------------------


def test_search_temporal_decay_favours_recent_videos():
    old = _hit(1, 1, 0.9)
    old.published_at = "2015-01-01T00:00:00+00:00"
    recent = _hit(2, 2, 0.8)
    recent.published_at = "2099-01-01T00:00:00+00:00"
    with (
        patch("src.api.routes.search.get_supabase_client", return_value=MagicMock()),
        patch("src.api.routes.search.hybrid_search", AsyncMock(return_value=[old, recent])),
    ):
        plain = client.get("/api/search", params={"q": "bread"}).json()
        decayed = client.get(
            "/api/search", params={"q": "bread", "temporalDecay": "true", "halfLifeDays": 30}
        ).json()
    assert [v["videoId"] for v in plain["videos"]] == [1, 2]
    assert [v["videoId"] for v in decayed["videos"]] == [2, 1]
    assert decayed["chunks"][0]["publishedAt"] == "2099-01-01T00:00:00+00:00"


def test_search_half_life_must_be_positive():
    response = client.get("/api/search", params={"q": "bread", "temporalDecay": "true", "halfLifeDays": 0})
    assert response.status_code == 422

"""Persona endpoints: directory management and the streaming ensemble."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import StreamingResponse
from openai import OpenAIError

from src.api.models import (
    CreatePersonaRequest,
    EnsembleRequest,
    PersonaQueryRequest,
    PersonaResponse,
    PersonaSuggestion,
    PersonaSuggestionsResponse,
)
from src.config import settings
from src.errors import ChannelNotFoundError, PersonaExistsError
from src.ingestion.embeddings import embed_text
from src.ingestion.storage import get_personas_by_ids, get_supabase_client
from src.personas.ensemble import EnsembleOrchestrator
from src.personas.models import Persona
from src.personas.selector import rank_personas
from src.personas.service import create_persona, delete_persona, list_personas, suggest_channels

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
DISCONNECT_POLL_SECONDS = 0.5


def _to_response(persona: Persona) -> PersonaResponse:
    return PersonaResponse(
        id=persona.id,
        channel_name=persona.channel_name,
        name=persona.name,
        system_prompt=persona.system_prompt,
        expertise_topics=persona.expertise_topics,
        has_expertise_embedding=persona.expertise_embedding is not None,
        transcript_count=persona.transcript_count,
        created_at=persona.created_at,
    )


@router.get("/api/personas", response_model=list[PersonaResponse])
async def get_personas() -> list[PersonaResponse]:
    personas = await asyncio.to_thread(list_personas)
    return [_to_response(p) for p in personas]


@router.post("/api/personas", response_model=PersonaResponse, status_code=201)
async def post_persona(body: CreatePersonaRequest) -> PersonaResponse:
    """Build a persona from a channel's transcripts and embedded chunks."""
    try:
        persona = await create_persona(body.channel_name)
    except PersonaExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ChannelNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _to_response(persona)


@router.delete("/api/personas/{persona_id}", status_code=204)
async def remove_persona(persona_id: int) -> Response:
    if not await asyncio.to_thread(delete_persona, persona_id):
        raise HTTPException(status_code=404, detail="Persona not found")
    return Response(status_code=204)


@router.get("/api/personas/suggest", response_model=PersonaSuggestionsResponse)
async def suggest() -> PersonaSuggestionsResponse:
    """Channels with enough videos for a persona that do not have one yet."""
    channels = await asyncio.to_thread(suggest_channels)
    return PersonaSuggestionsResponse(
        suggestions=[PersonaSuggestion(channel_name=name, video_count=count) for name, count in channels]
    )


def _load_personas(persona_ids: list[int] | None) -> list[Persona]:
    if persona_ids is not None and not persona_ids:
        return []
    if persona_ids is None:
        personas = list_personas()
    else:
        personas = [Persona.from_row(r) for r in get_personas_by_ids(get_supabase_client(), persona_ids)]
    return personas[: settings.ensemble_max_personas]


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("Stream client disconnected")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


def _sse_response(
    orchestrator: EnsembleOrchestrator, request: Request, cancel_event: asyncio.Event
) -> StreamingResponse:
    async def event_stream() -> AsyncIterator[str]:
        watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
        try:
            async for event in orchestrator.events():
                yield event.to_sse()
        finally:
            watcher.cancel()

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/api/personas/ensemble")
async def ensemble(body: EnsembleRequest, request: Request) -> StreamingResponse:
    """Stream answers from the best-matching personas as Server-Sent Events.

    Personas are taken from ``personaIds`` (or all personas), ranked against
    the question, and the top ``PERSONA_LIMIT`` answer concurrently.  The
    stream always ends with ``all_done`` unless the client disconnects.
    """
    personas = await asyncio.to_thread(_load_personas, body.persona_ids)

    question_embedding: list[float] | None = None
    selected: list[Persona] = []
    if any(p.expertise_embedding for p in personas):
        try:
            question_embedding = await embed_text(body.question)
        except OpenAIError as exc:
            logger.warning("Question embedding failed: %s", exc)
            raise HTTPException(status_code=503, detail="Embedding service unavailable") from exc
        selected = [s.persona for s in rank_personas(question_embedding, personas, settings.persona_limit)]

    cancel_event = asyncio.Event()
    orchestrator = EnsembleOrchestrator(
        body.question,
        selected,
        question_embedding=question_embedding,
        cancel_event=cancel_event,
    )
    return _sse_response(orchestrator, request, cancel_event)


@router.post("/api/personas/{persona_id}/query")
async def query_persona(persona_id: int, body: PersonaQueryRequest, request: Request) -> StreamingResponse:
    """Stream one persona's answer, using the same events as the ensemble.

    There is no ``best_match`` event; the stream is ``persona_start``,
    deltas, ``sources``, then ``persona_done`` or ``persona_error``, then
    ``all_done``.
    """
    rows = await asyncio.to_thread(get_personas_by_ids, get_supabase_client(), [persona_id])
    if not rows:
        raise HTTPException(status_code=404, detail="Persona not found")

    cancel_event = asyncio.Event()
    orchestrator = EnsembleOrchestrator(
        body.question,
        [Persona.from_row(rows[0])],
        cancel_event=cancel_event,
        score_best_match=False,
    )
    return _sse_response(orchestrator, request, cancel_event)

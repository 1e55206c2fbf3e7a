"""Best-persona selection: rank personas by expertise similarity to a question."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from src.graph.similarity import cosine_similarity
from src.ingestion.embeddings import embed_text
from src.personas.models import Persona, ScoredPersona

DEFAULT_PERSONA_LIMIT = 3


def rank_personas(
    question_embedding: list[float],
    personas: list[Persona],
    limit: int = DEFAULT_PERSONA_LIMIT,
) -> list[ScoredPersona]:
    """Score personas against an already-embedded question.

    Personas without an expertise embedding are skipped.  Ties keep input order.
    """
    scored = [
        ScoredPersona(persona=p, score=cosine_similarity(question_embedding, p.expertise_embedding))
        for p in personas
        if p.expertise_embedding
    ]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[: max(0, limit)]


async def select_best_personas(
    question: str,
    personas: list[Persona],
    limit: int = DEFAULT_PERSONA_LIMIT,
    *,
    question_embedding: list[float] | None = None,
    embed: Callable[[str], Awaitable[list[float]]] = embed_text,
) -> list[ScoredPersona]:
    """Embed *question* once and return the top *limit* personas, best first.

    An empty list means no experts are available; it is not an error.  The
    provider is not called when no persona is scorable.
    """
    if not any(p.expertise_embedding for p in personas):
        return []
    if question_embedding is None:
        question_embedding = await embed(question)
    return rank_personas(question_embedding, personas, limit)

"""Concurrent multi-persona answering merged into one ordered event stream.

Each selected persona runs as its own producer task inside an
``asyncio.TaskGroup``: retrieve channel context, stream Claude deltas,
report sources.  Producers push events onto one bounded queue, so a slow
consumer applies backpressure instead of buffering without limit.  A
separate task computes the best-matching persona from the question
embedding.  The consumer drains the queue until the supervisor signals
completion, then emits exactly one ``all_done``.

Cancellation is cooperative through a shared ``asyncio.Event``: producers
check it before every emit and at every provider delta, and the consumer
stops without ``all_done`` once it is set.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Any

from src.config import settings
from src.ingestion.embeddings import embed_text
from src.personas.context import get_persona_context
from src.personas.events import (
    AllDone,
    BestMatch,
    Delta,
    EnsembleEvent,
    EnsembleSession,
    PersonaDone,
    PersonaError,
    PersonaStart,
    Sources,
    StreamState,
)
from src.personas.models import Persona
from src.personas.selector import select_best_personas
from src.personas.streaming import describe_provider_error, stream_persona_answer
from src.retrieval.models import SearchResult

logger = logging.getLogger(__name__)

RetrieveFn = Callable[[Persona, str], Awaitable[list[SearchResult]]]
GenerateFn = Callable[[Persona, str, list[SearchResult], asyncio.Event], AsyncIterator[str]]

_FINISHED = object()


def source_payload(hit: SearchResult) -> dict[str, Any]:
    return {
        "chunkId": hit.chunk_id,
        "videoId": hit.video_id,
        "videoTitle": hit.video_title,
        "youtubeId": hit.youtube_id,
        "startTime": hit.start_time,
        "similarity": hit.similarity,
        "content": hit.content,
    }


class EnsembleOrchestrator:
    """Runs one ensemble question across *personas*.

    Args:
        question: The user's question.
        personas: Personas to answer, already selected.
        retrieve: Context lookup per persona; defaults to channel-scoped hybrid search.
        generate: Async iterator of answer deltas; defaults to Claude streaming.
        embed: Embedding function used when *question_embedding* is absent.
        question_embedding: Reused for best-match scoring and context search.
        cancel_event: Shared cancellation token; created if not supplied.
        queue_size: Bound on buffered events.
        score_best_match: Emit ``best_match``; off when a single persona was asked directly.
    """

    def __init__(
        self,
        question: str,
        personas: list[Persona],
        *,
        retrieve: RetrieveFn | None = None,
        generate: GenerateFn = stream_persona_answer,
        embed: Callable[[str], Awaitable[list[float]]] = embed_text,
        question_embedding: list[float] | None = None,
        cancel_event: asyncio.Event | None = None,
        queue_size: int | None = None,
        score_best_match: bool = True,
    ) -> None:
        self.question = question
        self.personas = list(personas)
        self.retrieve = retrieve or self._channel_context
        self.generate = generate
        self.embed = embed
        self.question_embedding = question_embedding
        self.cancel_event = cancel_event or asyncio.Event()
        self.queue_size = queue_size or settings.ensemble_queue_size
        self.score_best_match = score_best_match
        self.session = EnsembleSession.start(question, [(p.id, p.name) for p in self.personas])

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    async def _channel_context(self, persona: Persona, question: str) -> list[SearchResult]:
        return await get_persona_context(
            persona.channel_name,
            question,
            query_embedding=self.question_embedding,
            embed=self.embed,
        )

    async def events(self) -> AsyncIterator[EnsembleEvent]:
        """Yield the merged event stream; ``all_done`` is always last unless cancelled."""
        if not self.personas:
            final = AllDone()
            self.session.apply(final)
            yield final
            return

        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=self.queue_size)
        supervisor = asyncio.create_task(self._supervise(queue))
        cancel_waiter = asyncio.create_task(self.cancel_event.wait())
        getter: asyncio.Task[Any] | None = None
        try:
            while True:
                getter = asyncio.create_task(queue.get())
                await asyncio.wait({getter, cancel_waiter, supervisor}, return_when=asyncio.FIRST_COMPLETED)
                if self.cancelled:
                    getter.cancel()
                    logger.info(
                        "Ensemble cancelled with %d of %d personas finished",
                        self._finished_count(),
                        len(self.personas),
                    )
                    return
                if not getter.done():
                    # Supervisor finished; the sentinel is queued unless it failed.
                    if not supervisor.cancelled() and supervisor.exception() is not None:
                        getter.cancel()
                        raise supervisor.exception()  # type: ignore[misc]
                    await getter
                item = getter.result()
                if item is _FINISHED:
                    break
                self.session.apply(item)
                yield item

            final = AllDone()
            self.session.apply(final)
            self._log_summary()
            yield final
        finally:
            # Also reached when the consuming task itself is cancelled
            pending = [t for t in (getter, cancel_waiter) if t is not None and not t.done()]
            if not supervisor.done():
                self.cancel_event.set()
                pending.append(supervisor)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _supervise(self, queue: asyncio.Queue[Any]) -> None:
        async with asyncio.TaskGroup() as group:
            if self.score_best_match:
                group.create_task(self._best_match(queue))
            for persona in self.personas:
                group.create_task(self._answer(persona, queue))
        await queue.put(_FINISHED)

    async def _emit(self, queue: asyncio.Queue[Any], event: EnsembleEvent) -> bool:
        if self.cancelled:
            return False
        await queue.put(event)
        return True

    async def _answer(self, persona: Persona, queue: asyncio.Queue[Any]) -> None:
        try:
            if not await self._emit(queue, PersonaStart(persona.id, persona.name)):
                return
            context = await self.retrieve(persona, self.question)
            async with aclosing(self.generate(persona, self.question, context, self.cancel_event)) as deltas:
                async for text in deltas:
                    if not await self._emit(queue, Delta(persona.id, text)):
                        return
            if not await self._emit(queue, Sources(persona.id, [source_payload(h) for h in context])):
                return
            await self._emit(queue, PersonaDone(persona.id))
        except Exception as exc:
            logger.warning("Persona %s (%d) failed: %s", persona.name, persona.id, exc)
            await self._emit(queue, PersonaError(persona.id, describe_provider_error(exc)))

    async def _best_match(self, queue: asyncio.Queue[Any]) -> None:
        try:
            ranked = await select_best_personas(
                self.question,
                self.personas,
                limit=1,
                question_embedding=self.question_embedding,
                embed=self.embed,
            )
        except Exception as exc:
            logger.warning("Best-match scoring failed: %s", exc)
            return
        if not ranked:
            logger.info("No persona has an expertise embedding; skipping best match")
            return
        top = ranked[0]
        await self._emit(queue, BestMatch(top.persona.id, top.persona.name, round(top.score, 4)))

    def _finished_count(self) -> int:
        return sum(1 for s in self.session.streams.values() if s.terminal)

    def _log_summary(self) -> None:
        streams = self.session.streams.values()
        done = sum(1 for s in streams if s.state is StreamState.DONE)
        errored = sum(1 for s in streams if s.state is StreamState.ERRORED)
        logger.info("Ensemble finished: %d answered, %d failed", done, errored)

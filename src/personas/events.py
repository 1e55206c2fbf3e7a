"""Ensemble stream events and the per-session state rebuilt from them.

Every event serialises to one Server-Sent Events frame::

    data: {"type": "delta", "personaId": 3, "text": "Hello"}

``EnsembleSession.apply`` folds events into per-persona state.  The
orchestrator keeps one session per request, and clients (see
``scripts/ask_ensemble.py``) rebuild the same object from the wire.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _snake(name: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name)


@dataclass(frozen=True)
class EnsembleEvent:
    type: ClassVar[str] = ""

    def to_dict(self) -> dict[str, Any]:
        payload = {_camel(k): v for k, v in asdict(self).items()}
        return {"type": self.type, **payload}

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict())}\n\n"


@dataclass(frozen=True)
class PersonaStart(EnsembleEvent):
    type: ClassVar[str] = "persona_start"
    persona_id: int
    persona_name: str


@dataclass(frozen=True)
class Delta(EnsembleEvent):
    type: ClassVar[str] = "delta"
    persona_id: int
    text: str


@dataclass(frozen=True)
class Sources(EnsembleEvent):
    type: ClassVar[str] = "sources"
    persona_id: int
    chunks: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class PersonaDone(EnsembleEvent):
    type: ClassVar[str] = "persona_done"
    persona_id: int


@dataclass(frozen=True)
class PersonaError(EnsembleEvent):
    type: ClassVar[str] = "persona_error"
    persona_id: int
    error: str


@dataclass(frozen=True)
class BestMatch(EnsembleEvent):
    type: ClassVar[str] = "best_match"
    persona_id: int
    persona_name: str
    score: float


@dataclass(frozen=True)
class AllDone(EnsembleEvent):
    type: ClassVar[str] = "all_done"


EVENT_TYPES: dict[str, type[EnsembleEvent]] = {
    cls.type: cls
    for cls in (PersonaStart, Delta, Sources, PersonaDone, PersonaError, BestMatch, AllDone)
}


def parse_event(data: dict[str, Any]) -> EnsembleEvent:
    """Inverse of :meth:`EnsembleEvent.to_dict`.

    Raises:
        ValueError: Unknown event type.
    """
    cls = EVENT_TYPES.get(data.get("type", ""))
    if cls is None:
        raise ValueError(f"Unknown ensemble event type: {data.get('type')!r}")
    kwargs = {_snake(k): v for k, v in data.items() if k != "type"}
    return cls(**kwargs)


class StreamState(str, Enum):
    PENDING = "pending"
    STARTED = "started"
    STREAMING = "streaming"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class PersonaStream:
    """One persona's answer as it accumulates."""

    persona_id: int
    persona_name: str = ""
    text: str = ""
    sources: list[dict[str, Any]] = field(default_factory=list)
    state: StreamState = StreamState.PENDING
    error: str | None = None

    @property
    def terminal(self) -> bool:
        return self.state in (StreamState.DONE, StreamState.ERRORED)


@dataclass
class EnsembleSession:
    """Request-scoped view of an ensemble run; never persisted."""

    question: str
    streams: dict[int, PersonaStream] = field(default_factory=dict)
    best_match: BestMatch | None = None
    complete: bool = False

    @classmethod
    def start(cls, question: str, personas: list[tuple[int, str]]) -> EnsembleSession:
        return cls(
            question=question,
            streams={pid: PersonaStream(persona_id=pid, persona_name=name) for pid, name in personas},
        )

    @property
    def status(self) -> str:
        return "all_done" if self.complete else "running"

    @property
    def all_terminal(self) -> bool:
        return all(s.terminal for s in self.streams.values())

    def _stream(self, persona_id: int) -> PersonaStream:
        return self.streams.setdefault(persona_id, PersonaStream(persona_id=persona_id))

    def apply(self, event: EnsembleEvent) -> None:
        """Fold one event into the session.  Terminal streams ignore later events."""
        if isinstance(event, AllDone):
            self.complete = True
            return
        if isinstance(event, BestMatch):
            self.best_match = event
            return

        stream = self._stream(event.persona_id)  # type: ignore[attr-defined]
        if stream.terminal:
            return

        if isinstance(event, PersonaStart):
            stream.persona_name = event.persona_name
            stream.state = StreamState.STARTED
        elif isinstance(event, Delta):
            stream.text += event.text
            stream.state = StreamState.STREAMING
        elif isinstance(event, Sources):
            stream.sources = list(event.chunks)
        elif isinstance(event, PersonaDone):
            stream.state = StreamState.DONE
        elif isinstance(event, PersonaError):
            stream.error = event.error
            stream.state = StreamState.ERRORED

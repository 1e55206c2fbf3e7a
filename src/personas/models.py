"""Persona records and scored selections."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from src.ingestion.storage import parse_vector


@dataclass
class Persona:
    """An AI profile bound to one channel's expertise."""

    id: int
    channel_name: str
    name: str
    system_prompt: str
    expertise_topics: list[str] = field(default_factory=list)
    expertise_embedding: list[float] | None = None
    transcript_count: int = 0
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Persona:
        return cls(
            id=int(row["id"]),
            channel_name=row["channel_name"],
            name=row.get("name") or row["channel_name"],
            system_prompt=row.get("system_prompt") or "",
            expertise_topics=list(row.get("expertise_topics") or []),
            expertise_embedding=parse_vector(row.get("expertise_embedding")),
            transcript_count=int(row.get("transcript_count") or 0),
            created_at=row.get("created_at"),
        )


@dataclass(frozen=True)
class ScoredPersona:
    persona: Persona
    score: float

"""Recency weighting for search hits."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timezone

from src.retrieval.models import SearchResult

DEFAULT_HALF_LIFE_DAYS = 365
SECONDS_PER_DAY = 86400


def _parse_timestamp(value: str | datetime | None) -> datetime | None:
    if value is None or value == "":
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def temporal_decay(
    published_at: str | datetime | None,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
    now: datetime | None = None,
) -> float:
    """Exponential decay multiplier in (0, 1]; content reaches 0.5 after *half_life_days*.

    Unknown publication dates, and dates in the future, are not decayed.
    """
    published = _parse_timestamp(published_at)
    if published is None:
        return 1.0
    now = now or datetime.now(timezone.utc)
    age_days = (now - published).total_seconds() / SECONDS_PER_DAY
    if age_days <= 0:
        return 1.0
    return math.exp(-math.log(2) / half_life_days * age_days)


def apply_temporal_decay(
    hits: list[SearchResult],
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
    now: datetime | None = None,
) -> list[SearchResult]:
    """Scale each hit's similarity by its video's age and re-sort, best first."""
    now = now or datetime.now(timezone.utc)
    decayed = [
        replace(hit, similarity=hit.similarity * temporal_decay(hit.published_at, half_life_days, now))
        for hit in hits
    ]
    decayed.sort(key=lambda hit: hit.similarity, reverse=True)
    return decayed

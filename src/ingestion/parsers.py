"""Parser for pasted YouTube transcripts (timestamp line followed by text lines)."""

from __future__ import annotations

import re

from src.ingestion.models import TranscriptSegment

_TIMESTAMP_RE = re.compile(r"^\d+:\d{2}(:\d{2})?$")


def timestamp_to_seconds(timestamp: str) -> int:
    """Convert ``M:SS`` or ``H:MM:SS`` to seconds. Anything else is 0."""
    parts = timestamp.strip().split(":")
    try:
        values = [int(p) for p in parts]
    except ValueError:
        return 0
    if len(values) == 2:
        minutes, seconds = values
        return minutes * 60 + seconds
    if len(values) == 3:
        hours, minutes, seconds = values
        return hours * 3600 + minutes * 60 + seconds
    return 0


def seconds_to_timestamp(seconds: int) -> str:
    """Format seconds as ``M:SS`` below one hour, ``H:MM:SS`` otherwise."""
    hours, rem = divmod(int(seconds), 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def parse_transcript(raw: str) -> list[TranscriptSegment]:
    """Parse a YouTube transcript into segments with millisecond offsets.

    Handles multi-line text between timestamps and both ``M:SS`` and
    ``H:MM:SS`` formats.  Text that carries no timestamps at all is returned
    as a single segment at offset 0; empty input yields no segments.
    """
    if not raw or not raw.strip():
        return []

    segments: list[TranscriptSegment] = []
    current_ts: str | None = None
    text_lines: list[str] = []

    def finish() -> None:
        if current_ts is not None and text_lines:
            segments.append(
                TranscriptSegment(
                    text="\n".join(text_lines),
                    offset_ms=timestamp_to_seconds(current_ts) * 1000,
                )
            )

    for line in raw.splitlines():
        stripped = line.strip()
        if _TIMESTAMP_RE.match(stripped):
            finish()
            current_ts = stripped
            text_lines = []
        elif stripped:
            text_lines.append(stripped)

    finish()

    if not segments:
        # No timestamps anywhere: the whole text is one segment
        segments.append(TranscriptSegment(text=raw.strip(), offset_ms=0))

    return segments

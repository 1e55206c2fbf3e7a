"""Chunking of transcript segments into bounded, embeddable spans."""

from __future__ import annotations

from src.ingestion.models import ChunkData, TranscriptSegment

TARGET_CHUNK_CHARS = 2000
MIN_CHUNK_CHARS = 500


def _join(parts: list[str]) -> str:
    return " ".join(p for p in parts if p)


def chunk_transcript(
    segments: list[TranscriptSegment],
    target_chars: int = TARGET_CHUNK_CHARS,
    min_chars: int = MIN_CHUNK_CHARS,
) -> list[ChunkData]:
    """Group consecutive segments into non-overlapping chunks.

    Chunks only ever break between segments, so a segment longer than
    *target_chars* becomes a chunk of its own rather than being cut.  A
    trailing chunk shorter than *min_chars* is folded into the chunk before
    it.  Every segment index appears in exactly one chunk.

    Args:
        segments: Parsed transcript segments, in order.
        target_chars: Soft upper bound on chunk length in characters.
        min_chars: Trailing chunks shorter than this are merged backwards.

    Returns:
        List of :class:`ChunkData`; empty when there is no text at all.
    """
    if not segments or not any(s.text.strip() for s in segments):
        return []

    groups: list[list[int]] = []
    current: list[int] = []
    current_len = 0

    for idx, seg in enumerate(segments):
        text = seg.text.strip()
        added = len(text) + (1 if current_len and text else 0)
        if current_len and text and current_len + added > target_chars:
            groups.append(current)
            current = []
            current_len = 0
            added = len(text)
        current.append(idx)
        current_len += added

    if current:
        groups.append(current)

    tail_len = len(_join([segments[i].text.strip() for i in groups[-1]]))
    if len(groups) > 1 and tail_len < min_chars:
        tail = groups.pop()
        groups[-1].extend(tail)

    chunks: list[ChunkData] = []
    for group in groups:
        # min/max keeps start <= end even for out-of-order timestamps
        offsets = [segments[i].offset_ms for i in group]
        chunks.append(
            ChunkData(
                content=_join([segments[i].text.strip() for i in group]),
                start_time=min(offsets),
                end_time=max(offsets),
                segment_indices=list(group),
            )
        )
    return chunks

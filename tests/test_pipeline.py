"""Tests for the embedding pipeline (providers and storage mocked)."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from src.errors import TranscriptMissingError, VideoNotFoundError
from src.graph.models import RelationshipResult
from src.ingestion.models import ChunkData
from src.ingestion.pipeline import embed_chunks, embed_video


def _chunks(n: int) -> list[ChunkData]:
    return [
        ChunkData(content=f"chunk {i}", start_time=i * 1000, end_time=i * 1000 + 500, segment_indices=[i])
        for i in range(n)
    ]


def _failing_on(*bad: str):
    async def embed(text: str) -> list[float]:
        if text in bad:
            raise RuntimeError(f"provider rejected {text!r}")
        return [1.0, float(len(text))]

    return embed


class TestEmbedChunks:
    def test_empty_input(self) -> None:
        result = asyncio.run(embed_chunks([], embed=_failing_on()))
        assert result.total_chunks == 0
        assert result.chunks == []

    def test_partial_failure_is_isolated(self) -> None:
        result = asyncio.run(embed_chunks(_chunks(5), embed=_failing_on("chunk 1", "chunk 3"), batch_size=2))
        assert result.total_chunks == 5
        assert result.success_count == 3
        assert result.error_count == 2
        assert [c.ok for c in result.chunks] == [True, False, True, False, True]
        assert "provider rejected" in (result.chunks[1].error or "")

    def test_empty_vector_counts_as_failure(self) -> None:
        async def embed(text: str) -> list[float]:
            return []

        result = asyncio.run(embed_chunks(_chunks(2), embed=embed))
        assert result.success_count == 0
        assert result.error_count == 2

    def test_progress_reported_per_batch(self) -> None:
        calls: list[tuple[int, int]] = []
        asyncio.run(
            embed_chunks(_chunks(5), embed=_failing_on(), batch_size=2, on_progress=lambda d, t: calls.append((d, t)))
        )
        assert calls == [(2, 5), (4, 5), (5, 5)]

    def test_persists_only_successful_chunks(self) -> None:
        client = MagicMock()
        with (
            patch("src.ingestion.pipeline.replace_video_chunks") as mock_replace,
            patch("src.ingestion.pipeline.compute_relationships", return_value=RelationshipResult(created=4)),
        ):
            result = asyncio.run(
                embed_chunks(_chunks(6), video_id=7, embed=_failing_on("chunk 0", "chunk 5"), client=client)
            )

        mock_replace.assert_called_once()
        _, video_id, stored = mock_replace.call_args.args
        assert video_id == 7
        # N - k chunks reach storage
        assert sum(1 for c in stored if c.ok) == 4
        assert result.relationships_created == 4

    def test_zero_successes_leaves_storage_untouched(self) -> None:
        with (
            patch("src.ingestion.pipeline.replace_video_chunks") as mock_replace,
            patch("src.ingestion.pipeline.compute_relationships") as mock_graph,
        ):
            result = asyncio.run(
                embed_chunks(_chunks(2), video_id=7, embed=_failing_on("chunk 0", "chunk 1"), client=MagicMock())
            )
        mock_replace.assert_not_called()
        mock_graph.assert_not_called()
        assert result.error_count == 2

    def test_graph_can_be_skipped(self) -> None:
        with (
            patch("src.ingestion.pipeline.replace_video_chunks"),
            patch("src.ingestion.pipeline.compute_relationships") as mock_graph,
        ):
            asyncio.run(
                embed_chunks(_chunks(2), video_id=7, embed=_failing_on(), compute_graph=False, client=MagicMock())
            )
        mock_graph.assert_not_called()


class TestEmbedVideo:
    def test_unknown_video(self) -> None:
        with patch("src.ingestion.pipeline.get_video", return_value=None):
            with pytest.raises(VideoNotFoundError):
                asyncio.run(embed_video(99, embed=_failing_on(), client=MagicMock()))

    def test_missing_transcript(self) -> None:
        with patch("src.ingestion.pipeline.get_video", return_value={"id": 1, "transcript": None}):
            with pytest.raises(TranscriptMissingError):
                asyncio.run(embed_video(1, embed=_failing_on(), client=MagicMock()))

    def test_whitespace_transcript_has_no_chunks(self) -> None:
        with (
            patch("src.ingestion.pipeline.get_video", return_value={"id": 1, "transcript": "  \n  "}),
            patch("src.ingestion.pipeline.count_embedded_chunks", return_value=0),
        ):
            with pytest.raises(TranscriptMissingError, match="No chunks"):
                asyncio.run(embed_video(1, embed=_failing_on(), client=MagicMock()))

    def test_reembed_reports_existing_chunks(self) -> None:
        video = {"id": 3, "transcript": "0:00\nHello world.\n0:04\nSecond line here."}
        with (
            patch("src.ingestion.pipeline.get_video", return_value=video),
            patch("src.ingestion.pipeline.count_embedded_chunks", return_value=12),
            patch("src.ingestion.pipeline.replace_video_chunks") as mock_replace,
            patch("src.ingestion.pipeline.compute_relationships", return_value=RelationshipResult(created=2)),
        ):
            outcome = asyncio.run(embed_video(3, embed=_failing_on(), client=MagicMock()))

        assert outcome.already_embedded is True
        assert outcome.chunk_count == 1
        assert outcome.error_count == 0
        assert outcome.relationships_created == 2
        mock_replace.assert_called_once()

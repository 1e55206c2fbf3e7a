"""Domain exceptions shared by the service layer and API routes."""

from __future__ import annotations


class KnowledgeBankError(Exception):
    """Base class for service-level failures."""


class VideoNotFoundError(KnowledgeBankError):
    def __init__(self, video_id: int) -> None:
        super().__init__(f"Video {video_id} not found")
        self.video_id = video_id


class TranscriptMissingError(KnowledgeBankError):
    def __init__(self, video_id: int, reason: str = "Video has no transcript") -> None:
        super().__init__(reason)
        self.video_id = video_id


class BackfillError(KnowledgeBankError):
    """A single video's relationship recomputation failed, so the whole backfill failed."""

    def __init__(self, video_id: int, cause: Exception) -> None:
        super().__init__(f"Relationship backfill failed at video {video_id}: {cause}")
        self.video_id = video_id
        self.cause = cause


class ChannelNotFoundError(KnowledgeBankError):
    def __init__(self, channel_name: str) -> None:
        super().__init__(f"No videos found for channel {channel_name!r}")
        self.channel_name = channel_name


class PersonaExistsError(KnowledgeBankError):
    def __init__(self, channel_name: str) -> None:
        super().__init__(f"Persona already exists for channel {channel_name!r}")
        self.channel_name = channel_name

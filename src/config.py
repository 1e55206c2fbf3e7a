from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings read from the environment, then `.env`, then these defaults."""

    # Provider credentials
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Server and models
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    llm_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 1024

    # Chunking (characters)
    chunk_target_chars: int = 2000
    chunk_min_chars: int = 500
    embed_batch_size: int = 32

    # Graph and discovery thresholds
    relationship_threshold: float = 0.75
    channel_similarity_threshold: float = 0.6
    channel_min_videos: int = 3
    channel_similarity_timeout_ms: int = 5000

    # Persona ensemble
    persona_limit: int = 3
    ensemble_max_personas: int = 10
    ensemble_queue_size: int = 64

    # When False, relationship computation runs as a background task after the embed response
    compute_relationships_inline: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process; an unreadable `.env` is skipped."""
    try:
        return Settings()
    except Exception:
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()

"""Persona lifecycle: build a persona from a channel's content, list, delete, suggest."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import Counter

from anthropic.types import TextBlock
from postgrest.exceptions import APIError
from supabase import Client

from src.channels.similarity import compute_channel_centroid
from src.config import settings
from src.errors import ChannelNotFoundError, PersonaExistsError
from src.ingestion.storage import (
    channel_video_counts,
    count_channel_videos,
    delete_persona as delete_persona_row,
    fetch_channel_chunk_contents,
    get_persona_by_channel,
    get_supabase_client,
    insert_persona,
    list_personas as list_persona_rows,
    sample_channel_transcripts,
)
from src.personas.models import Persona
from src.personas.streaming import get_anthropic_client

logger = logging.getLogger(__name__)

# Minimum video count before a channel is suggested for a persona
PERSONA_THRESHOLD = 5
TRANSCRIPT_SAMPLES = 5
PROMPT_SAMPLE_CHARS = 5000
TOPIC_COUNT = 10

STOPWORDS = frozenset(
    "the a an and or but in on at to for of with by from as is was are be this that it "
    "you we they can will have has had do does did".split()
)

_WORD = re.compile(r"\b[a-z]{3,}\b")


async def generate_persona_system_prompt(channel_name: str, client: Client | None = None) -> str:
    """Ask Claude for a short first-person system prompt in the creator's voice.

    Raises:
        ChannelNotFoundError: The channel has no transcripts to sample.
        ValueError: Claude returned no text.
    """
    client = client or get_supabase_client()
    samples = await asyncio.to_thread(sample_channel_transcripts, client, channel_name, TRANSCRIPT_SAMPLES)
    if not samples:
        raise ChannelNotFoundError(channel_name)

    combined = "\n\n---\n\n".join(samples)
    excerpt = combined[:PROMPT_SAMPLE_CHARS] + (" ..." if len(combined) > PROMPT_SAMPLE_CHARS else "")

    response = await get_anthropic_client().messages.create(
        model=settings.llm_model,
        max_tokens=512,
        messages=[
            {
                "role": "user",
                "content": (
                    f'Analyze the following video transcripts from the YouTube creator "{channel_name}" '
                    "and write a system prompt that captures their expertise, teaching style, and tone.\n\n"
                    f"Transcripts:\n{excerpt}\n\n"
                    'Use this format: "You are [creator name]. Your expertise is in [key topics]. '
                    "You speak in a [style description] way. Answer questions based on your content "
                    'from your YouTube channel."\n'
                    "Keep it to 2-3 sentences focused on their voice and expertise."
                ),
            }
        ],
    )

    block = response.content[0] if response.content else None
    if not isinstance(block, TextBlock) or not block.text.strip():
        raise ValueError("Claude returned no system prompt")
    return block.text.strip()


def extract_expertise_topics(contents: list[str], limit: int = TOPIC_COUNT) -> list[str]:
    """Most frequent non-stopword words of three or more letters."""
    counts: Counter[str] = Counter()
    for text in contents:
        counts.update(w for w in _WORD.findall(text.lower()) if w not in STOPWORDS)
    return [word for word, _ in counts.most_common(limit)]


async def compute_expertise_embedding(channel_name: str, client: Client | None = None) -> list[float] | None:
    """The channel centroid, or None when nothing is embedded yet."""
    client = client or get_supabase_client()
    return await asyncio.to_thread(compute_channel_centroid, channel_name, client)


async def create_persona(channel_name: str, client: Client | None = None) -> Persona:
    """Build and store a persona for *channel_name*.

    Raises:
        ChannelNotFoundError: The channel has no videos.
        PersonaExistsError: A persona for this channel already exists.
    """
    client = client or get_supabase_client()

    if await asyncio.to_thread(get_persona_by_channel, client, channel_name):
        raise PersonaExistsError(channel_name)

    transcript_count = await asyncio.to_thread(count_channel_videos, client, channel_name)
    if transcript_count == 0:
        raise ChannelNotFoundError(channel_name)

    system_prompt = await generate_persona_system_prompt(channel_name, client)
    contents = await asyncio.to_thread(fetch_channel_chunk_contents, client, channel_name)
    topics = extract_expertise_topics(contents)
    embedding = await compute_expertise_embedding(channel_name, client)
    if embedding is None:
        logger.warning("Channel %s has no embedded chunks; persona will not be ranked", channel_name)

    row = {
        "channel_name": channel_name,
        "name": channel_name,
        "system_prompt": system_prompt,
        "expertise_topics": topics,
        "expertise_embedding": embedding,
        "transcript_count": transcript_count,
    }
    try:
        stored = await asyncio.to_thread(insert_persona, client, row)
    except APIError as exc:
        # Lost a race with a concurrent create for the same channel
        if exc.code == "23505":
            raise PersonaExistsError(channel_name) from exc
        raise

    logger.info("Created persona for %s from %d videos", channel_name, transcript_count)
    return Persona.from_row(stored)


def list_personas(client: Client | None = None) -> list[Persona]:
    client = client or get_supabase_client()
    return [Persona.from_row(r) for r in list_persona_rows(client)]


def delete_persona(persona_id: int, client: Client | None = None) -> bool:
    client = client or get_supabase_client()
    return delete_persona_row(client, persona_id)


def suggest_channels(client: Client | None = None, threshold: int = PERSONA_THRESHOLD) -> list[tuple[str, int]]:
    """Channels with at least *threshold* videos and no persona, most videos first."""
    client = client or get_supabase_client()
    existing = {p.channel_name for p in list_personas(client)}
    eligible = [
        (channel, count)
        for channel, count in channel_video_counts(client).items()
        if count >= threshold and channel not in existing
    ]
    return sorted(eligible, key=lambda item: item[1], reverse=True)

"""Embed every video that has a transcript but no chunks, then optionally rebuild the graph."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.errors import KnowledgeBankError
from src.graph.relationships import backfill_relationships
from src.ingestion.pipeline import embed_video
from src.ingestion.storage import get_supabase_client, list_unembedded_video_ids


async def embed_pending(max_videos: int | None = None, rebuild_graph: bool = False) -> None:
    client = get_supabase_client()
    video_ids = list_unembedded_video_ids(client)
    if max_videos:
        video_ids = video_ids[:max_videos]

    print(f"Embedding {len(video_ids)} videos...")

    embedded = 0
    errors = 0
    for i, video_id in enumerate(video_ids):
        try:
            # The graph is rebuilt once at the end when requested
            outcome = await embed_video(video_id, compute_graph=not rebuild_graph, client=client)
        except KnowledgeBankError as e:
            errors += 1
            print(f"  [{i + 1}] SKIP video {video_id} -- {e}")
            continue
        except Exception as e:
            errors += 1
            print(f"  [{i + 1}] ERROR video {video_id}: {e}")
            continue

        embedded += 1
        print(
            f"  [{i + 1}/{len(video_ids)}] video {video_id} -- "
            f"{outcome.success_count} chunks, {outcome.error_count} failed"
        )

    print(f"\nDone! Embedded {embedded} videos, {errors} errors.")

    if rebuild_graph:
        result = backfill_relationships(client)
        print(
            f"Graph rebuilt: {result.videos_processed} videos, "
            f"{result.relationships_created} relationships."
        )


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--max", type=int, default=None)
    parser.add_argument("--rebuild-graph", action="store_true")
    args = parser.parse_args()
    asyncio.run(embed_pending(args.max, args.rebuild_graph))

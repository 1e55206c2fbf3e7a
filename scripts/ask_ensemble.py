"""Ask the persona ensemble a question from the terminal.

Streams ``POST /api/personas/ensemble`` and prints each persona's answer
once the stream completes.
"""

import argparse
import json
import sys
from pathlib import Path

import httpx

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.personas.events import Delta, EnsembleSession, PersonaError, PersonaStart, parse_event


def iter_events(lines):
    """Decode ``data:`` lines of an SSE stream into ensemble events."""
    for line in lines:
        if not line.startswith("data:"):
            continue
        yield parse_event(json.loads(line[len("data:"):].strip()))


def ask(base_url: str, question: str, persona_ids: list[int] | None, verbose: bool) -> EnsembleSession:
    payload: dict = {"question": question}
    if persona_ids is not None:
        payload["personaIds"] = persona_ids

    session = EnsembleSession(question=question)
    with httpx.stream("POST", f"{base_url}/api/personas/ensemble", json=payload, timeout=None) as response:
        response.raise_for_status()
        for event in iter_events(response.iter_lines()):
            session.apply(event)
            if verbose and isinstance(event, PersonaStart):
                print(f"... {event.persona_name} is answering")
            elif verbose and isinstance(event, PersonaError):
                print(f"... persona {event.persona_id} failed: {event.error}")
            elif verbose and isinstance(event, Delta):
                print(".", end="", flush=True)
    return session


def print_session(session: EnsembleSession) -> None:
    if session.best_match:
        print(f"\nBest match: {session.best_match.persona_name} ({session.best_match.score:.2f})")
    if not session.streams:
        print("\nNo personas were available to answer.")
    for stream in session.streams.values():
        print(f"\n=== {stream.persona_name or stream.persona_id} [{stream.state.value}] ===")
        print(stream.error if stream.error else stream.text)
        for source in stream.sources:
            print(f"  - {source['videoTitle']} @ {source['startTime']}s")
    if not session.complete:
        print("\nStream ended before all_done.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("question")
    parser.add_argument("--url", default="http://localhost:8000")
    parser.add_argument("--persona", type=int, action="append", dest="persona_ids")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()
    print_session(ask(args.url, args.question, args.persona_ids, args.verbose))

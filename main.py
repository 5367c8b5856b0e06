"""panel-relay - research stream relay

Simple CLI for running a research topic upstream, or replaying a captured
upstream stream, and printing the normalized records.
"""

import argparse
import asyncio
from pathlib import Path

from panel_relay.models.events import SSEEvent
from panel_relay.services import logger as _logging  # noqa: F401  configures logging
from panel_relay.services import upstream
from panel_relay.services.pipeline import ResearchStreamPipeline


class PrintSink:
    """Print each record as it is written."""

    async def write(self, event: SSEEvent) -> None:
        event_type = event.event.value
        data = event.data

        if event_type == "research-state":
            print(f"[*] Topic: {data.get('topic')} ({data.get('phase')})")

        elif event_type == "analysts":
            names = [a.get("name") for a in data.get("analysts", [])]
            print(f"[+] Analysts ({len(names)}): {', '.join(names)}")

        elif event_type == "progress":
            progress = data.get("progress", {})
            print(
                f"[~] {data.get('phase')}: {progress.get('message')} "
                f"({progress.get('current')}/{progress.get('total')})"
            )

        elif event_type == "interview":
            preview = (data.get("messagePreview") or "")[:80]
            print(f"  [{data.get('analystName')}] {data.get('status')} {preview}")

        elif event_type == "search":
            print(f"  [search] {data.get('tool')} {data.get('status')}: {data.get('query')}")

        elif event_type == "sections":
            print(f"[+] Sections: {len(data.get('sections', {}))}")

        elif event_type == "text-delta":
            print(data.get("delta", ""), end="", flush=True)

        elif event_type == "research-complete":
            print(f"\n\n[*] Research Complete!")
            print(f"   Analysts: {len(data.get('analysts', []))}")
            print(f"   Interviews: {len(data.get('interviews', {}))}")
            print(f"   Sections: {len(data.get('sections', {}))}")
            print(f"   Searches: {len(data.get('searches', []))}")

        elif event_type == "error":
            error = data.get("error", {})
            print(f"\n[!] Error: {error.get('message', 'Unknown error')} ({error.get('type')})")


async def replay_file(path: Path, chunk_size: int = 4096):
    with path.open("rb") as handle:
        while chunk := handle.read(chunk_size):
            yield chunk


async def run(topic: str, replay: Path | None = None):
    print(f"Research topic: {topic}")
    print("-" * 50)

    pipeline = ResearchStreamPipeline(topic, PrintSink())
    if replay is not None:
        await pipeline.run(replay_file(replay))
    else:
        messages = [{"type": "human", "content": topic}]
        await pipeline.run(upstream.stream_run(topic, messages))


def main():
    parser = argparse.ArgumentParser(description="panel-relay research stream relay")
    parser.add_argument("--query", "-q", help="Research topic to run upstream")
    parser.add_argument("--replay", "-r", type=Path, help="Replay a captured upstream stream file")

    args = parser.parse_args()
    if not args.query and not args.replay:
        parser.error("one of --query or --replay is required")

    topic = args.query or args.replay.stem
    asyncio.run(run(topic, args.replay))


if __name__ == "__main__":
    main()

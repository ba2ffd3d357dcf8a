"""FreeSearch - search-augmented chat

Simple CLI for asking one question without the HTTP server.
"""

import argparse
import asyncio
import json

from app.api.deps import build_services
from app.models.chat import ChatMessage


async def run_chat(query: str, mode: str | None = None):
    """Answer a single question and print the sources and streamed answer."""
    print(f"Query: {query}")
    print("-" * 50)

    services = build_services(mode=mode)
    await services.store.open()
    try:
        async for event in services.orchestrator.answer([ChatMessage(role="user", text=query)]):
            event_type = event.event.value
            data = event.data

            if event_type == "sources":
                sources = data.get("sources", [])
                print(f"\n[*] Sources ({len(sources)}):")
                for source in sources:
                    print(f"  [{source['index']}] {source['title'][:80]}")
                    print(f"      {source['url']}")
                print()

            elif event_type == "text":
                print(data.get("chunk", ""), end="", flush=True)

            elif event_type == "done":
                print(f"\n\n[*] Done ({data.get('sources_count', 0)} sources)")

            elif event_type == "error":
                print(f"\n[!] Error: {data.get('message', 'Unknown error')}")

            else:
                print(f"\n[?] {event_type}: {json.dumps(data)}")
    finally:
        await services.store.close()


def main():
    parser = argparse.ArgumentParser(description="FreeSearch search-augmented chat")
    parser.add_argument("--query", "-q", required=True, help="Question to answer")
    parser.add_argument(
        "--mode",
        "-m",
        choices=["classify", "tool_loop"],
        help="Orchestration mode (default: from config)",
    )

    args = parser.parse_args()

    asyncio.run(run_chat(args.query, args.mode))


if __name__ == "__main__":
    main()

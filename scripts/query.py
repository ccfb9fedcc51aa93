#!/usr/bin/env python3
"""
Query utility.
Answers one question from the cached index and prints the answer with its sources.
"""

import argparse
import asyncio
import sys

from bootstrap import build_components, close_components

from dvector.core.errors import DVectorError


async def run(question: str, top_k: int = None, filename: str = None, timeout: float = None,
              cache_path: str = None) -> int:
    components = build_components(cache_path)
    await components.cache_manager.initialize()

    filter = {"filename": filename} if filename else None
    try:
        result = await components.query_engine.query(question, top_k=top_k, filter=filter, timeout=timeout)
    except DVectorError as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        await close_components(components)

    print(result.answer)
    print()
    if result.sources:
        print("Sources:")
        for i, source in enumerate(result.sources, start=1):
            print(f"  {i}. {source.filename} (score {source.score:.3f}, blob {source.blob_id[:16]})")
    print(f"({result.metadata.documents_retrieved} document(s), {result.metadata.processing_time_ms}ms)")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Ask a question against the vector cache")
    parser.add_argument("question", help="Question to answer")
    parser.add_argument("--top-k", type=int, default=None, help="Chunks to retrieve (default: RAG_TOP_K)")
    parser.add_argument("--filename", default=None, help="Only search chunks of this document")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds before giving up")
    parser.add_argument("--cache-path", default=None, help="Snapshot cache file (default: VECTOR_CACHE_PATH)")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.question, args.top_k, args.filename, args.timeout, args.cache_path)))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Document ingestion utility.
Ingests every supported file of a directory (or a single file) into the vector cache.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from bootstrap import build_components, close_components

from dvector.core.errors import DVectorError
from dvector.core.formats import ALL_SUPPORTED_EXTENSIONS, is_supported_file


def collect_files(target: Path):
    if target.is_file():
        return [target]
    return sorted(p for p in target.rglob("*") if p.is_file() and is_supported_file(p.name))


async def run(target: Path, cache_path: str = None) -> int:
    components = build_components(cache_path)
    await components.cache_manager.initialize()

    files = collect_files(target)
    if not files:
        print(f"No supported files found under {target} ({', '.join(ALL_SUPPORTED_EXTENSIONS)})")
        await close_components(components)
        return 1

    print(f"Ingesting {len(files)} file(s)...")
    failures = 0
    try:
        for path in files:
            try:
                stored = await components.pipeline.ingest_file(path)
            except (DVectorError, ValueError, OSError) as e:
                failures += 1
                print(f"✗ {path.name}: {e}")
                continue

            status = "registered" if stored.registered else "NOT registered"
            print(f"✓ {stored.filename}: {stored.chunk_count} chunks, blob {stored.blob_id[:16]} ({status})")
    finally:
        await close_components(components)

    stats = components.sync_engine.get_stats()
    print(f"Done: {stats['total_vectors']} vectors at version {stats['version']}, {failures} failure(s)")
    return 1 if failures else 0


def main():
    parser = argparse.ArgumentParser(description="Ingest documents into the vector cache")
    parser.add_argument("path", help="File or directory to ingest")
    parser.add_argument("--cache-path", default=None, help="Snapshot cache file (default: VECTOR_CACHE_PATH)")
    args = parser.parse_args()

    target = Path(args.path)
    if not target.exists():
        print(f"ERROR: {target} does not exist")
        sys.exit(1)

    sys.exit(asyncio.run(run(target, args.cache_path)))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Sync utility.
Brings the local snapshot up to the registry version and reports before/after stats.
"""

import argparse
import asyncio
import sys

from bootstrap import build_components, close_components

from dvector.core.errors import DVectorError


def print_stats(label: str, stats: dict):
    print(f"{label}: version {stats['version']}, {stats['total_vectors']} vectors, state {stats['state']}")


async def run(force: bool = False, timeout: float = None, cache_path: str = None) -> int:
    components = build_components(cache_path)
    engine = components.sync_engine

    try:
        await engine.initialize()
        print_stats("Before", engine.get_stats())

        if force:
            synced = await engine.force_sync(timeout=timeout)
        else:
            synced = await engine.sync_if_stale(timeout=timeout)
    except (DVectorError, asyncio.TimeoutError) as e:
        print(f"ERROR: sync failed, cached snapshot still serving: {e or type(e).__name__}")
        return 1
    finally:
        await close_components(components)

    print("✓ Resynced from registry" if synced else "✓ Cache already current")
    print_stats("After", engine.get_stats())
    return 0


def main():
    parser = argparse.ArgumentParser(description="Sync the vector cache with the registry")
    parser.add_argument("--force", action="store_true", help="Rebuild even if versions agree")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds before aborting the resync")
    parser.add_argument("--cache-path", default=None, help="Snapshot cache file (default: VECTOR_CACHE_PATH)")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.force, args.timeout, args.cache_path)))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Command-line host for the offline worker.

Usage:
    python -m offline_worker --config config/worker.yml activate
    python -m offline_worker populate
    python -m offline_worker prune
    python -m offline_worker fetch https://app.example/manifest.json
    python -m offline_worker stores
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

import requests

from offline_cache.errors import OfflineCacheError

from offline_worker.config import load_config
from offline_worker.service_worker import OfflineWorker

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="offline_worker", description="Offline asset cache worker")
    parser.add_argument("--config", default="config/worker.yml", help="YAML config path")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("populate", help="fetch manifest resources into the current store")
    sub.add_parser("prune", help="drop stale stores and orphaned entries")
    sub.add_parser("activate", help="populate, then prune")
    fetch = sub.add_parser("fetch", help="resolve one request through the interceptor")
    fetch.add_argument("url")
    sub.add_parser("stores", help="list stores with entry counts")
    return parser


async def _dispatch(worker: OfflineWorker, args: argparse.Namespace) -> dict:
    if args.command == "populate":
        return (await worker.populate_trigger()).to_dict()
    if args.command == "prune":
        return (await worker.prune_trigger()).to_dict()
    if args.command == "activate":
        populated, pruned = await worker.activate()
        return {"populate": populated.to_dict(), "prune": pruned.to_dict()}
    if args.command == "fetch":
        result = await worker.intercept_trigger(args.url)
        return {"source": result.source, "key": result.key, "response": result.response.to_dict()}
    return {
        "current": worker.cache_config.store_name,
        "stores": worker.store.get_stats() if hasattr(worker.store, "get_stats") else {},
    }


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    worker = None
    try:
        worker = OfflineWorker(load_config(args.config))
        payload = asyncio.run(_dispatch(worker, args))
    except (OfflineCacheError, ValueError, FileNotFoundError, requests.RequestException) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        if worker is not None:
            worker.close()

    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())

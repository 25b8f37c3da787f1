#!/usr/bin/env python3
"""
Lifecycle Controller — populate and prune the versioned store

Populate: fetch every manifest resource missing from the current store.
Prune:    drop stale stores wholesale, then orphaned keys in the current one.

Phases: IDLE → POPULATING → IDLE → PRUNING → ACTIVE
The host runs one phase at a time; nothing here takes a lock.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, Iterable, List, Optional

from .config import CacheConfig
from .errors import (
    OfflineCacheError,
    PopulateFailed,
    PruneFailed,
    StoreDeleteFailure,
    StoreWriteFailure,
)
from .store import CacheStore, PutOutcome
from .versioner import UrlVersioner

logger = logging.getLogger(__name__)


class LifecyclePhase(Enum):
    IDLE = "idle"
    POPULATING = "populating"
    PRUNING = "pruning"
    ACTIVE = "active"


@dataclass
class PopulateOutcome:
    """Result of a successful populate phase."""
    store_name: str
    stored: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    already_present: List[str] = field(default_factory=list)
    ready_to_activate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PruneOutcome:
    """Result of a prune phase (also attached to PruneFailed)."""
    store_name: str
    deleted_stores: List[str] = field(default_factory=list)
    deleted_keys: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def _settle(aws: Iterable[Awaitable[Any]]) -> List[Any]:
    """Run awaitables concurrently; exceptions come back as results."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
    return results


class LifecycleController:
    """
    Keeps the current store in step with the manifest.

    Design:
    - target = canonical key image of the manifest under the current version
    - populate only adds (target minus existing), never touches the network
      for keys already present
    - prune only deletes, never touches the network
    - every insertion/deletion is attempted before a phase reports failure
    """

    def __init__(self, config: CacheConfig, store: CacheStore, versioner: Optional[UrlVersioner] = None):
        self.config = config
        self.store = store
        self.versioner = versioner or config.versioner()
        self.phase = LifecyclePhase.IDLE

    async def populate(self) -> PopulateOutcome:
        """
        Make sure the current store holds every manifest resource.

        Raises:
            PopulateFailed: a manifest entry was malformed or a fetch failed.
                The store may be partially populated; retry next cycle.
        """
        name = self.config.store_name
        self.phase = LifecyclePhase.POPULATING
        logger.info(f"Populating {name!r} ({len(self.config.manifest)} manifest entries)")

        try:
            targets, malformed = self.versioner.target_keys(self.config.manifest, self.config.version)
            errors: List[OfflineCacheError] = list(malformed)

            handle = await self.store.open(name)
            existing = await self.store.keys(handle)
            missing = [key for key in targets if key not in existing]

            outcome = PopulateOutcome(
                store_name=name,
                already_present=sorted(key for key in targets if key in existing),
            )

            limit = self.config.max_concurrency
            semaphore = asyncio.Semaphore(limit) if limit > 0 else None

            async def insert(key):
                if semaphore is None:
                    return await self.store.put(handle, key)
                async with semaphore:
                    return await self.store.put(handle, key)

            results = await _settle(insert(key) for key in missing)

            unexpected: Optional[Exception] = None
            for key, result in zip(missing, results):
                if isinstance(result, OfflineCacheError):
                    errors.append(result)
                elif isinstance(result, Exception):
                    logger.error(f"Unexpected error storing {key}: {result}")
                    errors.append(StoreWriteFailure(key, f"{type(result).__name__}: {result}"))
                    unexpected = unexpected or result
                elif result is PutOutcome.STORED:
                    outcome.stored.append(key)
                else:
                    outcome.kept.append(key)
        finally:
            self.phase = LifecyclePhase.IDLE

        if errors:
            logger.error(f"Populate of {name!r} failed: {len(errors)} error(s)")
            raise PopulateFailed(name, errors) from unexpected

        outcome.stored.sort()
        outcome.kept.sort()
        outcome.ready_to_activate = self.config.activate_immediately
        logger.info(
            f"Populated {name!r}: {len(outcome.stored)} stored, "
            f"{len(outcome.kept)} kept, {len(outcome.already_present)} already present"
        )
        return outcome

    async def prune(self) -> PruneOutcome:
        """
        Drop every stale store and every key the manifest no longer names.

        Raises:
            PruneFailed: some deletions failed; all others were still attempted
        """
        name = self.config.store_name
        self.phase = LifecyclePhase.PRUNING
        outcome = PruneOutcome(store_name=name)
        failures: List[StoreDeleteFailure] = []

        try:
            stale = sorted(n for n in await self.store.list_store_names() if n != name)
            for store_name, result in zip(stale, await _settle(self.store.delete_store(n) for n in stale)):
                if isinstance(result, Exception):
                    failures.append(StoreDeleteFailure(f"store {store_name!r}", str(result)))
                elif result:
                    logger.info(f"Deleted outdated store: {store_name}")
                    outcome.deleted_stores.append(store_name)

            handle = await self.store.open(name)
            targets, malformed = self.versioner.target_keys(self.config.manifest, self.config.version)
            outcome.skipped = [repr(e.raw) for e in malformed]

            orphans = sorted((await self.store.keys(handle)) - targets.keys())
            for key, result in zip(orphans, await _settle(self.store.delete(handle, k) for k in orphans)):
                if isinstance(result, Exception):
                    failures.append(StoreDeleteFailure(key, str(result)))
                elif result:
                    outcome.deleted_keys.append(key)
        except BaseException:
            self.phase = LifecyclePhase.IDLE
            raise

        if failures:
            self.phase = LifecyclePhase.IDLE
            logger.error(f"Prune of {name!r} finished with {len(failures)} failed deletion(s)")
            raise PruneFailed(failures, outcome)

        self.phase = LifecyclePhase.ACTIVE
        logger.info(
            f"Pruned: {len(outcome.deleted_stores)} stale store(s), "
            f"{len(outcome.deleted_keys)} orphaned key(s) from {name!r}"
        )
        return outcome

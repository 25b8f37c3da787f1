#!/usr/bin/env python3
"""
Offline Worker — host-facing triggers for the offline cache

Builds the versioner, store, lifecycle controller and interceptor once from
a WorkerConfig and exposes the three triggers the host awaits:

  populate_trigger()          → PopulateOutcome   (once per activation cycle)
  prune_trigger()             → PruneOutcome      (after populate)
  intercept_trigger(request)  → InterceptResult   (per outgoing request)

Failures are logged and re-raised; retry policy belongs to the host.
"""

import logging
import time
from typing import Optional, Tuple, Union

import requests

from offline_cache.errors import PopulateFailed, PruneFailed
from offline_cache.fetcher import Fetcher, Request
from offline_cache.interceptor import FetchInterceptor, InterceptResult
from offline_cache.lifecycle import LifecycleController, LifecyclePhase, PopulateOutcome, PruneOutcome
from offline_cache.manifest import Manifest
from offline_cache.store import CacheStore, SQLiteCacheStore

from offline_worker.config import WorkerConfig
from offline_worker.observability import InterceptLogRecord, LifecycleLogRecord, emit

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 3)


class OfflineWorker:
    """
    One worker instance bound to one manifest and one cache version.

    The manifest and version never change for the lifetime of the instance;
    a new release means a new OfflineWorker.
    """

    def __init__(
        self,
        config: WorkerConfig,
        store: Optional[CacheStore] = None,
        fetcher: Optional[Fetcher] = None,
        manifest: Optional[Manifest] = None,
    ):
        self.config = config
        self.cache_config = config.cache_config(manifest)
        self.versioner = self.cache_config.versioner()

        self.fetcher = fetcher or Fetcher(timeout=config.fetch_timeout_sec)
        self.store = store or SQLiteCacheStore(config.db_path, self.fetcher)

        self.controller = LifecycleController(self.cache_config, self.store, self.versioner)
        self.interceptor = FetchInterceptor(self.cache_config, self.store, self.fetcher, self.versioner)

        logger.info(
            f"OfflineWorker ready (store={self.cache_config.store_name!r}, "
            f"manifest={len(self.cache_config.manifest)} entries)"
        )

    @property
    def phase(self) -> LifecyclePhase:
        return self.controller.phase

    async def populate_trigger(self) -> PopulateOutcome:
        start = time.time()
        try:
            outcome = await self.controller.populate()
        except PopulateFailed as e:
            emit(
                LifecycleLogRecord(
                    event="populate",
                    store_name=e.store_name,
                    version=self.cache_config.version,
                    ok=False,
                    latency_ms_total=_elapsed_ms(start),
                    errors=[str(err) for err in e.errors],
                ),
                logging.ERROR,
            )
            raise

        emit(
            LifecycleLogRecord(
                event="populate",
                store_name=outcome.store_name,
                version=self.cache_config.version,
                ok=True,
                latency_ms_total=_elapsed_ms(start),
                counts={
                    "stored": len(outcome.stored),
                    "kept": len(outcome.kept),
                    "already_present": len(outcome.already_present),
                },
                ready_to_activate=outcome.ready_to_activate,
            )
        )
        return outcome

    async def prune_trigger(self) -> PruneOutcome:
        start = time.time()
        try:
            outcome = await self.controller.prune()
        except PruneFailed as e:
            partial = e.outcome
            emit(
                LifecycleLogRecord(
                    event="prune",
                    store_name=self.cache_config.store_name,
                    version=self.cache_config.version,
                    ok=False,
                    latency_ms_total=_elapsed_ms(start),
                    counts={
                        "deleted_stores": len(partial.deleted_stores) if partial else 0,
                        "deleted_keys": len(partial.deleted_keys) if partial else 0,
                    },
                    errors=[str(f) for f in e.failures],
                ),
                logging.ERROR,
            )
            raise

        emit(
            LifecycleLogRecord(
                event="prune",
                store_name=outcome.store_name,
                version=self.cache_config.version,
                ok=True,
                latency_ms_total=_elapsed_ms(start),
                counts={
                    "deleted_stores": len(outcome.deleted_stores),
                    "deleted_keys": len(outcome.deleted_keys),
                    "skipped": len(outcome.skipped),
                },
            )
        )
        return outcome

    async def intercept_trigger(self, request: Union[Request, str]) -> InterceptResult:
        if isinstance(request, str):
            request = Request(url=request)

        start = time.time()
        try:
            result = await self.interceptor.handle(request)
        except requests.RequestException as e:
            emit(
                InterceptLogRecord(
                    method=request.method,
                    url=request.url,
                    source="error",
                    in_scope=self.interceptor.in_scope(request),
                    latency_ms_total=_elapsed_ms(start),
                    error=f"{type(e).__name__}: {e}",
                ),
                logging.WARNING,
            )
            raise

        emit(
            InterceptLogRecord(
                method=request.method,
                url=request.url,
                key=result.key,
                source=result.source,
                in_scope=result.in_scope,
                status=result.response.status,
                latency_ms_total=_elapsed_ms(start),
            ),
            logging.DEBUG,
        )
        return result

    async def activate(self) -> Tuple[PopulateOutcome, PruneOutcome]:
        """Run populate then prune, in the order the host guarantees."""
        populated = await self.populate_trigger()
        pruned = await self.prune_trigger()
        return populated, pruned

    def close(self):
        close = getattr(self.store, "close", None)
        if close is not None:
            close()
        self.fetcher.close()

"""
Fetch Interceptor — cache-or-network decision per request

Offline scope = GET requests whose URL, ignoring fragment and revision
marker, matches a manifest entry. In scope: cache first, network on miss.
Out of scope: network, always. Responses are never rewritten and network
errors are never masked, unless stale_fallback is switched on.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests

from .config import CacheConfig
from .errors import MalformedIdentifier
from .fetcher import Fetcher, Request, Response
from .store import CacheStore
from .versioner import UrlVersioner

logger = logging.getLogger(__name__)

SOURCE_CACHE = "cache"
SOURCE_NETWORK = "network"
SOURCE_STALE = "stale"


@dataclass
class InterceptResult:
    response: Response
    source: str
    key: Optional[str] = None
    in_scope: bool = False


class FetchInterceptor:
    """Read-only consumer of the current store."""

    def __init__(
        self,
        config: CacheConfig,
        store: CacheStore,
        fetcher: Fetcher,
        versioner: Optional[UrlVersioner] = None,
    ):
        self.config = config
        self.store = store
        self.fetcher = fetcher
        self.versioner = versioner or config.versioner()
        self._scope = frozenset(self.versioner.scope_keys(config.manifest))

        self.stats = {
            "hits": 0,
            "misses": 0,
            "passthrough": 0,
            "stale_hits": 0,
            "start_time": time.time(),
        }

    def in_scope(self, request: Request) -> bool:
        if request.method.upper() != "GET":
            return False
        try:
            return self.versioner.scope_key(request.url) in self._scope
        except MalformedIdentifier:
            return False

    async def handle(self, request: Union[Request, str]) -> InterceptResult:
        if isinstance(request, str):
            request = Request(url=request)

        try:
            key = self.versioner.canonicalize(request.url, self.config.version)
        except MalformedIdentifier:
            key = None

        if key is None or not self.in_scope(request):
            self.stats["passthrough"] += 1
            return InterceptResult(await self.fetcher.fetch(request), SOURCE_NETWORK, key, False)

        handle = await self.store.open(self.config.store_name, create=False)
        cached = await self.store.match(handle, key) if handle else None
        if cached is not None:
            self.stats["hits"] += 1
            logger.debug(f"Cache hit: {key}")
            return InterceptResult(cached, SOURCE_CACHE, key, True)

        self.stats["misses"] += 1
        logger.debug(f"Cache miss: {key}, going to network")
        try:
            response = await self.fetcher.fetch(request)
        except requests.RequestException:
            if not self.config.stale_fallback:
                raise
            stale = await self._find_stale(self.versioner.scope_key(request.url))
            if stale is None:
                raise
            self.stats["stale_hits"] += 1
            logger.warning(f"Network failed for {request.url}, serving stale copy")
            return InterceptResult(stale, SOURCE_STALE, key, True)

        return InterceptResult(response, SOURCE_NETWORK, key, True)

    async def _find_stale(self, scope: str) -> Optional[Response]:
        """Any stored copy of ``scope`` under another revision, current store first."""
        current = self.config.store_name
        names = sorted(await self.store.list_store_names(), key=lambda n: (n != current, n))
        for name in names:
            handle = await self.store.open(name, create=False)
            if handle is None:
                continue
            for key in sorted(await self.store.keys(handle)):
                try:
                    if self.versioner.scope_key(key) != scope:
                        continue
                except MalformedIdentifier:
                    continue
                response = await self.store.match(handle, key)
                if response is not None:
                    return response
        return None

    def get_stats(self) -> Dict[str, Any]:
        in_scope = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / in_scope * 100) if in_scope > 0 else 0
        return {
            "hits": self.stats["hits"],
            "misses": self.stats["misses"],
            "passthrough": self.stats["passthrough"],
            "stale_hits": self.stats["stale_hits"],
            "hit_rate_percent": round(hit_rate, 1),
            "total_requests": in_scope + self.stats["passthrough"],
            "uptime_seconds": int(time.time() - self.stats["start_time"]),
        }

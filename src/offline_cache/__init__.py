"""
Offline Cache
Versioned, manifest-driven asset store with a cache-first request interceptor
"""

from .config import CacheConfig
from .fetcher import Fetcher, Request, Response
from .interceptor import FetchInterceptor, InterceptResult
from .lifecycle import LifecycleController, LifecyclePhase, PopulateOutcome, PruneOutcome
from .manifest import Manifest, load_manifest
from .store import CacheStore, PutOutcome, SQLiteCacheStore, StoreHandle
from .versioner import CanonicalKey, UrlVersioner

__all__ = [
    'CacheConfig',
    'CacheStore',
    'CanonicalKey',
    'FetchInterceptor',
    'Fetcher',
    'InterceptResult',
    'LifecycleController',
    'LifecyclePhase',
    'Manifest',
    'PopulateOutcome',
    'PruneOutcome',
    'PutOutcome',
    'Request',
    'Response',
    'SQLiteCacheStore',
    'StoreHandle',
    'UrlVersioner',
    'load_manifest',
]

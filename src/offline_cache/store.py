#!/usr/bin/env python3
"""
Cache Store — named, durable stores of request → response entries

Implements:
- list_store_names() → {StoreName}
- open(name, create=True) → StoreHandle | None
- keys(handle) → {CanonicalKey}
- match(handle, key) → Response | None
- put(handle, key) → PutOutcome (fetches over the network)
- put_response(handle, key, response) → PutOutcome
- delete(handle, key) → bool
- delete_store(name) → bool

Every operation is a coroutine. SQLiteCacheStore runs the blocking sqlite3
calls on a worker thread, one at a time.
"""

import abc
import asyncio
import json
import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

import requests

from .errors import FetchUnavailable
from .fetcher import Fetcher, Response
from .versioner import CanonicalKey

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.expanduser("~/.offline_cache/stores.db")

SCHEMA = """
-- One row per named store (one per cache version)
CREATE TABLE IF NOT EXISTS stores (
    name TEXT PRIMARY KEY,
    created_at REAL NOT NULL
);

-- Entries are never updated in place: a changed asset gets a new key
CREATE TABLE IF NOT EXISTS entries (
    store TEXT NOT NULL,
    cache_key TEXT NOT NULL,
    url TEXT NOT NULL,
    status INTEGER NOT NULL,
    reason TEXT DEFAULT '',
    headers TEXT DEFAULT '{}',
    body BLOB NOT NULL,
    created_at REAL NOT NULL,
    PRIMARY KEY (store, cache_key)
);

CREATE INDEX IF NOT EXISTS idx_entries_store ON entries(store);
"""


class PutOutcome(Enum):
    """Result of inserting an entry."""
    STORED = "stored"
    KEPT = "kept"      # an entry already existed for the key and was left alone


@dataclass(frozen=True)
class StoreHandle:
    """Reference to an opened store."""
    name: str


class CacheStore(abc.ABC):
    """Storage capability consumed by the lifecycle controller and interceptor."""

    @abc.abstractmethod
    async def list_store_names(self) -> Set[str]:
        ...

    @abc.abstractmethod
    async def open(self, name: str, create: bool = True) -> Optional[StoreHandle]:
        ...

    @abc.abstractmethod
    async def keys(self, handle: StoreHandle) -> Set[CanonicalKey]:
        ...

    @abc.abstractmethod
    async def match(self, handle: StoreHandle, key: CanonicalKey) -> Optional[Response]:
        ...

    @abc.abstractmethod
    async def put(self, handle: StoreHandle, key: CanonicalKey) -> PutOutcome:
        ...

    @abc.abstractmethod
    async def put_response(self, handle: StoreHandle, key: CanonicalKey, response: Response) -> PutOutcome:
        ...

    @abc.abstractmethod
    async def delete(self, handle: StoreHandle, key: CanonicalKey) -> bool:
        ...

    @abc.abstractmethod
    async def delete_store(self, name: str) -> bool:
        ...


class SQLiteCacheStore(CacheStore):
    """
    SQLite-backed implementation of CacheStore.

    Design principles:
    - One database file holds every named store
    - Store rows are created lazily by open()
    - put() fetches the key URL itself, so the revision marker reaches the origin
    - A failed fetch never clobbers an entry that is already there
    """

    def __init__(self, db_path: str = None, fetcher: Optional[Fetcher] = None):
        if db_path is None:
            db_path = DEFAULT_DB_PATH

        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.fetcher = fetcher or Fetcher()
        self._lock = threading.Lock()

        # Used from worker threads, serialized by _lock
        self.conn = sqlite3.connect(db_path, check_same_thread=False, timeout=10.0)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)
        self.conn.commit()

        logger.info(f"SQLiteCacheStore initialized at {db_path}")

    def _locked(self, fn: Callable[..., Any], *args: Any) -> Any:
        with self._lock:
            return fn(*args)

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(self._locked, fn, *args)

    # ── blocking helpers (run on a worker thread) ─────────────────

    def _list_store_names(self) -> Set[str]:
        rows = self.conn.execute("SELECT name FROM stores").fetchall()
        return {row["name"] for row in rows}

    def _open(self, name: str, create: bool) -> bool:
        if create:
            self.conn.execute(
                "INSERT OR IGNORE INTO stores (name, created_at) VALUES (?, ?)",
                (name, time.time()),
            )
            self.conn.commit()
            return True
        row = self.conn.execute("SELECT 1 FROM stores WHERE name = ?", (name,)).fetchone()
        return row is not None

    def _keys(self, name: str) -> Set[CanonicalKey]:
        rows = self.conn.execute("SELECT cache_key FROM entries WHERE store = ?", (name,)).fetchall()
        return {CanonicalKey(row["cache_key"]) for row in rows}

    def _match(self, name: str, key: str) -> Optional[Response]:
        row = self.conn.execute(
            """
            SELECT url, status, reason, headers, body
            FROM entries
            WHERE store = ? AND cache_key = ?
            LIMIT 1
            """,
            (name, key),
        ).fetchone()
        if row is None:
            return None
        return Response(
            url=row["url"],
            status=row["status"],
            reason=row["reason"] or "",
            headers=json.loads(row["headers"] or "{}"),
            body=bytes(row["body"]),
        )

    def _exists(self, name: str, key: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM entries WHERE store = ? AND cache_key = ?", (name, key)
        ).fetchone()
        return row is not None

    def _insert(self, name: str, key: str, response: Response) -> bool:
        cursor = self.conn.execute(
            """
            INSERT OR IGNORE INTO entries
            (store, cache_key, url, status, reason, headers, body, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                name,
                key,
                response.url,
                response.status,
                response.reason,
                json.dumps(response.headers),
                sqlite3.Binary(response.body),
                time.time(),
            ),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def _delete(self, name: str, key: str) -> bool:
        cursor = self.conn.execute(
            "DELETE FROM entries WHERE store = ? AND cache_key = ?", (name, key)
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def _delete_store(self, name: str) -> bool:
        self.conn.execute("DELETE FROM entries WHERE store = ?", (name,))
        cursor = self.conn.execute("DELETE FROM stores WHERE name = ?", (name,))
        self.conn.commit()
        return cursor.rowcount > 0

    # ── CacheStore ────────────────────────────────────────────────

    async def list_store_names(self) -> Set[str]:
        return await self._run(self._list_store_names)

    async def open(self, name: str, create: bool = True) -> Optional[StoreHandle]:
        if await self._run(self._open, name, create):
            return StoreHandle(name)
        return None

    async def keys(self, handle: StoreHandle) -> Set[CanonicalKey]:
        return await self._run(self._keys, handle.name)

    async def match(self, handle: StoreHandle, key: CanonicalKey) -> Optional[Response]:
        return await self._run(self._match, handle.name, key)

    async def put(self, handle: StoreHandle, key: CanonicalKey) -> PutOutcome:
        """
        Fetch ``key`` and store the response.

        Raises:
            FetchUnavailable: the fetch failed (transport error or non-2xx)
                and there was no entry for ``key`` to fall back on
        """
        try:
            response = await self.fetcher.fetch(key)
            reason = None if response.ok else f"HTTP {response.status} {response.reason}".strip()
        except requests.RequestException as e:
            response = None
            reason = f"{type(e).__name__}: {e}"

        if reason is not None:
            if await self._run(self._exists, handle.name, key):
                logger.warning(f"Fetch failed for {key} ({reason}), keeping existing entry")
                return PutOutcome.KEPT
            raise FetchUnavailable(key, reason)

        return await self.put_response(handle, key, response)

    async def put_response(self, handle: StoreHandle, key: CanonicalKey, response: Response) -> PutOutcome:
        if await self._run(self._insert, handle.name, key, response):
            logger.debug(f"Stored {key} in {handle.name!r} ({len(response.body)} bytes)")
            return PutOutcome.STORED
        return PutOutcome.KEPT

    async def delete(self, handle: StoreHandle, key: CanonicalKey) -> bool:
        return await self._run(self._delete, handle.name, key)

    async def delete_store(self, name: str) -> bool:
        deleted = await self._run(self._delete_store, name)
        if deleted:
            logger.info(f"Deleted store {name!r}")
        return deleted

    def get_stats(self) -> Dict[str, Any]:
        """Entry counts and stored bytes per store."""
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT s.name AS name, COUNT(e.cache_key) AS entries,
                       COALESCE(SUM(LENGTH(e.body)), 0) AS bytes
                FROM stores s LEFT JOIN entries e ON e.store = s.name
                GROUP BY s.name
                ORDER BY s.name
                """
            ).fetchall()
        return {row["name"]: {"entries": row["entries"], "bytes": row["bytes"]} for row in rows}

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            logger.info("SQLiteCacheStore closed")

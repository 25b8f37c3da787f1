#!/usr/bin/env python3
"""
Unit tests for the SQLite Cache Store
"""

import asyncio
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from offline_cache.errors import FetchUnavailable
from offline_cache.fetcher import Response
from offline_cache.store import PutOutcome, SQLiteCacheStore, StoreHandle

KEY_A = "https://app.example/a.txt?__REVISION__=1"
KEY_MISSING = "https://app.example/missing.txt?__REVISION__=1"


def run(coro):
    return asyncio.run(coro)


class TestStores:

    def test_open_creates_store(self, store):
        handle = run(store.open("SW Cache v1"))
        assert handle == StoreHandle("SW Cache v1")
        assert run(store.list_store_names()) == {"SW Cache v1"}

    def test_open_without_create_never_writes(self, store):
        assert run(store.open("SW Cache v1", create=False)) is None
        assert run(store.list_store_names()) == set()

    def test_delete_store(self, store):
        handle = run(store.open("SW Cache v1"))
        run(store.put(handle, KEY_A))

        assert run(store.delete_store("SW Cache v1")) is True
        assert run(store.list_store_names()) == set()
        assert run(store.delete_store("SW Cache v1")) is False

        # Reopening gives an empty store, not the old entries
        handle = run(store.open("SW Cache v1"))
        assert run(store.keys(handle)) == set()

    def test_stores_are_isolated(self, store):
        v1 = run(store.open("SW Cache v1"))
        v2 = run(store.open("SW Cache v2"))
        run(store.put(v1, KEY_A))

        assert run(store.keys(v1)) == {KEY_A}
        assert run(store.keys(v2)) == set()
        assert run(store.match(v2, KEY_A)) is None


class TestEntries:

    def test_put_fetches_key_and_stores(self, store, fetcher):
        handle = run(store.open("SW Cache v1"))

        assert run(store.put(handle, KEY_A)) is PutOutcome.STORED
        assert fetcher.calls == [KEY_A]

        cached = run(store.match(handle, KEY_A))
        assert cached.body == b"alpha"
        assert cached.status == 200
        assert cached.headers["Content-Type"] == "text/plain"

    def test_put_network_error_raises(self, store, fetcher):
        fetcher.offline = True
        handle = run(store.open("SW Cache v1"))

        with pytest.raises(FetchUnavailable) as exc:
            run(store.put(handle, KEY_A))
        assert exc.value.key == KEY_A
        assert run(store.keys(handle)) == set()

    def test_put_http_error_raises(self, store):
        handle = run(store.open("SW Cache v1"))

        with pytest.raises(FetchUnavailable) as exc:
            run(store.put(handle, KEY_MISSING))
        assert "404" in exc.value.reason

    def test_put_failure_keeps_existing_entry(self, store, fetcher):
        handle = run(store.open("SW Cache v1"))
        run(store.put(handle, KEY_A))

        fetcher.offline = True
        assert run(store.put(handle, KEY_A)) is PutOutcome.KEPT
        assert run(store.match(handle, KEY_A)).body == b"alpha"

    def test_entries_are_immutable(self, store):
        handle = run(store.open("SW Cache v1"))
        first = Response(url=KEY_A, status=200, body=b"first")
        second = Response(url=KEY_A, status=200, body=b"second")

        assert run(store.put_response(handle, KEY_A, first)) is PutOutcome.STORED
        assert run(store.put_response(handle, KEY_A, second)) is PutOutcome.KEPT
        assert run(store.match(handle, KEY_A)).body == b"first"

    def test_delete(self, store):
        handle = run(store.open("SW Cache v1"))
        run(store.put(handle, KEY_A))

        assert run(store.delete(handle, KEY_A)) is True
        assert run(store.delete(handle, KEY_A)) is False
        assert run(store.match(handle, KEY_A)) is None

    def test_concurrent_puts(self, store, fetcher):
        handle = run(store.open("SW Cache v1"))
        keys = [
            "https://app.example/a.txt?__REVISION__=1",
            "https://app.example/b.txt?__REVISION__=1",
            "https://app.example/manifest.json?__REVISION__=1",
        ]

        async def fan_out():
            return await asyncio.gather(*(store.put(handle, k) for k in keys))

        assert run(fan_out()) == [PutOutcome.STORED] * 3
        assert run(store.keys(handle)) == set(keys)


class TestDurability:

    def test_entries_survive_reopen(self, tmp_path, fetcher):
        db_path = str(tmp_path / "durable.db")

        first = SQLiteCacheStore(db_path, fetcher)
        handle = run(first.open("SW Cache v1"))
        run(first.put(handle, KEY_A))
        first.close()

        second = SQLiteCacheStore(db_path, fetcher)
        try:
            assert run(second.list_store_names()) == {"SW Cache v1"}
            assert run(second.match(StoreHandle("SW Cache v1"), KEY_A)).body == b"alpha"
        finally:
            second.close()

    def test_memory_database(self, fetcher):
        store = SQLiteCacheStore(":memory:", fetcher)
        try:
            handle = run(store.open("SW Cache v1"))
            run(store.put(handle, KEY_A))
            assert run(store.keys(handle)) == {KEY_A}
        finally:
            store.close()

    def test_stats(self, store):
        handle = run(store.open("SW Cache v1"))
        run(store.put(handle, KEY_A))
        run(store.open("SW Cache v2"))

        stats = store.get_stats()
        assert stats["SW Cache v1"] == {"entries": 1, "bytes": len(b"alpha")}
        assert stats["SW Cache v2"] == {"entries": 0, "bytes": 0}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

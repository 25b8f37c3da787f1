import asyncio
import sys
from pathlib import Path

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from offline_cache.fetcher import Request, Response
from offline_cache.store import SQLiteCacheStore


class FakeFetcher:
    """Records every network call; serves bodies keyed by URL without query."""

    def __init__(self, bodies=None, delay=0.0):
        self.bodies = dict(bodies or {})
        self.delay = delay
        self.offline = False
        self.failing = set()
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def request_count(self):
        return len(self.calls)

    async def fetch(self, request):
        if isinstance(request, str):
            request = Request(url=request)
        self.calls.append(request.url)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        path = request.url.split("#")[0].split("?")[0]
        if self.offline or path in self.failing:
            raise requests.ConnectionError(f"offline: {request.url}")
        if path not in self.bodies:
            return Response(url=request.url, status=404, reason="Not Found")
        return Response(
            url=request.url,
            status=200,
            reason="OK",
            headers={"Content-Type": "text/plain"},
            body=self.bodies[path],
        )

    def close(self):
        pass


@pytest.fixture
def fetcher():
    return FakeFetcher(
        {
            "https://app.example/": b"<html>home</html>",
            "https://app.example/a.txt": b"alpha",
            "https://app.example/b.txt": b"bravo",
            "https://app.example/manifest.json": b"{}",
            "https://cdn.example/font.css": b"body{}",
        }
    )


@pytest.fixture
def store(tmp_path, fetcher):
    store = SQLiteCacheStore(str(tmp_path / "stores.db"), fetcher)
    yield store
    store.close()

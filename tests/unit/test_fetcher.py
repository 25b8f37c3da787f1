#!/usr/bin/env python3
"""
Unit tests for the network Fetcher
"""

import asyncio
import pytest
import requests
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from offline_cache.fetcher import Fetcher, Request


class FakeHTTPResponse:
    def __init__(self, url, status_code=200, reason="OK", headers=None, content=b""):
        self.url = url
        self.status_code = status_code
        self.reason = reason
        self.headers = headers or {}
        self.content = content


class StubSession:
    """Stands in for requests.Session; records each request call."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


def run(coro):
    return asyncio.run(coro)


class TestFetch:

    def test_response_fields_are_mapped(self):
        session = StubSession(FakeHTTPResponse(
            "https://app.example/a.txt?__REVISION__=1",
            headers={"Content-Type": "text/plain"},
            content=b"alpha",
        ))

        response = run(Fetcher(session=session).fetch("https://app.example/a.txt?__REVISION__=1"))

        assert response.url == "https://app.example/a.txt?__REVISION__=1"
        assert response.status == 200
        assert response.reason == "OK"
        assert response.headers == {"Content-Type": "text/plain"}
        assert response.body == b"alpha"
        assert response.ok

    def test_string_request_is_a_get(self):
        session = StubSession(FakeHTTPResponse("https://app.example/"))

        run(Fetcher(session=session).fetch("https://app.example/"))

        method, url, kwargs = session.calls[0]
        assert method == "GET"
        assert url == "https://app.example/"
        assert kwargs["headers"] is None
        assert kwargs["data"] is None

    def test_request_fields_and_timeout_passed_through(self):
        session = StubSession(FakeHTTPResponse("https://app.example/api", status_code=201, reason="Created"))
        request = Request(url="https://app.example/api", method="POST", headers={"X-Test": "1"}, body=b"{}")

        run(Fetcher(timeout=5, session=session).fetch(request))

        method, url, kwargs = session.calls[0]
        assert (method, url) == ("POST", "https://app.example/api")
        assert kwargs == {"headers": {"X-Test": "1"}, "data": b"{}", "timeout": 5}

    def test_missing_url_and_reason_fall_back(self):
        session = StubSession(FakeHTTPResponse(None, status_code=204, reason=None))

        response = run(Fetcher(session=session).fetch("https://app.example/empty"))

        assert response.url == "https://app.example/empty"
        assert response.reason == ""

    @pytest.mark.parametrize("status,reason", [(404, "Not Found"), (503, "Service Unavailable")])
    def test_non_2xx_is_returned_not_raised(self, status, reason):
        session = StubSession(FakeHTTPResponse("https://app.example/x", status_code=status, reason=reason))

        response = run(Fetcher(session=session).fetch("https://app.example/x"))

        assert response.status == status
        assert response.reason == reason
        assert not response.ok

    def test_connection_error_propagates(self):
        session = StubSession(error=requests.ConnectionError("network unreachable"))

        with pytest.raises(requests.ConnectionError, match="network unreachable"):
            run(Fetcher(session=session).fetch("https://app.example/a.txt"))

    def test_timeout_propagates(self):
        session = StubSession(error=requests.Timeout("read timed out"))

        with pytest.raises(requests.Timeout):
            run(Fetcher(timeout=0.1, session=session).fetch("https://app.example/slow"))


class TestConfiguration:

    def test_default_timeout(self):
        assert Fetcher(session=StubSession()).timeout == Fetcher.DEFAULT_TIMEOUT == 30

    def test_zero_timeout_is_kept(self):
        assert Fetcher(timeout=0, session=StubSession()).timeout == 0

    def test_default_session(self):
        fetcher = Fetcher()
        try:
            assert isinstance(fetcher.session, requests.Session)
        finally:
            fetcher.close()

    def test_close_closes_session(self):
        session = StubSession()

        Fetcher(session=session).close()

        assert session.closed


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Network Fetcher — the only place the offline cache touches the network

Blocking ``requests`` calls run on a worker thread so the event loop keeps
serving intercepted requests while a fetch is in flight.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Union

import requests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Request:
    """Outgoing request as seen by the interceptor."""
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


@dataclass
class Response:
    """Network or cached response."""
    url: str
    status: int
    reason: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["body"] = len(self.body)
        return payload


class Fetcher:
    """
    Async facade over a ``requests.Session``.

    Transport errors (``requests.RequestException``) are raised to the caller
    unchanged. Non-2xx responses are returned, not raised.
    """

    DEFAULT_TIMEOUT = 30  # seconds

    def __init__(self, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.timeout = self.DEFAULT_TIMEOUT if timeout is None else timeout
        self.session = session or requests.Session()

    def _send(self, request: Request) -> Response:
        resp = self.session.request(
            request.method,
            request.url,
            headers=request.headers or None,
            data=request.body,
            timeout=self.timeout,
        )
        return Response(
            url=resp.url or request.url,
            status=resp.status_code,
            reason=resp.reason or "",
            headers=dict(resp.headers),
            body=resp.content,
        )

    async def fetch(self, request: Union[Request, str]) -> Response:
        if isinstance(request, str):
            request = Request(url=request)

        logger.debug(f"Network fetch: {request.method} {request.url}")
        return await asyncio.to_thread(self._send, request)

    def close(self):
        self.session.close()

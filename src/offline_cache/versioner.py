"""
URL Versioner — canonical, revision-stamped cache keys

Implements:
- normalize(raw) → absolute URL resolved against the worker location
- canonicalize(raw, version) → CanonicalKey (fragment dropped, revision stamped)
- scope_key(raw) → normalized URL without the revision marker
- target_keys(manifest, version) → canonical key image of a manifest

Same (raw, version, base) = same key. Nothing here keeps state between calls.
"""

import logging
from typing import Dict, Iterable, List, NewType, Set, Tuple
from urllib.parse import quote, unquote_plus, urljoin, urlsplit, urlunsplit

from .errors import MalformedIdentifier

logger = logging.getLogger(__name__)

CanonicalKey = NewType("CanonicalKey", str)

DEFAULT_REVISION_PARAM = "__REVISION__"

_SCHEMES = {"http": 80, "https": 443}
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"
_QUERY_SAFE = _PATH_SAFE + "?"


def _remove_dot_segments(path: str) -> str:
    """Collapse ``.`` and ``..`` segments of an absolute path (RFC 3986 5.2.4)."""
    if not path.startswith("/"):
        path = "/" + path
    segments = path.split("/")[1:]
    resolved: List[str] = []
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == ".":
            if last:
                resolved.append("")
        elif segment == "..":
            if resolved:
                resolved.pop()
            if last:
                resolved.append("")
        else:
            resolved.append(segment)
    return "/" + "/".join(resolved)


class UrlVersioner:
    """
    Turn raw resource identifiers into comparable cache keys.

    Design:
    - Identifiers resolve against the worker's own location (base_url)
    - Scheme and host are lowercased, default ports dropped
    - The fragment never reaches a key
    - Exactly one reserved query parameter carries the cache version;
      any stale value is overwritten, other parameters keep their order
    """

    def __init__(self, base_url: str, revision_param: str = DEFAULT_REVISION_PARAM):
        base = urlsplit(base_url)
        if base.scheme.lower() not in _SCHEMES or not base.hostname:
            raise ValueError(f"base_url must be an absolute http(s) URL, got {base_url!r}")
        if not revision_param:
            raise ValueError("revision_param must not be empty")

        self.base_url = base_url
        self.revision_param = revision_param

    def normalize(self, raw) -> str:
        """
        Resolve ``raw`` against the base location.

        Raises:
            MalformedIdentifier: raw is not a usable absolute or relative reference
        """
        if not isinstance(raw, str):
            raise MalformedIdentifier(raw, f"expected a string, got {type(raw).__name__}")
        candidate = raw.strip()
        if not candidate:
            raise MalformedIdentifier(raw, "identifier is empty")

        try:
            parts = urlsplit(urljoin(self.base_url, candidate))
            host = parts.hostname
            port = parts.port
        except ValueError as e:
            raise MalformedIdentifier(raw, str(e)) from e

        scheme = parts.scheme.lower()
        if scheme not in _SCHEMES:
            raise MalformedIdentifier(raw, f"unsupported scheme {scheme or '(none)'!r}")
        if not host:
            raise MalformedIdentifier(raw, "no host")

        if ":" in host:
            host = f"[{host}]"
        if port is not None and port != _SCHEMES[scheme]:
            host = f"{host}:{port}"
        userinfo, _, _ = parts.netloc.rpartition("@")
        netloc = f"{userinfo}@{host}" if userinfo else host

        path = _remove_dot_segments(quote(parts.path or "/", safe=_PATH_SAFE))
        query = quote(parts.query, safe=_QUERY_SAFE)
        return urlunsplit((scheme, netloc, path, query, parts.fragment))

    def _is_revision(self, pair: str) -> bool:
        name = pair.split("=", 1)[0]
        return unquote_plus(name) == self.revision_param

    def _strip(self, raw) -> Tuple[str, str, str, List[str]]:
        parts = urlsplit(self.normalize(raw))
        pairs = [p for p in parts.query.split("&") if p and not self._is_revision(p)]
        return parts.scheme, parts.netloc, parts.path, pairs

    def canonicalize(self, raw, version: str) -> CanonicalKey:
        """
        Build the cache key for ``raw`` under ``version``.

        Idempotent: canonicalize(canonicalize(r, v), v) == canonicalize(r, v)
        """
        if not isinstance(version, str) or not version:
            raise ValueError(f"version must be a non-empty string, got {version!r}")

        scheme, netloc, path, pairs = self._strip(raw)
        pairs.append(f"{quote(self.revision_param, safe='')}={quote(version, safe='')}")
        return CanonicalKey(urlunsplit((scheme, netloc, path, "&".join(pairs), "")))

    def scope_key(self, raw) -> str:
        """Normalized form of ``raw`` ignoring fragment and revision marker."""
        scheme, netloc, path, pairs = self._strip(raw)
        return urlunsplit((scheme, netloc, path, "&".join(pairs), ""))

    def target_keys(
        self, identifiers: Iterable, version: str
    ) -> Tuple[Dict[CanonicalKey, str], List[MalformedIdentifier]]:
        """
        Canonical key image of a manifest.

        Returns:
            ({key: first raw identifier that produced it}, [malformed entries])
        """
        targets: Dict[CanonicalKey, str] = {}
        errors: List[MalformedIdentifier] = []
        for raw in identifiers:
            try:
                key = self.canonicalize(raw, version)
            except MalformedIdentifier as e:
                logger.warning(f"Skipping manifest entry: {e}")
                errors.append(e)
                continue
            targets.setdefault(key, raw)
        return targets, errors

    def scope_keys(self, identifiers: Iterable) -> Set[str]:
        """Offline-scope set for a manifest; malformed entries are left out."""
        scope: Set[str] = set()
        for raw in identifiers:
            try:
                scope.add(self.scope_key(raw))
            except MalformedIdentifier:
                continue
        return scope

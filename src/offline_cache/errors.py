"""Error kinds raised by the offline cache core."""

from __future__ import annotations

from typing import Any, List, Optional


class OfflineCacheError(Exception):
    """Base class for every error the offline cache raises."""


class ManifestError(OfflineCacheError):
    """Manifest file is missing, unreadable, or fails schema validation."""


class MalformedIdentifier(OfflineCacheError):
    """A resource identifier cannot be resolved to an absolute http(s) URL."""

    def __init__(self, raw: Any, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"malformed identifier {raw!r}: {reason}")


class FetchUnavailable(OfflineCacheError):
    """Network fetch failed while inserting ``key`` and no entry existed."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"fetch unavailable for {key}: {reason}")


class StoreWriteFailure(OfflineCacheError):
    """Storing a fetched response failed (database or disk fault, not the network)."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"failed to store {key}: {reason}")


class StoreDeleteFailure(OfflineCacheError):
    """Deleting a store or an entry failed during prune."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"failed to delete {target}: {reason}")


class PopulateFailed(OfflineCacheError):
    """Populate phase failed; ``errors`` holds every failure observed."""

    def __init__(self, store_name: str, errors: List[OfflineCacheError]):
        self.store_name = store_name
        self.errors = list(errors)
        super().__init__(
            f"populate of {store_name!r} failed with {len(self.errors)} error(s): "
            + "; ".join(str(e) for e in self.errors)
        )


class PruneFailed(OfflineCacheError):
    """Prune phase finished but some deletions failed."""

    def __init__(self, failures: List[StoreDeleteFailure], outcome: Optional[Any] = None):
        self.failures = list(failures)
        self.outcome = outcome
        super().__init__(
            f"prune finished with {len(self.failures)} failed deletion(s): "
            + "; ".join(str(f) for f in self.failures)
        )

"""Immutable settings shared by the versioner, lifecycle controller and interceptor."""

from __future__ import annotations

from dataclasses import dataclass

from .manifest import Manifest
from .versioner import DEFAULT_REVISION_PARAM, UrlVersioner

DEFAULT_STORE_LABEL = "SW Cache"


def make_store_name(label: str, version: str) -> str:
    return f"{label} v{version}"


@dataclass(frozen=True)
class CacheConfig:
    manifest: Manifest
    version: str
    base_url: str
    store_label: str = DEFAULT_STORE_LABEL
    revision_param: str = DEFAULT_REVISION_PARAM
    max_concurrency: int = 0
    activate_immediately: bool = False
    stale_fallback: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.version, str) or not self.version:
            raise ValueError(f"version must be a non-empty string, got {self.version!r}")
        if self.max_concurrency < 0:
            raise ValueError("max_concurrency must be >= 0")

    @property
    def store_name(self) -> str:
        return make_store_name(self.store_label, self.version)

    def versioner(self) -> UrlVersioner:
        return UrlVersioner(self.base_url, self.revision_param)

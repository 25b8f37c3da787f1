"""Configuration loader for the offline worker."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from offline_cache.config import DEFAULT_STORE_LABEL, CacheConfig
from offline_cache.manifest import Manifest, load_manifest, validate_manifest
from offline_cache.store import DEFAULT_DB_PATH
from offline_cache.versioner import DEFAULT_REVISION_PARAM

REQUIRED_KEYS = ("version", "base_url")


@dataclass(frozen=True)
class WorkerConfig:
    version: str
    base_url: str
    manifest_path: Path
    manifest_entries: Optional[Tuple[str, ...]]
    store_label: str
    revision_param: str
    db_path: str
    fetch_timeout_sec: float
    max_concurrency: int
    activate_immediately: bool
    stale_fallback: bool

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkerConfig":
        missing = [key for key in REQUIRED_KEYS if data.get(key) in (None, "")]
        if missing:
            raise ValueError(f"Missing required config keys: {', '.join(missing)}")

        inline = data.get("manifest")
        if inline is not None:
            validate_manifest(inline)
            if isinstance(inline, dict):
                inline = inline["resources"]

        return cls(
            version=str(data["version"]),
            base_url=str(data["base_url"]),
            manifest_path=Path(data.get("manifest_path", "config/manifest.json")),
            manifest_entries=tuple(inline) if inline is not None else None,
            store_label=data.get("store_label", DEFAULT_STORE_LABEL),
            revision_param=data.get("revision_param", DEFAULT_REVISION_PARAM),
            db_path=os.path.expanduser(data.get("db_path", DEFAULT_DB_PATH)),
            fetch_timeout_sec=float(data.get("fetch_timeout_sec", 30)),
            max_concurrency=int(data.get("max_concurrency", 0)),
            activate_immediately=_as_bool(data.get("activate_immediately", False)),
            stale_fallback=_as_bool(data.get("stale_fallback", False)),
        )

    def load_manifest(self) -> Manifest:
        if self.manifest_entries is not None:
            return Manifest.from_iterable(self.manifest_entries)
        return load_manifest(self.manifest_path)

    def cache_config(self, manifest: Optional[Manifest] = None) -> CacheConfig:
        return CacheConfig(
            manifest=manifest if manifest is not None else self.load_manifest(),
            version=self.version,
            base_url=self.base_url,
            store_label=self.store_label,
            revision_param=self.revision_param,
            max_concurrency=self.max_concurrency,
            activate_immediately=self.activate_immediately,
            stale_fallback=self.stale_fallback,
        )


ENV_MAP = {
    "version": "OFFLINE_CACHE_VERSION",
    "base_url": "OFFLINE_BASE_URL",
    "manifest_path": "OFFLINE_MANIFEST_PATH",
    "store_label": "OFFLINE_STORE_LABEL",
    "revision_param": "OFFLINE_REVISION_PARAM",
    "db_path": "OFFLINE_DB_PATH",
    "fetch_timeout_sec": "OFFLINE_FETCH_TIMEOUT_SEC",
    "max_concurrency": "OFFLINE_MAX_CONCURRENCY",
    "activate_immediately": "OFFLINE_ACTIVATE_IMMEDIATELY",
    "stale_fallback": "OFFLINE_STALE_FALLBACK",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        if key == "max_concurrency":
            value = int(value)
        elif key == "fetch_timeout_sec":
            value = float(value)
        elif key in {"activate_immediately", "stale_fallback"}:
            value = _as_bool(value)
        merged[key] = value

    return merged


def load_config(config_path: str | Path = "config/worker.yml") -> WorkerConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    return WorkerConfig.from_dict(data)

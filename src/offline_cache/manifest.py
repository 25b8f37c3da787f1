"""Manifest of resources kept available offline."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Tuple

import yaml
from jsonschema import Draft7Validator

from .errors import ManifestError

logger = logging.getLogger(__name__)

_ENTRIES_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": {"type": "string", "minLength": 1},
}

MANIFEST_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "oneOf": [
        _ENTRIES_SCHEMA,
        {
            "type": "object",
            "required": ["resources"],
            "properties": {"resources": _ENTRIES_SCHEMA},
        },
    ],
}

_validator = Draft7Validator(MANIFEST_SCHEMA)


def validate_manifest(payload: Any) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: e.path)
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ManifestError(f"manifest validation failed: {messages}")


@dataclass(frozen=True)
class Manifest:
    """Ordered, immutable list of resource identifiers."""

    entries: Tuple[Any, ...] = ()

    @classmethod
    def from_iterable(cls, identifiers: Iterable[Any]) -> "Manifest":
        return cls(entries=tuple(identifiers))

    def __iter__(self) -> Iterator[Any]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def load_manifest(path: str | Path) -> Manifest:
    """
    Read a manifest from a JSON or YAML file.

    Accepts a bare list of identifiers or ``{"resources": [...]}``.
    """
    path = Path(path)
    if not path.exists():
        raise ManifestError(f"Manifest file not found: {path}")

    with path.open("r", encoding="utf-8") as handle:
        try:
            if path.suffix.lower() in {".yml", ".yaml"}:
                data = yaml.safe_load(handle)
            else:
                data = json.load(handle)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ManifestError(f"Manifest {path} is not parseable: {e}") from e

    validate_manifest(data)
    if isinstance(data, dict):
        data = data["resources"]

    manifest = Manifest.from_iterable(data)
    logger.debug(f"Loaded manifest {path} ({len(manifest)} entries)")
    return manifest

"""Lifecycle and intercept log schema enforcement."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)

LIFECYCLE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "event",
        "recorded_at",
        "store_name",
        "version",
        "ok",
        "latency_ms_total",
    ],
    "properties": {
        "event": {"type": "string", "enum": ["populate", "prune"]},
        "recorded_at": {"type": "string", "format": "date-time"},
        "store_name": {"type": "string"},
        "version": {"type": "string", "minLength": 1},
        "ok": {"type": "boolean"},
        "latency_ms_total": {"type": "number", "minimum": 0},
        "counts": {
            "type": "object",
            "additionalProperties": {"type": "integer", "minimum": 0},
        },
        "errors": {"type": "array", "items": {"type": "string"}},
        "ready_to_activate": {"type": "boolean"},
    },
}

INTERCEPT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["recorded_at", "method", "url", "source", "in_scope", "latency_ms_total"],
    "properties": {
        "recorded_at": {"type": "string", "format": "date-time"},
        "method": {"type": "string"},
        "url": {"type": "string"},
        "key": {"type": ["string", "null"]},
        "source": {"type": "string", "enum": ["cache", "network", "stale", "error"]},
        "in_scope": {"type": "boolean"},
        "status": {"type": ["integer", "null"]},
        "latency_ms_total": {"type": "number", "minimum": 0},
        "error": {"type": ["string", "null"]},
    },
}

_lifecycle_validator = Draft7Validator(LIFECYCLE_SCHEMA)
_intercept_validator = Draft7Validator(INTERCEPT_SCHEMA)


def _validate(validator: Draft7Validator, kind: str, payload: Dict[str, Any]) -> None:
    errors = sorted(validator.iter_errors(payload), key=lambda e: e.path)
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"{kind} log validation failed: {messages}")


def validate_lifecycle(payload: Dict[str, Any]) -> None:
    _validate(_lifecycle_validator, "lifecycle", payload)


def validate_intercept(payload: Dict[str, Any]) -> None:
    _validate(_intercept_validator, "intercept", payload)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LifecycleLogRecord:
    event: str
    store_name: str
    version: str
    ok: bool
    latency_ms_total: float
    counts: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    ready_to_activate: bool = False
    recorded_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "event": self.event,
            "recorded_at": self.recorded_at,
            "store_name": self.store_name,
            "version": self.version,
            "ok": self.ok,
            "latency_ms_total": self.latency_ms_total,
            "counts": self.counts,
            "errors": self.errors,
            "ready_to_activate": self.ready_to_activate,
        }
        validate_lifecycle(payload)
        return payload


@dataclass
class InterceptLogRecord:
    method: str
    url: str
    source: str
    in_scope: bool
    latency_ms_total: float
    key: Optional[str] = None
    status: Optional[int] = None
    error: Optional[str] = None
    recorded_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "recorded_at": self.recorded_at,
            "method": self.method,
            "url": self.url,
            "key": self.key,
            "source": self.source,
            "in_scope": self.in_scope,
            "status": self.status,
            "latency_ms_total": self.latency_ms_total,
            "error": self.error,
        }
        validate_intercept(payload)
        return payload


def emit(record: Any, level: int = logging.INFO) -> Dict[str, Any]:
    """Validate ``record`` and log it as one JSON line."""
    payload = record.to_dict()
    logger.log(level, json.dumps(payload, sort_keys=True))
    return payload

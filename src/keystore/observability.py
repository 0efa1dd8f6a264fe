"""Lookup log schema enforcement."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator

OUTCOMES = ["hit", "fetched", "empty", "failed", "misconfigured"]

LOOKUP_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "scope",
        "name",
        "outcome",
        "source",
        "latency_ms",
        "logged_at",
    ],
    "properties": {
        "scope": {"type": "string"},
        "name": {"type": "string"},
        "outcome": {"type": "string", "enum": OUTCOMES},
        "source": {"type": "string", "enum": ["cache", "keystore", "none"]},
        "latency_ms": {"type": "number", "minimum": 0},
        "status_code": {"type": ["integer", "null"]},
        "message": {"type": ["string", "null"]},
        "logged_at": {"type": "string", "format": "date-time"},
    },
    "additionalProperties": False,
}

_validator = Draft7Validator(LOOKUP_SCHEMA)


def validate_lookup(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: list(e.path))
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"lookup log validation failed: {messages}")


@dataclass
class LookupRecord:
    """One get_secret call. Never carries the secret value."""
    scope: str
    name: str
    outcome: str
    source: str
    latency_ms: float
    status_code: Optional[int] = None
    message: Optional[str] = None
    logged_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "scope": self.scope,
            "name": self.name,
            "outcome": self.outcome,
            "source": self.source,
            "latency_ms": max(self.latency_ms, 0.0),
            "status_code": self.status_code,
            "message": self.message,
            "logged_at": self.logged_at,
        }
        validate_lookup(payload)
        return payload

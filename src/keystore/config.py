"""Configuration loader for the keystore client."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_BASE_URL = "https://nfapi.nofrills.ai"
DEFAULT_TTL_SEC = 300.0
DEFAULT_TIMEOUT_SEC = 10.0


@dataclass(frozen=True)
class KeystoreConfig:
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    default_scope: str = ""
    ttl_seconds: float = DEFAULT_TTL_SEC
    timeout_seconds: float = DEFAULT_TIMEOUT_SEC

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeystoreConfig":
        return cls(
            base_url=str(data.get("base_url") or DEFAULT_BASE_URL).rstrip("/"),
            api_key=str(data.get("api_key") or ""),
            default_scope=str(data.get("default_scope") or ""),
            ttl_seconds=float(data.get("ttl_seconds", DEFAULT_TTL_SEC)),
            timeout_seconds=float(data.get("timeout_seconds", DEFAULT_TIMEOUT_SEC)),
        )

    @classmethod
    def from_env(cls) -> "KeystoreConfig":
        return cls.from_dict(merge_env_overrides({}))

    @property
    def is_complete(self) -> bool:
        return bool(self.api_key and self.default_scope)


ENV_MAP = {
    "base_url": "KEYSTORE_BASE_URL",
    "api_key": "DB_API_KEY",
    "default_scope": "PROJECT_ID",
    "ttl_seconds": "KEYSTORE_CACHE_TTL_SEC",
    "timeout_seconds": "KEYSTORE_TIMEOUT_SEC",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        if key in {"ttl_seconds", "timeout_seconds"}:
            try:
                value = float(value)
            except ValueError as exc:
                raise ValueError(f"{env_name} must be a number, got {value!r}") from exc
        merged[key] = value

    return merged


def load_config(config_path: Optional[str | Path] = None) -> KeystoreConfig:
    """Load config from an optional YAML file, then apply environment overrides."""
    data: Dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        data = load_yaml(path)

    data = merge_env_overrides(data)
    return KeystoreConfig.from_dict(data)

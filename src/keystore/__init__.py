"""
Keystore Secret Client
Cached secret lookups against the keystore read_secret API.
"""

from typing import Optional

from .cache import CacheEntry, SecretCache
from .client import KeystoreClient, SecretResponse
from .config import KeystoreConfig, load_config


def build_secret_cache(config: Optional[KeystoreConfig] = None) -> SecretCache:
    """Build the process's SecretCache. Call once at startup and pass it around."""
    return SecretCache.from_config(config or load_config())


__all__ = [
    'CacheEntry',
    'KeystoreClient',
    'KeystoreConfig',
    'SecretCache',
    'SecretResponse',
    'build_secret_cache',
    'load_config',
]

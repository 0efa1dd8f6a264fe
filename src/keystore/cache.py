#!/usr/bin/env python3
"""
Keystore Secret Cache
In-memory TTL cache in front of the keystore read_secret API.

Implements:
- get_secret(name, scope) → value | None
- invalidate(scope=None, name=None) → entries removed
- set_ttl(seconds)
- clear_expired() → entries removed
- get_stats() → {hits, misses, fetches, entries, ...}
"""

import logging
import math
import sys
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .client import KeystoreClient, SecretResponse
from .config import DEFAULT_TTL_SEC, KeystoreConfig
from .observability import LookupRecord

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


@dataclass(frozen=True)
class CacheEntry:
    scope: str
    name: str
    value: str
    cached_at: float
    expires_at: float

    def is_live(self, now: float) -> bool:
        return self.expires_at > now


def _coerce_ttl(ttl: Union[int, float, timedelta]) -> float:
    if isinstance(ttl, timedelta):
        seconds = ttl.total_seconds()
    elif isinstance(ttl, (int, float)) and not isinstance(ttl, bool):
        seconds = float(ttl)
    else:
        raise ValueError(f"TTL must be a number of seconds or a timedelta, got {ttl!r}")

    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"TTL must be positive, got {ttl!r}")
    return seconds


class SecretCache:
    """
    Process-local secret cache keyed by (scope, name).

    Design principles:
    - Fail soft: every lookup failure resolves to None, never an exception
    - Lazy expiry: stale entries are dropped when their key is read
    - No negative caching: an empty result is refetched on the next call
    - Lock held only for in-memory checks and writes, never across the network call
    """

    def __init__(
        self,
        client: KeystoreClient,
        default_scope: str = "",
        ttl: Union[int, float, timedelta] = DEFAULT_TTL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            client: Transport used on cache misses
            default_scope: Project id used when get_secret is called without one
            ttl: Time-to-live for newly cached entries (seconds or timedelta)
            clock: Time source for expiry checks
        """
        self._client = client
        self.default_scope = default_scope or ""
        self._ttl = _coerce_ttl(ttl)
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()

        if not self.default_scope:
            logger.warning("No default scope configured. Set PROJECT_ID environment variable.")

        self.stats = {
            "hits": 0,
            "misses": 0,
            "fetches": 0,
            "fetch_failures": 0,
            "writes": 0,
            "evictions": 0,
        }

        logger.info(
            f"SecretCache initialized (ttl={self._ttl}s, "
            f"default_scope={'configured' if self.default_scope else 'missing'})"
        )

    @classmethod
    def from_config(
        cls,
        config: KeystoreConfig,
        client: Optional[KeystoreClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "SecretCache":
        return cls(
            client=client or KeystoreClient(config),
            default_scope=config.default_scope,
            ttl=config.ttl_seconds,
            clock=clock,
        )

    @property
    def ttl(self) -> float:
        return self._ttl

    def set_ttl(self, ttl: Union[int, float, timedelta]) -> None:
        """
        Change the TTL applied to entries cached from now on.

        Existing entries keep their expiry. Non-positive values raise ValueError.
        """
        seconds = _coerce_ttl(ttl)
        with self._lock:
            self._ttl = seconds
        logger.info(f"Secret cache TTL set to {seconds}s")

    def get_secret(self, name: str, scope: Optional[str] = None) -> Optional[str]:
        """
        Resolve a secret, from cache when live, from the keystore otherwise.

        Args:
            name: Secret name
            scope: Project id (falls back to default_scope)

        Returns:
            The secret value, or None when it is absent or could not be fetched.
        """
        started = time.perf_counter()
        try:
            return self._lookup(name, scope or self.default_scope, started)
        except Exception as e:
            logger.error(f"Secret lookup error for {name!r}: {e}")
            return None

    def _lookup(self, name: str, scope: str, started: float) -> Optional[str]:
        if not scope:
            logger.error(
                "Project ID is required. Provide it as parameter or set PROJECT_ID env variable"
            )
            self._record(scope, name, "misconfigured", "none", started,
                         message="missing scope")
            return None
        if not name:
            logger.error("Secret name is required")
            self._record(scope, name, "misconfigured", "none", started,
                         message="missing name")
            return None

        cached = self._get_live(scope, name)
        if cached is not None:
            self._record(scope, name, "hit", "cache", started)
            return cached

        response = self._client.read_secret(scope, name)
        with self._lock:
            self.stats["fetches"] += 1
            if not response.ok:
                self.stats["fetch_failures"] += 1

        if not response.ok:
            logger.error(f"Failed to fetch secret {name!r} in {scope!r}: {response.message}")
            self._record(scope, name, "failed", "keystore", started, response)
            return None

        if not response.value:
            logger.debug(f"Secret {name!r} in {scope!r} has no value; not caching")
            self._record(scope, name, "empty", "keystore", started, response)
            return None

        self._put(scope, name, response.value)
        self._record(scope, name, "fetched", "keystore", started, response)
        return response.value

    def _get_live(self, scope: str, name: str) -> Optional[str]:
        key = (scope, name)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_live(now):
                self.stats["hits"] += 1
                return entry.value
            if entry is not None:
                del self._entries[key]
                self.stats["evictions"] += 1
            self.stats["misses"] += 1
            return None

    def _put(self, scope: str, name: str, value: str) -> None:
        with self._lock:
            now = self._clock()
            self._entries[(scope, name)] = CacheEntry(
                scope=scope,
                name=name,
                value=value,
                cached_at=now,
                expires_at=now + self._ttl,
            )
            self.stats["writes"] += 1
        logger.debug(f"Cached secret {name!r} in {scope!r} (ttl={self._ttl}s)")

    def invalidate(self, scope: Optional[str] = None, name: Optional[str] = None) -> int:
        """
        Drop cached secrets.

        - no arguments: everything
        - scope only: every secret in that scope
        - scope and name: that one secret (name alone uses default_scope)

        Returns the number of entries removed. Missing keys are a no-op.
        """
        with self._lock:
            if not scope and not name:
                cleared = len(self._entries)
                self._entries.clear()
                target = "all"
            elif not name:
                keys = [key for key in self._entries if key[0] == scope]
                for key in keys:
                    del self._entries[key]
                cleared = len(keys)
                target = f"scope {scope!r}"
            else:
                key = (scope or self.default_scope, name)
                cleared = 1 if self._entries.pop(key, None) is not None else 0
                target = f"secret {name!r} in {key[0]!r}"
            self.stats["evictions"] += cleared

        if cleared > 0:
            logger.info(f"Invalidated {cleared} cached secrets ({target})")
        return cleared

    def clear_expired(self) -> int:
        """Remove all expired entries now instead of waiting for their next read."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if not entry.is_live(now)]
            for key in expired:
                del self._entries[key]
            self.stats["evictions"] += len(expired)

        if expired:
            logger.info(f"Cleared {len(expired)} expired secrets")
        return len(expired)

    def _record(
        self,
        scope: str,
        name: str,
        outcome: str,
        source: str,
        started: float,
        response: Optional[SecretResponse] = None,
        message: Optional[str] = None,
    ) -> None:
        """Emit a structured lookup record at DEBUG."""
        if not logger.isEnabledFor(logging.DEBUG):
            return
        try:
            record = LookupRecord(
                scope=scope or "",
                name=name or "",
                outcome=outcome,
                source=source,
                latency_ms=(time.perf_counter() - started) * 1000,
                status_code=response.status_code if response else None,
                message=message or (response.message if response else None),
            )
            logger.debug(
                f"Secret lookup {outcome}: {name!r} in {scope!r}",
                extra={"lookup": record.to_dict()},
            )
        except ValueError as e:
            logger.warning(f"Lookup log error: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        with self._lock:
            stats = dict(self.stats)
            entries = len(self._entries)
            expired = sum(1 for entry in self._entries.values() if not entry.is_live(now))
            ttl = self._ttl

        total_requests = stats["hits"] + stats["misses"]
        hit_rate = (stats["hits"] / total_requests * 100) if total_requests > 0 else 0

        return {
            **stats,
            "hit_rate_percent": round(hit_rate, 1),
            "total_requests": total_requests,
            "cache_entries": entries,
            "expired_entries": expired,
            "ttl_seconds": ttl,
            "client": self._client.get_stats(),
        }

    def print_report(self):
        """Print cache statistics report."""
        stats = self.get_stats()

        print("\n" + "=" * 60)
        print("KEYSTORE SECRET CACHE REPORT")
        print("=" * 60)
        print(f"Hit Rate: {stats['hit_rate_percent']}% ({stats['hits']}/{stats['total_requests']})")
        print(f"Fetches: {stats['fetches']} ({stats['fetch_failures']} failed)")
        print(f"Cache Size: {stats['cache_entries']} entries ({stats['expired_entries']} expired)")
        print(f"Writes: {stats['writes']} | Evictions: {stats['evictions']}")
        print(f"TTL: {stats['ttl_seconds']}s")
        print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    from .config import load_config

    cache = SecretCache.from_config(load_config())
    for secret_name in sys.argv[1:]:
        value = cache.get_secret(secret_name)
        print(f"{secret_name}: {'found' if value else 'not found'}")

    cache.print_report()

#!/usr/bin/env python3
"""
Keystore API Client — Secret retrieval transport

Implements:
- read_secret(scope, name) -> SecretResponse
- get_stats() -> dict

One attempt per call, bounded by a timeout. Every failure is reported in the
returned SecretResponse and logged; nothing is raised to the caller.
"""

import logging
import time
import requests
from typing import Optional, Dict, Any
from dataclasses import dataclass, field, asdict

from .config import KeystoreConfig

logger = logging.getLogger(__name__)


@dataclass
class SecretResponse:
    """Outcome of a single read_secret call."""
    ok: bool
    value: Optional[str] = None
    message: Optional[str] = None
    status_code: Optional[int] = None
    elapsed_ms: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @property
    def found(self) -> bool:
        return self.ok and bool(self.value)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d.pop("value", None)
        return d


class KeystoreClient:
    """
    HTTP client for the keystore service.

    Design principles:
    - API key from configuration only (never logged)
    - Graceful degradation: failures return SecretResponse(ok=False), not exceptions
    - Single attempt, no retry
    - Timeout prevents hanging on an unresponsive keystore
    """

    READ_SECRET_ENDPOINT = "/api/v1/keystore/read_secret"

    def __init__(self, config: KeystoreConfig, session: Optional[requests.Session] = None):
        """
        Initialize keystore client.

        Args:
            config: Keystore configuration (base URL, API key, timeout)
            session: Optional requests session for connection reuse
        """
        self.base_url = config.base_url.rstrip("/")
        self.api_key = config.api_key
        self.timeout = config.timeout_seconds
        self._session = session

        if not self.api_key:
            logger.warning("No keystore API key configured. Set DB_API_KEY environment variable.")

        self._request_count = 0
        self._error_count = 0

        logger.info(
            f"KeystoreClient initialized (base_url={self.base_url}, "
            f"api_key={'configured' if self.api_key else 'missing'})"
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-API-Key": f"Key {self.api_key}",
        }

    def _request(self, method: str, endpoint: str, **kwargs) -> Optional[requests.Response]:
        """
        Make an authenticated request to the keystore API.

        Returns response on transport success (any status), None on failure.
        All errors are logged, never raised.
        """
        url = f"{self.base_url}{endpoint}"
        self._request_count += 1
        send = self._session.request if self._session is not None else requests.request

        try:
            response = send(
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )

            if response.status_code >= 400:
                logger.warning(
                    f"Keystore API error: {method} {endpoint} -> {response.status_code}"
                )
                self._error_count += 1

            return response

        except requests.Timeout:
            logger.error(f"Keystore API timeout: {method} {endpoint} (>{self.timeout}s)")
            self._error_count += 1
            return None
        except requests.ConnectionError:
            logger.error(f"Keystore API connection error: {method} {endpoint}")
            self._error_count += 1
            return None
        except requests.RequestException as e:
            logger.error(f"Keystore API request error: {method} {endpoint}: {e}")
            self._error_count += 1
            return None

    def read_secret(self, scope: str, name: str) -> SecretResponse:
        """
        Fetch one secret from the keystore.

        Args:
            scope: Project id owning the secret.
            name: Secret name within the project.

        Returns:
            SecretResponse. ok=False on transport, HTTP or logical failure;
            ok=True with value=None when the service has no value.
        """
        if not self.api_key:
            logger.error("Cannot read secret: no keystore API key configured")
            return SecretResponse(ok=False, message="API key not configured")

        start = time.time()
        response = self._request(
            "POST",
            self.READ_SECRET_ENDPOINT,
            json={"data": {"project_id": scope, "secret_name": name}},
        )
        elapsed_ms = (time.time() - start) * 1000

        if response is None:
            return SecretResponse(ok=False, message="Connection failed", elapsed_ms=elapsed_ms)

        if not 200 <= response.status_code < 300:
            return SecretResponse(
                ok=False,
                message=f"Keystore API error: {response.status_code}",
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Failed to parse keystore response for {name!r}: {e}")
            return SecretResponse(
                ok=False,
                message="Unexpected response format",
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
            )

        if not isinstance(data, dict) or not data.get("status"):
            message = data.get("message") if isinstance(data, dict) else None
            logger.error(f"Failed to fetch secret {name!r}: {message}")
            return SecretResponse(
                ok=False,
                message=message or "Keystore reported failure",
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
            )

        value = data.get("secret_value")
        if value is not None and not isinstance(value, str):
            value = str(value)

        return SecretResponse(
            ok=True,
            value=value or None,
            message=data.get("message"),
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get client-side statistics."""
        return {
            "base_url": self.base_url,
            "api_key_configured": bool(self.api_key),
            "total_requests": self._request_count,
            "total_errors": self._error_count,
            "error_rate_percent": (
                round(self._error_count / self._request_count * 100, 1)
                if self._request_count > 0 else 0
            ),
        }

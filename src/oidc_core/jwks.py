"""JWKS (JSON Web Key Set) retrieval and caching.

This module provides the pieces used to resolve a token's signing key:
- HttpxRequester: fetches JWKS documents over HTTP using httpx
- BaseCache / MemoryCache: TTL cache for fetched key sets
- KeyProvider: resolves a key ID against a JWKS URL, caching the whole set
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

import httpx
from jwcrypto import jwk

from .errors import ConfigurationError, InvalidTokenError

logger = logging.getLogger(__name__)


class HttpxRequester:
    """Fetch remote documents with httpx.

    A single sync client is created lazily and reused between calls. TLS
    verification is always on and redirects are followed. Nothing is retried;
    retry policy belongs to the caller.
    """

    def __init__(self, timeout: float = 10.0):
        self._timeout = timeout
        self._client: Optional[httpx.Client] = None
        self._lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        with self._lock:
            if self._client is None:
                self._client = httpx.Client(
                    timeout=httpx.Timeout(self._timeout),
                    follow_redirects=True,
                    verify=True,  # SSL verification enabled
                )
            return self._client

    def fetch(self, url: str) -> Tuple[int, bytes]:
        """Fetch a URL.

        Args:
            url: URL to fetch.

        Returns:
            tuple: HTTP status code and response body.

        Raises:
            ConfigurationError: If URL scheme is not http or https.
            httpx.HTTPError: If the request fails.
        """
        # Validate URL scheme
        parsed_url = urlparse(url)
        if parsed_url.scheme not in ("http", "https"):
            logger.error(f"Invalid URL scheme: {parsed_url.scheme}. URL: {url}")
            raise ConfigurationError(
                "Invalid JWKS URL configuration. "
                "Only http and https schemes are allowed."
            )

        response = self._get_client().get(url)
        return response.status_code, response.content

    def close(self):
        """Close the underlying httpx client."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None


class BaseCache(ABC):
    """Cache interface used for JWKS documents.

    Implementations may be in-memory, file or network backed; they are
    expected to provide their own concurrency safety. Values stored by this
    package are JSON-serialisable.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int) -> None:
        """Store a value for ttl seconds."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a value."""

    def get_or_fetch(self, key: str, ttl: int, fetch: Callable[[], Any]) -> Any:
        """Return the cached value for key, calling fetch and storing its result on a miss.

        Concurrent misses may each call fetch; the last write wins.
        """
        value = self.get(key)
        if value is not None:
            return value

        value = fetch()
        self.set(key, value, ttl)
        return value


class MemoryCache(BaseCache):
    """Thread-safe in-process cache with per-entry TTL."""

    def __init__(self):
        self._entries: Dict[str, Tuple[Any, float]] = {}  # key -> (value, expires_at)
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.time() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        # A TTL of zero disables caching for this entry
        if ttl <= 0:
            return
        with self._lock:
            self._entries[key] = (value, time.time() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()


# Process-wide defaults shared by every KeyProvider that is not given its own
_default_cache = MemoryCache()
_default_requester = HttpxRequester()


class KeyProvider:
    """Resolve signing keys from a remote JWKS endpoint.

    The complete key set of a JWKS URL is cached (keyed by the URL) so that
    tokens signed with different keys of the same tenant share one fetch. A
    key ID missing from the cached set triggers one forced refresh to pick up
    rotated keys.
    """

    def __init__(self, requester: Optional[Any] = None):
        self._requester = requester if requester is not None else _default_requester

    def get_key(
        self,
        jwks_uri: str,
        key_id: str,
        cache_ttl: int = 60,
        cache: Optional[BaseCache] = None,
    ) -> jwk.JWK:
        """Retrieve the public key for key_id from the JWKS at jwks_uri.

        Args:
            jwks_uri: JWKS endpoint URL.
            key_id: Key ID (kid) from the token header.
            cache_ttl: Seconds to cache the fetched key set.
            cache: Cache to use (default: process-wide MemoryCache).

        Returns:
            JWK: JSON Web Key for signature verification.

        Raises:
            InvalidTokenError: If the key set cannot be fetched or lacks key_id.
            ConfigurationError: If the JWKS URL is not usable.
        """
        if not isinstance(key_id, str) or not key_id:
            logger.warning("Key lookup failed: key ID is not a non-empty string")
            raise InvalidTokenError("key_not_found", "Signing key ID must be a string")

        cache = cache if cache is not None else _default_cache

        keys = self._read_cache(cache, jwks_uri)
        if keys is not None and key_id in keys:
            logger.debug(f"JWKS cache hit for {jwks_uri}")
        else:
            if keys is None:
                logger.debug(f"JWKS cache miss for {jwks_uri}, fetching...")
            else:
                logger.debug(f"Key {key_id} not in cached JWKS for {jwks_uri}, refreshing...")
            keys = self._fetch_keys(jwks_uri)
            self._write_cache(cache, jwks_uri, keys, cache_ttl)

        entry = keys.get(key_id)
        if entry is None:
            logger.warning(f"Key {key_id} not found in JWKS from {jwks_uri}")
            raise InvalidTokenError(
                "key_not_found", f"Signing key {key_id} not found in JWKS"
            )

        try:
            return jwk.JWK.from_json(json.dumps(entry))
        except Exception as e:
            logger.warning(f"Unusable key {key_id} in JWKS from {jwks_uri}: {e}")
            raise InvalidTokenError(
                "key_not_found", f"Signing key {key_id} could not be loaded"
            )

    def _fetch_keys(self, jwks_uri: str) -> Dict[str, Dict[str, Any]]:
        """Fetch a JWKS document and index its keys by kid."""
        try:
            status, body = self._requester.fetch(jwks_uri)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Error fetching JWKS from {jwks_uri}: {e}")
            raise InvalidTokenError("jwks_unavailable", "Unable to retrieve JWKS")

        if status != 200:
            logger.error(f"Error fetching JWKS from {jwks_uri}: HTTP {status}")
            raise InvalidTokenError("jwks_unavailable", "Unable to retrieve JWKS")

        try:
            document = json.loads(body)
            entries = document["keys"]
            if not isinstance(entries, list):
                raise TypeError("'keys' is not a list")
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Malformed JWKS from {jwks_uri}: {e}")
            raise InvalidTokenError("jwks_unavailable", "Malformed JWKS document")

        return {
            entry["kid"]: entry
            for entry in entries
            if isinstance(entry, dict) and isinstance(entry.get("kid"), str)
        }

    @staticmethod
    def _read_cache(cache: BaseCache, key: str) -> Optional[Dict[str, Dict[str, Any]]]:
        try:
            return cache.get(key)
        except Exception as e:
            logger.warning(f"JWKS cache read failed for {key}: {e}")
            return None

    @staticmethod
    def _write_cache(cache: BaseCache, key: str, value: Any, ttl: int) -> None:
        try:
            cache.set(key, value, ttl)
        except Exception as e:
            logger.warning(f"JWKS cache write failed for {key}: {e}")

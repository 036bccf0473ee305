"""
JWKS client for the authorization server's published signing keys.
"""

import asyncio
import time
from typing import Dict, Any, Optional

import httpx

from shared.logging import get_logger
from shared.metrics import MetricsCollector


class JWKSClient:
    """Client for fetching and caching the remote JWKS."""

    def __init__(
        self,
        jwks_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        cache_ttl: int = 3600,
        min_refresh_interval: float = 30,
        http_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.jwks_url = jwks_url
        self.cache_ttl = cache_ttl
        self.min_refresh_interval = min_refresh_interval
        self.metrics = metrics
        self.logger = get_logger("signin.jwks")

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=http_timeout)

        # Cache for JWKS
        self._jwks_cache: Optional[Dict[str, Any]] = None
        self._cache_timestamp: float = 0

        # kid -> JWK, rebuilt on every refresh
        self._key_cache: Dict[str, Dict[str, Any]] = {}

        # Bound lazily to the event loop that first refreshes.
        self._lock: Optional[asyncio.Lock] = None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _is_fresh(self) -> bool:
        return (
            self._jwks_cache is not None
            and time.time() - self._cache_timestamp < self.cache_ttl
        )

    async def get_jwks(self, force: bool = False) -> Dict[str, Any]:
        """Get JWKS from cache or fetch from the authorization server."""
        if not force and self._is_fresh():
            return self._jwks_cache

        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            # Another caller may have refreshed while we waited.
            if not force and self._is_fresh():
                return self._jwks_cache
            if force and self._jwks_cache is not None and \
                    time.time() - self._cache_timestamp < self.min_refresh_interval:
                return self._jwks_cache

            try:
                response = await self._client.get(self.jwks_url)
                response.raise_for_status()
                jwks_data = response.json()
                keys = jwks_data.get("keys") if isinstance(jwks_data, dict) else None
                if not isinstance(keys, list):
                    raise ValueError("JWKS response missing 'keys' array")
            except (httpx.HTTPError, ValueError) as e:
                self.logger.error("Failed to fetch JWKS", error=str(e))
                if self.metrics:
                    self.metrics.record_jwks_refresh("error")
                # Return cached data if available, even if stale
                if self._jwks_cache is not None:
                    self.logger.warning("Using stale JWKS cache due to fetch failure")
                    return self._jwks_cache
                raise

            self._jwks_cache = jwks_data
            self._cache_timestamp = time.time()
            self._key_cache = {
                key["kid"]: key for key in keys
                if isinstance(key, dict) and isinstance(key.get("kid"), str)
            }
            if self.metrics:
                self.metrics.record_jwks_refresh("ok")

            self.logger.info("JWKS refreshed successfully", keys_count=len(keys))
            return self._jwks_cache

    async def get_key(self, kid: str) -> Optional[Dict[str, Any]]:
        """Resolve a key id to its JWK, refreshing once on a cache miss."""
        await self.get_jwks()
        key = self._key_cache.get(kid)
        if key is not None:
            return key

        # Key might be rotated; refresh once more eagerly.
        await self.get_jwks(force=True)
        key = self._key_cache.get(kid)
        if key is None:
            self.logger.warning("Key not found", kid=kid)
        return key

    async def check_health(self) -> str:
        """Return 'ok' if the JWKS can be loaded, otherwise 'error'."""
        try:
            await self.get_jwks()
            return "ok"
        except Exception as exc:
            self.logger.error("JWKS health check failed", error=str(exc))
            return "error"

    def clear_cache(self):
        """Clear all caches."""
        self._jwks_cache = None
        self._cache_timestamp = 0
        self._key_cache = {}
        self.logger.info("JWKS cache cleared")

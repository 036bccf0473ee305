"""
Unit tests for JWKSClient.
"""

import asyncio

import httpx
import pytest

from service_signin.app.jwks.client import JWKSClient

JWKS_URL = "https://auth.example.test/.well-known/jwks.json"


class FakeKeySet:
    """Serves a mutable JWKS and counts fetches."""

    def __init__(self, keys):
        self.keys = list(keys)
        self.calls = 0
        self.status_code = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "down"})
        return httpx.Response(200, json={"keys": self.keys})


def rsa_jwk(kid: str):
    return {"kty": "RSA", "kid": kid, "use": "sig", "n": "mock-n", "e": "AQAB", "alg": "RS256"}


class TestJWKSClient:
    """Test cases for JWKSClient."""

    @pytest.fixture
    def key_set(self):
        return FakeKeySet([rsa_jwk("mock-key-1")])

    @pytest.fixture
    def jwks_client(self, key_set):
        client = httpx.AsyncClient(transport=httpx.MockTransport(key_set.handler))
        return JWKSClient(JWKS_URL, http_client=client, min_refresh_interval=0)

    @pytest.mark.asyncio
    async def test_get_jwks_success(self, jwks_client, key_set):
        result = await jwks_client.get_jwks()

        assert result == {"keys": key_set.keys}
        assert jwks_client._cache_timestamp > 0
        assert key_set.calls == 1

    @pytest.mark.asyncio
    async def test_get_jwks_cached(self, jwks_client, key_set):
        await jwks_client.get_jwks()
        await jwks_client.get_jwks()

        assert key_set.calls == 1

    @pytest.mark.asyncio
    async def test_get_key_success(self, jwks_client):
        result = await jwks_client.get_key("mock-key-1")

        assert result["kid"] == "mock-key-1"

    @pytest.mark.asyncio
    async def test_get_key_refreshes_on_miss(self, jwks_client, key_set):
        await jwks_client.get_jwks()
        key_set.keys.append(rsa_jwk("rotated-key"))

        result = await jwks_client.get_key("rotated-key")

        assert result["kid"] == "rotated-key"
        assert key_set.calls == 2

    @pytest.mark.asyncio
    async def test_get_key_not_found(self, jwks_client, key_set):
        result = await jwks_client.get_key("nonexistent-key")

        assert result is None

    @pytest.mark.asyncio
    async def test_forced_refresh_rate_limited(self, key_set):
        client = httpx.AsyncClient(transport=httpx.MockTransport(key_set.handler))
        jwks_client = JWKSClient(JWKS_URL, http_client=client, min_refresh_interval=60)

        assert await jwks_client.get_key("nonexistent-key") is None
        assert await jwks_client.get_key("nonexistent-key") is None

        assert key_set.calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch(self, jwks_client, key_set):
        results = await asyncio.gather(*(jwks_client.get_key("mock-key-1") for _ in range(10)))

        assert all(r["kid"] == "mock-key-1" for r in results)
        assert key_set.calls == 1

    @pytest.mark.asyncio
    async def test_get_jwks_failure_with_stale_cache(self, jwks_client, key_set):
        await jwks_client.get_jwks()
        jwks_client._cache_timestamp -= 4000
        key_set.status_code = 500

        result = await jwks_client.get_jwks()

        assert result == {"keys": key_set.keys}

    @pytest.mark.asyncio
    async def test_get_jwks_failure_no_cache(self, jwks_client, key_set):
        key_set.status_code = 500

        with pytest.raises(httpx.HTTPStatusError):
            await jwks_client.get_jwks()

    @pytest.mark.asyncio
    async def test_get_jwks_missing_keys_array(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"not_keys": []})
        ))
        jwks_client = JWKSClient(JWKS_URL, http_client=client)

        with pytest.raises(ValueError):
            await jwks_client.get_jwks()

    @pytest.mark.asyncio
    async def test_check_health(self, jwks_client, key_set):
        assert await jwks_client.check_health() == "ok"

        jwks_client.clear_cache()
        key_set.status_code = 503

        assert await jwks_client.check_health() == "error"

    @pytest.mark.asyncio
    async def test_clear_cache(self, jwks_client):
        await jwks_client.get_jwks()

        jwks_client.clear_cache()

        assert jwks_client._jwks_cache is None
        assert jwks_client._cache_timestamp == 0
        assert len(jwks_client._key_cache) == 0

    def test_client_built_outside_event_loop(self, key_set):
        client = httpx.AsyncClient(transport=httpx.MockTransport(key_set.handler))
        jwks_client = JWKSClient(JWKS_URL, http_client=client)

        assert jwks_client._lock is None

        async def concurrent_misses():
            return await asyncio.gather(*(jwks_client.get_key("mock-key-1") for _ in range(5)))

        results = asyncio.run(concurrent_misses())

        assert all(r["kid"] == "mock-key-1" for r in results)
        assert key_set.calls == 1

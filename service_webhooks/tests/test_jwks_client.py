"""
Unit tests for key sources and the key resolver.
"""

import asyncio

import httpx
import pytest
from unittest.mock import AsyncMock

from service_webhooks.app.jwks.client import CachingKeySource, HttpKeySource, KeyResolver, KeySet
from shared.errors import KeyNotFoundError, KeySetUnavailableError
from shared.test_helpers import create_jwks, create_signing_key


JWKS_URL = "https://issuer.test/v1/webhooks/jwks.json"


@pytest.fixture(scope="module")
def signing_key():
    """RSA key published as k1."""
    return create_signing_key("k1")


@pytest.fixture(scope="module")
def other_key():
    """RSA key published as k2."""
    return create_signing_key("k2")


def make_client(handler):
    """Create an httpx client served by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestKeySet:
    """Test cases for KeySet parsing and lookup."""

    def test_from_document(self, signing_key, other_key):
        """Test building a key set from a JWKS document."""
        key_set = KeySet.from_document(create_jwks(signing_key, other_key))

        assert len(key_set) == 2
        assert key_set.find("k2").key_id == "k2"

    def test_find_is_exact_match(self, signing_key):
        """Test that kid lookup is an exact string match."""
        key_set = KeySet.from_document(create_jwks(signing_key))

        assert key_set.find("K1") is None
        assert key_set.find("k1 ") is None
        assert key_set.find("k") is None

    def test_first_match_wins_on_duplicate_kid(self, signing_key):
        """Test that the first key wins when a kid is duplicated."""
        duplicate = create_signing_key("k1")
        key_set = KeySet.from_document(create_jwks(signing_key, duplicate))

        found = key_set.find("k1")

        assert found.key.public_numbers() == signing_key.private_key.public_key().public_numbers()

    def test_skips_unusable_and_encryption_keys(self, signing_key):
        """Test that unusable, symmetric and encryption keys are skipped."""
        extra = [
            {"kty": "RSA", "kid": "broken", "n": "AQAB"},
            {"kty": "unknown", "kid": "weird"},
            {"kty": "oct", "kid": "shared", "k": "c2VjcmV0"},
            dict(signing_key.to_jwk(), kid="enc", use="enc"),
        ]

        key_set = KeySet.from_document(create_jwks(signing_key, extra=extra))

        assert len(key_set) == 1
        assert key_set.find("enc") is None

    @pytest.mark.parametrize("document", [
        [],
        "keys",
        {},
        {"keys": {"kid": "k1"}},
        {"keys": ["k1"]},
    ])
    def test_rejects_invalid_documents(self, document):
        """Test documents not shaped like a JWKS."""
        with pytest.raises(KeySetUnavailableError):
            KeySet.from_document(document)


class TestHttpKeySource:
    """Test cases for HttpKeySource."""

    @pytest.mark.asyncio
    async def test_fetch_success(self, signing_key):
        """Test successful JWKS retrieval."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=create_jwks(signing_key))

        async with make_client(handler) as client:
            key_set = await HttpKeySource(JWKS_URL, client=client).fetch()

        assert key_set.find("k1") is not None
        assert requests[0].method == "GET"
        assert str(requests[0].url) == JWKS_URL

    @pytest.mark.asyncio
    async def test_fetch_every_call(self, signing_key):
        """Test that every fetch hits the endpoint."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=create_jwks(signing_key))

        async with make_client(handler) as client:
            source = HttpKeySource(JWKS_URL, client=client)
            await source.fetch()
            await source.fetch()

        assert len(calls) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [404, 500, 503])
    async def test_fetch_error_status(self, status_code):
        """Test JWKS retrieval with an error status."""
        async with make_client(lambda request: httpx.Response(status_code)) as client:
            with pytest.raises(KeySetUnavailableError):
                await HttpKeySource(JWKS_URL, client=client).fetch()

    @pytest.mark.asyncio
    async def test_fetch_invalid_json(self):
        """Test JWKS retrieval with a non-JSON body."""
        async with make_client(lambda request: httpx.Response(200, content=b"<html>")) as client:
            with pytest.raises(KeySetUnavailableError):
                await HttpKeySource(JWKS_URL, client=client).fetch()

    @pytest.mark.asyncio
    async def test_fetch_invalid_structure(self):
        """Test JWKS retrieval with an invalid keys member."""
        async with make_client(lambda request: httpx.Response(200, json={"keys": None})) as client:
            with pytest.raises(KeySetUnavailableError):
                await HttpKeySource(JWKS_URL, client=client).fetch()

    @pytest.mark.asyncio
    async def test_fetch_timeout(self):
        """Test JWKS retrieval timing out."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(KeySetUnavailableError) as exc_info:
                await HttpKeySource(JWKS_URL, timeout=0.1, client=client).fetch()

        assert isinstance(exc_info.value.__cause__, httpx.TimeoutException)

    @pytest.mark.asyncio
    async def test_fetch_connection_error(self):
        """Test JWKS retrieval with a connection failure."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(KeySetUnavailableError):
                await HttpKeySource(JWKS_URL, client=client).fetch()

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        """Test that cancelling a fetch cancels the request."""
        async def handler(request):
            await asyncio.sleep(10)
            return httpx.Response(200, json={"keys": []})

        async with make_client(handler) as client:
            task = asyncio.ensure_future(HttpKeySource(JWKS_URL, client=client).fetch())
            await asyncio.sleep(0.01)
            task.cancel()

            with pytest.raises(asyncio.CancelledError):
                await task

    def test_timeout_must_be_positive(self):
        """Test that a fetch timeout is mandatory."""
        with pytest.raises(ValueError):
            HttpKeySource(JWKS_URL, timeout=0)


class TestCachingKeySource:
    """Test cases for CachingKeySource."""

    @pytest.fixture
    def key_set(self, signing_key):
        return KeySet.from_document(create_jwks(signing_key))

    @pytest.mark.asyncio
    async def test_zero_ttl_always_refetches(self, key_set):
        """Test that a zero TTL disables caching."""
        source = AsyncMock()
        source.fetch.return_value = key_set
        caching = CachingKeySource(source, ttl=0)

        await caching.fetch()
        await caching.fetch()

        assert source.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_serves_cached_set_within_ttl(self, key_set):
        """Test key set retrieval from cache."""
        now = [100.0]
        source = AsyncMock()
        source.fetch.return_value = key_set
        caching = CachingKeySource(source, ttl=60, clock=lambda: now[0])

        first = await caching.fetch()
        now[0] += 59
        second = await caching.fetch()

        assert first is second
        assert source.fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_refetches_after_ttl(self, key_set):
        """Test that an expired key set is refetched."""
        now = [100.0]
        source = AsyncMock()
        source.fetch.return_value = key_set
        caching = CachingKeySource(source, ttl=60, clock=lambda: now[0])

        await caching.fetch()
        now[0] += 60
        await caching.fetch()

        assert source.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_is_not_masked_by_stale_set(self, key_set):
        """Test refresh failure with a stale cache."""
        now = [100.0]
        source = AsyncMock()
        source.fetch.side_effect = [key_set, KeySetUnavailableError()]
        caching = CachingKeySource(source, ttl=60, clock=lambda: now[0])

        await caching.fetch()
        now[0] += 120

        with pytest.raises(KeySetUnavailableError):
            await caching.fetch()

    def test_lock_created_inside_running_loop(self, key_set):
        """Test a cache built outside any loop serves concurrent refreshes later."""

        async def slow_fetch():
            await asyncio.sleep(0.01)
            return key_set

        source = AsyncMock()
        source.fetch.side_effect = slow_fetch
        caching = CachingKeySource(source, ttl=60)

        async def fetch_concurrently():
            return await asyncio.gather(*(caching.fetch() for _ in range(3)))

        results = asyncio.run(fetch_concurrently())

        assert all(result is key_set for result in results)
        assert source.fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_clear(self, key_set):
        """Test cache clearing."""
        source = AsyncMock()
        source.fetch.return_value = key_set
        caching = CachingKeySource(source, ttl=60)

        await caching.fetch()
        caching.clear()
        await caching.fetch()

        assert source.fetch.await_count == 2


class TestKeyResolver:
    """Test cases for KeyResolver."""

    @pytest.mark.asyncio
    async def test_resolve_key(self, signing_key, other_key):
        """Test successful key resolution."""
        source = AsyncMock()
        source.fetch.return_value = KeySet.from_document(create_jwks(signing_key, other_key))

        key = await KeyResolver(source).resolve_key("k2")

        assert key.key_id == "k2"
        source.fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resolve_key_not_found(self, signing_key):
        """Test key resolution for a non-existent kid."""
        source = AsyncMock()
        source.fetch.return_value = KeySet.from_document(create_jwks(signing_key))

        with pytest.raises(KeyNotFoundError) as exc_info:
            await KeyResolver(source).resolve_key("missing")

        assert exc_info.value.key_id == "missing"
        assert exc_info.value.details == {"kid": "missing"}

    @pytest.mark.asyncio
    async def test_resolve_key_empty_set(self):
        """Test key resolution against an empty key set."""
        source = AsyncMock()
        source.fetch.return_value = KeySet()

        with pytest.raises(KeyNotFoundError):
            await KeyResolver(source).resolve_key("k1")

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self):
        """Test that key set failures reach the caller."""
        source = AsyncMock()
        source.fetch.side_effect = KeySetUnavailableError()

        with pytest.raises(KeySetUnavailableError):
            await KeyResolver(source).resolve_key("k1")

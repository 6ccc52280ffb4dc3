"""
JWKS client for webhook signing keys.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import httpx
from jwt import PyJWK
from jwt.exceptions import PyJWTError

from shared.errors import KeyNotFoundError, KeySetUnavailableError
from shared.logging import get_logger


logger = get_logger("webhooks.jwks")


@dataclass(frozen=True)
class KeySet:
    """Public keys published by the issuer, in document order."""

    keys: Tuple[PyJWK, ...] = ()

    @classmethod
    def from_document(cls, document: Any) -> "KeySet":
        """Build a key set from a parsed JWKS document.

        Entries that cannot be used to verify signatures are skipped. A
        document that is not shaped like a JWKS raises
        ``KeySetUnavailableError``.
        """
        if not isinstance(document, dict):
            raise KeySetUnavailableError("JWKS response is not a JSON object")

        entries = document.get("keys")
        if not isinstance(entries, list):
            raise KeySetUnavailableError("JWKS response missing 'keys' array")

        keys = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise KeySetUnavailableError(
                    "JWKS entry is not a JSON object", details={"index": index}
                )

            use = entry.get("use")
            if use is not None and use != "sig":
                logger.warning("Skipping non-signing JWK", kid=entry.get("kid"), use=use)
                continue
            if entry.get("kty") == "oct":
                logger.warning("Skipping symmetric JWK", kid=entry.get("kid"))
                continue

            try:
                keys.append(PyJWK(entry))
            except (PyJWTError, ValueError, TypeError) as exc:
                logger.warning("Skipping unusable JWK", kid=entry.get("kid"), error=str(exc))

        return cls(keys=tuple(keys))

    def find(self, key_id: str) -> Optional[PyJWK]:
        """Return the first key whose kid equals ``key_id`` exactly."""
        for key in self.keys:
            if key.key_id == key_id:
                return key
        return None

    def __len__(self) -> int:
        return len(self.keys)


class KeySource(Protocol):
    """Trusted source of the issuer's current key set."""

    async def fetch(self) -> KeySet:
        ...


class HttpKeySource:
    """Fetches the key set from a JWKS endpoint on every call."""

    def __init__(
        self,
        jwks_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("JWKS fetch timeout must be positive")
        self.jwks_url = jwks_url
        self.timeout = timeout
        self._client = client

    async def fetch(self) -> KeySet:
        """GET the JWKS document and parse it into a ``KeySet``."""
        try:
            if self._client is not None:
                document = await self._get(self._client)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, verify=True) as client:
                    document = await self._get(client)
        except httpx.HTTPError as exc:
            logger.error("Failed to fetch JWKS", url=self.jwks_url, error=str(exc))
            raise KeySetUnavailableError(
                "Failed to fetch JWKS", details={"url": self.jwks_url}
            ) from exc
        except ValueError as exc:
            logger.error("JWKS response is not valid JSON", url=self.jwks_url)
            raise KeySetUnavailableError(
                "JWKS response is not valid JSON", details={"url": self.jwks_url}
            ) from exc

        key_set = KeySet.from_document(document)
        logger.info("JWKS fetched", url=self.jwks_url, keys_count=len(key_set))
        return key_set

    async def _get(self, client: httpx.AsyncClient) -> Dict[str, Any]:
        response = await client.get(self.jwks_url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()


class CachingKeySource:
    """Wraps a key source with a time-bounded cache.

    A ``ttl`` of zero or less disables caching. A failed refresh always
    propagates; a stale set is never served in its place.
    """

    def __init__(
        self,
        source: KeySource,
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.ttl = ttl
        self._clock = clock
        self._key_set: Optional[KeySet] = None
        self._fetched_at: float = 0.0
        self._lock: Optional[asyncio.Lock] = None

    def _is_fresh(self) -> bool:
        return self._key_set is not None and (self._clock() - self._fetched_at) < self.ttl

    async def fetch(self) -> KeySet:
        if self.ttl <= 0:
            return await self.source.fetch()

        if self._is_fresh():
            return self._key_set

        # Created on first use so it binds to the running loop.
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            if self._is_fresh():
                return self._key_set

            key_set = await self.source.fetch()
            self._key_set = key_set
            self._fetched_at = self._clock()
            return key_set

    def clear(self) -> None:
        """Drop the cached key set."""
        self._key_set = None
        self._fetched_at = 0.0
        logger.info("JWKS cache cleared")


class KeyResolver:
    """Locates the public key that signed a webhook."""

    def __init__(self, source: KeySource) -> None:
        self.source = source

    async def resolve_key(self, key_id: str) -> PyJWK:
        """Fetch the current key set and return the key for ``key_id``.

        Raises:
            KeySetUnavailableError: if the key set cannot be fetched.
            KeyNotFoundError: if no key carries ``key_id``.
        """
        key_set = await self.source.fetch()
        key = key_set.find(key_id)
        if key is None:
            logger.warning("Key not found", kid=key_id, keys_count=len(key_set))
            raise KeyNotFoundError(key_id)
        return key

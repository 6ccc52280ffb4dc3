"""
Webhook signature verification entry point.

Wires header decoding, key resolution and signature verification into a
single call. Any failure raises a ``WebhookVerificationError`` subclass and
the webhook must then be rejected.
"""

from __future__ import annotations

import hmac
from typing import Optional, Union

import httpx

from shared.config import VerifierSettings, get_settings
from shared.errors import (
    KeySetUnavailableError,
    MalformedSignatureError,
    SignatureInvalidError,
    WebhookVerificationError,
)
from shared.logging import get_logger
from shared.retry import RetryConfig, retry_on_exception

from ..jwks.client import CachingKeySource, HttpKeySource, KeyResolver, KeySource
from ..jws.header import decode_header, encode_segment
from .verifier import SignatureVerifier


class WebhookVerifier:
    """Verifies detached-payload JWS signatures on inbound webhooks."""

    def __init__(
        self,
        resolver: KeyResolver,
        verifier: Optional[SignatureVerifier] = None,
        *,
        detached_payload: bool = True,
    ) -> None:
        self.resolver = resolver
        self.verifier = verifier or SignatureVerifier()
        self.detached_payload = detached_payload
        self.logger = get_logger("webhooks.verification")

    @classmethod
    def from_settings(
        cls,
        settings: VerifierSettings,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "WebhookVerifier":
        """Build a verifier from configuration."""
        source: KeySource = HttpKeySource(
            settings.jwks_url,
            timeout=settings.jwks_timeout,
            client=client,
        )
        if settings.jwks_cache_ttl > 0:
            source = CachingKeySource(source, ttl=settings.jwks_cache_ttl)

        return cls(
            KeyResolver(source),
            SignatureVerifier(settings.supported_algorithms),
            detached_payload=settings.detached_payload,
        )

    async def verify_webhook_signature(self, jws_compact: str, payload: Union[bytes, str]) -> None:
        """Verify that ``payload`` was signed by the issuer.

        Args:
            jws_compact: Compact JWS from the signature header, normally
                ``<header>..<signature>``.
            payload: Raw webhook body.

        Raises:
            WebhookVerificationError: subclass describing why the webhook
                must be rejected.
        """
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        try:
            verified = await self._verify(jws_compact, payload)
        except WebhookVerificationError as exc:
            self.logger.warning("Webhook signature rejected", code=exc.code)
            raise

        self.logger.debug("Webhook signature verified", payload_size=len(verified))

    async def _verify(self, jws_compact: str, payload: bytes) -> bytes:
        if not jws_compact.isascii():
            raise MalformedSignatureError("JWS must be ASCII text")

        segments = jws_compact.split(".")
        if len(segments) != 3:
            raise MalformedSignatureError(
                "JWS must have exactly 3 segments", details={"segments": len(segments)}
            )
        header_segment, payload_segment, signature_segment = segments
        if self.detached_payload and payload_segment:
            raise MalformedSignatureError("Detached JWS must have an empty payload segment")

        header = decode_header(header_segment)
        key = await self.resolver.resolve_key(header.key_id)

        if self.detached_payload:
            signed_data = ".".join(
                (header_segment, encode_segment(payload), signature_segment)
            ).encode("ascii")
        else:
            signed_data = jws_compact.encode("ascii")

        verified = self.verifier.verify(signed_data, header.algorithm, key)

        # The embedded payload must be the body that was actually delivered.
        if not hmac.compare_digest(verified, payload):
            raise SignatureInvalidError()

        return verified


async def verify_webhook_signature(
    jws_compact: str,
    payload: Union[bytes, str],
    settings: Optional[VerifierSettings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> None:
    """One-shot verification using configured settings.

    Only ``KeySetUnavailableError`` is retried, and only when
    ``fetch_retry_attempts`` is greater than one.
    """
    settings = settings or get_settings()
    verifier = WebhookVerifier.from_settings(settings, client=client)

    retry_config = RetryConfig(
        max_attempts=settings.fetch_retry_attempts,
        base_delay=settings.fetch_retry_delay,
        max_delay=max(settings.fetch_retry_delay, settings.jwks_timeout),
    )
    verify = retry_on_exception((KeySetUnavailableError,), retry_config)(
        verifier.verify_webhook_signature
    )
    await verify(jws_compact, payload)

"""
Cryptographic verification of reconstructed JWS signed data.
"""

from __future__ import annotations

from typing import Iterable

from jwt import PyJWK
from jwt.api_jws import PyJWS
from jwt.exceptions import PyJWTError

from shared.errors import SignatureInvalidError, UnsupportedAlgorithmError
from shared.logging import get_logger


# RSASSA-PSS family; symmetric and "none" algorithms are never accepted.
RSA_PSS_ALGORITHMS = frozenset({"PS256", "PS384", "PS512"})


class SignatureVerifier:
    """Verifies compact JWS signed data against a resolved public key."""

    def __init__(self, supported_algorithms: Iterable[str] = ("PS256",)) -> None:
        algorithms = frozenset(supported_algorithms)
        if not algorithms:
            raise ValueError("At least one signature algorithm must be supported")
        unknown = algorithms - RSA_PSS_ALGORITHMS
        if unknown:
            raise ValueError(f"Unsupported signature algorithms configured: {sorted(unknown)}")

        self.supported_algorithms = algorithms
        self.logger = get_logger("webhooks.verifier")
        self._jws = PyJWS(algorithms=sorted(algorithms))

    def verify(self, signed_data: bytes, algorithm: str, key: PyJWK) -> bytes:
        """Verify ``signed_data`` and return the payload it carries.

        ``signed_data`` is a complete compact JWS (header, payload and
        signature segments). The signature is checked with ``key`` using
        exactly ``algorithm``.

        Raises:
            UnsupportedAlgorithmError: if ``algorithm`` is not supported.
            SignatureInvalidError: on any verification failure.
        """
        if algorithm not in self.supported_algorithms:
            raise UnsupportedAlgorithmError(algorithm)

        try:
            decoded = self._jws.decode_complete(
                signed_data,
                key=key.key,
                algorithms=[algorithm],
            )
        except (PyJWTError, TypeError, ValueError) as exc:
            self.logger.info("Signature rejected", alg=algorithm, kid=key.key_id)
            raise SignatureInvalidError() from exc

        return decoded["payload"]

"""
Shared error handling for the webhook verification service.

Every failure aborts verification. Callers must treat the webhook as
untrusted on any of these errors, regardless of kind.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class WebhookVerificationError(Exception):
    """Base exception for webhook verification failures."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class MalformedSignatureError(WebhookVerificationError):
    """Compact JWS does not have the expected three-segment shape."""

    def __init__(self, message: str = "Malformed JWS signature", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_SIGNATURE", message, details)


class MalformedHeaderError(WebhookVerificationError):
    """Protected header could not be decoded or lacks required fields."""

    def __init__(self, message: str = "Malformed JWS protected header", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_HEADER", message, details)


class KeySetUnavailableError(WebhookVerificationError):
    """The JWKS endpoint could not provide a usable key set."""

    def __init__(self, message: str = "Key set unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("KEY_SET_UNAVAILABLE", message, details)


class KeyNotFoundError(WebhookVerificationError):
    """No key in the fetched set matches the requested key ID."""

    def __init__(self, key_id: str):
        self.key_id = key_id
        super().__init__("KEY_NOT_FOUND", "Signing key not found", {"kid": key_id})


class UnsupportedAlgorithmError(WebhookVerificationError):
    """The declared signature algorithm is not one the verifier implements."""

    def __init__(self, algorithm: str):
        self.algorithm = algorithm
        super().__init__("UNSUPPORTED_ALGORITHM", "Unsupported signature algorithm", {"alg": algorithm})


class SignatureInvalidError(WebhookVerificationError):
    """Cryptographic verification failed.

    Carries no detail about the cause so callers cannot be used as an
    oracle for why a forged signature was rejected.
    """

    def __init__(self):
        super().__init__("SIGNATURE_INVALID", "Invalid signature")

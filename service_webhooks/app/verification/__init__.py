"""
Webhook signature verification.

``WebhookVerifier`` is the public entry point; ``SignatureVerifier`` holds
the cryptographic check.
"""

from .orchestrator import WebhookVerifier, verify_webhook_signature
from .verifier import RSA_PSS_ALGORITHMS, SignatureVerifier

__all__ = [
    "RSA_PSS_ALGORITHMS",
    "SignatureVerifier",
    "WebhookVerifier",
    "verify_webhook_signature",
]

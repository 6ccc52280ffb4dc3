"""
JWKS client package.

Contains logic for retrieving JSON Web Key Sets (JWKS) from the issuer and
selecting the public key that signed a webhook.

Key points:
- Every fetch has a bounded timeout; there are no retries at this layer.
- Caching is an explicit policy (``CachingKeySource``), off by default.
- Keys are selected by exact kid match; the first match in document order wins.
"""

from .client import (
    CachingKeySource,
    HttpKeySource,
    KeyResolver,
    KeySet,
    KeySource,
)

__all__ = ["CachingKeySource", "HttpKeySource", "KeyResolver", "KeySet", "KeySource"]

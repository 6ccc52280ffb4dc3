"""
Shared configuration management for the webhook verification service.
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_JWKS_URL = "https://api.universign.com/v1/webhooks/jwks.json"


class VerifierSettings(BaseSettings):
    """Settings for webhook signature verification.

    Every field can be overridden with a ``WEBHOOK_``-prefixed environment
    variable, e.g. ``WEBHOOK_JWKS_URL`` or ``WEBHOOK_JWKS_CACHE_TTL``.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Key discovery
    jwks_url: str = DEFAULT_JWKS_URL
    jwks_timeout: float = Field(default=5.0, gt=0)
    # 0 disables caching: every verification refetches the key set.
    jwks_cache_ttl: float = Field(default=0.0, ge=0)

    # Verification
    supported_algorithms: List[str] = Field(default_factory=lambda: ["PS256"], min_length=1)
    detached_payload: bool = True

    # Resilience around the whole verification call
    fetch_retry_attempts: int = Field(default=1, ge=1)
    fetch_retry_delay: float = Field(default=0.5, ge=0)


@lru_cache(maxsize=1)
def get_settings() -> VerifierSettings:
    """Return the cached verifier settings."""
    return VerifierSettings()

"""
Shared utilities for the webhook verification service.

This package aggregates common building blocks consumed by the service:

- config: Verifier configuration via pydantic-settings
- logging: Structured logging with delivery correlation
- errors: Canonical verification error types and responses
- retry: Retry decorators for whole verification calls

Do not import from service_* packages into shared/.
"""

"""
Webhook signature verification core.

Verifies detached-payload compact JWS signatures against keys published
on the issuer's JWKS endpoint.
"""

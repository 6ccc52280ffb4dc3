"""
Base64URL codec for the JWS protected header.
"""

from __future__ import annotations

import binascii
import re

from jwt.utils import base64url_decode, base64url_encode
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.errors import MalformedHeaderError

# Unpadded base64url alphabet (RFC 7515 section 2)
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class ProtectedHeader(BaseModel):
    """Decoded JWS protected header.

    Only ``alg`` and ``kid`` are required; any other members the issuer
    sends are ignored.
    """

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")

    algorithm: str = Field(alias="alg", min_length=1)
    key_id: str = Field(alias="kid", min_length=1)


def decode_header(segment: str) -> ProtectedHeader:
    """Decode the first segment of a compact JWS into a ``ProtectedHeader``.

    Raises:
        MalformedHeaderError: if the segment is not unpadded base64url, or
            does not decode to a JSON object with string ``alg`` and ``kid``.
    """
    if not _SEGMENT_RE.match(segment) or len(segment) % 4 == 1:
        raise MalformedHeaderError("Header is not valid base64url")

    try:
        raw = base64url_decode(segment)
    except (binascii.Error, ValueError) as exc:
        raise MalformedHeaderError("Header is not valid base64url") from exc

    try:
        return ProtectedHeader.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedHeaderError(
            "Header is not a valid JWS protected header",
            details={"errors": [error["type"] for error in exc.errors()]},
        ) from exc


def encode_segment(data: bytes) -> str:
    """Encode ``data`` as an unpadded base64url segment."""
    return base64url_encode(data).decode("ascii")

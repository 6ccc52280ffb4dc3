"""
JWS compact serialization helpers.

Only the pieces needed to read an unverified protected header live here.
Signature checks belong to the verification package.
"""

from .header import ProtectedHeader, decode_header, encode_segment

__all__ = ["ProtectedHeader", "decode_header", "encode_segment"]

"""Base64URL codec for JOSE wire segments (RFC 7515 Section 2).

Encoding never emits padding. Decoding restores padding and, like the
usual lenient decoders, skips line breaks and other whitespace.
"""

import base64
import binascii

from josekit.core.errors import ParseError

_WHITESPACE = str.maketrans("", "", " \t\r\n")


def b64url_encode(data: bytes) -> str:
    """Base64url encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str | bytes) -> bytes:
    """Base64url decode with padding restoration.

    Raises:
        ParseError: If the input is not valid Base64URL
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("ascii")
        except UnicodeDecodeError as e:
            raise ParseError("Invalid Base64URL: non-ASCII input") from e

    data = data.translate(_WHITESPACE).rstrip("=")
    padding = 4 - len(data) % 4
    if padding != 4:
        data += "=" * padding

    try:
        return base64.urlsafe_b64decode(data)
    except (binascii.Error, ValueError) as e:
        raise ParseError(f"Invalid Base64URL: {e}") from e


def b64url_encode_int(value: int, length: int | None = None) -> str:
    """Encode an unsigned integer as a big-endian Base64URL octet string."""
    if length is None:
        length = max(1, (value.bit_length() + 7) // 8)
    return b64url_encode(value.to_bytes(length, "big"))


def b64url_decode_int(data: str) -> int:
    return int.from_bytes(b64url_decode(data), "big")

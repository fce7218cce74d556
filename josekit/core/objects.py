"""JOSE objects and their compact serialization (RFC 7515 / 7516 Section 7.1).

- PlainObject:  BASE64URL(header) . BASE64URL(payload) .
- JWSObject:    BASE64URL(header) . BASE64URL(payload) . BASE64URL(signature)
- JWEObject:    BASE64URL(header) . BASE64URL(encrypted key) . BASE64URL(iv)
                . BASE64URL(ciphertext) . BASE64URL(tag)

Absent parts serialize as empty segments. A parsed object keeps its
original segments, so serializing it again gives the input back unchanged
and the signing input / AAD are computed over the received bytes.
"""

import json
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from josekit.core.base64url import b64url_decode, b64url_encode
from josekit.core.errors import ParseError
from josekit.core.header import JWEHeader, JWSHeader, PlainHeader, parse_header
from josekit.core.providers import JWEDecrypter, JWEEncrypter, JWSSigner, JWSVerifier


class State(str, Enum):
    """Lifecycle of a JWS / JWE object."""

    UNSIGNED = "unsigned"
    SIGNED = "signed"
    VERIFIED = "verified"
    UNENCRYPTED = "unencrypted"
    ENCRYPTED = "encrypted"
    DECRYPTED = "decrypted"


def split(token: str) -> list[str]:
    """Split a compact serialization into its 3 or 5 segments.

    Raises:
        ParseError: If the token has neither 3 nor 5 parts
    """
    if not isinstance(token, str):
        raise ParseError("The compact serialization must be a string")
    parts = token.strip().split(".")
    if len(parts) not in (3, 5):
        raise ParseError(
            "Invalid serialized unsecured/JWS/JWE object: Missing part delimiters"
            if len(parts) < 3
            else "Invalid serialized unsecured/JWS/JWE object: Too many part delimiters"
        )
    return parts


def parse_claims(payload: bytes) -> dict:
    """Parse a payload as a JWT claims set (a JSON object)."""
    try:
        claims = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise ParseError(f"Payload of JWT is not a valid JSON object: {e}") from e
    if not isinstance(claims, dict):
        raise ParseError("Payload of JWT is not a valid JSON object")
    return claims


def encode_payload(payload: Any) -> bytes:
    """Accept bytes, text or a JSON object (claims set) as payload."""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class JOSEObject(ABC):
    """Common state of the three object kinds."""

    def __init__(self, header, payload: Any, parsed_parts: tuple[str, ...] | None = None):
        self.header = header
        self.payload = encode_payload(payload) if payload is not None else None
        self.parsed_parts = parsed_parts

    def claims(self) -> dict:
        return parse_claims(self.payload)

    @abstractmethod
    def serialize(self) -> str:
        """The compact serialization."""


class PlainObject(JOSEObject):
    """Unsecured JOSE object ({"alg":"none"})."""

    def __init__(self, payload: Any, header: PlainHeader | None = None, parsed_parts=None):
        super().__init__(header or PlainHeader(), payload, parsed_parts)

    def serialize(self) -> str:
        if self.parsed_parts is not None:
            return ".".join(self.parsed_parts)
        return f"{self.header.to_base64url()}.{b64url_encode(self.payload)}."

    @classmethod
    def parse(cls, token: str) -> "PlainObject":
        parts = split(token)
        if len(parts) != 3:
            raise ParseError("Unexpected number of Base64URL parts, must be three")
        if parts[2]:
            raise ParseError("Unexpected third Base64URL part in the unsecured JWS object")
        header = PlainHeader.parse(parts[0])
        return cls(b64url_decode(parts[1]), header, tuple(parts))


class JWSObject(JOSEObject):
    """JSON Web Signature object.

    Supports RFC 7797 unencoded payloads: with ``b64=false`` the payload
    goes into the signing input and the serialization as is.
    """

    def __init__(self, header: JWSHeader, payload: Any, signature: bytes | None = None, parsed_parts=None):
        super().__init__(header, payload, parsed_parts)
        self.signature = signature
        self.state = State.UNSIGNED if signature is None else State.SIGNED

    def _payload_segment(self) -> str:
        if self.parsed_parts is not None:
            return self.parsed_parts[1]
        if self.header.base64url_encode_payload:
            return b64url_encode(self.payload)
        try:
            text = self.payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError("The unencoded payload must be valid UTF-8 for compact serialization") from e
        if "." in text:
            raise ParseError("The unencoded payload must not contain a period for compact serialization")
        return text

    @property
    def signing_input(self) -> bytes:
        """ASCII(BASE64URL(header)) . payload segment."""
        return f"{self.header.to_base64url()}.{self._payload_segment()}".encode("utf-8")

    def sign(self, signer: JWSSigner) -> None:
        if self.state is not State.UNSIGNED:
            raise ValueError("The JWS object must be in an unsigned state")
        self.signature = signer.sign(self.header, self.signing_input)
        self.state = State.SIGNED

    def verify(self, verifier: JWSVerifier) -> bool:
        if self.state is State.UNSIGNED:
            raise ValueError("The JWS object must be in a signed or verified state")
        verified = verifier.verify(self.header, self.signing_input, self.signature)
        if verified:
            self.state = State.VERIFIED
        return verified

    def serialize(self) -> str:
        if self.state is State.UNSIGNED:
            raise ValueError("The JWS object must be in a signed or verified state")
        if self.parsed_parts is not None:
            return ".".join(self.parsed_parts)
        return f"{self.header.to_base64url()}.{self._payload_segment()}.{b64url_encode(self.signature)}"

    @classmethod
    def parse(cls, token: str) -> "JWSObject":
        parts = split(token)
        if len(parts) != 3:
            raise ParseError("Unexpected number of Base64URL parts, must be three")
        header = JWSHeader.parse(parts[0])
        if header.base64url_encode_payload:
            payload = b64url_decode(parts[1])
        else:
            payload = parts[1].encode("utf-8")
        return cls(header, payload, b64url_decode(parts[2]), tuple(parts))


class JWEObject(JOSEObject):
    """JSON Web Encryption object."""

    def __init__(self, header: JWEHeader, payload: Any = None, parsed_parts=None):
        super().__init__(header, payload, parsed_parts)
        self.encrypted_key = b""
        self.iv = b""
        self.cipher_text = b""
        self.tag = b""
        self.state = State.UNENCRYPTED

    def encrypt(self, encrypter: JWEEncrypter, aad: bytes | None = None) -> None:
        if self.state is not State.UNENCRYPTED:
            raise ValueError("The JWE object must be in an unencrypted state")
        parts = encrypter.encrypt(self.header, self.payload, aad)
        # The encrypter may have added parameters such as "epk"
        self.header = parts.header
        self.encrypted_key = parts.encrypted_key
        self.iv = parts.iv
        self.cipher_text = parts.cipher_text
        self.tag = parts.tag
        self.state = State.ENCRYPTED

    def decrypt(self, decrypter: JWEDecrypter, aad: bytes | None = None) -> bytes:
        if self.state is not State.ENCRYPTED:
            raise ValueError("The JWE object must be in an encrypted state")
        self.payload = decrypter.decrypt(
            self.header,
            self.encrypted_key,
            self.iv,
            self.cipher_text,
            self.tag,
            aad,
        )
        self.state = State.DECRYPTED
        return self.payload

    def serialize(self) -> str:
        if self.state is State.UNENCRYPTED:
            raise ValueError("The JWE object must be in an encrypted or decrypted state")
        if self.parsed_parts is not None:
            return ".".join(self.parsed_parts)
        return ".".join(
            [
                self.header.to_base64url(),
                b64url_encode(self.encrypted_key),
                b64url_encode(self.iv),
                b64url_encode(self.cipher_text),
                b64url_encode(self.tag),
            ]
        )

    @classmethod
    def parse(cls, token: str) -> "JWEObject":
        parts = split(token)
        if len(parts) != 5:
            raise ParseError("Unexpected number of Base64URL parts, must be five")
        header = JWEHeader.parse(parts[0])
        jwe = cls(header, None, tuple(parts))
        jwe.encrypted_key = b64url_decode(parts[1])
        jwe.iv = b64url_decode(parts[2])
        jwe.cipher_text = b64url_decode(parts[3])
        jwe.tag = b64url_decode(parts[4])
        jwe.state = State.ENCRYPTED
        return jwe


def parse(token: str) -> JOSEObject:
    """Parse a compact serialization into the matching object type.

    Raises:
        ParseError: If the token is malformed
    """
    parts = split(token)
    if len(parts) == 5:
        return JWEObject.parse(token)

    header = parse_header(parts[0])
    if isinstance(header, PlainHeader):
        return PlainObject.parse(token)
    if isinstance(header, JWEHeader):
        raise ParseError("Unexpected number of Base64URL parts for a JWE object, must be five")
    return JWSObject.parse(token)

"""Elliptic curve key agreement for JWE (RFC 7518 Section 4.6,
draft-madden-jose-ecdh-1pu).

Supports P-256, P-384, P-521 and X25519. The shared secret Z is
fed into the Concat KDF (NIST SP 800-56A) to produce either the CEK
(direct mode) or an AES key wrap key (key wrapping mode).

ECDH-1PU uses Z = Ze || Zs, where Ze comes from the ephemeral key pair
and Zs from the sender's static key pair.
"""

import struct
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, x25519
from cryptography.hazmat.primitives.kdf.concatkdf import ConcatKDFHash

from josekit.core.algorithms import JWEAlgorithm, parse_jwe_algorithm
from josekit.core.base64url import b64url_decode
from josekit.core.content_crypto import resolve_method
from josekit.core.errors import CurveMismatchError, KeyMaterialError, UnsupportedAlgorithmError
from josekit.core.header import JWEHeader
from josekit.core.jwk import JWK, curve_name

SUPPORTED_CURVES = frozenset({"P-256", "P-384", "P-521", "X25519"})

_EC_TYPES = (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)
_X25519_TYPES = (x25519.X25519PrivateKey, x25519.X25519PublicKey)


def key_curve(key: Any) -> str:
    """Raises:
    KeyMaterialError: If the key is not an agreement key on a supported curve
    """
    if not isinstance(key, _EC_TYPES + _X25519_TYPES):
        raise KeyMaterialError(f"Not an ECDH key: {type(key).__name__}")
    crv = curve_name(key)
    if crv not in SUPPORTED_CURVES:
        raise KeyMaterialError(f"Unsupported elliptic curve: {crv}")
    return crv


def ensure_same_curve(*keys: Any) -> str:
    """Check that all keys are on one curve and return its name.

    Raises:
        CurveMismatchError: If the curves differ
    """
    curves = {key_curve(key) for key in keys}
    if len(curves) != 1:
        raise CurveMismatchError("Curve of public key does not match curve of private key")
    return curves.pop()


def derive_shared_secret(private_key: Any, public_key: Any) -> bytes:
    """Raw ECDH / X25519 shared secret.

    Raises:
        CurveMismatchError: If the keys are on different curves
    """
    ensure_same_curve(private_key, public_key)
    try:
        if isinstance(private_key, x25519.X25519PrivateKey):
            secret = private_key.exchange(public_key)
        else:
            secret = private_key.exchange(ec.ECDH(), public_key)
    except (ValueError, TypeError) as e:
        raise KeyMaterialError(f"Key agreement failed: {e}") from e
    if not any(secret):
        # Low order X25519 point
        raise KeyMaterialError("The shared secret is all zeros")
    return secret


def generate_ephemeral_key(public_key: Any) -> Any:
    """Generate an ephemeral private key on the curve of the given key."""
    if isinstance(public_key, _X25519_TYPES):
        return x25519.X25519PrivateKey.generate()
    key_curve(public_key)
    return ec.generate_private_key(public_key.curve)


def derive_sender_z(sender_private_key: Any, recipient_public_key: Any, ephemeral_private_key: Any) -> bytes:
    """Sender side ECDH-1PU: Ze = ECDH(ephemeral, recipient), Zs = ECDH(sender, recipient).

    Raises:
        CurveMismatchError: If the three keys are not on one curve
    """
    ensure_same_curve(sender_private_key, recipient_public_key, ephemeral_private_key)
    ze = derive_shared_secret(ephemeral_private_key, recipient_public_key)
    zs = derive_shared_secret(sender_private_key, recipient_public_key)
    return ze + zs


def derive_recipient_z(recipient_private_key: Any, sender_public_key: Any, ephemeral_public_key: Any) -> bytes:
    """Recipient side ECDH-1PU: Ze = ECDH(recipient, ephemeral), Zs = ECDH(recipient, sender).

    Raises:
        CurveMismatchError: If the three keys are not on one curve
    """
    ensure_same_curve(recipient_private_key, sender_public_key, ephemeral_public_key)
    ze = derive_shared_secret(recipient_private_key, ephemeral_public_key)
    zs = derive_shared_secret(recipient_private_key, sender_public_key)
    return ze + zs


def _length_prefixed(data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + data


def concat_kdf(
    z: bytes,
    key_bit_length: int,
    algorithm_id: bytes,
    party_u_info: bytes = b"",
    party_v_info: bytes = b"",
    tag: bytes | None = None,
) -> bytes:
    """Concat KDF with SHA-256.

    OtherInfo = AlgorithmID || PartyUInfo || PartyVInfo || SuppPubInfo,
    each variable length field prefixed with its 32-bit length. A tag,
    when given, is appended to SuppPubInfo as cctag.
    """
    other_info = (
        _length_prefixed(algorithm_id)
        + _length_prefixed(party_u_info)
        + _length_prefixed(party_v_info)
        + struct.pack(">I", key_bit_length)  # keydatalen in bits
    )
    if tag is not None:
        other_info += _length_prefixed(tag)

    ckdf = ConcatKDFHash(
        algorithm=hashes.SHA256(),
        length=key_bit_length // 8,
        otherinfo=other_info,
    )
    return ckdf.derive(z)


def resolve_algorithm(header: JWEHeader) -> JWEAlgorithm:
    algorithm = parse_jwe_algorithm(header.algorithm)
    if algorithm is None or algorithm.family not in ("ECDH-ES", "ECDH-1PU"):
        raise UnsupportedAlgorithmError(f"Not an ECDH algorithm: {header.algorithm}")
    return algorithm


def derive_shared_key(header: JWEHeader, z: bytes, tag: bytes | None = None) -> bytes:
    """Derive the CEK (direct mode) or key wrap key from Z.

    In direct mode AlgorithmID is the "enc" value and the key length that
    of the CEK; in key wrapping mode AlgorithmID is the "alg" value and
    the key length that of the wrap key.
    """
    algorithm = resolve_algorithm(header)
    if algorithm.wrap_key_bits is None:
        algorithm_id = header.encryption_method
        key_bit_length = resolve_method(header.encryption_method).cek_bit_length
    else:
        algorithm_id = algorithm.value
        key_bit_length = algorithm.wrap_key_bits

    apu = b64url_decode(header.agreement_party_u_info) if header.agreement_party_u_info else b""
    apv = b64url_decode(header.agreement_party_v_info) if header.agreement_party_v_info else b""

    return concat_kdf(z, key_bit_length, algorithm_id.encode("ascii"), apu, apv, tag)


def ephemeral_public_jwk(ephemeral_private_key: Any) -> JWK:
    """The "epk" header value for an ephemeral key."""
    return JWK.from_key(ephemeral_private_key.public_key())


def ephemeral_public_key(header: JWEHeader) -> Any:
    """Raises:
    KeyMaterialError: If the header has no usable "epk"
    """
    if header.ephemeral_public_key is None:
        raise KeyMaterialError('Missing ephemeral public key "epk" JWE header parameter')
    key = header.ephemeral_public_key.to_key()
    key_curve(key)
    return key

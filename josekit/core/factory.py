"""Provider factories: header + key -> verifier / decrypter.

Each algorithm family maps to one builder in a registry. A builder
returns None when the key does not fit the algorithm, which the token
processor treats as "skip this candidate key".
"""

from typing import Any, Callable, Iterable

from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa, x25519

from josekit.core.algorithms import parse_encryption_method, parse_jwe_algorithm, parse_jws_algorithm
from josekit.core.encrypters import (
    AESDecrypter,
    DirectDecrypter,
    ECDH1PUDecrypter,
    ECDHDecrypter,
)
from josekit.core.errors import KeyMaterialError
from josekit.core.header import JWEHeader, JWSHeader
from josekit.core.providers import JWEDecrypter, JWSVerifier
from josekit.core.signers import (
    ECDSAVerifier,
    Ed25519Verifier,
    MACVerifier,
    RSASSAVerifier,
    ecdsa_algorithm,
    min_mac_secret_bits,
)

# Resolves the sender's public key for ECDH-1PU, typically from "skid"
SenderKeyResolver = Callable[[JWEHeader], Any]

_AGREEMENT_PRIVATE_KEYS = (ec.EllipticCurvePrivateKey, x25519.X25519PrivateKey)


def _mac_verifier(header: JWSHeader, key: Any, deferred) -> JWSVerifier | None:
    if not isinstance(key, bytes) or len(key) * 8 < min_mac_secret_bits(header.algorithm):
        return None
    return MACVerifier(key, deferred)


def _ecdsa_verifier(header: JWSHeader, key: Any, deferred) -> JWSVerifier | None:
    if not isinstance(key, ec.EllipticCurvePublicKey):
        return None
    try:
        if ecdsa_algorithm(key) != header.algorithm:
            return None
    except KeyMaterialError:
        return None
    return ECDSAVerifier(key, deferred)


def _eddsa_verifier(header: JWSHeader, key: Any, deferred) -> JWSVerifier | None:
    if not isinstance(key, ed25519.Ed25519PublicKey):
        return None
    return Ed25519Verifier(key, deferred)


def _rsassa_verifier(header: JWSHeader, key: Any, deferred) -> JWSVerifier | None:
    if not isinstance(key, rsa.RSAPublicKey):
        return None
    try:
        return RSASSAVerifier(key, deferred)
    except KeyMaterialError:
        return None


VERIFIER_REGISTRY = {
    "HMAC": _mac_verifier,
    "EC": _ecdsa_verifier,
    "OKP": _eddsa_verifier,
    "RSA": _rsassa_verifier,
}


class DefaultJWSVerifierFactory:
    """Creates JWS verifiers for the supported algorithms."""

    def __init__(self, deferred_critical_params: Iterable[str] | None = None):
        self.deferred_critical_params = frozenset(deferred_critical_params or ())

    def create_verifier(self, header: JWSHeader, key: Any) -> JWSVerifier | None:
        """Return a verifier for the header algorithm and key, None if they don't fit."""
        algorithm = parse_jws_algorithm(header.algorithm)
        if algorithm is None:
            return None
        return VERIFIER_REGISTRY[algorithm.family](header, key, self.deferred_critical_params)


def _direct_decrypter(factory, header: JWEHeader, key: Any) -> JWEDecrypter | None:
    method = parse_encryption_method(header.encryption_method)
    if not isinstance(key, bytes) or method is None or len(key) * 8 != method.cek_bit_length:
        return None
    return DirectDecrypter(key, factory.deferred_critical_params)


def _aes_kw_decrypter(factory, header: JWEHeader, key: Any) -> JWEDecrypter | None:
    algorithm = parse_jwe_algorithm(header.algorithm)
    if not isinstance(key, bytes) or len(key) * 8 != algorithm.wrap_key_bits:
        return None
    return AESDecrypter(key, factory.deferred_critical_params)


def _ecdh_decrypter(factory, header: JWEHeader, key: Any) -> JWEDecrypter | None:
    if not isinstance(key, _AGREEMENT_PRIVATE_KEYS):
        return None
    try:
        return ECDHDecrypter(key, factory.deferred_critical_params)
    except KeyMaterialError:
        return None


def _ecdh_1pu_decrypter(factory, header: JWEHeader, key: Any) -> JWEDecrypter | None:
    if not isinstance(key, _AGREEMENT_PRIVATE_KEYS) or factory.sender_key_resolver is None:
        return None
    sender_public_key = factory.sender_key_resolver(header)
    if sender_public_key is None:
        return None
    try:
        return ECDH1PUDecrypter(key, sender_public_key, factory.deferred_critical_params)
    except KeyMaterialError:
        return None


DECRYPTER_REGISTRY = {
    "DIR": _direct_decrypter,
    "AESKW": _aes_kw_decrypter,
    "ECDH-ES": _ecdh_decrypter,
    "ECDH-1PU": _ecdh_1pu_decrypter,
}


class DefaultJWEDecrypterFactory:
    """Creates JWE decrypters for the supported algorithms.

    ECDH-1PU needs the sender's public key in addition to the candidate
    private key; it comes from ``sender_key_resolver``. Without one,
    ECDH-1PU objects are declined.
    """

    def __init__(
        self,
        sender_key_resolver: SenderKeyResolver | None = None,
        deferred_critical_params: Iterable[str] | None = None,
    ):
        self.sender_key_resolver = sender_key_resolver
        self.deferred_critical_params = frozenset(deferred_critical_params or ())

    def create_decrypter(self, header: JWEHeader, key: Any) -> JWEDecrypter | None:
        """Return a decrypter for the header algorithms and key, None if they don't fit."""
        algorithm = parse_jwe_algorithm(header.algorithm)
        if algorithm is None or parse_encryption_method(header.encryption_method) is None:
            return None
        decrypter = DECRYPTER_REGISTRY[algorithm.family](self, header, key)
        if decrypter is None or not decrypter.supports(header):
            return None
        return decrypter

"""JWS signers and verifiers (RFC 7518 Section 3, RFC 8037).

Supported JWS Algorithms:
- HS256, HS384, HS512 (MACSigner / MACVerifier)
- ES256, ES384, ES512 (ECDSASigner / ECDSAVerifier)
- EdDSA with Ed25519 (Ed25519Signer / Ed25519Verifier)
- RS256, RS384, RS512, PS256, PS384, PS512 (RSASSASigner / RSASSAVerifier)

ECDSA signatures use the JWS raw R || S encoding, not DER.
"""

from abc import abstractmethod
from typing import Iterable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import constant_time, hashes
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature, encode_dss_signature

from josekit.core.algorithms import JWSAlgorithm
from josekit.core.errors import KeyLengthError, KeyMaterialError, SigningError
from josekit.core.header import JWSHeader
from josekit.core.jwk import EC_CURVES, curve_name
from josekit.core.providers import JWSSigner, JWSVerifier

HASH_ALGORITHMS = {
    "256": hashes.SHA256,
    "384": hashes.SHA384,
    "512": hashes.SHA512,
}

MAC_ALGORITHMS = frozenset({JWSAlgorithm.HS256, JWSAlgorithm.HS384, JWSAlgorithm.HS512})
ECDSA_ALGORITHMS = frozenset({JWSAlgorithm.ES256, JWSAlgorithm.ES384, JWSAlgorithm.ES512})
EDDSA_ALGORITHMS = frozenset({JWSAlgorithm.EDDSA})
RSASSA_ALGORITHMS = frozenset(
    {
        JWSAlgorithm.RS256,
        JWSAlgorithm.RS384,
        JWSAlgorithm.RS512,
        JWSAlgorithm.PS256,
        JWSAlgorithm.PS384,
        JWSAlgorithm.PS512,
    }
)

# ECDSA algorithm -> required curve
ECDSA_CURVES = {
    JWSAlgorithm.ES256: "P-256",
    JWSAlgorithm.ES384: "P-384",
    JWSAlgorithm.ES512: "P-521",
}

MIN_RSA_KEY_SIZE = 2048


def _hash_for(algorithm: str) -> hashes.HashAlgorithm:
    return HASH_ALGORITHMS[algorithm[-3:]]()


def min_mac_secret_bits(algorithm: str) -> int:
    """HMAC secrets must be at least as long as the hash output."""
    return int(algorithm[-3:])


class _Verifier(JWSVerifier):
    """Shared verify flow: algorithm check, crit policy, then the signature."""

    def verify(self, header: JWSHeader, signing_input: bytes, signature: bytes) -> bool:
        self.ensure_supported(header)
        if not self.crit_policy.header_passes(header):
            return False
        try:
            return self._verify_signature(header.algorithm, signing_input, signature)
        except InvalidSignature:
            return False

    @abstractmethod
    def _verify_signature(self, algorithm: str, signing_input: bytes, signature: bytes) -> bool:
        """Check the signature; may raise InvalidSignature instead of returning False."""


# ==================== HMAC ====================


class MACSigner(JWSSigner):
    """HMAC signer; the supported algorithms depend on the secret length."""

    def __init__(self, secret: bytes):
        super().__init__()
        if len(secret) * 8 < min_mac_secret_bits(JWSAlgorithm.HS256.value):
            raise KeyLengthError("The secret length must be at least 256 bits")
        self.secret = bytes(secret)

    @property
    def supported_algorithms(self) -> frozenset:
        bits = len(self.secret) * 8
        return frozenset(alg for alg in MAC_ALGORITHMS if bits >= min_mac_secret_bits(alg.value))

    def sign(self, header: JWSHeader, signing_input: bytes) -> bytes:
        if header.algorithm in MAC_ALGORITHMS and header.algorithm not in self.supported_algorithms:
            raise SigningError(
                f"The secret length for {header.algorithm} must be at least "
                f"{min_mac_secret_bits(header.algorithm)} bits"
            )
        self.ensure_supported(header)
        h = crypto_hmac.HMAC(self.secret, _hash_for(header.algorithm))
        h.update(signing_input)
        return h.finalize()


class MACVerifier(_Verifier):
    SUPPORTED_ALGORITHMS = MAC_ALGORITHMS

    def __init__(self, secret: bytes, deferred_critical_params: Iterable[str] | None = None):
        super().__init__(deferred_critical_params)
        self.secret = bytes(secret)

    def _verify_signature(self, algorithm: str, signing_input: bytes, signature: bytes) -> bool:
        h = crypto_hmac.HMAC(self.secret, _hash_for(algorithm))
        h.update(signing_input)
        return constant_time.bytes_eq(h.finalize(), signature)


# ==================== ECDSA ====================


def ecdsa_algorithm(key: ec.EllipticCurvePrivateKey | ec.EllipticCurvePublicKey) -> JWSAlgorithm:
    """The single ECDSA algorithm matching the curve of the key."""
    crv = curve_name(key)
    for algorithm, curve in ECDSA_CURVES.items():
        if curve == crv:
            return algorithm
    raise KeyMaterialError(f"Unsupported elliptic curve for ECDSA: {crv}")


class ECDSASigner(JWSSigner):
    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        super().__init__()
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise KeyMaterialError("ECDSA requires an EC private key")
        self.private_key = private_key
        self.algorithm = ecdsa_algorithm(private_key)

    @property
    def supported_algorithms(self) -> frozenset:
        return frozenset({self.algorithm})

    def sign(self, header: JWSHeader, signing_input: bytes) -> bytes:
        if header.algorithm in ECDSA_ALGORITHMS and header.algorithm != self.algorithm:
            raise SigningError(f"{header.algorithm} requires an EC key on curve {ECDSA_CURVES[header.algorithm]}")
        self.ensure_supported(header)

        der_sig = self.private_key.sign(signing_input, ec.ECDSA(_hash_for(header.algorithm)))
        # Convert DER to raw R||S format
        r, s = decode_dss_signature(der_sig)
        size = EC_CURVES[ECDSA_CURVES[self.algorithm]][1]
        return r.to_bytes(size, "big") + s.to_bytes(size, "big")


class ECDSAVerifier(_Verifier):
    def __init__(
        self,
        public_key: ec.EllipticCurvePublicKey,
        deferred_critical_params: Iterable[str] | None = None,
    ):
        super().__init__(deferred_critical_params)
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            raise KeyMaterialError("ECDSA requires an EC public key")
        self.public_key = public_key
        self.algorithm = ecdsa_algorithm(public_key)

    @property
    def supported_algorithms(self) -> frozenset:
        return frozenset({self.algorithm})

    def _verify_signature(self, algorithm: str, signing_input: bytes, signature: bytes) -> bool:
        size = EC_CURVES[ECDSA_CURVES[self.algorithm]][1]
        if len(signature) != 2 * size:
            return False
        # Convert raw R||S to DER
        r = int.from_bytes(signature[:size], "big")
        s = int.from_bytes(signature[size:], "big")
        der_sig = encode_dss_signature(r, s)
        self.public_key.verify(der_sig, signing_input, ec.ECDSA(_hash_for(algorithm)))
        return True


# ==================== EdDSA ====================


class Ed25519Signer(JWSSigner):
    SUPPORTED_ALGORITHMS = EDDSA_ALGORITHMS

    def __init__(self, private_key: ed25519.Ed25519PrivateKey):
        super().__init__()
        if not isinstance(private_key, ed25519.Ed25519PrivateKey):
            raise KeyMaterialError("EdDSA requires an Ed25519 private key")
        self.private_key = private_key

    def sign(self, header: JWSHeader, signing_input: bytes) -> bytes:
        self.ensure_supported(header)
        return self.private_key.sign(signing_input)


class Ed25519Verifier(_Verifier):
    SUPPORTED_ALGORITHMS = EDDSA_ALGORITHMS

    def __init__(
        self,
        public_key: ed25519.Ed25519PublicKey,
        deferred_critical_params: Iterable[str] | None = None,
    ):
        super().__init__(deferred_critical_params)
        if not isinstance(public_key, ed25519.Ed25519PublicKey):
            raise KeyMaterialError("EdDSA requires an Ed25519 public key")
        self.public_key = public_key

    def _verify_signature(self, algorithm: str, signing_input: bytes, signature: bytes) -> bool:
        self.public_key.verify(signature, signing_input)
        return True


# ==================== RSA ====================


def _rsa_padding(algorithm: str) -> padding.AsymmetricPadding:
    if algorithm.startswith("PS"):
        hash_alg = _hash_for(algorithm)
        return padding.PSS(mgf=padding.MGF1(hash_alg), salt_length=hash_alg.digest_size)
    return padding.PKCS1v15()


def _check_rsa_key_size(key: rsa.RSAPrivateKey | rsa.RSAPublicKey) -> None:
    if key.key_size < MIN_RSA_KEY_SIZE:
        raise KeyLengthError(f"The RSA key size must be at least {MIN_RSA_KEY_SIZE} bits")


class RSASSASigner(JWSSigner):
    """RSASSA-PKCS1-v1_5 and RSASSA-PSS signer."""

    SUPPORTED_ALGORITHMS = RSASSA_ALGORITHMS

    def __init__(self, private_key: rsa.RSAPrivateKey):
        super().__init__()
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise KeyMaterialError("RSASSA requires an RSA private key")
        _check_rsa_key_size(private_key)
        self.private_key = private_key

    def sign(self, header: JWSHeader, signing_input: bytes) -> bytes:
        self.ensure_supported(header)
        try:
            return self.private_key.sign(signing_input, _rsa_padding(header.algorithm), _hash_for(header.algorithm))
        except ValueError as e:
            raise SigningError(f"RSA signature exception: {e}") from e


class RSASSAVerifier(_Verifier):
    SUPPORTED_ALGORITHMS = RSASSA_ALGORITHMS

    def __init__(
        self,
        public_key: rsa.RSAPublicKey,
        deferred_critical_params: Iterable[str] | None = None,
    ):
        super().__init__(deferred_critical_params)
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise KeyMaterialError("RSASSA requires an RSA public key")
        _check_rsa_key_size(public_key)
        self.public_key = public_key

    def _verify_signature(self, algorithm: str, signing_input: bytes, signature: bytes) -> bool:
        self.public_key.verify(signature, signing_input, _rsa_padding(algorithm), _hash_for(algorithm))
        return True

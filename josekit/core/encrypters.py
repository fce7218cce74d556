"""JWE encrypters and decrypters (RFC 7518 Section 4).

Supported JWE Algorithms:
- dir (DirectEncrypter / DirectDecrypter)
- A128KW, A192KW, A256KW (AESEncrypter / AESDecrypter)
- ECDH-ES, ECDH-ES+A128KW, ECDH-ES+A192KW, ECDH-ES+A256KW
  (ECDHEncrypter / ECDHDecrypter)
- ECDH-1PU, ECDH-1PU+A128KW, ECDH-1PU+A192KW, ECDH-1PU+A256KW
  (ECDH1PUEncrypter / ECDH1PUDecrypter)

The ECDH providers work over P-256, P-384, P-521 and X25519. Encrypters
accept an injected CEK and ephemeral key for reproducible output;
otherwise both are generated per call.
"""

from dataclasses import replace
from typing import Any, Iterable

from cryptography.hazmat.primitives.keywrap import InvalidUnwrap, aes_key_unwrap, aes_key_wrap

from josekit.core import content_crypto, ecdh
from josekit.core.algorithms import EncryptionMethod, JWEAlgorithm, parse_jwe_algorithm
from josekit.core.errors import DecryptionError, IntegrityError, KeyLengthError, UnsupportedAlgorithmError
from josekit.core.header import JWEHeader
from josekit.core.providers import JWECryptoParts, JWEDecrypter, JWEEncrypter, resolve_aad

AES_KW_ALGORITHMS = {
    16: JWEAlgorithm.A128KW,
    24: JWEAlgorithm.A192KW,
    32: JWEAlgorithm.A256KW,
}

ECDH_ES_ALGORITHMS = frozenset(
    {
        JWEAlgorithm.ECDH_ES,
        JWEAlgorithm.ECDH_ES_A128KW,
        JWEAlgorithm.ECDH_ES_A192KW,
        JWEAlgorithm.ECDH_ES_A256KW,
    }
)

ECDH_1PU_ALGORITHMS = frozenset(
    {
        JWEAlgorithm.ECDH_1PU,
        JWEAlgorithm.ECDH_1PU_A128KW,
        JWEAlgorithm.ECDH_1PU_A192KW,
        JWEAlgorithm.ECDH_1PU_A256KW,
    }
)

ALL_ENCRYPTION_METHODS = frozenset(EncryptionMethod)

# ECDH-1PU key wrapping binds the tag, which only the CBC-HMAC methods expose up front
ECDH_1PU_KW_ENCRYPTION_METHODS = frozenset(m for m in EncryptionMethod if m.is_composite)


def _is_key_wrapping(header: JWEHeader) -> bool:
    return parse_jwe_algorithm(header.algorithm).wrap_key_bits is not None


def _wrap(kek: bytes, cek: bytes) -> bytes:
    return aes_key_wrap(kek, cek)


def _unwrap(kek: bytes, encrypted_key: bytes) -> bytes:
    try:
        return aes_key_unwrap(kek, encrypted_key)
    except (InvalidUnwrap, ValueError) as e:
        raise IntegrityError() from e


def _decrypt_content(header: JWEHeader, iv, cipher_text, tag, cek: bytes, aad: bytes | None) -> bytes:
    try:
        content_crypto.check_cek_length(cek, header.encryption_method)
    except KeyLengthError as e:
        # An unwrapped CEK of the wrong size is indistinguishable from a bad tag
        raise IntegrityError() from e
    return content_crypto.decrypt(header, iv, cipher_text, tag, cek, aad)


def _ensure_no_encrypted_key(encrypted_key: bytes) -> None:
    if encrypted_key:
        raise DecryptionError("Unexpected present JWE encrypted key")


# ==================== Direct ====================


class DirectEncrypter(JWEEncrypter):
    """Direct encryption with a shared symmetric CEK."""

    SUPPORTED_ALGORITHMS = frozenset({JWEAlgorithm.DIR})

    def __init__(self, key: bytes):
        super().__init__()
        if not content_crypto.compatible_methods(len(key) * 8):
            raise KeyLengthError(
                "The Content Encryption Key length must be 128 bits (16 bytes), 192 bits (24 bytes), "
                "256 bits (32 bytes), 384 bits (48 bytes) or 512 bits (64 bytes)"
            )
        self.key = bytes(key)

    @property
    def supported_encryption_methods(self) -> frozenset:
        return content_crypto.compatible_methods(len(self.key) * 8)

    def encrypt(self, header: JWEHeader, clear_text: bytes, aad: bytes | None = None) -> JWECryptoParts:
        self.ensure_supported(header)
        return content_crypto.encrypt(header, clear_text, self.key, aad=resolve_aad(header, header, aad))


class DirectDecrypter(JWEDecrypter):
    SUPPORTED_ALGORITHMS = frozenset({JWEAlgorithm.DIR})

    def __init__(self, key: bytes, deferred_critical_params: Iterable[str] | None = None):
        super().__init__(deferred_critical_params)
        self.key = bytes(key)

    @property
    def supported_encryption_methods(self) -> frozenset:
        return content_crypto.compatible_methods(len(self.key) * 8)

    def decrypt(self, header, encrypted_key, iv, cipher_text, tag, aad=None) -> bytes:
        self.ensure_supported(header)
        self.crit_policy.ensure_header_passes(header)
        _ensure_no_encrypted_key(encrypted_key)
        return content_crypto.decrypt(header, iv, cipher_text, tag, self.key, aad)


# ==================== AES Key Wrap ====================


def aes_kw_algorithm(kek: bytes) -> JWEAlgorithm:
    try:
        return AES_KW_ALGORITHMS[len(kek)]
    except KeyError:
        raise KeyLengthError("The Key Encryption Key length must be 128 bits (16 bytes), 192 bits (24 bytes) or 256 bits (32 bytes)")


class AESEncrypter(JWEEncrypter):
    """AES key wrap of a per message CEK."""

    SUPPORTED_ENCRYPTION_METHODS = ALL_ENCRYPTION_METHODS

    def __init__(self, kek: bytes, cek: bytes | None = None):
        super().__init__()
        self.algorithm = aes_kw_algorithm(kek)
        self.kek = bytes(kek)
        self.cek = cek

    @property
    def supported_algorithms(self) -> frozenset:
        return frozenset({self.algorithm})

    def encrypt(self, header: JWEHeader, clear_text: bytes, aad: bytes | None = None) -> JWECryptoParts:
        self.ensure_supported(header)
        cek = self.cek if self.cek is not None else content_crypto.generate_cek(header.encryption_method)
        content_crypto.check_cek_length(cek, header.encryption_method)
        encrypted_key = _wrap(self.kek, cek)
        return content_crypto.encrypt(header, clear_text, cek, encrypted_key, aad=resolve_aad(header, header, aad))


class AESDecrypter(JWEDecrypter):
    SUPPORTED_ENCRYPTION_METHODS = ALL_ENCRYPTION_METHODS

    def __init__(self, kek: bytes, deferred_critical_params: Iterable[str] | None = None):
        super().__init__(deferred_critical_params)
        self.algorithm = aes_kw_algorithm(kek)
        self.kek = bytes(kek)

    @property
    def supported_algorithms(self) -> frozenset:
        return frozenset({self.algorithm})

    def decrypt(self, header, encrypted_key, iv, cipher_text, tag, aad=None) -> bytes:
        self.ensure_supported(header)
        self.crit_policy.ensure_header_passes(header)
        if not encrypted_key:
            raise DecryptionError("Missing JWE encrypted key")
        cek = _unwrap(self.kek, encrypted_key)
        return _decrypt_content(header, iv, cipher_text, tag, cek, aad)


# ==================== ECDH-ES ====================


def _ephemeral_header(header: JWEHeader, ephemeral_key: Any) -> JWEHeader:
    return header.copy(ephemeral_public_key=ecdh.ephemeral_public_jwk(ephemeral_key))


class ECDHEncrypter(JWEEncrypter):
    """Ephemeral-static ECDH key agreement."""

    SUPPORTED_ALGORITHMS = ECDH_ES_ALGORITHMS
    SUPPORTED_ENCRYPTION_METHODS = ALL_ENCRYPTION_METHODS

    def __init__(self, public_key: Any, cek: bytes | None = None, ephemeral_key: Any | None = None):
        super().__init__()
        self.curve = ecdh.key_curve(public_key)
        if ephemeral_key is not None:
            ecdh.ensure_same_curve(ephemeral_key, public_key)
        self.public_key = public_key
        self.cek = cek
        self.ephemeral_key = ephemeral_key

    def encrypt(self, header: JWEHeader, clear_text: bytes, aad: bytes | None = None) -> JWECryptoParts:
        self.ensure_supported(header)

        ephemeral_key = self.ephemeral_key or ecdh.generate_ephemeral_key(self.public_key)
        updated = _ephemeral_header(header, ephemeral_key)
        aad = resolve_aad(header, updated, aad)

        z = ecdh.derive_shared_secret(ephemeral_key, self.public_key)
        shared_key = ecdh.derive_shared_key(updated, z)

        if not _is_key_wrapping(updated):
            return content_crypto.encrypt(updated, clear_text, shared_key, aad=aad)

        cek = self.cek if self.cek is not None else content_crypto.generate_cek(updated.encryption_method)
        content_crypto.check_cek_length(cek, updated.encryption_method)
        return content_crypto.encrypt(updated, clear_text, cek, _wrap(shared_key, cek), aad=aad)


class ECDHDecrypter(JWEDecrypter):
    SUPPORTED_ALGORITHMS = ECDH_ES_ALGORITHMS
    SUPPORTED_ENCRYPTION_METHODS = ALL_ENCRYPTION_METHODS

    def __init__(self, private_key: Any, deferred_critical_params: Iterable[str] | None = None):
        super().__init__(deferred_critical_params)
        self.curve = ecdh.key_curve(private_key)
        self.private_key = private_key

    def decrypt(self, header, encrypted_key, iv, cipher_text, tag, aad=None) -> bytes:
        self.ensure_supported(header)
        self.crit_policy.ensure_header_passes(header)

        ephemeral_public_key = ecdh.ephemeral_public_key(header)
        z = ecdh.derive_shared_secret(self.private_key, ephemeral_public_key)
        shared_key = ecdh.derive_shared_key(header, z)

        if not _is_key_wrapping(header):
            _ensure_no_encrypted_key(encrypted_key)
            return content_crypto.decrypt(header, iv, cipher_text, tag, shared_key, aad)

        cek = _unwrap(shared_key, encrypted_key)
        return _decrypt_content(header, iv, cipher_text, tag, cek, aad)


# ==================== ECDH-1PU ====================


class ECDH1PUEncrypter(JWEEncrypter):
    """One-pass unified model ECDH; authenticates the sender's static key."""

    SUPPORTED_ALGORITHMS = ECDH_1PU_ALGORITHMS
    SUPPORTED_ENCRYPTION_METHODS = ALL_ENCRYPTION_METHODS

    def __init__(
        self,
        sender_private_key: Any,
        recipient_public_key: Any,
        cek: bytes | None = None,
        ephemeral_key: Any | None = None,
    ):
        super().__init__()
        self.curve = ecdh.ensure_same_curve(sender_private_key, recipient_public_key)
        if ephemeral_key is not None:
            ecdh.ensure_same_curve(ephemeral_key, recipient_public_key)
        self.sender_private_key = sender_private_key
        self.recipient_public_key = recipient_public_key
        self.cek = cek
        self.ephemeral_key = ephemeral_key

    def encrypt(self, header: JWEHeader, clear_text: bytes, aad: bytes | None = None) -> JWECryptoParts:
        self.ensure_supported(header)
        key_wrapping = _is_key_wrapping(header)
        if key_wrapping and header.encryption_method not in ECDH_1PU_KW_ENCRYPTION_METHODS:
            raise UnsupportedAlgorithmError(
                f"ECDH-1PU key wrapping requires an AES_CBC_HMAC encryption method, got {header.encryption_method}"
            )

        ephemeral_key = self.ephemeral_key or ecdh.generate_ephemeral_key(self.recipient_public_key)
        updated = _ephemeral_header(header, ephemeral_key)
        aad = resolve_aad(header, updated, aad)

        z = ecdh.derive_sender_z(self.sender_private_key, self.recipient_public_key, ephemeral_key)

        if not key_wrapping:
            shared_key = ecdh.derive_shared_key(updated, z)
            return content_crypto.encrypt(updated, clear_text, shared_key, aad=aad)

        # The tag feeds the key derivation, so encrypt before wrapping the CEK
        cek = self.cek if self.cek is not None else content_crypto.generate_cek(updated.encryption_method)
        parts = content_crypto.encrypt(updated, clear_text, cek, aad=aad)
        shared_key = ecdh.derive_shared_key(updated, z, tag=parts.tag)
        return replace(parts, encrypted_key=_wrap(shared_key, cek))


class ECDH1PUDecrypter(JWEDecrypter):
    SUPPORTED_ALGORITHMS = ECDH_1PU_ALGORITHMS
    SUPPORTED_ENCRYPTION_METHODS = ALL_ENCRYPTION_METHODS

    def __init__(
        self,
        recipient_private_key: Any,
        sender_public_key: Any,
        deferred_critical_params: Iterable[str] | None = None,
    ):
        super().__init__(deferred_critical_params)
        self.curve = ecdh.key_curve(recipient_private_key)
        self.recipient_private_key = recipient_private_key
        self.sender_public_key = sender_public_key

    def decrypt(self, header, encrypted_key, iv, cipher_text, tag, aad=None) -> bytes:
        self.ensure_supported(header)
        self.crit_policy.ensure_header_passes(header)

        ecdh.ensure_same_curve(self.recipient_private_key, self.sender_public_key)
        ephemeral_public_key = ecdh.ephemeral_public_key(header)
        z = ecdh.derive_recipient_z(self.recipient_private_key, self.sender_public_key, ephemeral_public_key)

        if not _is_key_wrapping(header):
            _ensure_no_encrypted_key(encrypted_key)
            shared_key = ecdh.derive_shared_key(header, z)
            return content_crypto.decrypt(header, iv, cipher_text, tag, shared_key, aad)

        if header.encryption_method not in ECDH_1PU_KW_ENCRYPTION_METHODS:
            raise UnsupportedAlgorithmError(
                f"ECDH-1PU key wrapping requires an AES_CBC_HMAC encryption method, got {header.encryption_method}"
            )
        shared_key = ecdh.derive_shared_key(header, z, tag=tag)
        cek = _unwrap(shared_key, encrypted_key)
        return _decrypt_content(header, iv, cipher_text, tag, cek, aad)


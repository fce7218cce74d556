"""JWE content encryption (RFC 7518 Section 5).

Two families of encryption methods:

- AEAD ciphers (AES-GCM, ChaCha20-Poly1305): 96-bit IV, 128-bit tag.
- AES-CBC + HMAC-SHA2 composites: the CEK is split into a MAC key (first
  half) and an encryption key (second half); the tag is the HMAC over
  AAD || IV || ciphertext || AL, truncated to half its length.

Decryption verifies the tag before any clear text is produced. Every
failure after parsing raises the same IntegrityError.
"""

import os
import struct
import zlib

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import constant_time, hashes
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from josekit.core.algorithms import CompressionAlgorithm, EncryptionMethod, parse_encryption_method
from josekit.core.errors import DecryptionError, IntegrityError, KeyLengthError, UnsupportedAlgorithmError
from josekit.core.header import JWEHeader
from josekit.core.providers import JWECryptoParts

# CEK bit length -> encryption methods using a CEK of that length
COMPATIBLE_ENCRYPTION_METHODS = {
    128: frozenset({EncryptionMethod.A128GCM}),
    192: frozenset({EncryptionMethod.A192GCM}),
    256: frozenset({EncryptionMethod.A256GCM, EncryptionMethod.A128CBC_HS256, EncryptionMethod.C20P}),
    384: frozenset({EncryptionMethod.A192CBC_HS384}),
    512: frozenset({EncryptionMethod.A256CBC_HS512}),
}

SUPPORTED_ENCRYPTION_METHODS = frozenset(EncryptionMethod)

AEAD_IV_SIZE = 12
AEAD_TAG_SIZE = 16
CBC_IV_SIZE = 16

_CBC_HASHES = {
    EncryptionMethod.A128CBC_HS256: hashes.SHA256,
    EncryptionMethod.A192CBC_HS384: hashes.SHA384,
    EncryptionMethod.A256CBC_HS512: hashes.SHA512,
}


def resolve_method(method: str | EncryptionMethod) -> EncryptionMethod:
    """Raises:
    UnsupportedAlgorithmError: If the encryption method is unknown
    """
    resolved = parse_encryption_method(method)
    if resolved is None:
        raise UnsupportedAlgorithmError(
            f"Unsupported encryption method {method!r}, must be one of: "
            + ", ".join(m.value for m in EncryptionMethod)
        )
    return resolved


def compatible_methods(cek_bit_length: int) -> frozenset:
    """Encryption methods that accept a CEK of the given bit length."""
    return COMPATIBLE_ENCRYPTION_METHODS.get(cek_bit_length, frozenset())


def generate_cek(method: str | EncryptionMethod) -> bytes:
    """Generate a random Content Encryption Key sized for the method."""
    return os.urandom(resolve_method(method).cek_bit_length // 8)


def generate_iv(method: str | EncryptionMethod) -> bytes:
    if resolve_method(method).is_composite:
        return os.urandom(CBC_IV_SIZE)
    return os.urandom(AEAD_IV_SIZE)


def check_cek_length(cek: bytes, method: str | EncryptionMethod) -> None:
    """Raises:
    KeyLengthError: If the CEK length differs from the method's
    """
    method = resolve_method(method)
    if len(cek) * 8 != method.cek_bit_length:
        raise KeyLengthError(
            f"The Content Encryption Key (CEK) length for {method.value} must be {method.cek_bit_length} bits"
        )


def compress(header: JWEHeader, clear_text: bytes) -> bytes:
    """Apply the "zip" header parameter before encryption."""
    if header.compression is None:
        return clear_text
    if header.compression != CompressionAlgorithm.DEF.value:
        raise UnsupportedAlgorithmError(f"Unsupported compression algorithm: {header.compression}")
    # Raw DEFLATE stream, no zlib header
    compressor = zlib.compressobj(level=zlib.Z_DEFAULT_COMPRESSION, wbits=-zlib.MAX_WBITS)
    return compressor.compress(clear_text) + compressor.flush()


def decompress(header: JWEHeader, data: bytes) -> bytes:
    """Reverse the "zip" header parameter after decryption."""
    if header.compression is None:
        return data
    if header.compression != CompressionAlgorithm.DEF.value:
        raise UnsupportedAlgorithmError(f"Unsupported compression algorithm: {header.compression}")
    try:
        return zlib.decompress(data, wbits=-zlib.MAX_WBITS)
    except zlib.error as e:
        raise DecryptionError(f"Couldn't decompress plain text: {e}") from e


def encrypt(
    header: JWEHeader,
    clear_text: bytes,
    cek: bytes,
    encrypted_key: bytes = b"",
    aad: bytes | None = None,
    iv: bytes | None = None,
) -> JWECryptoParts:
    """Encrypt (and optionally compress) the clear text with the CEK.

    Args:
        header: The final JWE header, its "enc" selects the method
        clear_text: Data to encrypt
        cek: Content Encryption Key
        encrypted_key: Wrapped CEK to carry in the result, empty for none
        aad: Additional authenticated data, defaults to the header's AAD
        iv: Initialization vector, random when omitted

    Returns:
        JWECryptoParts with the given header

    Raises:
        KeyLengthError: If the CEK does not fit the encryption method
        UnsupportedAlgorithmError: If the method is not supported
    """
    method = resolve_method(header.encryption_method)
    check_cek_length(cek, method)

    if aad is None:
        aad = header.compute_aad()
    if iv is None:
        iv = generate_iv(method)

    plain = compress(header, clear_text)

    if method.is_composite:
        cipher_text, tag = _cbc_hmac_encrypt(method, cek, iv, plain, aad)
    else:
        sealed = _aead(method, cek).encrypt(iv, plain, aad)
        # Tag is the last 16 bytes
        cipher_text, tag = sealed[:-AEAD_TAG_SIZE], sealed[-AEAD_TAG_SIZE:]

    return JWECryptoParts(
        header=header,
        encrypted_key=encrypted_key,
        iv=iv,
        cipher_text=cipher_text,
        tag=tag,
    )


def decrypt(
    header: JWEHeader,
    iv: bytes,
    cipher_text: bytes,
    tag: bytes,
    cek: bytes,
    aad: bytes | None = None,
) -> bytes:
    """Verify the tag, decrypt and decompress.

    Raises:
        KeyLengthError: If the CEK does not fit the encryption method
        IntegrityError: If authentication or decryption failed
        DecryptionError: If decompression failed
    """
    method = resolve_method(header.encryption_method)
    check_cek_length(cek, method)

    if aad is None:
        aad = header.compute_aad()

    if method.is_composite:
        plain = _cbc_hmac_decrypt(method, cek, iv, cipher_text, tag, aad)
    else:
        if len(tag) != AEAD_TAG_SIZE:
            raise IntegrityError()
        try:
            plain = _aead(method, cek).decrypt(iv, cipher_text + tag, aad)
        except (InvalidTag, ValueError) as e:
            raise IntegrityError() from e

    return decompress(header, plain)


def _aead(method: EncryptionMethod, cek: bytes):
    if method is EncryptionMethod.C20P:
        return ChaCha20Poly1305(cek)
    return AESGCM(cek)


def _cbc_hmac_tag(method: EncryptionMethod, mac_key: bytes, iv: bytes, cipher_text: bytes, aad: bytes) -> bytes:
    al = struct.pack(">Q", len(aad) * 8)  # AAD length in bits
    h = crypto_hmac.HMAC(mac_key, _CBC_HASHES[method]())
    h.update(aad + iv + cipher_text + al)
    mac = h.finalize()
    return mac[: len(mac) // 2]


def _cbc_hmac_encrypt(method: EncryptionMethod, cek: bytes, iv: bytes, plain: bytes, aad: bytes) -> tuple[bytes, bytes]:
    half = len(cek) // 2
    mac_key, enc_key = cek[:half], cek[half:]

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plain) + padder.finalize()

    encryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
    cipher_text = encryptor.update(padded) + encryptor.finalize()

    return cipher_text, _cbc_hmac_tag(method, mac_key, iv, cipher_text, aad)


def _cbc_hmac_decrypt(
    method: EncryptionMethod, cek: bytes, iv: bytes, cipher_text: bytes, tag: bytes, aad: bytes
) -> bytes:
    half = len(cek) // 2
    mac_key, enc_key = cek[:half], cek[half:]

    expected = _cbc_hmac_tag(method, mac_key, iv, cipher_text, aad)
    if not constant_time.bytes_eq(tag, expected):
        raise IntegrityError()

    try:
        decryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(cipher_text) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise IntegrityError() from e

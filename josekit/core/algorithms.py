"""JOSE algorithm identifiers (RFC 7518, RFC 8037, draft-madden-jose-ecdh-1pu).

Supported JWS Algorithms:
- HS256, HS384, HS512 (HMAC)
- ES256, ES384, ES512 (ECDSA)
- EdDSA (Ed25519)
- RS256, RS384, RS512 (RSASSA-PKCS1-v1_5)
- PS256, PS384, PS512 (RSASSA-PSS)

Supported JWE Algorithms:
- dir
- A128KW, A192KW, A256KW
- ECDH-ES, ECDH-ES+A128KW, ECDH-ES+A192KW, ECDH-ES+A256KW
- ECDH-1PU, ECDH-1PU+A128KW, ECDH-1PU+A192KW, ECDH-1PU+A256KW

Content Encryption:
- A128GCM, A192GCM, A256GCM (AES-GCM)
- A128CBC-HS256, A192CBC-HS384, A256CBC-HS512 (AES-CBC with HMAC)
- C20P (ChaCha20-Poly1305 - not in RFC but widely used)
"""

from enum import Enum

# The "alg" value of unsecured (plain) objects
ALG_NONE = "none"


# JWS Algorithms
class JWSAlgorithm(str, Enum):
    """Supported JWS signature algorithms."""

    HS256 = "HS256"  # HMAC SHA-256
    HS384 = "HS384"  # HMAC SHA-384
    HS512 = "HS512"  # HMAC SHA-512
    ES256 = "ES256"  # ECDSA P-256 with SHA-256
    ES384 = "ES384"  # ECDSA P-384 with SHA-384
    ES512 = "ES512"  # ECDSA P-521 with SHA-512
    EDDSA = "EdDSA"  # Ed25519
    RS256 = "RS256"  # RSASSA-PKCS1-v1_5 with SHA-256
    RS384 = "RS384"
    RS512 = "RS512"
    PS256 = "PS256"  # RSASSA-PSS with SHA-256 and MGF1
    PS384 = "PS384"
    PS512 = "PS512"

    @property
    def family(self) -> str:
        """Key family the algorithm operates on: HMAC, EC, OKP or RSA."""
        if self.value.startswith("HS"):
            return "HMAC"
        if self.value.startswith("ES"):
            return "EC"
        if self is JWSAlgorithm.EDDSA:
            return "OKP"
        return "RSA"


# JWE Algorithms
class JWEAlgorithm(str, Enum):
    """Supported JWE key management algorithms."""

    DIR = "dir"  # Direct encryption
    A128KW = "A128KW"  # AES-128 Key Wrap
    A192KW = "A192KW"  # AES-192 Key Wrap
    A256KW = "A256KW"  # AES-256 Key Wrap
    ECDH_ES = "ECDH-ES"  # ECDH Ephemeral Static
    ECDH_ES_A128KW = "ECDH-ES+A128KW"
    ECDH_ES_A192KW = "ECDH-ES+A192KW"
    ECDH_ES_A256KW = "ECDH-ES+A256KW"
    ECDH_1PU = "ECDH-1PU"  # ECDH One-Pass Unified Model
    ECDH_1PU_A128KW = "ECDH-1PU+A128KW"
    ECDH_1PU_A192KW = "ECDH-1PU+A192KW"
    ECDH_1PU_A256KW = "ECDH-1PU+A256KW"

    @property
    def family(self) -> str:
        """Provider family: DIR, AESKW, ECDH-ES or ECDH-1PU."""
        if self is JWEAlgorithm.DIR:
            return "DIR"
        if self.value.startswith("ECDH-1PU"):
            return "ECDH-1PU"
        if self.value.startswith("ECDH-ES"):
            return "ECDH-ES"
        return "AESKW"

    @property
    def wrap_key_bits(self) -> int | None:
        """Bit length of the AES key wrap key, None when no wrapping."""
        for bits in (128, 192, 256):
            if self.value.endswith(f"A{bits}KW"):
                return bits
        return None


class EncryptionMethod(str, Enum):
    """Supported JWE content encryption algorithms."""

    A128CBC_HS256 = "A128CBC-HS256"  # AES-128-CBC + HMAC-SHA-256
    A192CBC_HS384 = "A192CBC-HS384"  # AES-192-CBC + HMAC-SHA-384
    A256CBC_HS512 = "A256CBC-HS512"  # AES-256-CBC + HMAC-SHA-512
    A128GCM = "A128GCM"  # AES-128-GCM
    A192GCM = "A192GCM"  # AES-192-GCM
    A256GCM = "A256GCM"  # AES-256-GCM
    C20P = "C20P"  # ChaCha20-Poly1305 (extended)

    @property
    def cek_bit_length(self) -> int:
        return _CEK_BITS[self]

    @property
    def is_composite(self) -> bool:
        """True for the AES-CBC + HMAC (MAC-then-encrypt) methods."""
        return "CBC" in self.value


_CEK_BITS = {
    EncryptionMethod.A128CBC_HS256: 256,  # 128 mac + 128 enc
    EncryptionMethod.A192CBC_HS384: 384,
    EncryptionMethod.A256CBC_HS512: 512,
    EncryptionMethod.A128GCM: 128,
    EncryptionMethod.A192GCM: 192,
    EncryptionMethod.A256GCM: 256,
    EncryptionMethod.C20P: 256,
}


class CompressionAlgorithm(str, Enum):
    """JWE "zip" values."""

    DEF = "DEF"  # DEFLATE (RFC 1951)


def parse_jws_algorithm(value: str) -> JWSAlgorithm | None:
    """Look up a JWS algorithm, None when not supported."""
    try:
        return JWSAlgorithm(value)
    except ValueError:
        return None


def parse_jwe_algorithm(value: str) -> JWEAlgorithm | None:
    try:
        return JWEAlgorithm(value)
    except ValueError:
        return None


def parse_encryption_method(value: str) -> EncryptionMethod | None:
    try:
        return EncryptionMethod(value)
    except ValueError:
        return None

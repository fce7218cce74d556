"""JSON Web Key model (RFC 7517, RFC 7518 Section 6, RFC 8037).

Converts between JWK JSON objects and ``cryptography`` key objects, and
provides the JWK set / matcher types used by key sources and key
selectors.
"""

import hashlib
import json
from dataclasses import dataclass, field, fields, replace
from typing import Any, Iterator

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa, x25519

from josekit.core.base64url import (
    b64url_decode,
    b64url_decode_int,
    b64url_encode,
    b64url_encode_int,
)
from josekit.core.errors import KeyMaterialError, ParseError

# Supported EC curves: JWK name -> (cryptography curve class, coordinate size)
EC_CURVES = {
    "P-256": (ec.SECP256R1, 32),
    "P-384": (ec.SECP384R1, 48),
    "P-521": (ec.SECP521R1, 66),
}

_EC_CURVE_NAMES = {
    "secp256r1": "P-256",
    "secp384r1": "P-384",
    "secp521r1": "P-521",
}

OKP_CURVES = ("Ed25519", "X25519")

KEY_TYPES = ("EC", "OKP", "RSA", "oct")

_PRIVATE_MEMBERS = ("d", "p", "q", "dp", "dq", "qi", "k")

# JWK member name -> dataclass field name, where they differ
_MEMBER_ALIASES = {"x5t#S256": "x5t_s256"}
_FIELD_ALIASES = {v: k for k, v in _MEMBER_ALIASES.items()}


def curve_name(key: Any) -> str:
    """Return the JWK curve name ("P-256", "X25519", ...) of a key object."""
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        try:
            return _EC_CURVE_NAMES[key.curve.name]
        except KeyError:
            raise KeyMaterialError(f"Unsupported curve: {key.curve.name}")
    if isinstance(key, (x25519.X25519PrivateKey, x25519.X25519PublicKey)):
        return "X25519"
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey)):
        return "Ed25519"
    raise KeyMaterialError(f"Not an elliptic curve key: {type(key).__name__}")


@dataclass(frozen=True)
class JWK:
    """JSON Web Key."""

    kty: str  # Key type
    use: str | None = None  # Use: sig or enc
    key_ops: tuple[str, ...] | None = None
    alg: str | None = None
    kid: str | None = None
    # X.509 references
    x5u: str | None = None
    x5c: tuple[str, ...] | None = None
    x5t: str | None = None
    x5t_s256: str | None = None
    # EC / OKP keys
    crv: str | None = None
    x: str | None = None
    y: str | None = None
    d: str | None = None  # Private key component
    # RSA keys
    n: str | None = None
    e: str | None = None
    p: str | None = None
    q: str | None = None
    dp: str | None = None
    dq: str | None = None
    qi: str | None = None
    # Symmetric keys
    k: str | None = None

    @property
    def is_private(self) -> bool:
        """True if the JWK carries private or secret key material."""
        return any(getattr(self, name) is not None for name in _PRIVATE_MEMBERS)

    def to_public(self) -> "JWK | None":
        """Public projection of the key, None for symmetric keys."""
        if self.kty == "oct":
            return None
        return replace(self, **{name: None for name in _PRIVATE_MEMBERS})

    def to_dict(self) -> dict:
        """Convert to dictionary, excluding None values."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, tuple):
                value = list(value)
            result[_FIELD_ALIASES.get(f.name, f.name)] = value
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "JWK":
        """Create from a JWK JSON object.

        Raises:
            ParseError: If the object is not a valid JWK
        """
        if not isinstance(data, dict):
            raise ParseError("JWK must be a JSON object")

        kty = data.get("kty")
        if kty not in KEY_TYPES:
            raise ParseError(f"Unsupported or missing JWK key type: {kty!r}")

        values = {}
        for name, value in data.items():
            attr = _MEMBER_ALIASES.get(name, name)
            if attr not in cls.__dataclass_fields__:
                continue
            if attr in ("key_ops", "x5c"):
                if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                    raise ParseError(f"JWK member {name!r} must be a list of strings")
                value = tuple(value)
            elif value is not None and not isinstance(value, str):
                raise ParseError(f"JWK member {name!r} must be a string")
            values[attr] = value

        jwk = cls(**values)
        jwk._check_required()
        return jwk

    def _check_required(self) -> None:
        required = {
            "EC": ("crv", "x", "y"),
            "OKP": ("crv", "x"),
            "RSA": ("n", "e"),
            "oct": ("k",),
        }[self.kty]
        missing = [name for name in required if getattr(self, name) is None]
        if missing:
            raise ParseError(f"{self.kty} JWK is missing required member(s): {', '.join(missing)}")

    def to_key(self) -> Any:
        """Convert JWK to cryptography key object.

        Returns:
            Key object (EC, RSA, Ed25519, X25519, or bytes for symmetric)
        """
        try:
            return self._to_key()
        except (ValueError, TypeError) as e:
            raise ParseError(f"Invalid {self.kty} JWK: {e}") from e

    def _to_key(self) -> Any:
        if self.kty == "oct":
            return b64url_decode(self.k)

        elif self.kty == "EC":
            if self.crv not in EC_CURVES:
                raise KeyMaterialError(f"Unsupported curve: {self.crv}")
            curve_cls, _ = EC_CURVES[self.crv]
            public_numbers = ec.EllipticCurvePublicNumbers(
                b64url_decode_int(self.x), b64url_decode_int(self.y), curve_cls()
            )
            if self.d:
                private_numbers = ec.EllipticCurvePrivateNumbers(b64url_decode_int(self.d), public_numbers)
                return private_numbers.private_key()
            return public_numbers.public_key()

        elif self.kty == "OKP":
            if self.crv == "Ed25519":
                if self.d:
                    return ed25519.Ed25519PrivateKey.from_private_bytes(b64url_decode(self.d))
                return ed25519.Ed25519PublicKey.from_public_bytes(b64url_decode(self.x))
            elif self.crv == "X25519":
                if self.d:
                    return x25519.X25519PrivateKey.from_private_bytes(b64url_decode(self.d))
                return x25519.X25519PublicKey.from_public_bytes(b64url_decode(self.x))
            raise KeyMaterialError(f"Unsupported curve: {self.crv}")

        # RSA
        public_numbers = rsa.RSAPublicNumbers(b64url_decode_int(self.e), b64url_decode_int(self.n))
        if not self.d:
            return public_numbers.public_key()
        if None in (self.p, self.q, self.dp, self.dq, self.qi):
            raise KeyMaterialError("RSA private JWKs without CRT parameters are not supported")
        private_numbers = rsa.RSAPrivateNumbers(
            p=b64url_decode_int(self.p),
            q=b64url_decode_int(self.q),
            d=b64url_decode_int(self.d),
            dmp1=b64url_decode_int(self.dp),
            dmq1=b64url_decode_int(self.dq),
            iqmp=b64url_decode_int(self.qi),
            public_numbers=public_numbers,
        )
        return private_numbers.private_key()

    @classmethod
    def from_key(
        cls,
        key: Any,
        kid: str | None = None,
        use: str | None = None,
        alg: str | None = None,
    ) -> "JWK":
        """Convert cryptography key to JWK.

        Args:
            key: Key object (EC, RSA, Ed25519, X25519, or bytes)
            kid: Key ID
            use: Key use
            alg: Intended algorithm

        Returns:
            JWK object
        """
        meta = {"kid": kid, "use": use, "alg": alg}

        if isinstance(key, bytes):
            return cls(kty="oct", k=b64url_encode(key), **meta)

        if isinstance(key, (ed25519.Ed25519PrivateKey, x25519.X25519PrivateKey)):
            private = key.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption(),
            )
            public = cls.from_key(key.public_key(), **meta)
            return replace(public, d=b64url_encode(private))

        if isinstance(key, (ed25519.Ed25519PublicKey, x25519.X25519PublicKey)):
            public = key.public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
            return cls(kty="OKP", crv=curve_name(key), x=b64url_encode(public), **meta)

        if isinstance(key, ec.EllipticCurvePrivateKey):
            public = cls.from_key(key.public_key(), **meta)
            size = EC_CURVES[public.crv][1]
            return replace(public, d=b64url_encode_int(key.private_numbers().private_value, size))

        if isinstance(key, ec.EllipticCurvePublicKey):
            crv = curve_name(key)
            size = EC_CURVES[crv][1]
            numbers = key.public_numbers()
            return cls(
                kty="EC",
                crv=crv,
                x=b64url_encode_int(numbers.x, size),
                y=b64url_encode_int(numbers.y, size),
                **meta,
            )

        if isinstance(key, rsa.RSAPrivateKey):
            public = cls.from_key(key.public_key(), **meta)
            numbers = key.private_numbers()
            return replace(
                public,
                d=b64url_encode_int(numbers.d),
                p=b64url_encode_int(numbers.p),
                q=b64url_encode_int(numbers.q),
                dp=b64url_encode_int(numbers.dmp1),
                dq=b64url_encode_int(numbers.dmq1),
                qi=b64url_encode_int(numbers.iqmp),
            )

        if isinstance(key, rsa.RSAPublicKey):
            numbers = key.public_numbers()
            return cls(kty="RSA", n=b64url_encode_int(numbers.n), e=b64url_encode_int(numbers.e), **meta)

        raise KeyMaterialError(f"Unsupported key type: {type(key)}")

    def thumbprint(self) -> str:
        """Compute the SHA-256 JWK thumbprint per RFC 7638."""
        # Per RFC 7638, only include required members in canonical order
        if self.kty == "EC":
            canonical = {"crv": self.crv, "kty": self.kty, "x": self.x, "y": self.y}
        elif self.kty == "OKP":
            canonical = {"crv": self.crv, "kty": self.kty, "x": self.x}
        elif self.kty == "RSA":
            canonical = {"e": self.e, "kty": self.kty, "n": self.n}
        else:
            canonical = {"k": self.k, "kty": self.kty}

        # Serialize with lexicographic key ordering and no whitespace
        canonical_json = json.dumps(canonical, separators=(",", ":"), sort_keys=True)
        return b64url_encode(hashlib.sha256(canonical_json.encode()).digest())


@dataclass(frozen=True)
class JWKSet:
    """Immutable ordered collection of JWKs."""

    keys: tuple[JWK, ...] = ()

    def __iter__(self) -> Iterator[JWK]:
        return iter(self.keys)

    def __len__(self) -> int:
        return len(self.keys)

    def get_key_by_id(self, kid: str) -> JWK | None:
        for jwk in self.keys:
            if jwk.kid == kid:
                return jwk
        return None

    def to_dict(self, public_only: bool = True) -> dict:
        keys = []
        for jwk in self.keys:
            if public_only:
                jwk = jwk.to_public()
                if jwk is None:
                    continue
            keys.append(jwk.to_dict())
        return {"keys": keys}

    @classmethod
    def from_dict(cls, data: dict) -> "JWKSet":
        """Parse a JWK set JSON object.

        Keys of unsupported type are skipped, as RFC 7517 Section 5
        requires.
        """
        if not isinstance(data, dict):
            raise ParseError("JWK set must be a JSON object")
        members = data.get("keys")
        if not isinstance(members, list):
            raise ParseError('Missing "keys" array in JWK set')

        keys = []
        for member in members:
            if isinstance(member, dict) and member.get("kty") not in KEY_TYPES:
                continue
            keys.append(JWK.from_dict(member))
        return cls(keys=tuple(keys))

    @classmethod
    def parse(cls, text: str | bytes) -> "JWKSet":
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ParseError(f"Invalid JWK set JSON: {e}") from e
        return cls.from_dict(data)


@dataclass(frozen=True)
class JWKMatcher:
    """Criteria for selecting JWKs; unset criteria match anything."""

    key_ids: frozenset[str] | None = None
    key_types: frozenset[str] | None = None
    key_uses: frozenset[str] | None = None
    algorithms: frozenset[str] | None = None
    curves: frozenset[str] | None = None
    public_only: bool = False
    private_only: bool = False

    def matches(self, jwk: JWK) -> bool:
        if self.key_ids is not None and jwk.kid not in self.key_ids:
            return False
        if self.key_types is not None and jwk.kty not in self.key_types:
            return False
        # A JWK without "use" / "alg" is not restricted
        if self.key_uses is not None and jwk.use is not None and jwk.use not in self.key_uses:
            return False
        if self.algorithms is not None and jwk.alg is not None and jwk.alg not in self.algorithms:
            return False
        if self.curves is not None and jwk.crv not in self.curves:
            return False
        if self.public_only and jwk.is_private:
            return False
        if self.private_only and not jwk.is_private:
            return False
        return True


@dataclass(frozen=True)
class JWKSelector:
    """Selects the JWKs matching a matcher, preserving set order."""

    matcher: JWKMatcher = field(default_factory=JWKMatcher)

    def select(self, jwk_set: JWKSet) -> list[JWK]:
        return [jwk for jwk in jwk_set if self.matcher.matches(jwk)]

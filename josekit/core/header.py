"""JOSE header model (RFC 7515 Section 4, RFC 7516 Section 4).

Headers are immutable. Registered parameters have typed attributes, every
other member is kept verbatim in ``custom_params``. A header parsed from a
wire segment remembers that segment, so the signing input / AAD computed
from it is byte-identical to what the producer used.

Build a header with keyword arguments and derive variants with
``header.copy(...)``::

    header = JWSHeader(JWSAlgorithm.ES256, key_id="2024-01", type="JWT")
    header = header.copy(critical_params={"exp"}, custom_params={"exp": 1700000000})
"""

import json
from dataclasses import KW_ONLY, dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping

from josekit.core.algorithms import ALG_NONE
from josekit.core.base64url import b64url_decode, b64url_encode
from josekit.core.errors import ParseError
from josekit.core.jwk import JWK

# (JSON member name, attribute name, value kind)
_COMMON_PARAMS = (
    ("alg", "algorithm", "str"),
    ("jku", "jwk_url", "str"),
    ("jwk", "jwk", "jwk"),
    ("x5u", "x509_cert_url", "str"),
    ("x5t", "x509_cert_thumbprint", "str"),
    ("x5t#S256", "x509_cert_sha256_thumbprint", "str"),
    ("x5c", "x509_cert_chain", "str_list"),
    ("kid", "key_id", "str"),
    ("typ", "type", "str"),
    ("cty", "content_type", "str"),
    ("crit", "critical_params", "str_set"),
)


def _plain_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class Header:
    """Common JOSE header parameters."""

    PARAMS: ClassVar[tuple] = _COMMON_PARAMS

    algorithm: str
    _: KW_ONLY
    type: str | None = None
    content_type: str | None = None
    key_id: str | None = None
    critical_params: frozenset[str] | None = None
    jwk_url: str | None = None
    jwk: JWK | None = None
    x509_cert_url: str | None = None
    x509_cert_thumbprint: str | None = None
    x509_cert_sha256_thumbprint: str | None = None
    x509_cert_chain: tuple[str, ...] | None = None
    custom_params: Mapping[str, Any] = field(default_factory=dict, hash=False)
    parsed_base64url: str | None = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "algorithm", _plain_value(self.algorithm))
        if not isinstance(self.algorithm, str) or not self.algorithm:
            raise ValueError("The algorithm must not be empty")

        if self.critical_params is not None:
            object.__setattr__(self, "critical_params", frozenset(self.critical_params))
        if self.x509_cert_chain is not None:
            object.__setattr__(self, "x509_cert_chain", tuple(self.x509_cert_chain))
        if self.jwk is not None and self.jwk.is_private:
            raise ValueError("The JWK must be public")

        registered = self.registered_parameter_names()
        for name in self.custom_params:
            if name in registered:
                raise ValueError(f'The parameter name "{name}" matches a registered name')
        object.__setattr__(self, "custom_params", MappingProxyType(dict(self.custom_params)))

    @classmethod
    def registered_parameter_names(cls) -> frozenset[str]:
        return frozenset(name for name, _, _ in cls.PARAMS)

    def get_custom_param(self, name: str) -> Any:
        return self.custom_params.get(name)

    @property
    def included_params(self) -> frozenset[str]:
        """Names of all parameters present in the header."""
        return frozenset(self.to_dict())

    def copy(self, **changes) -> "Header":
        """Return a modified header; the result is no longer tied to a parsed segment."""
        return replace(self, parsed_base64url=None, **changes)

    def with_custom_param(self, name: str, value: Any) -> "Header":
        params = dict(self.custom_params)
        params[name] = value
        return self.copy(custom_params=params)

    def to_dict(self) -> dict:
        """Ordered JSON object; registered parameters first, absent ones omitted."""
        result = {}
        for name, attr, kind in self.PARAMS:
            value = getattr(self, attr)
            if value is None:
                continue
            if kind in ("jwk", "epk"):
                value = value.to_dict()
            elif kind == "str_set":
                value = sorted(value)
            elif kind == "str_list":
                value = list(value)
            result[name] = value
        result.update(self.custom_params)
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def to_base64url(self) -> str:
        """The wire segment; the original one for parsed headers."""
        if self.parsed_base64url is not None:
            return self.parsed_base64url
        return b64url_encode(self.to_json().encode("utf-8"))

    def compute_aad(self) -> bytes:
        """JWE AAD / JWS signing input prefix: ASCII of the header segment."""
        return self.to_base64url().encode("ascii")

    @classmethod
    def from_dict(cls, data: dict, parsed_base64url: str | None = None) -> "Header":
        """Build a header from a JSON object.

        Registered parameters with a JSON null value are treated as absent.

        Raises:
            ParseError: If a required parameter is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ParseError("The header must be a JSON object")

        if data.get("alg") is None:
            raise ParseError('Missing "alg" in header JSON object')

        values = {}
        custom = {}
        registered = {name: (attr, kind) for name, attr, kind in cls.PARAMS}
        for name, value in data.items():
            if name not in registered:
                custom[name] = value
                continue
            if value is None:
                continue
            attr, kind = registered[name]
            values[attr] = _parse_param(name, value, kind)

        algorithm = values.pop("algorithm")
        try:
            return cls._create(algorithm, values, custom, parsed_base64url)
        except ValueError as e:
            raise ParseError(str(e)) from e

    @classmethod
    def _create(cls, algorithm, values, custom, parsed_base64url):
        return cls(algorithm, custom_params=custom, parsed_base64url=parsed_base64url, **values)

    @classmethod
    def parse_json(cls, text: str | bytes, parsed_base64url: str | None = None) -> "Header":
        return cls.from_dict(_load_json(text), parsed_base64url)

    @classmethod
    def parse(cls, segment: str) -> "Header":
        """Parse a Base64URL-encoded header segment."""
        return cls.parse_json(b64url_decode(segment), parsed_base64url=segment)


def _load_json(text: str | bytes) -> dict:
    try:
        data = json.loads(text)
    except (ValueError, UnicodeDecodeError) as e:
        raise ParseError(f"Invalid header JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("The header must be a JSON object")
    return data


def _parse_param(name: str, value: Any, kind: str) -> Any:
    if kind == "str":
        if not isinstance(value, str):
            raise ParseError(f'Unexpected type of JSON object member "{name}"')
        return value
    if kind == "bool":
        if not isinstance(value, bool):
            raise ParseError(f'Unexpected type of JSON object member "{name}"')
        return value
    if kind in ("str_list", "str_set"):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ParseError(f'Unexpected type of JSON object member "{name}"')
        return frozenset(value) if kind == "str_set" else tuple(value)
    if kind in ("jwk", "epk"):
        if not isinstance(value, dict):
            raise ParseError(f'Unexpected type of JSON object member "{name}"')
        jwk = JWK.from_dict(value)
        if jwk.is_private:
            raise ParseError(f"Non-public key in {name} header parameter")
        return jwk
    raise ParseError(f"Unknown parameter kind: {kind}")


@dataclass(frozen=True)
class PlainHeader(Header):
    """Header of an unsecured object ({"alg":"none"})."""

    algorithm: str = ALG_NONE

    def __post_init__(self):
        super().__post_init__()
        if self.algorithm != ALG_NONE:
            raise ValueError('The algorithm of a plain header must be "none"')

    @classmethod
    def _create(cls, algorithm, values, custom, parsed_base64url):
        if algorithm != ALG_NONE:
            raise ParseError('The algorithm "alg" header parameter must be "none"')
        unsupported = set(values) - {"type", "content_type", "critical_params"}
        if unsupported:
            raise ParseError("Unsupported parameter(s) in plain header")
        return cls(custom_params=custom, parsed_base64url=parsed_base64url, **values)


@dataclass(frozen=True)
class JWSHeader(Header):
    """JSON Web Signature header."""

    PARAMS: ClassVar[tuple] = _COMMON_PARAMS + (("b64", "base64url_encode_payload", "bool"),)

    _: KW_ONLY
    base64url_encode_payload: bool = True

    def __post_init__(self):
        super().__post_init__()
        if self.algorithm == ALG_NONE:
            raise ValueError('The JWS algorithm must not be "none"')

    def to_dict(self) -> dict:
        result = super().to_dict()
        # b64 defaults to true and is only written when false
        if self.base64url_encode_payload:
            result.pop("b64", None)
        return result

    @classmethod
    def from_dict(cls, data: dict, parsed_base64url: str | None = None) -> "JWSHeader":
        if isinstance(data, dict) and data.get("alg") == ALG_NONE:
            raise ParseError("Not a JWS header")
        return super().from_dict(data, parsed_base64url)


@dataclass(frozen=True)
class JWEHeader(Header):
    """JSON Web Encryption header."""

    PARAMS: ClassVar[tuple] = (
        _COMMON_PARAMS[:1]
        + (("enc", "encryption_method", "str"),)
        + _COMMON_PARAMS[1:]
        + (
            ("epk", "ephemeral_public_key", "epk"),
            ("zip", "compression", "str"),
            ("apu", "agreement_party_u_info", "str"),
            ("apv", "agreement_party_v_info", "str"),
            ("skid", "sender_key_id", "str"),
        )
    )

    encryption_method: str
    _: KW_ONLY
    ephemeral_public_key: JWK | None = None
    compression: str | None = None
    agreement_party_u_info: str | None = None
    agreement_party_v_info: str | None = None
    sender_key_id: str | None = None

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "encryption_method", _plain_value(self.encryption_method))
        object.__setattr__(self, "compression", _plain_value(self.compression))
        if self.algorithm == ALG_NONE:
            raise ValueError('The JWE algorithm must not be "none"')
        if not isinstance(self.encryption_method, str) or not self.encryption_method:
            raise ValueError("The encryption method must not be empty")
        if self.ephemeral_public_key is not None and self.ephemeral_public_key.is_private:
            raise ValueError("The ephemeral public key must be public")

    @classmethod
    def from_dict(cls, data: dict, parsed_base64url: str | None = None) -> "JWEHeader":
        if isinstance(data, dict) and data.get("alg") == ALG_NONE:
            raise ParseError("Not a JWE header")
        if isinstance(data, dict) and data.get("enc") is None:
            raise ParseError('Missing "enc" in header JSON object')
        return super().from_dict(data, parsed_base64url)

    @classmethod
    def _create(cls, algorithm, values, custom, parsed_base64url):
        encryption_method = values.pop("encryption_method")
        return cls(
            algorithm,
            encryption_method,
            custom_params=custom,
            parsed_base64url=parsed_base64url,
            **values,
        )


def parse_header(segment: str) -> Header:
    """Parse a header segment into the matching header type.

    ``{"alg":"none"}`` gives a PlainHeader, a header with "enc" a
    JWEHeader, anything else a JWSHeader.
    """
    data = _load_json(b64url_decode(segment))
    if data.get("alg") == ALG_NONE:
        return PlainHeader.from_dict(data, parsed_base64url=segment)
    if "enc" in data:
        return JWEHeader.from_dict(data, parsed_base64url=segment)
    return JWSHeader.from_dict(data, parsed_base64url=segment)

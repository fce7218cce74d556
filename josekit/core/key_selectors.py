"""Key selectors: header -> ordered candidate keys for the token processor."""

from typing import Any, Iterable

from josekit.core.algorithms import EncryptionMethod, JWEAlgorithm, JWSAlgorithm, parse_jwe_algorithm, parse_jws_algorithm
from josekit.core.errors import KeyMaterialError, ParseError
from josekit.core.header import JWEHeader, JWSHeader
from josekit.core.jwk import JWK, JWKMatcher, JWKSelector
from josekit.core.signers import ECDSA_CURVES

# JWS algorithm family -> JWK key type
_JWS_KEY_TYPES = {
    "HMAC": "oct",
    "EC": "EC",
    "OKP": "OKP",
    "RSA": "RSA",
}


def _to_key_objects(jwks: Iterable[JWK], public: bool) -> list[Any]:
    """Convert JWKs to key objects, preserving order and skipping unusable ones."""
    keys = []
    for jwk in jwks:
        try:
            key = jwk.to_key()
        except (ParseError, KeyMaterialError):
            continue
        if public and not isinstance(key, bytes) and hasattr(key, "public_key"):
            key = key.public_key()
        keys.append(key)
    return keys


class JWSVerificationKeySelector:
    """Selects JWS verification keys from a JWK source.

    Only headers whose algorithm is one of the expected ones get
    candidates; everything else gets an empty list.
    """

    def __init__(self, expected_algorithms: JWSAlgorithm | Iterable[JWSAlgorithm], jwk_source):
        if isinstance(expected_algorithms, (str, JWSAlgorithm)):
            expected_algorithms = [expected_algorithms]
        self.expected_algorithms = frozenset(JWSAlgorithm(a) for a in expected_algorithms)
        self.jwk_source = jwk_source

    def is_allowed(self, algorithm: str) -> bool:
        return algorithm in self.expected_algorithms

    def create_matcher(self, header: JWSHeader) -> JWKMatcher | None:
        algorithm = parse_jws_algorithm(header.algorithm)
        if algorithm is None or not self.is_allowed(algorithm):
            return None
        curves = None
        if algorithm in ECDSA_CURVES:
            curves = frozenset({ECDSA_CURVES[algorithm]})
        elif algorithm is JWSAlgorithm.EDDSA:
            curves = frozenset({"Ed25519"})
        return JWKMatcher(
            key_ids=frozenset({header.key_id}) if header.key_id else None,
            key_types=frozenset({_JWS_KEY_TYPES[algorithm.family]}),
            key_uses=frozenset({"sig"}),
            algorithms=frozenset({algorithm.value}),
            curves=curves,
        )

    def select_jws_keys(self, header: JWSHeader, context: Any = None) -> list[Any]:
        """Candidate verification keys, in JWK source order."""
        matcher = self.create_matcher(header)
        if matcher is None:
            return []
        jwks = self.jwk_source.get(JWKSelector(matcher), context)
        return _to_key_objects(jwks, public=True)


class JWEDecryptionKeySelector:
    """Selects JWE decryption keys from a JWK source."""

    def __init__(
        self,
        expected_algorithm: JWEAlgorithm | str,
        expected_method: EncryptionMethod | str,
        jwk_source,
    ):
        self.expected_algorithm = JWEAlgorithm(expected_algorithm)
        self.expected_method = EncryptionMethod(expected_method)
        self.jwk_source = jwk_source

    def create_matcher(self, header: JWEHeader) -> JWKMatcher | None:
        algorithm = parse_jwe_algorithm(header.algorithm)
        if algorithm is not self.expected_algorithm or header.encryption_method != self.expected_method:
            return None

        curves = None
        if algorithm.family in ("DIR", "AESKW"):
            key_types = frozenset({"oct"})
        elif header.ephemeral_public_key is not None:
            key_types = frozenset({header.ephemeral_public_key.kty})
            curves = frozenset({header.ephemeral_public_key.crv})
        else:
            key_types = frozenset({"EC", "OKP"})

        return JWKMatcher(
            key_ids=frozenset({header.key_id}) if header.key_id else None,
            key_types=key_types,
            key_uses=frozenset({"enc"}),
            algorithms=frozenset({algorithm.value}),
            curves=curves,
            private_only=True,
        )

    def select_jwe_keys(self, header: JWEHeader, context: Any = None) -> list[Any]:
        """Candidate decryption keys, in JWK source order."""
        matcher = self.create_matcher(header)
        if matcher is None:
            return []
        jwks = self.jwk_source.get(JWKSelector(matcher), context)
        return _to_key_objects(jwks, public=False)

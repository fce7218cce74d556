"""JWT processor: parse, verify or decrypt, then check the claims.

Candidate keys from the key selector are tried strictly in order, one at
a time. The first key that verifies the signature (or decrypts the
content) wins and the remaining keys are never touched. Each attempt
yields a CandidateResult; the loop alone decides whether to go on.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from josekit.config import get_settings
from josekit.core import objects
from josekit.core.errors import (
    ClaimsRejectedError,
    ConfigurationError,
    DecryptionError,
    JOSEError,
    NoDecrypterError,
    NoVerifierError,
    ParseError,
    PolicyError,
    SignatureRejectedError,
)
from josekit.core.factory import DefaultJWEDecrypterFactory, DefaultJWSVerifierFactory
from josekit.core.objects import JWEObject, JWSObject, PlainObject
from josekit.observability import get_logger

logger = get_logger(__name__)

NESTED_CONTENT_TYPE = "JWT"


class Outcome(str, Enum):
    """Result of trying one candidate key."""

    SKIPPED = "skipped"  # factory declined the key
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CandidateResult:
    outcome: Outcome
    payload: bytes | None = None
    error: Exception | None = None


class DefaultClaimsVerifier:
    """Checks the "exp" and "nbf" claims, allowing for clock skew."""

    def __init__(self, max_clock_skew: int | None = None, clock: Callable[[], float] = time.time):
        if max_clock_skew is None:
            max_clock_skew = get_settings().max_clock_skew
        self.max_clock_skew = max_clock_skew
        self.clock = clock

    def verify(self, claims: dict, context: Any = None) -> None:
        """Raises:
        ClaimsRejectedError: If the JWT is expired or not yet valid
        """
        now = self.clock()

        exp = _numeric_date(claims, "exp")
        if exp is not None and now > exp + self.max_clock_skew:
            raise ClaimsRejectedError("Expired JWT")

        nbf = _numeric_date(claims, "nbf")
        if nbf is not None and now + self.max_clock_skew < nbf:
            raise ClaimsRejectedError("JWT before use time")


def _numeric_date(claims: dict, name: str) -> float | None:
    value = claims.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ClaimsRejectedError(f'The "{name}" claim must be a number')
    return value


class JWTProcessor:
    """Processes compact JWTs: plain, signed, encrypted or nested.

    Args:
        jws_key_selector: Supplies candidate verification keys
        jwe_key_selector: Supplies candidate decryption keys
        jws_verifier_factory: Builds a verifier for a header and key
        jwe_decrypter_factory: Builds a decrypter for a header and key
        claims_verifier: Checks the claims after verification / decryption,
            a DefaultClaimsVerifier when omitted
        allow_plain: Accept unsecured ({"alg":"none"}) JWTs
    """

    def __init__(
        self,
        jws_key_selector=None,
        jwe_key_selector=None,
        jws_verifier_factory=None,
        jwe_decrypter_factory=None,
        claims_verifier=None,
        allow_plain: bool = False,
    ):
        self.jws_key_selector = jws_key_selector
        self.jwe_key_selector = jwe_key_selector
        self.jws_verifier_factory = jws_verifier_factory or DefaultJWSVerifierFactory()
        self.jwe_decrypter_factory = jwe_decrypter_factory or DefaultJWEDecrypterFactory()
        self.claims_verifier = claims_verifier or DefaultClaimsVerifier()
        self.allow_plain = allow_plain

    def process(self, token: str, context: Any = None) -> dict:
        """Process a compact JWT and return its claims.

        Args:
            token: Compact serialization
            context: Opaque object passed to the key selectors

        Returns:
            The JWT claims set

        Raises:
            ParseError: If the token is malformed
            PolicyError: If the token is rejected
            ConfigurationError: If a required key selector is missing
        """
        jose_object = objects.parse(token)
        if isinstance(jose_object, PlainObject):
            return self.process_plain(jose_object, context)
        if isinstance(jose_object, JWSObject):
            return self.process_signed(jose_object, context)
        return self.process_encrypted(jose_object, context)

    def process_plain(self, plain: PlainObject, context: Any = None) -> dict:
        if not self.allow_plain:
            raise PolicyError("Unsecured (plain) JWTs are rejected")
        return self._verify_claims(plain.payload, context)

    def process_signed(self, jws: JWSObject, context: Any = None) -> dict:
        if self.jws_key_selector is None:
            raise ConfigurationError("Signed JWT rejected: No JWS key selector is configured")

        candidates = self.jws_key_selector.select_jws_keys(jws.header, context)
        if not candidates:
            raise NoVerifierError("Signed JWT rejected: No matching key(s) found")

        for index, key in enumerate(candidates):
            result = self._try_verify(jws, key)
            logger.debug("jws_candidate", index=index, alg=jws.header.algorithm, outcome=result.outcome.value)
            if result.outcome is Outcome.ACCEPTED:
                return self._verify_claims(result.payload, context)
            if result.outcome is Outcome.REJECTED and index == len(candidates) - 1:
                raise SignatureRejectedError("Signed JWT rejected: Invalid signature")

        raise NoVerifierError("JWS object rejected: No matching verifier(s) found")

    def process_encrypted(self, jwe: JWEObject, context: Any = None) -> dict:
        if self.jwe_key_selector is None:
            raise ConfigurationError("Encrypted JWT rejected: No JWE key selector is configured")

        candidates = self.jwe_key_selector.select_jwe_keys(jwe.header, context)
        if not candidates:
            raise NoDecrypterError("Encrypted JWT rejected: No matching key(s) found")

        for index, key in enumerate(candidates):
            result = self._try_decrypt(jwe, key)
            logger.debug("jwe_candidate", index=index, alg=jwe.header.algorithm, outcome=result.outcome.value)
            if result.outcome is Outcome.ACCEPTED:
                return self._process_decrypted(jwe, result.payload, context)
            if result.outcome is Outcome.REJECTED and index == len(candidates) - 1:
                raise DecryptionError(f"Encrypted JWT rejected: {result.error}") from result.error

        raise NoDecrypterError("Encrypted JWT rejected: No matching decrypter(s) found")

    def _try_verify(self, jws: JWSObject, key: Any) -> CandidateResult:
        verifier = self.jws_verifier_factory.create_verifier(jws.header, key)
        if verifier is None:
            return CandidateResult(Outcome.SKIPPED)
        if verifier.verify(jws.header, jws.signing_input, jws.signature):
            return CandidateResult(Outcome.ACCEPTED, payload=jws.payload)
        return CandidateResult(Outcome.REJECTED)

    def _try_decrypt(self, jwe: JWEObject, key: Any) -> CandidateResult:
        decrypter = self.jwe_decrypter_factory.create_decrypter(jwe.header, key)
        if decrypter is None:
            return CandidateResult(Outcome.SKIPPED)
        try:
            payload = decrypter.decrypt(jwe.header, jwe.encrypted_key, jwe.iv, jwe.cipher_text, jwe.tag)
        except JOSEError as e:
            return CandidateResult(Outcome.REJECTED, error=e)
        return CandidateResult(Outcome.ACCEPTED, payload=payload)

    def _process_decrypted(self, jwe: JWEObject, payload: bytes, context: Any) -> dict:
        content_type = jwe.header.content_type
        if content_type is None or content_type.upper() != NESTED_CONTENT_TYPE:
            return self._verify_claims(payload, context)

        # Nested signed JWT, one level only
        try:
            nested = JWSObject.parse(payload.decode("utf-8"))
        except (ParseError, UnicodeDecodeError) as e:
            raise PolicyError("The payload is not a nested signed JWT") from e
        return self.process_signed(nested, context)

    def _verify_claims(self, payload: bytes, context: Any) -> dict:
        try:
            claims = objects.parse_claims(payload)
        except ParseError as e:
            raise PolicyError(str(e)) from e
        self.claims_verifier.verify(claims, context)
        return claims

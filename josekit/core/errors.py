"""JOSE exception hierarchy.

Every error raised by josekit derives from JOSEError, so callers that only
care about "the token was not accepted" can catch a single type.
"""


class JOSEError(Exception):
    """Base JOSE exception."""

    pass


class ParseError(JOSEError):
    """Malformed wire input (Base64URL, JSON, header, JWK, compact form)."""

    pass


class ConfigurationError(JOSEError):
    """A required collaborator (key selector, factory) is missing."""

    pass


class UnsupportedAlgorithmError(JOSEError):
    """Algorithm or encryption method not supported by the provider."""

    pass


class KeyMaterialError(JOSEError):
    """Key material is incompatible with the declared algorithm."""

    pass


class KeyLengthError(KeyMaterialError):
    """Key or CEK has the wrong length for the algorithm."""

    pass


class CurveMismatchError(KeyMaterialError):
    """Elliptic curve keys are not on the same / an expected curve."""

    pass


class SigningError(JOSEError):
    """JWS signing failed."""

    pass


class DecryptionError(JOSEError):
    """JWE decryption failed."""

    pass


class IntegrityError(DecryptionError):
    """Authentication tag or key unwrap check failed.

    The message is deliberately the same whatever step failed.
    """

    def __init__(self, message: str = "Decryption failed"):
        super().__init__(message)


class PolicyError(JOSEError):
    """The object is well formed but disallowed by policy."""

    pass


class CriticalHeaderError(PolicyError):
    """The header carries a "crit" parameter nobody processes or defers."""

    pass


class ClaimsRejectedError(PolicyError):
    """The JWT claims set failed verification."""

    pass


class NoVerifierError(PolicyError):
    """No candidate key produced a usable JWS verifier."""

    pass


class NoDecrypterError(PolicyError):
    """No candidate key produced a usable JWE decrypter."""

    pass


class SignatureRejectedError(PolicyError):
    """All usable candidate keys failed to verify the signature."""

    pass


class KeySourceError(JOSEError):
    """Key source (JWK set) lookup failed."""

    pass


class RemoteKeySourceError(KeySourceError):
    """Retrieving a remote JWK set failed.

    ``retriable`` tells the caller whether trying again later (or a
    failover source) may succeed.
    """

    retriable = False

    def __init__(self, message: str, retriable: bool | None = None):
        super().__init__(message)
        if retriable is not None:
            self.retriable = retriable


class KeySourceTimeoutError(RemoteKeySourceError):
    """Connect or read timeout while retrieving a JWK set."""

    retriable = True


class KeySourceNotFoundError(RemoteKeySourceError):
    """The JWK set endpoint answered but had no usable document."""

    retriable = False


class FailoverKeySourceError(KeySourceError):
    """Both the primary and the failover key source failed."""

    def __init__(self, message: str, primary_error: Exception, failover_error: Exception):
        super().__init__(message)
        self.primary_error = primary_error
        self.failover_error = failover_error

"""Algorithm provider contract.

Every concrete algorithm implementation plays one of four roles:
JWSSigner, JWSVerifier, JWEEncrypter or JWEDecrypter. Each one declares the
algorithms (and, for JWE, the encryption methods) it supports so callers
can negotiate capabilities before handing over a header.

Implementations hold only immutable key material and must be safe to share
between threads.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, Iterable

from josekit.core.errors import CriticalHeaderError, UnsupportedAlgorithmError
from josekit.core.header import Header, JWEHeader, JWSHeader


@dataclass(frozen=True)
class JWECryptoParts:
    """Result of JWE encryption.

    ``header`` is the header actually used, which may carry parameters
    added by the encrypter (for example "epk"). Absent parts are empty.
    """

    header: JWEHeader
    encrypted_key: bytes
    iv: bytes
    cipher_text: bytes
    tag: bytes


class CriticalHeaderParamsDeferral:
    """Critical ("crit") header parameter policy.

    A header passes when every name in its "crit" set is either processed
    by the provider itself or deferred to the application.
    """

    def __init__(self, processed: Iterable[str] = (), deferred: Iterable[str] | None = None):
        self.processed = frozenset(processed)
        self.deferred = frozenset(deferred or ())

    def header_passes(self, header: Header) -> bool:
        if not header.critical_params:
            return True
        return all(name in self.processed or name in self.deferred for name in header.critical_params)

    def ensure_header_passes(self, header: Header) -> None:
        """Raises:
        CriticalHeaderError: If a critical parameter is neither processed nor deferred
        """
        if not self.header_passes(header):
            unknown = sorted(header.critical_params - self.processed - self.deferred)
            raise CriticalHeaderError(f"Unsupported critical header parameter(s): {', '.join(unknown)}")


class AlgorithmProvider(ABC):
    """Common base: queryable algorithm support and critical header policy."""

    SUPPORTED_ALGORITHMS: ClassVar[frozenset] = frozenset()

    # Critical parameters every provider of the class understands
    PROCESSED_CRITICAL_PARAMS: ClassVar[frozenset] = frozenset()

    def __init__(self, deferred_critical_params: Iterable[str] | None = None):
        self.crit_policy = CriticalHeaderParamsDeferral(
            processed=self.PROCESSED_CRITICAL_PARAMS,
            deferred=deferred_critical_params,
        )

    @property
    def supported_algorithms(self) -> frozenset:
        return self.SUPPORTED_ALGORITHMS

    @property
    def processed_critical_params(self) -> frozenset[str]:
        return self.crit_policy.processed

    @property
    def deferred_critical_params(self) -> frozenset[str]:
        return self.crit_policy.deferred

    def supports(self, header: Header) -> bool:
        return header.algorithm in self.supported_algorithms

    def ensure_supported(self, header: Header) -> None:
        if not self.supports(header):
            raise UnsupportedAlgorithmError(
                f"Unsupported algorithm {header.algorithm!r}, must be one of: "
                + ", ".join(sorted(a.value for a in self.supported_algorithms))
            )


class JWSSigner(AlgorithmProvider):
    """Creates JWS signatures."""

    @abstractmethod
    def sign(self, header: JWSHeader, signing_input: bytes) -> bytes:
        """Sign the input.

        Raises:
            SigningError: If the key does not fit the algorithm
            UnsupportedAlgorithmError: If the header algorithm is not supported
        """


class JWSVerifier(AlgorithmProvider):
    """Verifies JWS signatures."""

    # RFC 7797 unencoded payloads are handled by the JWS object
    PROCESSED_CRITICAL_PARAMS = frozenset({"b64"})

    @abstractmethod
    def verify(self, header: JWSHeader, signing_input: bytes, signature: bytes) -> bool:
        """Check a signature.

        Returns False for a bad signature or a header that fails the critical
        parameter policy; raises only for unsupported algorithms.
        """


class JWEProvider(AlgorithmProvider):
    """Common base of JWE encrypters and decrypters."""

    SUPPORTED_ENCRYPTION_METHODS: ClassVar[frozenset] = frozenset()

    @property
    def supported_encryption_methods(self) -> frozenset:
        return self.SUPPORTED_ENCRYPTION_METHODS

    def supports(self, header: Header) -> bool:
        return (
            super().supports(header)
            and getattr(header, "encryption_method", None) in self.supported_encryption_methods
        )

    def ensure_supported(self, header: Header) -> None:
        super().ensure_supported(header)
        method = getattr(header, "encryption_method", None)
        if method not in self.supported_encryption_methods:
            raise UnsupportedAlgorithmError(f"Unsupported encryption method {method!r}")


class JWEEncrypter(JWEProvider):
    """Encrypts JWE content."""

    @abstractmethod
    def encrypt(self, header: JWEHeader, clear_text: bytes, aad: bytes | None = None) -> JWECryptoParts:
        """Encrypt the clear text.

        ``aad`` defaults to the ASCII header segment; when the encrypter
        changes the header the default AAD follows the updated header,
        while an explicitly supplied AAD is used as given.
        """


class JWEDecrypter(JWEProvider):
    """Decrypts JWE content."""

    @abstractmethod
    def decrypt(
        self,
        header: JWEHeader,
        encrypted_key: bytes,
        iv: bytes,
        cipher_text: bytes,
        tag: bytes,
        aad: bytes | None = None,
    ) -> bytes:
        """Decrypt and return the clear text.

        Raises:
            CriticalHeaderError: If the header fails the critical parameter policy
            DecryptionError: If decryption failed
        """


def resolve_aad(original: JWEHeader, updated: JWEHeader, aad: bytes | None) -> bytes:
    """AAD for an encrypter that may have updated the header."""
    if aad is None or aad == original.compute_aad():
        return updated.compute_aad()
    return aad

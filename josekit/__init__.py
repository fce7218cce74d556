"""
josekit - JOSE (JWS, JWE, JWK) and JWT processing.

Usage:
    from josekit import JWSHeader, JWSObject, JWSAlgorithm
    from josekit.core.signers import MACSigner

    jws = JWSObject(JWSHeader(JWSAlgorithm.HS256), {"sub": "alice"})
    jws.sign(MACSigner(secret))
    token = jws.serialize()
"""

from josekit.core.algorithms import EncryptionMethod, JWEAlgorithm, JWSAlgorithm
from josekit.core.errors import JOSEError
from josekit.core.header import JWEHeader, JWSHeader, PlainHeader
from josekit.core.jwk import JWK, JWKSet
from josekit.core.objects import JWEObject, JWSObject, PlainObject
from josekit.core.processor import JWTProcessor

__version__ = "0.1.0"
__all__ = [
    "EncryptionMethod",
    "JWEAlgorithm",
    "JWSAlgorithm",
    "JOSEError",
    "JWEHeader",
    "JWSHeader",
    "PlainHeader",
    "JWK",
    "JWKSet",
    "JWEObject",
    "JWSObject",
    "PlainObject",
    "JWTProcessor",
]

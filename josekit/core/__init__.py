"""Core JOSE engine."""

from josekit.core.jwk import JWK, JWKSet
from josekit.core.header import JWEHeader, JWSHeader, PlainHeader
from josekit.core.objects import JWEObject, JWSObject, PlainObject
from josekit.core.processor import JWTProcessor

__all__ = ["JWK", "JWKSet", "JWEHeader", "JWSHeader", "PlainHeader", "JWEObject", "JWSObject", "PlainObject", "JWTProcessor"]

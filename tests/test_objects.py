"""Tests for JOSE objects and compact serialization."""

import os

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from josekit.core import objects
from josekit.core.algorithms import EncryptionMethod, JWEAlgorithm, JWSAlgorithm
from josekit.core.base64url import b64url_encode
from josekit.core.encrypters import AESDecrypter, AESEncrypter, ECDHDecrypter, ECDHEncrypter
from josekit.core.errors import ParseError
from josekit.core.header import JWEHeader, JWSHeader
from josekit.core.objects import JWEObject, JWSObject, PlainObject, State
from josekit.core.signers import MACSigner, MACVerifier

SECRET = b"\x11" * 32


@pytest.fixture
def signed_token():
    jws = JWSObject(JWSHeader(JWSAlgorithm.HS256, type="JWT"), {"sub": "alice"})
    jws.sign(MACSigner(SECRET))
    return jws.serialize()


class TestJOSEObject:
    """Tests for the common object base."""

    def test_base_not_instantiable(self):
        """Test that the base class requires a serialization."""
        with pytest.raises(TypeError):
            objects.JOSEObject(JWSHeader(JWSAlgorithm.HS256), b"payload")


class TestSplit:
    """Tests for splitting compact serializations."""

    @pytest.mark.parametrize("token", ["abc", "a.b", "a.b.c.d", "a.b.c.d.e.f"])
    def test_wrong_part_count(self, token):
        """Test that only 3 or 5 parts are accepted."""
        with pytest.raises(ParseError, match="delimiters"):
            objects.split(token)

    def test_empty_segments_kept(self):
        """Test that empty segments are preserved."""
        assert objects.split("a..") == ["a", "", ""]


class TestPlainObject:
    """Tests for unsecured objects."""

    def test_serialize(self):
        """Test the unsecured serialization has an empty third part."""
        plain = PlainObject({"sub": "alice"})

        token = plain.serialize()

        assert token == "eyJhbGciOiJub25lIn0.eyJzdWIiOiJhbGljZSJ9."

    def test_parse(self):
        """Test parsing an unsecured token."""
        plain = objects.parse("eyJhbGciOiJub25lIn0.eyJzdWIiOiJhbGljZSJ9.")

        assert isinstance(plain, PlainObject)
        assert plain.claims() == {"sub": "alice"}

    def test_parse_empty_payload(self):
        """Test that an empty payload segment is allowed."""
        plain = objects.parse("eyJhbGciOiJub25lIn0..")

        assert isinstance(plain, PlainObject)
        assert plain.payload == b""

    def test_signature_not_allowed(self):
        """Test that an unsecured object can't carry a signature."""
        with pytest.raises(ParseError):
            PlainObject.parse("eyJhbGciOiJub25lIn0.eyJzdWIiOiJhbGljZSJ9.c2ln")


class TestJWSObject:
    """Tests for JWS objects."""

    def test_sign_verify(self, signed_token):
        """Test signing, serializing, parsing and verifying."""
        jws = objects.parse(signed_token)

        assert isinstance(jws, JWSObject)
        assert jws.state is State.SIGNED
        assert jws.verify(MACVerifier(SECRET))
        assert jws.state is State.VERIFIED
        assert jws.claims() == {"sub": "alice"}

    def test_reserialization_is_byte_identical(self):
        """Test that a parsed token serializes to exactly its input."""
        # Header with whitespace and non-canonical member order
        header = b64url_encode(b'{"typ":"JWT",\r\n "alg":"HS256"}')
        payload = b64url_encode(b'{"iss":"joe",\r\n "exp":1300819380}')
        jws = JWSObject(JWSHeader.parse(header), b'{"iss":"joe",\r\n "exp":1300819380}')
        signature = MACSigner(SECRET).sign(jws.header, f"{header}.{payload}".encode("ascii"))
        token = f"{header}.{payload}.{b64url_encode(signature)}"

        parsed = JWSObject.parse(token)

        assert parsed.serialize() == token
        assert parsed.signing_input == f"{header}.{payload}".encode("ascii")
        assert parsed.verify(MACVerifier(SECRET))

    def test_unencoded_payload_not_utf8(self):
        """Test that an unencoded payload must be UTF-8 text."""
        header = JWSHeader(JWSAlgorithm.HS256, base64url_encode_payload=False, critical_params={"b64"})
        jws = JWSObject(header, b"\xff\xfe")

        with pytest.raises(ParseError, match="UTF-8"):
            jws.sign(MACSigner(SECRET))

    def test_tampered_payload(self, signed_token):
        """Test that a modified payload fails verification."""
        header, _, signature = signed_token.split(".")
        payload = b64url_encode(b'{"sub":"mallory"}')
        tampered = f"{header}.{payload}.{signature}"

        assert not JWSObject.parse(tampered).verify(MACVerifier(SECRET))

    def test_unencoded_payload(self):
        """Test RFC 7797 unencoded payloads."""
        header = JWSHeader(JWSAlgorithm.HS256, base64url_encode_payload=False, critical_params={"b64"})
        jws = JWSObject(header, "$.02")

        with pytest.raises(ParseError, match="period"):
            jws.sign(MACSigner(SECRET))

        jws = JWSObject(header, "$02")
        jws.sign(MACSigner(SECRET))
        token = jws.serialize()

        assert token.split(".")[1] == "$02"
        parsed = JWSObject.parse(token)
        assert parsed.payload == b"$02"
        assert parsed.verify(MACVerifier(SECRET))

    def test_serialize_unsigned(self):
        """Test that an unsigned object can't be serialized."""
        with pytest.raises(ValueError):
            JWSObject(JWSHeader(JWSAlgorithm.HS256), b"payload").serialize()

    def test_sign_twice(self):
        """Test that an object can only be signed once."""
        jws = JWSObject(JWSHeader(JWSAlgorithm.HS256), b"payload")
        jws.sign(MACSigner(SECRET))

        with pytest.raises(ValueError):
            jws.sign(MACSigner(SECRET))

    def test_invalid_json_claims(self):
        """Test that a non-object payload isn't a claims set."""
        jws = JWSObject(JWSHeader(JWSAlgorithm.HS256), b"[1, 2]")

        with pytest.raises(ParseError, match="not a valid JSON object"):
            jws.claims()


class TestJWEObject:
    """Tests for JWE objects."""

    def test_encrypt_decrypt(self):
        """Test encrypting, serializing, parsing and decrypting."""
        kek = os.urandom(16)
        jwe = JWEObject(JWEHeader(JWEAlgorithm.A128KW, EncryptionMethod.A128GCM), {"sub": "alice"})
        jwe.encrypt(AESEncrypter(kek))
        token = jwe.serialize()

        parsed = objects.parse(token)

        assert isinstance(parsed, JWEObject)
        assert parsed.state is State.ENCRYPTED
        assert parsed.serialize() == token
        assert parsed.decrypt(AESDecrypter(kek)) == b'{"sub":"alice"}'
        assert parsed.state is State.DECRYPTED

    def test_encrypter_header_adopted(self):
        """Test that the header produced by the encrypter is serialized."""
        recipient = ec.generate_private_key(ec.SECP256R1())
        jwe = JWEObject(JWEHeader(JWEAlgorithm.ECDH_ES, EncryptionMethod.A256GCM), b"hello")
        jwe.encrypt(ECDHEncrypter(recipient.public_key()))

        parsed = JWEObject.parse(jwe.serialize())

        assert parsed.header.ephemeral_public_key is not None
        assert parsed.decrypt(ECDHDecrypter(recipient)) == b"hello"

    def test_empty_encrypted_key_segment(self):
        """Test that direct encryption serializes an empty second part."""
        from josekit.core.encrypters import DirectEncrypter

        jwe = JWEObject(JWEHeader(JWEAlgorithm.DIR, EncryptionMethod.A128GCM), b"hello")
        jwe.encrypt(DirectEncrypter(os.urandom(16)))

        assert jwe.serialize().split(".")[1] == ""

    def test_encrypt_twice(self):
        """Test that an object can only be encrypted once."""
        kek = os.urandom(16)
        jwe = JWEObject(JWEHeader(JWEAlgorithm.A128KW, EncryptionMethod.A128GCM), b"hello")
        jwe.encrypt(AESEncrypter(kek))

        with pytest.raises(ValueError):
            jwe.encrypt(AESEncrypter(kek))

    def test_jwe_header_with_three_parts(self):
        """Test that a JWE header in a three part token is rejected."""
        header = JWEHeader(JWEAlgorithm.DIR, EncryptionMethod.A128GCM).to_base64url()

        with pytest.raises(ParseError):
            objects.parse(f"{header}.eyJ9.")

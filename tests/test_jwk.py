"""Tests for the JWK model, JWK sets and matchers."""

import os

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa, x25519

from josekit.core.errors import KeyMaterialError, ParseError
from josekit.core.jwk import JWK, JWKMatcher, JWKSelector, JWKSet, curve_name

RFC7638_N = (
    "0vx7agoebGcQSuuPiLJXZptN9nndrQmbXEps2aiAFbWhM78LhWx4cbbfAAtVT86zwu1RK7aPFFxuhDR1L6tSoc_BJECPebWKRXjBZCiFV4n3oknjhMs"
    "tn64tZ_2W-5JsGY4Hc5n9yBXArwl93lqt7_RN5w6Cf0h4QyQ5v-65YGjQR0_FDW2QvzqY368QQMicAtaSqzs8KJZgnYb9c7d0zgdAZHzu6qMQvRL5hajrn1n9"
    "1CbOpbISD08qNLyrdkt-bFTWhAI4vMQFh6WeZu0fM4lFd2NcRwr3XPksINHaQ-G_xBniIqbw0Ls1jF44-csFCur-kEgU8awapJzKnqDKgw"
)


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


class TestKeyConversion:
    """Tests for JWK <-> key object conversion."""

    @pytest.mark.parametrize("curve,crv", [(ec.SECP256R1(), "P-256"), (ec.SECP384R1(), "P-384"), (ec.SECP521R1(), "P-521")])
    def test_ec(self, curve, crv):
        """Test EC private and public keys."""
        key = ec.generate_private_key(curve)

        jwk = JWK.from_key(key, kid="ec")

        assert jwk.kty == "EC"
        assert jwk.crv == crv
        assert jwk.is_private
        restored = jwk.to_key()
        assert restored.private_numbers() == key.private_numbers()
        public = jwk.to_public().to_key()
        assert public.public_numbers() == key.public_key().public_numbers()

    def test_ed25519(self):
        """Test Ed25519 keys."""
        key = ed25519.Ed25519PrivateKey.generate()

        jwk = JWK.from_key(key)

        assert (jwk.kty, jwk.crv) == ("OKP", "Ed25519")
        signature = jwk.to_key().sign(b"data")
        jwk.to_public().to_key().verify(signature, b"data")

    def test_x25519(self):
        """Test X25519 keys."""
        key = x25519.X25519PrivateKey.generate()
        peer = x25519.X25519PrivateKey.generate()

        jwk = JWK.from_key(key)

        assert (jwk.kty, jwk.crv) == ("OKP", "X25519")
        assert jwk.to_key().exchange(peer.public_key()) == key.exchange(peer.public_key())

    def test_rsa(self, rsa_key):
        """Test RSA keys with CRT parameters."""
        jwk = JWK.from_key(rsa_key, use="sig", alg="RS256")

        assert jwk.e == "AQAB"
        assert jwk.to_key().private_numbers() == rsa_key.private_numbers()
        assert jwk.to_public().to_key().public_numbers() == rsa_key.public_key().public_numbers()

    def test_oct(self):
        """Test symmetric keys."""
        secret = os.urandom(32)

        jwk = JWK.from_key(secret, kid="hmac")

        assert jwk.kty == "oct"
        assert jwk.is_private
        assert jwk.to_key() == secret
        assert jwk.to_public() is None

    def test_unsupported_key(self):
        """Test that other objects can't be converted."""
        with pytest.raises(KeyMaterialError):
            JWK.from_key("not a key")

    def test_invalid_point(self):
        """Test that an off-curve point is a parse error."""
        jwk = JWK(kty="EC", crv="P-256", x="AQ", y="AQ")

        with pytest.raises(ParseError):
            jwk.to_key()

    def test_curve_name(self):
        """Test curve names of key objects."""
        assert curve_name(ec.generate_private_key(ec.SECP384R1())) == "P-384"
        assert curve_name(x25519.X25519PrivateKey.generate().public_key()) == "X25519"
        with pytest.raises(KeyMaterialError):
            curve_name(ec.generate_private_key(ec.SECP256K1()))


class TestJWKJSON:
    """Tests for the JSON form."""

    def test_round_trip(self):
        """Test to_dict / from_dict."""
        jwk = JWK.from_key(ec.generate_private_key(ec.SECP256R1()), kid="1", use="enc")
        data = jwk.to_dict()

        assert "y" in data and "d" in data
        assert JWK.from_dict(data) == jwk

    def test_x5t_s256_member_name(self):
        """Test the "x5t#S256" member maps to its field."""
        jwk = JWK.from_dict({"kty": "oct", "k": "AAAA", "x5t#S256": "abc"})

        assert jwk.x5t_s256 == "abc"
        assert jwk.to_dict()["x5t#S256"] == "abc"

    def test_missing_member(self):
        """Test that required members are enforced."""
        with pytest.raises(ParseError, match="missing required member"):
            JWK.from_dict({"kty": "EC", "crv": "P-256", "x": "AA"})

    def test_unknown_key_type(self):
        """Test that an unknown kty is rejected."""
        with pytest.raises(ParseError):
            JWK.from_dict({"kty": "XYZ"})

    def test_rfc7638_thumbprint(self):
        """Test the RFC 7638 Section 3.1 example."""
        jwk = JWK(kty="RSA", n=RFC7638_N, e="AQAB", alg="RS256", kid="2011-04-29")

        assert jwk.thumbprint() == "NzbLsXh8uDCcd-6MNwXF4W_7noWXFZAfHkxZsRGC9Xs"


class TestJWKSet:
    """Tests for JWK sets."""

    def test_parse(self):
        """Test parsing skips keys of unknown type."""
        text = '{"keys": [{"kty": "oct", "kid": "a", "k": "AAAA"}, {"kty": "unknown"}]}'

        jwk_set = JWKSet.parse(text)

        assert len(jwk_set) == 1
        assert jwk_set.get_key_by_id("a").k == "AAAA"
        assert jwk_set.get_key_by_id("b") is None

    def test_missing_keys(self):
        """Test that a JWK set needs a "keys" array."""
        with pytest.raises(ParseError):
            JWKSet.parse('{"kty": "oct"}')

    def test_not_json(self):
        """Test invalid JSON."""
        with pytest.raises(ParseError):
            JWKSet.parse("<html>")

    def test_public_output(self):
        """Test that the public form drops secrets and symmetric keys."""
        ec_jwk = JWK.from_key(ec.generate_private_key(ec.SECP256R1()), kid="ec")
        oct_jwk = JWK.from_key(os.urandom(16), kid="oct")

        data = JWKSet(keys=(ec_jwk, oct_jwk)).to_dict()

        assert [k["kid"] for k in data["keys"]] == ["ec"]
        assert "d" not in data["keys"][0]


class TestJWKMatcher:
    """Tests for matching and selection."""

    @pytest.fixture
    def jwk_set(self):
        return JWKSet(
            keys=(
                JWK(kty="oct", kid="1", use="sig", alg="HS256", k="AAAA"),
                JWK(kty="oct", kid="2", use="enc", k="AAAA"),
                JWK(kty="oct", kid="3", k="AAAA"),
                JWK(kty="EC", kid="4", crv="P-256", x="AA", y="AA"),
            )
        )

    def test_empty_matcher_matches_all(self, jwk_set):
        """Test that unset criteria match everything."""
        assert len(JWKSelector().select(jwk_set)) == 4

    def test_key_use(self, jwk_set):
        """Test that keys without "use" are unrestricted."""
        selected = JWKSelector(JWKMatcher(key_uses=frozenset({"sig"}))).select(jwk_set)

        assert [k.kid for k in selected] == ["1", "3", "4"]

    def test_type_and_algorithm(self, jwk_set):
        """Test key type and algorithm criteria."""
        matcher = JWKMatcher(key_types=frozenset({"oct"}), algorithms=frozenset({"HS512"}))

        assert [k.kid for k in JWKSelector(matcher).select(jwk_set)] == ["2", "3"]

    def test_key_id_and_curve(self, jwk_set):
        """Test key ID and curve criteria."""
        assert JWKMatcher(key_ids=frozenset({"4"}), curves=frozenset({"P-256"})).matches(jwk_set.keys[3])
        assert not JWKMatcher(curves=frozenset({"P-384"})).matches(jwk_set.keys[3])

    def test_private_and_public_only(self, jwk_set):
        """Test the private / public key criteria."""
        assert [k.kid for k in JWKSelector(JWKMatcher(private_only=True)).select(jwk_set)] == ["1", "2", "3"]
        assert [k.kid for k in JWKSelector(JWKMatcher(public_only=True)).select(jwk_set)] == ["4"]

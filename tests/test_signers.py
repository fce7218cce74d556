"""Tests for JWS signers and verifiers."""

import os

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from josekit.core.algorithms import JWSAlgorithm
from josekit.core.errors import KeyLengthError, KeyMaterialError, SigningError, UnsupportedAlgorithmError
from josekit.core.header import JWSHeader
from josekit.core.signers import (
    ECDSASigner,
    ECDSAVerifier,
    Ed25519Signer,
    Ed25519Verifier,
    MACSigner,
    MACVerifier,
    RSASSASigner,
    RSASSAVerifier,
    _Verifier,
)

SIGNING_INPUT = b"eyJhbGciOiJIUzI1NiJ9.eyJzdWIiOiJhbGljZSJ9"


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


class TestMAC:
    """Tests for HMAC signatures."""

    @pytest.mark.parametrize("algorithm", [JWSAlgorithm.HS256, JWSAlgorithm.HS384, JWSAlgorithm.HS512])
    def test_sign_verify(self, algorithm):
        """Test HMAC sign and verify."""
        secret = os.urandom(64)
        header = JWSHeader(algorithm)

        signature = MACSigner(secret).sign(header, SIGNING_INPUT)

        assert len(signature) * 8 == int(algorithm.value[2:])
        assert MACVerifier(secret).verify(header, SIGNING_INPUT, signature)
        assert not MACVerifier(os.urandom(64)).verify(header, SIGNING_INPUT, signature)

    def test_rfc7515_example(self):
        """Test the RFC 7515 Appendix A.1 HS256 signature."""
        from josekit.core.base64url import b64url_decode

        secret = b64url_decode(
            "AyM1SysPpbyDfgZld3umj1qzKObwVMkoqQ-EstJQLr_T-1qS0gZH75aKtMN3Yj0iPS4hcgUuTwjAzZr1Z9CAow"
        )
        signing_input = (
            b"eyJ0eXAiOiJKV1QiLA0KICJhbGciOiJIUzI1NiJ9"
            b".eyJpc3MiOiJqb2UiLA0KICJleHAiOjEzMDA4MTkzODAsDQogImh0dHA6Ly9leGFtcGxlLmNvbS9pc19yb290Ijp0cnVlfQ"
        )
        signature = b64url_decode("dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk")

        assert MACVerifier(secret).verify(JWSHeader(JWSAlgorithm.HS256), signing_input, signature)

    def test_short_secret(self):
        """Test that secrets under 256 bits are rejected."""
        with pytest.raises(KeyLengthError):
            MACSigner(os.urandom(16))

    def test_secret_too_short_for_algorithm(self):
        """Test that HS512 needs a 512 bit secret."""
        signer = MACSigner(os.urandom(32))

        assert signer.supported_algorithms == {JWSAlgorithm.HS256}
        with pytest.raises(SigningError, match="512 bits"):
            signer.sign(JWSHeader(JWSAlgorithm.HS512), SIGNING_INPUT)

    def test_unsupported_algorithm(self):
        """Test that a MAC signer can't produce RSA signatures."""
        with pytest.raises(UnsupportedAlgorithmError):
            MACSigner(os.urandom(32)).sign(JWSHeader(JWSAlgorithm.RS256), SIGNING_INPUT)


class TestECDSA:
    """Tests for ECDSA signatures."""

    @pytest.mark.parametrize(
        "algorithm,curve,size",
        [
            (JWSAlgorithm.ES256, ec.SECP256R1(), 64),
            (JWSAlgorithm.ES384, ec.SECP384R1(), 96),
            (JWSAlgorithm.ES512, ec.SECP521R1(), 132),
        ],
    )
    def test_sign_verify(self, algorithm, curve, size):
        """Test raw R||S signatures on each curve."""
        key = ec.generate_private_key(curve)
        header = JWSHeader(algorithm)

        signature = ECDSASigner(key).sign(header, SIGNING_INPUT)

        assert len(signature) == size
        assert ECDSAVerifier(key.public_key()).verify(header, SIGNING_INPUT, signature)
        assert not ECDSAVerifier(key.public_key()).verify(header, b"other", signature)

    def test_curve_must_match_algorithm(self):
        """Test that ES384 can't be signed with a P-256 key."""
        signer = ECDSASigner(ec.generate_private_key(ec.SECP256R1()))

        assert signer.supported_algorithms == {JWSAlgorithm.ES256}
        with pytest.raises(SigningError):
            signer.sign(JWSHeader(JWSAlgorithm.ES384), SIGNING_INPUT)

    def test_wrong_signature_length(self):
        """Test that a DER or truncated signature is invalid, not an error."""
        key = ec.generate_private_key(ec.SECP256R1())
        header = JWSHeader(JWSAlgorithm.ES256)
        signature = ECDSASigner(key).sign(header, SIGNING_INPUT)

        assert not ECDSAVerifier(key.public_key()).verify(header, SIGNING_INPUT, signature[:-1])

    def test_wrong_key_type(self):
        """Test that non-EC keys are rejected."""
        with pytest.raises(KeyMaterialError):
            ECDSASigner(ed25519.Ed25519PrivateKey.generate())


class TestEdDSA:
    """Tests for Ed25519 signatures."""

    def test_sign_verify(self):
        """Test EdDSA sign and verify."""
        key = ed25519.Ed25519PrivateKey.generate()
        header = JWSHeader(JWSAlgorithm.EDDSA)

        signature = Ed25519Signer(key).sign(header, SIGNING_INPUT)

        assert len(signature) == 64
        assert Ed25519Verifier(key.public_key()).verify(header, SIGNING_INPUT, signature)
        other = ed25519.Ed25519PrivateKey.generate().public_key()
        assert not Ed25519Verifier(other).verify(header, SIGNING_INPUT, signature)


class TestRSASSA:
    """Tests for RSA signatures."""

    @pytest.mark.parametrize(
        "algorithm",
        [
            JWSAlgorithm.RS256,
            JWSAlgorithm.RS384,
            JWSAlgorithm.RS512,
            JWSAlgorithm.PS256,
            JWSAlgorithm.PS384,
            JWSAlgorithm.PS512,
        ],
    )
    def test_sign_verify(self, rsa_key, algorithm):
        """Test PKCS #1 v1.5 and PSS signatures."""
        header = JWSHeader(algorithm)

        signature = RSASSASigner(rsa_key).sign(header, SIGNING_INPUT)

        assert len(signature) == 256
        assert RSASSAVerifier(rsa_key.public_key()).verify(header, SIGNING_INPUT, signature)
        assert not RSASSAVerifier(rsa_key.public_key()).verify(header, SIGNING_INPUT + b"x", signature)

    def test_small_key(self):
        """Test that RSA keys under 2048 bits are rejected."""
        key = rsa.generate_private_key(public_exponent=65537, key_size=1024)

        with pytest.raises(KeyLengthError):
            RSASSASigner(key)


class TestVerifierBase:
    """Tests for the shared verifier flow."""

    def test_signature_check_required(self):
        """Test that a verifier without a signature check can't be created."""

        class Incomplete(_Verifier):
            SUPPORTED_ALGORITHMS = frozenset({JWSAlgorithm.HS256})

        with pytest.raises(TypeError):
            Incomplete()


class TestCriticalHeaderPolicy:
    """Tests for "crit" handling by verifiers."""

    def test_unknown_critical_param(self):
        """Test that an unknown critical parameter fails verification even with a good signature."""
        secret = os.urandom(32)
        header = JWSHeader(JWSAlgorithm.HS256, critical_params={"unknownParam"}, custom_params={"unknownParam": 1})
        signature = MACSigner(secret).sign(header, SIGNING_INPUT)

        assert not MACVerifier(secret).verify(header, SIGNING_INPUT, signature)

    def test_deferred_critical_param(self):
        """Test that a deferred critical parameter passes."""
        secret = os.urandom(32)
        header = JWSHeader(JWSAlgorithm.HS256, critical_params={"exp"}, custom_params={"exp": 1})
        signature = MACSigner(secret).sign(header, SIGNING_INPUT)

        verifier = MACVerifier(secret, deferred_critical_params={"exp"})

        assert verifier.deferred_critical_params == {"exp"}
        assert verifier.verify(header, SIGNING_INPUT, signature)

    def test_b64_is_processed(self):
        """Test that every verifier understands "b64"."""
        key = ec.generate_private_key(ec.SECP256R1())
        header = JWSHeader(JWSAlgorithm.ES256, base64url_encode_payload=False, critical_params={"b64"})
        signature = ECDSASigner(key).sign(header, SIGNING_INPUT)

        verifier = ECDSAVerifier(key.public_key())

        assert "b64" in verifier.processed_critical_params
        assert verifier.verify(header, SIGNING_INPUT, signature)

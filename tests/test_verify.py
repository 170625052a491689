"""Tests for signature verification."""

import pytest
from jwcrypto import jwk

from oidc_core.errors import InvalidTokenError
from oidc_core.token import TokenParser
from oidc_core.verify import ALLOWED_ALGORITHMS, SignatureVerifier

from .conftest import CLIENT_SECRET


def _parts(token):
    parser = TokenParser(token)
    return parser.signing_input, parser.signature


class TestSignatureVerifier:
    """Test SignatureVerifier."""

    def test_rs256_valid(self, valid_token, rsa_keypair):
        """Test a correctly signed RS256 token."""
        signing_input, signature = _parts(valid_token)
        public = jwk.JWK.from_json(rsa_keypair.export_public())

        SignatureVerifier().verify(signing_input, signature, "RS256", public)

    def test_rs256_wrong_key(self, valid_token):
        """Test a signature checked with another key."""
        signing_input, signature = _parts(valid_token)
        wrong_key = jwk.JWK.generate(kty="RSA", size=2048)

        with pytest.raises(InvalidTokenError) as exc_info:
            SignatureVerifier().verify(signing_input, signature, "RS256", wrong_key)

        assert exc_info.value.reason == "invalid_signature"

    def test_rs256_tampered_input(self, valid_token, rsa_keypair):
        """Test that changing the signed bytes breaks the signature."""
        signing_input, signature = _parts(valid_token)

        with pytest.raises(InvalidTokenError) as exc_info:
            SignatureVerifier().verify(signing_input + b"x", signature, "RS256", rsa_keypair)

        assert exc_info.value.reason == "invalid_signature"

    def test_hs256_valid(self, make_hs256_token, claims):
        """Test a correctly signed HS256 token."""
        signing_input, signature = _parts(make_hs256_token(claims))

        SignatureVerifier().verify(signing_input, signature, "HS256", CLIENT_SECRET)

    def test_hs256_wrong_secret(self, make_hs256_token, claims):
        """Test an HS256 token checked with another secret."""
        signing_input, signature = _parts(make_hs256_token(claims))

        with pytest.raises(InvalidTokenError) as exc_info:
            SignatureVerifier().verify(signing_input, signature, "HS256", CLIENT_SECRET + "x")

        assert exc_info.value.reason == "invalid_signature"

    def test_unusable_key(self, valid_token):
        """Test that a key of the wrong type is a signature failure, not a crash."""
        signing_input, signature = _parts(valid_token)

        with pytest.raises(InvalidTokenError) as exc_info:
            SignatureVerifier().verify(signing_input, signature, "RS256", "not-a-jwk")

        assert exc_info.value.reason == "invalid_signature"

    def test_unsupported_algorithm(self, valid_token, rsa_keypair):
        """Test algorithms outside the allow-list."""
        signing_input, signature = _parts(valid_token)

        for alg in ("none", "RS512", "HS512", "ES256"):
            with pytest.raises(InvalidTokenError) as exc_info:
                SignatureVerifier().verify(signing_input, signature, alg, rsa_keypair)

            assert exc_info.value.reason == "unsupported_algorithm"

    def test_non_string_algorithm(self, valid_token, rsa_keypair):
        """Test that an algorithm of the wrong type is unsupported, not a crash."""
        signing_input, signature = _parts(valid_token)

        for alg in (["RS256"], None, {"alg": "HS256"}):
            with pytest.raises(InvalidTokenError) as exc_info:
                SignatureVerifier().verify(signing_input, signature, alg, rsa_keypair)

            assert exc_info.value.reason == "unsupported_algorithm"


class TestAllowedAlgorithms:
    """Test ALLOWED_ALGORITHMS constant."""

    def test_allowed_algorithms(self):
        """Test that only RS256 and HS256 are accepted."""
        assert ALLOWED_ALGORITHMS == {"RS256", "HS256"}

    def test_allowed_algorithms_frozen(self):
        """Test that ALLOWED_ALGORITHMS is immutable."""
        with pytest.raises(AttributeError):
            ALLOWED_ALGORITHMS.add("none")

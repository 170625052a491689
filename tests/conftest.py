"""Pytest fixtures for oidc-core tests."""

import base64
import json
import time

import jwt as pyjwt
import pytest
from jwcrypto import jwk, jwt

from oidc_core.config import OidcConfig
from oidc_core.cookies import CookieJar
from oidc_core.jwks import KeyProvider, MemoryCache

DOMAIN = "tenant.example.com"
ISSUER = "https://tenant.example.com/"
JWKS_URL = "https://tenant.example.com/.well-known/jwks.json"
CLIENT_ID = "test-client"
CLIENT_SECRET = "client-secret-0123456789-abcdefghijklmnopqrstuvwxyz-0123456789"
COOKIE_SECRET = "cookie-secret-for-tests"


class StubRequester:
    """HTTP requester returning a canned response and recording requested URLs."""

    def __init__(self, body: bytes, status: int = 200):
        self.body = body
        self.status = status
        self.calls = []

    def fetch(self, url):
        self.calls.append(url)
        return self.status, self.body


def encode_segment(data) -> str:
    raw = json.dumps(data).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


@pytest.fixture
def now():
    return int(time.time())


@pytest.fixture
def rsa_keypair():
    """Generate RSA key pair for testing."""
    return jwk.JWK.generate(kty="RSA", size=2048, kid="test-key-id")


@pytest.fixture
def jwks_data(rsa_keypair):
    """Generate JWKS data for testing."""
    keyset = jwk.JWKSet()
    keyset.add(rsa_keypair)
    return keyset.export(private_keys=False).encode("utf-8")


@pytest.fixture
def requester(jwks_data):
    return StubRequester(jwks_data)


@pytest.fixture
def key_provider(requester):
    return KeyProvider(requester)


@pytest.fixture
def config():
    """Configuration with a private JWKS cache per test."""
    return OidcConfig(
        OIDC_DOMAIN=DOMAIN,
        OIDC_CLIENT_ID=CLIENT_ID,
        OIDC_CLIENT_SECRET=CLIENT_SECRET,
        OIDC_COOKIE_SECRET=COOKIE_SECRET,
        OIDC_TOKEN_CACHE=MemoryCache(),
    )


@pytest.fixture
def claims(now):
    """Claims of a valid ID token."""
    return {
        "iss": ISSUER,
        "sub": "user|123",
        "aud": CLIENT_ID,
        "exp": now + 3600,
        "iat": now,
    }


@pytest.fixture
def make_token(rsa_keypair):
    """Build an RS256 token from claims, optionally with a custom header or key."""

    def _make(claims, header=None, key=None):
        header = header or {"alg": "RS256", "kid": "test-key-id"}
        token = jwt.JWT(header=header, claims=claims)
        token.make_signed_token(key or rsa_keypair)
        return token.serialize()

    return _make


@pytest.fixture
def make_hs256_token():
    """Build an HS256 token signed with the configured client secret."""

    def _make(claims, secret=CLIENT_SECRET):
        return pyjwt.encode(claims, secret, algorithm="HS256")

    return _make


@pytest.fixture
def valid_token(make_token, claims):
    return make_token(claims)


@pytest.fixture
def jar():
    return CookieJar(host="app.example.com")

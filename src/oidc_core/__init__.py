"""OIDC Core - JWT verification and encrypted session storage.

This package verifies and validates tokens issued by an OpenID Connect
identity platform (RS256 against a cached JWKS, HS256 against the client
secret) and stores session values in encrypted, chunked cookies or a server
session.
"""

from importlib.metadata import PackageNotFoundError, version

from .config import OidcConfig
from .cookies import CookieJar, CookieStore, ResponseCookie
from .errors import ConfigurationError, InvalidTokenError, OidcError
from .helper import format_domain, get_audiences, get_expected_issuer, get_jwks_url
from .jwks import BaseCache, HttpxRequester, KeyProvider, MemoryCache
from .session import SessionManager, SessionState
from .store import BaseStore, SessionStore, TransientStoreHandler
from .token import Token, TokenParser, TokenType, decode_token
from .validator import ClaimFailure, ClaimsValidator
from .verify import ALLOWED_ALGORITHMS, SignatureVerifier

__all__ = [
    "ALLOWED_ALGORITHMS",
    "BaseCache",
    "BaseStore",
    "ClaimFailure",
    "ClaimsValidator",
    "ConfigurationError",
    "CookieJar",
    "CookieStore",
    "HttpxRequester",
    "InvalidTokenError",
    "KeyProvider",
    "MemoryCache",
    "OidcConfig",
    "OidcError",
    "ResponseCookie",
    "SessionManager",
    "SessionState",
    "SessionStore",
    "SignatureVerifier",
    "Token",
    "TokenParser",
    "TokenType",
    "TransientStoreHandler",
    "decode_token",
    "format_domain",
    "get_audiences",
    "get_expected_issuer",
    "get_jwks_url",
]

try:
    __version__ = version("oidc-core")
except PackageNotFoundError:
    __version__ = "unknown"

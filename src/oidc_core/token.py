"""Parsing, verification and validation of JSON Web Tokens.

A :class:`Token` wraps one compact JWT. It is parsed on construction, its
signature is checked by :meth:`Token.verify` and its claims by
:meth:`Token.validate`; both raise :class:`~oidc_core.errors.InvalidTokenError`
on the first problem found.

Example:
    Basic::

        config = OidcConfig(OIDC_DOMAIN="tenant.example.com", OIDC_CLIENT_ID="my-client")
        token = Token(config, id_token).verify().validate(nonce=expected_nonce)
        user_id = token.get_subject()
"""

import json
import logging
import time
from enum import IntEnum
from typing import Any, Dict, List, Optional

from box import Box
from jwt import api_jws
from jwt.exceptions import PyJWTError

from .config import get_config_value
from .errors import ConfigurationError, InvalidTokenError
from .helper import get_audiences, get_expected_issuer, get_jwks_url
from .jwks import BaseCache, KeyProvider
from .validator import (
    ClaimsValidator,
    as_list,
    as_timestamp,
    audience as check_audience,
    auth_time as check_auth_time,
    authorized_party as check_authorized_party,
    expiration as check_expiration,
    issued as check_issued,
    issuer as check_issuer,
    nonce as check_nonce,
    organization as check_organization,
    subject as check_subject,
)
from .verify import ALLOWED_ALGORITHMS, SignatureVerifier

logger = logging.getLogger(__name__)

DEFAULT_LEEWAY = 60

_key_provider = KeyProvider()
_signature_verifier = SignatureVerifier()


class TokenType(IntEnum):
    """Kind of token, selecting which claim checks are mandatory."""

    ID_TOKEN = 1
    ACCESS_TOKEN = 2


class TokenParser:
    """Split a compact JWT into its decoded header, claims and signature.

    Segment decoding is delegated to PyJWT's JWS layer with signature
    verification turned off; the signature is checked later by
    :meth:`Token.verify`.

    Raises:
        InvalidTokenError: If the token is not three dot-separated base64url
            segments, or the header or claims are not JSON objects.
    """

    def __init__(self, compact: str):
        if not isinstance(compact, str):
            raise InvalidTokenError("malformed", "Token must be a string")

        compact = compact.strip()
        parts = compact.split(".")
        if len(parts) != 3:
            logger.warning(f"Token decode failed: {len(parts)} segments")
            raise InvalidTokenError(
                "malformed", "Malformed token: expected three dot-separated segments"
            )

        try:
            decoded = api_jws.decode_complete(compact, options={"verify_signature": False})
            claims = json.loads(decoded["payload"])
            if not isinstance(claims, dict):
                raise ValueError("claims segment is not a JSON object")
            self.signing_input = compact.rsplit(".", 1)[0].encode("ascii")
        except (PyJWTError, UnicodeError, ValueError) as e:
            logger.warning(f"Token decode failed: {e}")
            raise InvalidTokenError("malformed", "Malformed token")

        self.header: Dict[str, Any] = decoded["header"]
        self.claims: Dict[str, Any] = claims
        self.signature: bytes = decoded["signature"]

    def get_header(self, name: str) -> Any:
        return self.header.get(name)

    def get_claim(self, name: str) -> Any:
        return self.claims.get(name)

    def export(self) -> Dict[str, Any]:
        return dict(self.claims)


class Token:
    """One JWT being verified and validated.

    Args:
        config: OidcConfig (or dict of OIDC_* keys) supplying defaults.
        jwt: Compact serialized token.
        token_type: TokenType.ID_TOKEN (default) or TokenType.ACCESS_TOKEN.
            ID tokens additionally require sub, iat and (with several
            audiences) azp.
        key_provider: KeyProvider used for RS256 keys (default: shared instance).

    Raises:
        InvalidTokenError: If the token cannot be parsed.
    """

    def __init__(
        self,
        config: Any,
        jwt: str,
        token_type: TokenType = TokenType.ID_TOKEN,
        key_provider: Optional[KeyProvider] = None,
    ):
        self.type = TokenType(token_type)
        self.config = config
        self._key_provider = key_provider or _key_provider
        self.parse(jwt)

    def parse(self, jwt: str) -> "Token":
        """Parse a compact token, replacing any previously parsed one."""
        self._parser = TokenParser(jwt)
        return self

    @property
    def header(self) -> Dict[str, Any]:
        return dict(self._parser.header)

    def verify(
        self,
        algorithm: Optional[str] = None,
        jwks_uri: Optional[str] = None,
        client_secret: Optional[str] = None,
        cache_ttl: Optional[int] = None,
        cache: Optional[BaseCache] = None,
    ) -> "Token":
        """Verify the token signature.

        The expected algorithm is the explicit argument, else
        OIDC_TOKEN_ALGORITHM, else whatever the header declares. The header
        algorithm must be RS256 or HS256 and equal the expected one.

        Args:
            algorithm: Expected algorithm.
            jwks_uri: JWKS URL for RS256 (default: from config).
            client_secret: Shared secret for HS256 (default: OIDC_CLIENT_SECRET).
            cache_ttl: JWKS cache TTL (default: OIDC_TOKEN_CACHE_TTL).
            cache: JWKS cache (default: OIDC_TOKEN_CACHE, else in-process).

        Returns:
            Token: self, for chaining.

        Raises:
            InvalidTokenError: For algorithm, key or signature problems.
            ConfigurationError: If the JWKS URL or client secret is not configured.
        """
        header_alg = self._parser.get_header("alg")
        if not header_alg:
            logger.warning("Token header missing algorithm")
            raise InvalidTokenError("missing_algorithm", "Token header missing algorithm")

        if not isinstance(header_alg, str) or header_alg not in ALLOWED_ALGORITHMS:
            logger.warning(f"Token algorithm validation failed: {header_alg!r} not allowed")
            raise InvalidTokenError(
                "unsupported_algorithm", f"Invalid or unsupported algorithm: {header_alg}"
            )

        algorithm = (
            algorithm or get_config_value(self.config, "OIDC_TOKEN_ALGORITHM") or header_alg
        )
        if not isinstance(algorithm, str) or algorithm not in ALLOWED_ALGORITHMS:
            raise InvalidTokenError(
                "unsupported_algorithm", f"Invalid or unsupported algorithm: {algorithm}"
            )

        if algorithm != header_alg:
            logger.warning(
                f"Token algorithm validation failed: expected {algorithm}, found {header_alg}"
            )
            raise InvalidTokenError(
                "algorithm_mismatch",
                f'Token signed with unexpected algorithm; expected "{algorithm}", found "{header_alg}"',
            )

        if algorithm == "RS256":
            kid = self._parser.get_header("kid")
            if not isinstance(kid, str) or not kid:
                logger.warning("Token header missing key ID")
                raise InvalidTokenError("missing_key_id", "Token header missing key ID")

            if cache_ttl is None:
                cache_ttl = get_config_value(self.config, "OIDC_TOKEN_CACHE_TTL", 60)
            if cache is None:
                cache = get_config_value(self.config, "OIDC_TOKEN_CACHE")

            key = self._key_provider.get_key(
                jwks_uri or get_jwks_url(self.config), kid, cache_ttl, cache
            )
        else:
            key = client_secret or get_config_value(self.config, "OIDC_CLIENT_SECRET")
            if not key:
                raise ConfigurationError(
                    "OIDC_CLIENT_SECRET must be configured to verify HS256 tokens"
                )

        _signature_verifier.verify(
            self._parser.signing_input, self._parser.signature, algorithm, key
        )
        return self

    def validate(
        self,
        issuer: Optional[str] = None,
        audience: Optional[List[str]] = None,
        organization: Optional[List[str]] = None,
        nonce: Optional[str] = None,
        max_age: Optional[int] = None,
        leeway: Optional[int] = None,
        now: Optional[int] = None,
    ) -> "Token":
        """Validate the token claims, failing on the first problem.

        Args:
            issuer: Expected iss (default: https://{OIDC_DOMAIN}/).
            audience: Accepted aud values (default: OIDC_AUDIENCE); the client
                ID is always added.
            organization: Accepted org IDs or names (default: OIDC_ORGANIZATION).
            nonce: Expected nonce, checked when given.
            max_age: Maximum seconds since auth_time (default: OIDC_TOKEN_MAX_AGE).
            leeway: Clock skew tolerance (default: OIDC_TOKEN_LEEWAY, else 60).
            now: Current unix time (default: time.time()).

        Returns:
            Token: self, for chaining.

        Raises:
            InvalidTokenError: With the reason of the first failing check.
        """
        if issuer is None:
            issuer = get_expected_issuer(self.config)
        audience = get_audiences(self.config, audience)
        if organization is None:
            organization = get_config_value(self.config, "OIDC_ORGANIZATION")
        if max_age is None:
            max_age = get_config_value(self.config, "OIDC_TOKEN_MAX_AGE")
        if leeway is None:
            leeway = get_config_value(self.config, "OIDC_TOKEN_LEEWAY")
            if leeway is None:
                leeway = DEFAULT_LEEWAY
        if now is None:
            now = int(time.time())

        validator = ClaimsValidator(
            [
                check_issuer(issuer),
                check_audience(audience),
                check_expiration(leeway, now),
            ]
        )

        if self.type == TokenType.ID_TOKEN:
            validator.add(check_subject())
            validator.add(check_issued())
            validator.add(check_authorized_party(audience))

        if nonce is not None:
            validator.add(check_nonce(nonce))

        if max_age is not None:
            validator.add(check_auth_time(max_age, leeway, now))

        if organization:
            validator.add(check_organization(organization))

        validator.validate(self._parser.claims)
        return self

    def get_claim(self, name: str) -> Any:
        return self._parser.get_claim(name)

    def get_audience(self) -> Optional[List[str]]:
        """Return the aud claim as a list (a single string becomes one element)."""
        claim = self._parser.get_claim("aud")
        if claim is None:
            return None
        return as_list(claim)

    def get_authorized_party(self) -> Optional[str]:
        return self._parser.get_claim("azp")

    def get_auth_time(self) -> Optional[int]:
        return as_timestamp(self._parser.get_claim("auth_time"))

    def get_expiration(self) -> Optional[int]:
        return as_timestamp(self._parser.get_claim("exp"))

    def get_issued(self) -> Optional[int]:
        return as_timestamp(self._parser.get_claim("iat"))

    def get_issuer(self) -> Optional[str]:
        return self._parser.get_claim("iss")

    def get_nonce(self) -> Optional[str]:
        return self._parser.get_claim("nonce")

    def get_organization(self) -> Optional[str]:
        return self._parser.get_claim("org_id")

    def get_organization_name(self) -> Optional[str]:
        return self._parser.get_claim("org_name")

    def get_subject(self) -> Optional[str]:
        return self._parser.get_claim("sub")

    def to_dict(self) -> Dict[str, Any]:
        """Export every claim verbatim."""
        return self._parser.export()

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=4)

    def to_box(self) -> Box:
        """Return the claims as an immutable (frozen) Box."""
        return Box(self.to_dict(), frozen_box=True)


def decode_token(
    jwt: str,
    config: Any,
    token_type: TokenType = TokenType.ID_TOKEN,
    audience: Optional[List[str]] = None,
    organization: Optional[List[str]] = None,
    nonce: Optional[str] = None,
    max_age: Optional[int] = None,
    leeway: Optional[int] = None,
    now: Optional[int] = None,
) -> Box:
    """Parse, verify and validate a token in one call.

    Args:
        jwt: Compact serialized token.
        config: OidcConfig (or dict of OIDC_* keys).
        token_type: Kind of token (default: ID token).
        audience: Accepted audiences (default: configured).
        organization: Accepted organizations (default: configured).
        nonce: Expected nonce, checked when given.
        max_age: Maximum seconds since auth_time.
        leeway: Clock skew tolerance in seconds.
        now: Current unix time.

    Returns:
        Box: Immutable (frozen) Box containing the validated claims.

    Raises:
        InvalidTokenError: If parsing, verification or validation fails.
        ConfigurationError: If required settings are missing.
    """
    token = Token(config, jwt, token_type)
    token.verify()
    token.validate(
        audience=audience,
        organization=organization,
        nonce=nonce,
        max_age=max_age,
        leeway=leeway,
        now=now,
    )
    return token.to_box()

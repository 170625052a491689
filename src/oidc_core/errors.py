"""OIDC core error classes following RFC 6750 OAuth 2.0 Bearer Token standard."""

from typing import Dict


class OidcError(Exception):
    """Base exception for OIDC core errors following RFC 6750.

    Standard OAuth 2.0 Bearer Token error codes (RFC 6750):
    - invalid_token (HTTP 401): Expired, malformed, or otherwise invalid token
    - server_error (HTTP 500): Server configuration or internal errors

    Args:
        error: Error details dict with 'error' and 'error_description' keys per RFC 6750.
        status_code: HTTP status code.
    """

    def __init__(self, error: Dict[str, str], status_code: int = 401):
        self.error = error
        self.status_code = status_code
        super().__init__(error.get("error_description", "Authentication error"))


class InvalidTokenError(OidcError):
    """A token could not be parsed, verified or validated.

    ``reason`` is a short machine-readable code (``expired``,
    ``issuer_mismatch``, ``key_not_found`` ...) that identifies which check
    rejected the token.

    Args:
        reason: Machine-readable failure code.
        description: Human-readable error description.
    """

    def __init__(self, reason: str, description: str):
        self.reason = reason
        super().__init__(
            {"error": "invalid_token", "error_description": description}, 401
        )


class ConfigurationError(OidcError):
    """A required setting (secret, domain, JWKS URL) is missing or unusable."""

    def __init__(self, description: str):
        super().__init__({"error": "server_error", "error_description": description}, 500)

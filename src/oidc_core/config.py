"""OIDC core configuration management."""

# ruff: noqa: N803
# Allow uppercase argument names for config (they match environment variable names)

import logging
import os
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

if TYPE_CHECKING:
    from .jwks import BaseCache

logger = logging.getLogger(__name__)

ALLOWED_RESPONSE_MODES = ("query", "form_post")

# Settings that are never echoed back by to_dict()/repr()
_SECRET_KEYS = frozenset(["OIDC_CLIENT_SECRET", "OIDC_COOKIE_SECRET"])

_TRUE_VALUES = frozenset(["1", "true", "yes", "on"])


class OidcConfig:
    """Unified configuration for token verification and session storage.

    All configuration variables follow the OIDC_* naming convention. Instances
    are immutable once constructed and can be shared read-only between the
    token, cookie store and session components.

    Example:
        Basic::

            from oidc_core.config import OidcConfig
            config = OidcConfig(
                OIDC_DOMAIN="tenant.example.com",
                OIDC_CLIENT_ID="my-client",
                OIDC_COOKIE_SECRET="a long random secret",
            )
            # List all config values (secrets masked)
            print(config.to_dict())
    """

    def __init__(
        self,
        # Tenant settings
        OIDC_DOMAIN: Optional[str] = None,
        OIDC_CLIENT_ID: Optional[str] = None,
        OIDC_CLIENT_SECRET: Optional[str] = None,
        OIDC_AUDIENCE: Optional[List[str]] = None,
        OIDC_ORGANIZATION: Optional[List[str]] = None,
        # Token settings
        OIDC_TOKEN_ALGORITHM: Optional[str] = "RS256",
        OIDC_TOKEN_JWKS_URI: Optional[str] = None,
        OIDC_TOKEN_CACHE: Optional["BaseCache"] = None,
        OIDC_TOKEN_CACHE_TTL: int = 60,
        OIDC_TOKEN_MAX_AGE: Optional[int] = None,
        OIDC_TOKEN_LEEWAY: int = 60,
        # Cookie settings
        OIDC_COOKIE_SECRET: Optional[str] = None,
        OIDC_COOKIE_DOMAIN: Optional[str] = None,
        OIDC_COOKIE_PATH: str = "/",
        OIDC_COOKIE_EXPIRES: int = 0,
        OIDC_COOKIE_SECURE: bool = False,
        OIDC_RESPONSE_MODE: str = "query",
        # Session persistence
        OIDC_PERSIST_USER: bool = True,
        OIDC_PERSIST_ID_TOKEN: bool = True,
        OIDC_PERSIST_ACCESS_TOKEN: bool = True,
        OIDC_PERSIST_REFRESH_TOKEN: bool = True,
    ):
        """Initialize OIDC configuration.

        Args:
            OIDC_DOMAIN: Tenant domain (e.g., "tenant.example.com")
            OIDC_CLIENT_ID: Application client ID, always accepted as an audience
            OIDC_CLIENT_SECRET: Client secret, used as the HS256 shared key
            OIDC_AUDIENCE: Additional accepted audiences
            OIDC_ORGANIZATION: Accepted organization IDs (org_...) or names
            OIDC_TOKEN_ALGORITHM: Expected signing algorithm, RS256 or HS256
                (default: RS256, None accepts whatever the token header declares)
            OIDC_TOKEN_JWKS_URI: JWKS endpoint URL (default: derived from domain)
            OIDC_TOKEN_CACHE: Cache used for JWKS documents (default: in-process)
            OIDC_TOKEN_CACHE_TTL: Seconds a JWKS document is cached (default: 60)
            OIDC_TOKEN_MAX_AGE: Maximum seconds since auth_time (default: unchecked)
            OIDC_TOKEN_LEEWAY: Clock skew tolerance in seconds (default: 60)
            OIDC_COOKIE_SECRET: Secret used to encrypt cookie values
            OIDC_COOKIE_DOMAIN: Cookie domain (default: request host)
            OIDC_COOKIE_PATH: Cookie path (default: "/")
            OIDC_COOKIE_EXPIRES: Cookie lifetime in seconds, 0 for session cookies
            OIDC_COOKIE_SECURE: Whether cookies carry the Secure attribute
            OIDC_RESPONSE_MODE: Authorization response mode, "query" or "form_post"
            OIDC_PERSIST_USER: Persist the user profile in session storage
            OIDC_PERSIST_ID_TOKEN: Persist the ID token in session storage
            OIDC_PERSIST_ACCESS_TOKEN: Persist the access token in session storage
            OIDC_PERSIST_REFRESH_TOKEN: Persist the refresh token in session storage
        """
        values = {
            "OIDC_DOMAIN": OIDC_DOMAIN,
            "OIDC_CLIENT_ID": OIDC_CLIENT_ID,
            "OIDC_CLIENT_SECRET": OIDC_CLIENT_SECRET,
            "OIDC_AUDIENCE": list(OIDC_AUDIENCE or []),
            "OIDC_ORGANIZATION": list(OIDC_ORGANIZATION) if OIDC_ORGANIZATION else None,
            "OIDC_TOKEN_ALGORITHM": OIDC_TOKEN_ALGORITHM,
            "OIDC_TOKEN_JWKS_URI": OIDC_TOKEN_JWKS_URI,
            "OIDC_TOKEN_CACHE": OIDC_TOKEN_CACHE,
            "OIDC_TOKEN_CACHE_TTL": OIDC_TOKEN_CACHE_TTL,
            "OIDC_TOKEN_MAX_AGE": OIDC_TOKEN_MAX_AGE,
            "OIDC_TOKEN_LEEWAY": OIDC_TOKEN_LEEWAY,
            "OIDC_COOKIE_SECRET": OIDC_COOKIE_SECRET,
            "OIDC_COOKIE_DOMAIN": OIDC_COOKIE_DOMAIN,
            "OIDC_COOKIE_PATH": OIDC_COOKIE_PATH,
            "OIDC_COOKIE_EXPIRES": OIDC_COOKIE_EXPIRES,
            "OIDC_COOKIE_SECURE": OIDC_COOKIE_SECURE,
            "OIDC_RESPONSE_MODE": OIDC_RESPONSE_MODE,
            "OIDC_PERSIST_USER": OIDC_PERSIST_USER,
            "OIDC_PERSIST_ID_TOKEN": OIDC_PERSIST_ID_TOKEN,
            "OIDC_PERSIST_ACCESS_TOKEN": OIDC_PERSIST_ACCESS_TOKEN,
            "OIDC_PERSIST_REFRESH_TOKEN": OIDC_PERSIST_REFRESH_TOKEN,
        }
        for key, value in values.items():
            object.__setattr__(self, key, value)

        # Validate configuration
        self._validate()

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"OidcConfig is immutable, cannot set {name}")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"OidcConfig is immutable, cannot delete {name}")

    def _validate(self):
        """Validate configuration values."""
        if self.OIDC_TOKEN_ALGORITHM not in (None, "RS256", "HS256"):
            raise ValueError(
                f"OIDC_TOKEN_ALGORITHM ({self.OIDC_TOKEN_ALGORITHM}) must be RS256 or HS256"
            )

        if self.OIDC_TOKEN_CACHE_TTL < 0:
            raise ValueError("OIDC_TOKEN_CACHE_TTL must not be negative")

        if self.OIDC_TOKEN_LEEWAY < 0:
            raise ValueError("OIDC_TOKEN_LEEWAY must not be negative")

        if self.OIDC_TOKEN_MAX_AGE is not None and self.OIDC_TOKEN_MAX_AGE < 0:
            raise ValueError("OIDC_TOKEN_MAX_AGE must not be negative")

        if self.OIDC_COOKIE_EXPIRES < 0:
            raise ValueError("OIDC_COOKIE_EXPIRES must not be negative")

        if self.OIDC_RESPONSE_MODE not in ALLOWED_RESPONSE_MODES:
            raise ValueError(
                f"OIDC_RESPONSE_MODE ({self.OIDC_RESPONSE_MODE}) must be one of "
                f"{', '.join(ALLOWED_RESPONSE_MODES)}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OidcConfig":
        """Build a configuration from OIDC_* environment variables.

        List settings accept comma-separated values, boolean settings accept
        1/true/yes/on. Unset variables keep their defaults.

        Args:
            environ: Mapping to read from (default: os.environ).

        Returns:
            OidcConfig: The configuration.
        """
        environ = os.environ if environ is None else environ
        kwargs: Dict[str, Any] = {}

        for key in (
            "OIDC_DOMAIN",
            "OIDC_CLIENT_ID",
            "OIDC_CLIENT_SECRET",
            "OIDC_TOKEN_ALGORITHM",
            "OIDC_TOKEN_JWKS_URI",
            "OIDC_COOKIE_SECRET",
            "OIDC_COOKIE_DOMAIN",
            "OIDC_COOKIE_PATH",
            "OIDC_RESPONSE_MODE",
        ):
            if environ.get(key):
                kwargs[key] = environ[key]

        for key in ("OIDC_AUDIENCE", "OIDC_ORGANIZATION"):
            if environ.get(key):
                kwargs[key] = [v.strip() for v in environ[key].split(",") if v.strip()]

        for key in (
            "OIDC_TOKEN_CACHE_TTL",
            "OIDC_TOKEN_MAX_AGE",
            "OIDC_TOKEN_LEEWAY",
            "OIDC_COOKIE_EXPIRES",
        ):
            if environ.get(key):
                try:
                    kwargs[key] = int(environ[key])
                except ValueError:
                    raise ValueError(f"{key} must be an integer, got {environ[key]!r}")

        for key in (
            "OIDC_COOKIE_SECURE",
            "OIDC_PERSIST_USER",
            "OIDC_PERSIST_ID_TOKEN",
            "OIDC_PERSIST_ACCESS_TOKEN",
            "OIDC_PERSIST_REFRESH_TOKEN",
        ):
            if environ.get(key):
                kwargs[key] = environ[key].strip().lower() in _TRUE_VALUES

        logger.debug(f"Loaded OIDC configuration keys from environment: {sorted(kwargs)}")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary.

        Secret values are replaced by "***" when set.

        Returns:
            Dictionary containing all configuration values.
        """
        result = {}
        for key, value in vars(self).items():
            if key in _SECRET_KEYS and value is not None:
                value = "***"
            result[key] = value
        return result

    def __repr__(self) -> str:
        """String representation of config."""
        items = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"OidcConfig({items})"


def get_config_value(config: Optional[Any], key: str, default: Any = None) -> Any:
    """Get configuration value from config object.

    Supports both dict-like and object attribute access patterns.

    Args:
        config: Configuration object or dict.
        key: Configuration key to retrieve.
        default: Default value if key not found.

    Returns:
        Configuration value or default.
    """
    if config is None:
        return default

    # Try dict-like access first
    if isinstance(config, dict):
        return config.get(key, default)

    # Try attribute access (for objects)
    return getattr(config, key, default)

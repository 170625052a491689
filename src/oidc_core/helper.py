"""Configuration-derived values used during token verification.

These helpers accept either an OidcConfig or a plain dict of OIDC_* keys.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from .config import get_config_value
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def format_domain(config: Optional[Union[Dict[str, Any], Any]] = None) -> str:
    """Return the configured tenant domain as an https URL without trailing slash.

    Args:
        config: Optional configuration dict or object.

    Returns:
        str: Tenant base URL (e.g., 'https://tenant.example.com').

    Raises:
        ConfigurationError: If OIDC_DOMAIN is not configured.

    Example:
        Basic::

            format_domain({"OIDC_DOMAIN": "tenant.example.com"})
            # Returns: 'https://tenant.example.com'
    """
    domain = get_config_value(config, "OIDC_DOMAIN")
    if not domain:
        raise ConfigurationError("OIDC_DOMAIN must be configured")

    # Remove protocol if present
    domain = domain.replace("https://", "").replace("http://", "").rstrip("/")
    return f"https://{domain}"


def get_expected_issuer(config: Optional[Union[Dict[str, Any], Any]] = None) -> str:
    """Get expected issuer URL from configuration.

    The platform issues tokens with the tenant URL plus a trailing slash
    as the 'iss' claim.

    Args:
        config: Optional configuration dict or object.

    Returns:
        str: Expected issuer (e.g., 'https://tenant.example.com/').
    """
    return f"{format_domain(config)}/"


def get_jwks_url(config: Optional[Union[Dict[str, Any], Any]] = None) -> str:
    """Get JWKS URL from configuration.

    Configuration hierarchy:
        1. OIDC_TOKEN_JWKS_URI (if set, used directly)
        2. https://{OIDC_DOMAIN}/.well-known/jwks.json

    Args:
        config: Optional configuration dict or object.

    Returns:
        str: Full JWKS URL.

    Raises:
        ConfigurationError: If neither setting is configured.
    """
    jwks_url = get_config_value(config, "OIDC_TOKEN_JWKS_URI")
    if jwks_url:
        return jwks_url

    if not get_config_value(config, "OIDC_DOMAIN"):
        raise ConfigurationError(
            "Please set either OIDC_TOKEN_JWKS_URI or OIDC_DOMAIN in your config."
        )
    return f"{format_domain(config)}/.well-known/jwks.json"


def get_audiences(
    config: Optional[Union[Dict[str, Any], Any]] = None,
    audience: Optional[List[str]] = None,
) -> List[str]:
    """Build the list of accepted audiences.

    The client ID is always accepted in addition to the explicit (or configured)
    audiences. Duplicates are removed, order is kept.

    Args:
        config: Optional configuration dict or object.
        audience: Explicit audiences, overriding OIDC_AUDIENCE.

    Returns:
        list: Accepted audience values.
    """
    if audience is None:
        audience = get_config_value(config, "OIDC_AUDIENCE") or []
    elif isinstance(audience, str):
        audience = [audience]

    result = list(audience)
    client_id = get_config_value(config, "OIDC_CLIENT_ID")
    if client_id:
        result.append(str(client_id))

    return list(dict.fromkeys(result))

"""Claim validation rules for decoded tokens.

Each rule is a plain function of the claims mapping that returns ``None`` when
the claims pass and a :class:`ClaimFailure` otherwise. :class:`ClaimsValidator`
runs an ordered list of rules and raises for the first failure.

Example:
    Basic::

        validator = ClaimsValidator([
            issuer("https://tenant.example.com/"),
            audience(["my-client"]),
            expiration(leeway=60, now=int(time.time())),
        ])
        validator.validate(claims)
"""

import hmac
import logging
from typing import Any, Callable, Iterable, List, Mapping, NamedTuple, Optional

from .errors import InvalidTokenError

logger = logging.getLogger(__name__)


class ClaimFailure(NamedTuple):
    """Why a claim check rejected a token."""

    reason: str
    description: str


ClaimCheck = Callable[[Mapping[str, Any]], Optional[ClaimFailure]]


def as_timestamp(value: Any) -> Optional[int]:
    """Coerce a numeric (or numeric string) claim to an int, None if impossible."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def as_list(value: Any) -> List[Any]:
    """Normalize a claim that may be a single string or a sequence to a list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def issuer(expected: str) -> ClaimCheck:
    """The iss claim must equal expected."""

    def check(claims):
        value = claims.get("iss")
        if value is None:
            return ClaimFailure(
                "missing_issuer", "Issuer (iss) claim must be a string present in the token"
            )
        if value != expected:
            return ClaimFailure(
                "issuer_mismatch",
                f'Issuer (iss) claim mismatch in the token; expected "{expected}", found "{value}"',
            )
        return None

    return check


def audience(allowed: Iterable[str]) -> ClaimCheck:
    """At least one aud value must be in allowed."""
    allowed = list(allowed)

    def check(claims):
        values = as_list(claims.get("aud"))
        if not values:
            return ClaimFailure(
                "missing_audience",
                "Audience (aud) claim must be a string or array of strings present in the token",
            )
        if not any(isinstance(v, str) and v in allowed for v in values):
            return ClaimFailure(
                "audience_mismatch",
                f'Audience (aud) claim mismatch in the token; expected one of "{", ".join(allowed)}", '
                f'found "{", ".join(str(v) for v in values)}"',
            )
        return None

    return check


def expiration(leeway: int, now: int) -> ClaimCheck:
    """The token must not have expired: exp > now - leeway."""

    def check(claims):
        if claims.get("exp") is None:
            return ClaimFailure(
                "missing_expiration",
                "Expiration Time (exp) claim must be a number present in the token",
            )
        expires = as_timestamp(claims["exp"])
        if expires is None:
            return ClaimFailure(
                "invalid_expiration", "Expiration Time (exp) claim must be a number"
            )
        if expires <= now - leeway:
            return ClaimFailure(
                "expired",
                f"Expiration Time (exp) claim error in the token; current time ({now}) "
                f"is after expiration time ({expires}) plus leeway ({leeway})",
            )
        return None

    return check


def subject() -> ClaimCheck:
    """The sub claim must be present."""

    def check(claims):
        if claims.get("sub") is None:
            return ClaimFailure(
                "missing_subject", "Subject (sub) claim must be a string present in the token"
            )
        return None

    return check


def issued() -> ClaimCheck:
    """The iat claim must be present and numeric."""

    def check(claims):
        if as_timestamp(claims.get("iat")) is None:
            return ClaimFailure(
                "missing_issued_at",
                "Issued At (iat) claim must be a number present in the token",
            )
        return None

    return check


def authorized_party(allowed: Iterable[str]) -> ClaimCheck:
    """With several audiences, azp must be present and one of allowed."""
    allowed = list(allowed)

    def check(claims):
        if len(as_list(claims.get("aud"))) <= 1:
            return None
        value = claims.get("azp")
        if value is None:
            return ClaimFailure(
                "missing_authorized_party",
                "Authorized Party (azp) claim must be a string present in the token "
                "when Audience (aud) claim has multiple values",
            )
        if not isinstance(value, str) or value not in allowed:
            return ClaimFailure(
                "authorized_party_mismatch",
                f'Authorized Party (azp) claim mismatch in the token; expected one of '
                f'"{", ".join(allowed)}", found "{value}"',
            )
        return None

    return check


def nonce(expected: str) -> ClaimCheck:
    """The nonce claim must equal expected."""

    def check(claims):
        value = claims.get("nonce")
        if not isinstance(value, str):
            return ClaimFailure(
                "missing_nonce", "Nonce (nonce) claim must be a string present in the token"
            )
        if not hmac.compare_digest(value.encode(), expected.encode()):
            return ClaimFailure("nonce_mismatch", "Nonce (nonce) claim mismatch in the token")
        return None

    return check


def auth_time(max_age: int, leeway: int, now: int) -> ClaimCheck:
    """The end-user must have authenticated within max_age (plus leeway) seconds."""

    def check(claims):
        value = as_timestamp(claims.get("auth_time"))
        if value is None:
            return ClaimFailure(
                "missing_auth_time",
                "Authentication Time (auth_time) claim must be a number present in the "
                "token when Max Age is specified",
            )
        if now - value > max_age + leeway:
            return ClaimFailure(
                "auth_time_expired",
                f"Authentication Time (auth_time) claim in the token indicates that too much "
                f"time has passed since the last end-user authentication; current time ({now}) "
                f"is after last auth at ({value + max_age + leeway})",
            )
        return None

    return check


def organization(allowed: Iterable[str]) -> ClaimCheck:
    """The org_id (for org_ prefixed entries) or org_name claim must be allowed.

    Organization names are compared case-insensitively.
    """
    allowed = [entry for entry in allowed if entry]
    allowed_ids = {entry for entry in allowed if entry.startswith("org_")}
    allowed_names = {entry.lower() for entry in allowed if not entry.startswith("org_")}

    def check(claims):
        org_id = claims.get("org_id")
        org_name = claims.get("org_name")
        if not isinstance(org_id, str) and not isinstance(org_name, str):
            return ClaimFailure(
                "missing_organization",
                "Organization Id (org_id) or Organization Name (org_name) claim must be a "
                "string present in the token",
            )
        if isinstance(org_id, str) and org_id in allowed_ids:
            return None
        if isinstance(org_name, str) and org_name.lower() in allowed_names:
            return None
        found = org_id if isinstance(org_id, str) else org_name
        return ClaimFailure(
            "organization_mismatch",
            f'Organization claim mismatch in the token; expected one of "{", ".join(allowed)}", '
            f'found "{found}"',
        )

    return check


class ClaimsValidator:
    """Run claim checks in order, stopping at the first failure."""

    def __init__(self, checks: Optional[Iterable[ClaimCheck]] = None):
        self.checks: List[ClaimCheck] = list(checks or [])

    def add(self, check: ClaimCheck) -> "ClaimsValidator":
        self.checks.append(check)
        return self

    def first_failure(self, claims: Mapping[str, Any]) -> Optional[ClaimFailure]:
        """Return the first failing check's result, or None if all pass."""
        for check in self.checks:
            failure = check(claims)
            if failure is not None:
                return failure
        return None

    def validate(self, claims: Mapping[str, Any]) -> None:
        """Raise InvalidTokenError for the first failing check.

        Raises:
            InvalidTokenError: With the failing check's reason and description.
        """
        failure = self.first_failure(claims)
        if failure is not None:
            logger.warning(f"Token validation failed: {failure.reason}")
            raise InvalidTokenError(failure.reason, failure.description)

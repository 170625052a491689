"""Tests for claim validation rules."""

import pytest

from oidc_core.errors import InvalidTokenError
from oidc_core.validator import (
    ClaimFailure,
    ClaimsValidator,
    as_list,
    as_timestamp,
    audience,
    auth_time,
    authorized_party,
    expiration,
    issued,
    issuer,
    nonce,
    organization,
    subject,
)

NOW = 1_700_000_000


def _reason(check, claims):
    failure = check(claims)
    return failure.reason if failure else None


class TestConversions:
    """Test claim value coercion."""

    def test_as_timestamp(self):
        assert as_timestamp(10) == 10
        assert as_timestamp(10.7) == 10
        assert as_timestamp(" 42 ") == 42
        assert as_timestamp("soon") is None
        assert as_timestamp(None) is None
        assert as_timestamp(True) is None

    def test_as_list(self):
        assert as_list("a") == ["a"]
        assert as_list(["a", "b"]) == ["a", "b"]
        assert as_list(None) == []


class TestIssuer:
    def test_match(self):
        assert _reason(issuer("https://a/"), {"iss": "https://a/"}) is None

    def test_missing(self):
        assert _reason(issuer("https://a/"), {}) == "missing_issuer"

    def test_mismatch(self):
        assert _reason(issuer("https://a/"), {"iss": "https://a"}) == "issuer_mismatch"


class TestAudience:
    def test_string_audience(self):
        assert _reason(audience(["api"]), {"aud": "api"}) is None

    def test_any_overlap(self):
        assert _reason(audience(["api", "client"]), {"aud": ["other", "client"]}) is None

    def test_missing(self):
        assert _reason(audience(["api"]), {}) == "missing_audience"
        assert _reason(audience(["api"]), {"aud": []}) == "missing_audience"

    def test_mismatch(self):
        assert _reason(audience(["api"]), {"aud": ["other"]}) == "audience_mismatch"

    def test_non_string_entries(self):
        """Test that aud entries of the wrong JSON type are a mismatch, not a crash."""
        assert _reason(audience(["api"]), {"aud": [{"x": 1}]}) == "audience_mismatch"
        assert _reason(audience(["api"]), {"aud": [["api"], "other"]}) == "audience_mismatch"
        assert _reason(audience(["api"]), {"aud": [{"x": 1}, "api"]}) is None
        assert _reason(audience(["api"]), {"aud": 42}) == "audience_mismatch"


class TestExpiration:
    """Test the exp check and its leeway boundary."""

    def test_future(self):
        assert _reason(expiration(60, NOW), {"exp": NOW + 10}) is None

    def test_within_leeway(self):
        assert _reason(expiration(60, NOW), {"exp": NOW - 59}) is None

    def test_boundary_fails(self):
        """Test that exp == now - leeway is expired."""
        assert _reason(expiration(60, NOW), {"exp": NOW - 60}) == "expired"

    def test_past(self):
        assert _reason(expiration(60, NOW), {"exp": NOW - 3600}) == "expired"

    def test_missing(self):
        assert _reason(expiration(60, NOW), {}) == "missing_expiration"

    def test_not_numeric(self):
        assert _reason(expiration(60, NOW), {"exp": "tomorrow"}) == "invalid_expiration"

    def test_numeric_string(self):
        assert _reason(expiration(0, NOW), {"exp": str(NOW + 1)}) is None


class TestIdTokenClaims:
    def test_subject(self):
        assert _reason(subject(), {"sub": "user"}) is None
        assert _reason(subject(), {}) == "missing_subject"

    def test_issued(self):
        assert _reason(issued(), {"iat": NOW}) is None
        assert _reason(issued(), {}) == "missing_issued_at"

    def test_authorized_party_single_audience(self):
        """Test that azp is not required with a single audience."""
        assert _reason(authorized_party(["client"]), {"aud": "client"}) is None
        assert _reason(authorized_party(["client"]), {"aud": ["client"]}) is None

    def test_authorized_party_required(self):
        check = authorized_party(["client"])

        assert _reason(check, {"aud": ["client", "api"]}) == "missing_authorized_party"
        assert _reason(check, {"aud": ["client", "api"], "azp": "client"}) is None
        assert (
            _reason(check, {"aud": ["client", "api"], "azp": "other"})
            == "authorized_party_mismatch"
        )

    def test_authorized_party_non_string(self):
        check = authorized_party(["client"])

        assert (
            _reason(check, {"aud": ["client", "api"], "azp": ["client"]})
            == "authorized_party_mismatch"
        )
        assert (
            _reason(check, {"aud": ["client", "api"], "azp": {"id": "client"}})
            == "authorized_party_mismatch"
        )


class TestNonce:
    def test_match(self):
        assert _reason(nonce("abc"), {"nonce": "abc"}) is None

    def test_missing(self):
        assert _reason(nonce("abc"), {}) == "missing_nonce"

    def test_mismatch(self):
        assert _reason(nonce("abc"), {"nonce": "abd"}) == "nonce_mismatch"


class TestAuthTime:
    def test_fresh(self):
        assert _reason(auth_time(300, 60, NOW), {"auth_time": NOW - 300}) is None

    def test_boundary_passes(self):
        """Test that now - auth_time == max_age + leeway is still accepted."""
        assert _reason(auth_time(300, 60, NOW), {"auth_time": NOW - 360}) is None

    def test_too_old(self):
        assert _reason(auth_time(300, 60, NOW), {"auth_time": NOW - 361}) == "auth_time_expired"

    def test_missing(self):
        assert _reason(auth_time(300, 60, NOW), {}) == "missing_auth_time"


class TestOrganization:
    def test_org_id(self):
        assert _reason(organization(["org_123"]), {"org_id": "org_123"}) is None

    def test_org_name_case_insensitive(self):
        assert _reason(organization(["Acme"]), {"org_name": "acme"}) is None

    def test_id_entries_do_not_match_names(self):
        assert _reason(organization(["org_123"]), {"org_name": "org_123"}) == (
            "organization_mismatch"
        )

    def test_missing(self):
        assert _reason(organization(["org_123"]), {}) == "missing_organization"

    def test_mismatch(self):
        assert _reason(organization(["org_123", "acme"]), {"org_id": "org_999"}) == (
            "organization_mismatch"
        )


class TestClaimsValidator:
    """Test ordered, fail-fast execution."""

    def test_all_pass(self):
        validator = ClaimsValidator([issuer("i"), subject()])

        assert validator.first_failure({"iss": "i", "sub": "s"}) is None
        validator.validate({"iss": "i", "sub": "s"})

    def test_first_failure_wins(self):
        """Test that later checks are not run after a failure."""
        calls = []

        def recorded(claims):
            calls.append("later")
            return None

        validator = ClaimsValidator([issuer("i"), subject(), recorded])

        with pytest.raises(InvalidTokenError) as exc_info:
            validator.validate({"iss": "other"})

        assert exc_info.value.reason == "issuer_mismatch"
        assert calls == []

    def test_add(self):
        """Test appending checks."""
        validator = ClaimsValidator().add(subject())

        assert validator.first_failure({}) == ClaimFailure(
            "missing_subject", "Subject (sub) claim must be a string present in the token"
        )

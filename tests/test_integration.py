"""Integration tests for end-to-end flows."""

from unittest.mock import MagicMock, patch

import pytest

from oidc_core import (
    CookieJar,
    CookieStore,
    HttpxRequester,
    InvalidTokenError,
    KeyProvider,
    SessionManager,
    decode_token,
)

from .conftest import JWKS_URL


@pytest.fixture
def http_jwks(jwks_data):
    """Serve the test JWKS through a mocked httpx client."""
    with patch("httpx.Client") as mock_client_class:
        mock_client = MagicMock()
        mock_client.get.return_value = MagicMock(status_code=200, content=jwks_data)
        mock_client_class.return_value = mock_client

        provider = KeyProvider(HttpxRequester())
        with patch("oidc_core.token._key_provider", provider):
            yield mock_client


class TestEndToEndFlow:
    """Test complete sign-in flows."""

    def test_decode_token(self, http_jwks, config, valid_token, now):
        """Test that repeated decoding fetches the JWKS over HTTP only once."""
        payload = decode_token(valid_token, config, now=now)
        decode_token(valid_token, config, now=now)

        assert payload.sub == "user|123"
        http_jwks.get.assert_called_once_with(JWKS_URL)

    def test_decode_expired_token(self, http_jwks, config, claims, make_token, now):
        claims["exp"] = now - 3600

        with pytest.raises(InvalidTokenError) as exc_info:
            decode_token(make_token(claims), config, now=now)

        assert exc_info.value.status_code == 401
        assert exc_info.value.error["error"] == "invalid_token"

    def test_login_callback_with_cookies(self, http_jwks, config, claims, make_token):
        """Test the login round trip across three requests using cookie storage."""
        # 1. Login redirect: issue a nonce into a transient cookie
        login = CookieJar(host="app.example.com")
        manager = SessionManager(
            config, CookieStore(config, login), CookieStore(config, login, prefix="auth0_tx")
        )
        nonce = manager.transient.issue("nonce")
        sent = {c.name: c.value for c in login.queued}

        # 2. Callback: consume the nonce and persist the session
        callback = CookieJar(sent, host="app.example.com")
        manager = SessionManager(
            config,
            CookieStore(config, callback),
            CookieStore(config, callback, prefix="auth0_tx"),
        )
        claims["nonce"] = nonce
        id_token = make_token(claims)
        manager.set_id_token(id_token)
        manager.set_user(manager.state.id_token_decoded)
        manager.set_access_token("access-token").set_access_token_expiration(claims["exp"])

        response = MagicMock()
        callback.apply(response)
        sent = {
            call.args[0]: call.args[1]
            for call in response.set_cookie.call_args_list
            if call.args[1]
        }

        # 3. Next request: the session is restored from cookies
        browse = CookieJar(sent, host="app.example.com")
        manager = SessionManager(config, CookieStore(config, browse))
        credentials = manager.get_credentials(now=claims["iat"])

        assert credentials["user"]["sub"] == "user|123"
        assert credentials["id_token"] == id_token
        assert credentials["access_token"] == "access-token"
        assert credentials["access_token_expired"] is False

        # The nonce was consumed by the callback
        transient = CookieStore(config, browse, prefix="auth0_tx")
        assert transient.get("nonce") is None

    def test_forged_nonce_fails(self, http_jwks, config, claims, make_token):
        """Test that a callback carrying a nonce other than the issued one is rejected."""
        jar = CookieJar(host="app.example.com")
        manager = SessionManager(
            config, CookieStore(config, jar), CookieStore(config, jar, prefix="auth0_tx")
        )
        manager.transient.issue("nonce")
        claims["nonce"] = "nonce-from-another-session"

        with pytest.raises(InvalidTokenError) as exc_info:
            manager.set_id_token(make_token(claims))

        assert exc_info.value.reason == "nonce_mismatch"
        assert manager.get_credentials() is None

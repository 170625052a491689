"""Session state built on top of token decoding and the storage backends.

SessionManager keeps the tokens and user profile of the signed-in user,
persisting them to a BaseStore (cookie or server session) according to the
OIDC_PERSIST_* settings.
"""

import logging
import time
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Union

from .config import get_config_value
from .store import BaseStore, TransientStoreHandler
from .token import Token, TokenType

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Tokens and profile of the current session."""

    id_token: Optional[str] = None
    id_token_decoded: Optional[Dict[str, Any]] = None
    access_token: Optional[str] = None
    access_token_scope: Optional[List[str]] = None
    refresh_token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None
    access_token_expiration: Optional[int] = None

    def reset(self) -> None:
        for field in fields(self):
            setattr(self, field.name, None)


class SessionManager:
    """Restore, update and clear the session of the signed-in user.

    Args:
        config: OidcConfig (or dict of OIDC_* keys).
        session_storage: Store for persisted session values (optional).
        transient_storage: Store for one-time values such as nonce (optional).
    """

    def __init__(
        self,
        config: Any,
        session_storage: Optional[BaseStore] = None,
        transient_storage: Optional[BaseStore] = None,
    ):
        self.config = config
        self.session_storage = session_storage
        self.transient = (
            TransientStoreHandler(transient_storage) if transient_storage is not None else None
        )
        self.state = SessionState()
        self._restore()

    def _persist(self, setting: str) -> bool:
        return self.session_storage is not None and bool(
            get_config_value(self.config, setting, True)
        )

    def _restore(self) -> None:
        if self.session_storage is None:
            return

        if self._persist("OIDC_PERSIST_USER"):
            self.state.user = self.session_storage.get("user")

        if self._persist("OIDC_PERSIST_ID_TOKEN"):
            self.state.id_token = self.session_storage.get("idToken")

        if self._persist("OIDC_PERSIST_ACCESS_TOKEN"):
            self.state.access_token = self.session_storage.get("accessToken")
            self.state.access_token_scope = self.session_storage.get("accessTokenScope")
            expires = self.session_storage.get("accessTokenExpiration")
            if expires is not None:
                try:
                    self.state.access_token_expiration = int(expires)
                except (TypeError, ValueError):
                    logger.warning("Ignoring stored access token expiration: not a number")

        if self._persist("OIDC_PERSIST_REFRESH_TOKEN"):
            self.state.refresh_token = self.session_storage.get("refreshToken")

    def decode(
        self,
        token: str,
        audience: Optional[List[str]] = None,
        organization: Optional[List[str]] = None,
        nonce: Optional[str] = None,
        max_age: Optional[int] = None,
        leeway: Optional[int] = None,
        now: Optional[int] = None,
    ) -> Token:
        """Verify and validate an ID token using this session's configuration.

        Raises:
            InvalidTokenError: If the token is not acceptable.
        """
        decoded = Token(self.config, token, TokenType.ID_TOKEN)
        decoded.verify()
        decoded.validate(
            audience=audience,
            organization=organization,
            nonce=nonce,
            max_age=max_age,
            leeway=leeway,
            now=now,
        )
        return decoded

    def set_id_token(self, id_token: str, nonce: Optional[str] = None) -> "SessionManager":
        """Decode and store an ID token.

        When no nonce is given and transient storage is configured, the nonce
        issued for the authorization request is consumed and checked.
        """
        if nonce is None and self.transient is not None:
            nonce = self.transient.get_once("nonce")

        decoded = self.decode(id_token, nonce=nonce)
        self.state.id_token_decoded = decoded.to_dict()
        self.state.id_token = id_token

        if self._persist("OIDC_PERSIST_ID_TOKEN"):
            self.session_storage.set("idToken", id_token)
        return self

    def set_user(self, user: Dict[str, Any]) -> "SessionManager":
        self.state.user = user
        if self._persist("OIDC_PERSIST_USER"):
            self.session_storage.set("user", user)
        return self

    def set_access_token(self, access_token: str) -> "SessionManager":
        self.state.access_token = access_token
        if self._persist("OIDC_PERSIST_ACCESS_TOKEN"):
            self.session_storage.set("accessToken", access_token)
        return self

    def set_access_token_scope(self, scope: List[str]) -> "SessionManager":
        self.state.access_token_scope = list(dict.fromkeys(s for s in scope if s))
        if self._persist("OIDC_PERSIST_ACCESS_TOKEN"):
            self.session_storage.set("accessTokenScope", self.state.access_token_scope)
        return self

    def push_access_token_scope(self, scope: Union[str, List[str]]) -> "SessionManager":
        """Merge one scope or a list of scopes into the current access token scope."""
        if isinstance(scope, str):
            scope = [scope]
        return self.set_access_token_scope(list(self.state.access_token_scope or []) + list(scope))

    def set_access_token_expiration(self, expiration: int) -> "SessionManager":
        self.state.access_token_expiration = int(expiration)
        if self._persist("OIDC_PERSIST_ACCESS_TOKEN"):
            self.session_storage.set("accessTokenExpiration", self.state.access_token_expiration)
        return self

    def set_refresh_token(self, refresh_token: str) -> "SessionManager":
        self.state.refresh_token = refresh_token
        if self._persist("OIDC_PERSIST_REFRESH_TOKEN"):
            self.session_storage.set("refreshToken", refresh_token)
        return self

    def get_credentials(self, now: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Return the current session, or None when no user is signed in.

        ``access_token_expired`` is None when the expiration is unknown.
        """
        if self.state.user is None:
            return None

        expired = None
        if self.state.access_token_expiration is not None:
            now = int(time.time()) if now is None else now
            expired = now >= self.state.access_token_expiration

        return {
            "user": self.state.user,
            "id_token": self.state.id_token,
            "access_token": self.state.access_token,
            "access_token_scope": self.state.access_token_scope,
            "access_token_expiration": self.state.access_token_expiration,
            "access_token_expired": expired,
            "refresh_token": self.state.refresh_token,
        }

    def clear(self) -> None:
        """Remove persisted session values and reset the in-memory state."""
        if self.session_storage is not None:
            for key in (
                "user",
                "idToken",
                "accessToken",
                "accessTokenScope",
                "accessTokenExpiration",
                "refreshToken",
            ):
                self.session_storage.delete(key)
        self.state.reset()

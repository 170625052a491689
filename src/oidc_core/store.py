"""Storage backends for session and transient authentication data.

- BaseStore: get/set/delete interface shared by every backend
- SessionStore: values kept in a server-side session mapping
- TransientStoreHandler: one-time values (state, nonce, PKCE verifier)

The encrypted cookie backend lives in :mod:`oidc_core.cookies`.
"""

import hmac
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any, MutableMapping, Optional

logger = logging.getLogger(__name__)


class BaseStore(ABC):
    """Key/value storage used for session and transient data."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store value under key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key, if present."""

    @staticmethod
    def _check_key(key: str) -> None:
        if not isinstance(key, str) or not key.strip():
            raise ValueError("key must be a non-empty string")


class SessionStore(BaseStore):
    """Keep values in a server-side session.

    Args:
        session: Any mutable mapping, typically the web framework's session
            object (Flask ``session``, Starlette ``request.session``).
        prefix: Prefix of every session key.
    """

    def __init__(self, session: MutableMapping[str, Any], prefix: str = "auth0"):
        self.session = session
        self.prefix = prefix

    def get_session_key_name(self, key: str) -> str:
        self._check_key(key)
        return f"{self.prefix}_{key.strip()}"

    def get(self, key: str, default: Any = None) -> Any:
        return self.session.get(self.get_session_key_name(key), default)

    def set(self, key: str, value: Any) -> None:
        self.session[self.get_session_key_name(key)] = value

    def delete(self, key: str) -> None:
        self.session.pop(self.get_session_key_name(key), None)


class TransientStoreHandler:
    """Issue and consume single-use values around an authorization request."""

    def __init__(self, store: BaseStore):
        self.store = store

    def store_value(self, key: str, value: str) -> None:
        self.store.set(key, value)

    def issue(self, key: str) -> str:
        """Generate, store and return a random URL-safe value for key."""
        value = secrets.token_urlsafe(32)
        self.store.set(key, value)
        return value

    def get_once(self, key: str) -> Optional[str]:
        """Return the value stored under key and remove it."""
        value = self.store.get(key)
        if value is not None:
            self.store.delete(key)
        return value

    def verify(self, key: str, expected: str) -> bool:
        """Consume key and compare it against expected in constant time."""
        value = self.get_once(key)
        if not isinstance(value, str) or not isinstance(expected, str):
            logger.debug(f"Transient value {key} missing")
            return False
        return hmac.compare_digest(value.encode("utf-8"), expected.encode("utf-8"))

    def isset(self, key: str) -> bool:
        return self.store.get(key) is not None

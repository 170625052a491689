"""Encrypted, chunked key/value storage in HTTP cookies.

Values are JSON-serialised, sealed with AES-128-GCM and wrapped in a base64
envelope. Envelopes too large for one cookie are split across several:

- ``<name>``: the whole envelope, when it fits
- ``<name>_0``: the number of fragments N, when chunked
- ``<name>_1`` .. ``<name>_N``: the fragments, in order

Cookie names are the SHA-256 hex digest of ``<prefix>_<key>``. Reads are
tolerant: a tampered, truncated or otherwise unreadable value is treated as
absent, because cookies are attacker-controlled storage.
"""

import base64
import binascii
import hashlib
import json
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import formatdate
from http.cookies import SimpleCookie
from typing import Any, Dict, List, Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .config import get_config_value
from .errors import ConfigurationError
from .store import BaseStore

logger = logging.getLogger(__name__)

KEY_HASHING_ALGO = "sha256"
KEY_CHUNKING_THRESHOLD = 4096
KEY_SEPARATOR = "_"

# Leave room for the cookie name within the browser's per-cookie limit
CHUNK_SIZE = KEY_CHUNKING_THRESHOLD - len(hashlib.sha256(b"threshold").hexdigest())

IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 16  # AES-128

_HKDF_INFO = b"oidc-core cookie store"

_CORRUPT = -1
_INVALID = object()


@dataclass
class ResponseCookie:
    """A cookie queued for the response."""

    name: str
    value: str
    expires: Optional[int] = None  # unix time, None for a session cookie
    domain: Optional[str] = None
    path: str = "/"
    secure: bool = False
    httponly: bool = True
    samesite: str = "Lax"


class CookieJar:
    """Cookies of one request/response cycle.

    Holds a snapshot of the request cookies and the list of cookies to send
    back. Writes update the snapshot as well, so a value set earlier in the
    request is visible to later reads.

    Args:
        cookies: Request cookies (name -> value).
        host: Request host, used as the default cookie domain.
    """

    def __init__(self, cookies: Optional[Mapping[str, str]] = None, host: Optional[str] = None):
        self._cookies: Dict[str, str] = dict(cookies or {})
        self._queued: Dict[str, ResponseCookie] = {}
        self.host = host

    def __contains__(self, name: str) -> bool:
        return name in self._cookies

    def __len__(self) -> int:
        return len(self._cookies)

    def get(self, name: str) -> Optional[str]:
        return self._cookies.get(name)

    def set_cookie(self, cookie: ResponseCookie) -> None:
        self._cookies[cookie.name] = cookie.value
        self._queue(cookie)

    def expire_cookie(self, cookie: ResponseCookie) -> None:
        self._cookies.pop(cookie.name, None)
        self._queue(cookie)

    def _queue(self, cookie: ResponseCookie) -> None:
        # Only the last write to a name reaches the response
        self._queued.pop(cookie.name, None)
        self._queued[cookie.name] = cookie

    @property
    def queued(self) -> List[ResponseCookie]:
        return list(self._queued.values())

    def apply(self, response: Any) -> None:
        """Flush queued cookies to a framework response.

        Works with any response exposing ``set_cookie`` with the common
        Starlette/Werkzeug keyword arguments.
        """
        for cookie in self._queued.values():
            expires = None
            if cookie.expires is not None:
                expires = datetime.fromtimestamp(cookie.expires, tz=timezone.utc)
            response.set_cookie(
                cookie.name,
                cookie.value,
                expires=expires,
                path=cookie.path,
                domain=cookie.domain,
                secure=cookie.secure,
                httponly=cookie.httponly,
                samesite=cookie.samesite,
            )

    def headers(self) -> List[str]:
        """Render queued cookies as Set-Cookie header values."""
        result = []
        for cookie in self._queued.values():
            jar = SimpleCookie()
            jar[cookie.name] = cookie.value
            morsel = jar[cookie.name]
            morsel["path"] = cookie.path
            if cookie.expires is not None:
                morsel["expires"] = formatdate(cookie.expires, usegmt=True)
            if cookie.domain:
                morsel["domain"] = cookie.domain
            if cookie.secure:
                morsel["secure"] = True
            if cookie.httponly:
                morsel["httponly"] = True
            morsel["samesite"] = cookie.samesite
            result.append(morsel.OutputString())
        return result


class CookieStore(BaseStore):
    """Store values in encrypted, chunked cookies.

    Args:
        config: OidcConfig (or dict of OIDC_* keys). OIDC_COOKIE_SECRET is
            required; the OIDC_COOKIE_* settings and OIDC_RESPONSE_MODE shape
            the cookie attributes.
        jar: CookieJar of the current request.
        prefix: Prefix mixed into every cookie name.
    """

    def __init__(self, config: Any, jar: CookieJar, prefix: str = "auth0"):
        if not isinstance(prefix, str) or not prefix.strip():
            raise ValueError("prefix must be a non-empty string")

        self.config = config
        self.jar = jar
        self.prefix = prefix
        self._key: Optional[bytes] = None

    def get_cookie_name(self, key: str) -> str:
        """Return the fixed-length cookie name for a key."""
        self._check_key(key)
        material = f"{self.prefix}{KEY_SEPARATOR}{key.strip()}"
        return hashlib.new(KEY_HASHING_ALGO, material.encode("utf-8")).hexdigest()

    def set(self, key: str, value: Any) -> None:
        """Persist value under key, replacing any previous cookies for it."""
        name = self.get_cookie_name(key)
        previous = set(self._cookie_names(name))
        envelope = self._encrypt(value)

        expires = get_config_value(self.config, "OIDC_COOKIE_EXPIRES", 0)
        options = self._cookie_options(int(time.time()) + expires if expires else None)

        if len(envelope) >= CHUNK_SIZE:
            chunks = [
                envelope[i : i + CHUNK_SIZE] for i in range(0, len(envelope), CHUNK_SIZE)
            ]
            written = [_chunk_name(name, 0)]
            self.jar.set_cookie(ResponseCookie(written[0], str(len(chunks)), **options))
            for index, chunk in enumerate(chunks, start=1):
                written.append(_chunk_name(name, index))
                self.jar.set_cookie(ResponseCookie(written[-1], chunk, **options))
            logger.debug(f"Stored cookie {name} in {len(chunks)} chunks")
        else:
            written = [name]
            self.jar.set_cookie(ResponseCookie(name, envelope, **options))

        # Drop cookies left over from an earlier layout of this key
        for stale in sorted(previous.difference(written)):
            self.jar.expire_cookie(ResponseCookie(stale, "", **self._expired_options()))

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default when absent or unreadable."""
        name = self.get_cookie_name(key)
        self._get_key()
        chunks = self._chunk_count(name)

        if chunks is None:
            return default

        if chunks == _CORRUPT:
            logger.warning(f"Discarding cookie {name}: invalid chunk count")
            return default

        if chunks == 0:
            envelope = self.jar.get(name) or ""
        else:
            fragments = []
            for index in range(1, chunks + 1):
                fragment = self.jar.get(_chunk_name(name, index))
                if fragment is None:
                    logger.warning(f"Discarding cookie {name}: chunk {index} of {chunks} missing")
                    return default
                fragments.append(fragment)
            envelope = "".join(fragments)

        if not envelope:
            return default

        value = self._decrypt(envelope)
        if value is _INVALID:
            logger.warning(f"Discarding cookie {name}: unable to decrypt")
            return default
        if value is None:
            return default
        return value

    def delete(self, key: str) -> None:
        """Expire every cookie holding key."""
        name = self.get_cookie_name(key)
        options = self._expired_options()
        for cookie_name in self._cookie_names(name):
            self.jar.expire_cookie(ResponseCookie(cookie_name, "", **options))

    def _cookie_names(self, name: str) -> List[str]:
        """Names of the cookies currently holding the value stored at name."""
        chunks = self._chunk_count(name)
        if chunks is None:
            return []
        if chunks == 0:
            return [name]
        names = [name, _chunk_name(name, 0)]
        if chunks > 0:
            names.extend(_chunk_name(name, index) for index in range(1, chunks + 1))
        return names

    def _chunk_count(self, name: str) -> Optional[int]:
        """Fragment count for name: None if absent, 0 if unchunked, -1 if the count is bad."""
        control = self.jar.get(_chunk_name(name, 0))
        if control is not None:
            try:
                count = int(control)
            except ValueError:
                return _CORRUPT
            # Every fragment is its own cookie, so the count can never exceed the jar
            if count < 1 or count > len(self.jar):
                return _CORRUPT
            return count

        if name in self.jar:
            return 0

        return None

    def _cookie_options(self, expires: Optional[int]) -> Dict[str, Any]:
        form_post = get_config_value(self.config, "OIDC_RESPONSE_MODE") == "form_post"
        return {
            "expires": expires,
            "domain": get_config_value(self.config, "OIDC_COOKIE_DOMAIN") or self.jar.host,
            "path": get_config_value(self.config, "OIDC_COOKIE_PATH", "/") or "/",
            "secure": bool(get_config_value(self.config, "OIDC_COOKIE_SECURE", False)),
            "httponly": True,
            # Cross-site form posts only carry SameSite=None cookies
            "samesite": "None" if form_post else "Lax",
        }

    def _expired_options(self) -> Dict[str, Any]:
        return self._cookie_options(int(time.time()) - 1000)

    def _get_key(self) -> bytes:
        secret = get_config_value(self.config, "OIDC_COOKIE_SECRET")
        if not secret:
            raise ConfigurationError("OIDC_COOKIE_SECRET must be configured to use cookie storage")

        if self._key is None:
            self._key = HKDF(
                algorithm=hashes.SHA256(),
                length=KEY_LENGTH,
                salt=None,
                info=_HKDF_INFO,
            ).derive(secret.encode("utf-8"))
        return self._key

    def _encrypt(self, value: Any) -> str:
        key = self._get_key()
        iv = secrets.token_bytes(IV_LENGTH)
        plaintext = json.dumps(value, separators=(",", ":")).encode("utf-8")
        sealed = AESGCM(key).encrypt(iv, plaintext, None)
        envelope = {
            "iv": base64.b64encode(iv).decode("ascii"),
            "tag": base64.b64encode(sealed[-TAG_LENGTH:]).decode("ascii"),
            "data": base64.b64encode(sealed[:-TAG_LENGTH]).decode("ascii"),
        }
        return base64.urlsafe_b64encode(json.dumps(envelope).encode("utf-8")).decode("ascii")

    def _decrypt(self, envelope: str) -> Any:
        key = self._get_key()
        try:
            data = json.loads(base64.urlsafe_b64decode(envelope.encode("ascii")))
            iv = base64.b64decode(data["iv"], validate=True)
            tag = base64.b64decode(data["tag"], validate=True)
            ciphertext = base64.b64decode(data["data"], validate=True)
            if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
                return _INVALID
            plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
            return json.loads(plaintext)
        except (InvalidTag, binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as e:
            logger.debug(f"Cookie envelope rejected: {type(e).__name__}")
            return _INVALID


def _chunk_name(name: str, index: int) -> str:
    return f"{name}{KEY_SEPARATOR}{index}"

# services/tokens.py
"""Stateless bearer tokens.

A token is ``base64url(payload) "." base64url(HMAC-SHA256(secret, payload))``
where the payload is ``{"u": username, "ts": issued_at_millis}``. Verifying
needs no lookup, so there is no way to revoke a token before it expires;
a username that is deleted and registered again accepts older tokens until
they age out.
"""
import base64
import binascii
import hashlib
import hmac
import json
import time
from datetime import timedelta
from typing import Callable, Optional

from lifegrass.utils import normalize_username

DEFAULT_LIFETIME = timedelta(days=7)


def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _unb64(s: str) -> bytes:
    return base64.urlsafe_b64decode((s + "=" * (-len(s) % 4)).encode())


def _now_ms() -> int:
    return int(time.time() * 1000)


class TokenStrategy:
    def __init__(self, secret: str, *, lifetime: timedelta = DEFAULT_LIFETIME,
                 clock: Callable[[], int] = _now_ms):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._key = secret.encode()
        self.lifetime_ms = int(lifetime.total_seconds() * 1000)
        self.clock = clock

    def _sign(self, raw: bytes) -> bytes:
        return hmac.new(self._key, raw, hashlib.sha256).digest()

    def issue(self, username: str) -> str:
        payload = {"u": normalize_username(username), "ts": self.clock()}
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
        return f"{_b64(raw)}.{_b64(self._sign(raw))}"

    def verify(self, token: Optional[str]) -> Optional[str]:
        """Username the token was issued to, or ``None`` if it is forged, malformed or expired."""
        if not token or token.count(".") != 1:
            return None
        data_part, sig_part = token.split(".", 1)
        try:
            raw = _unb64(data_part)
            sig = _unb64(sig_part)
        except (binascii.Error, ValueError):
            return None
        if not hmac.compare_digest(self._sign(raw), sig):
            return None
        try:
            payload = json.loads(raw.decode())
            username = payload["u"]
            issued = payload["ts"]
        except (UnicodeDecodeError, ValueError, KeyError, TypeError):
            return None
        if not isinstance(username, str) or not isinstance(issued, int) or isinstance(issued, bool):
            return None
        if self.clock() - issued > self.lifetime_ms:
            return None
        return username or None

    def verify_for(self, token: Optional[str], username: str) -> bool:
        subject = self.verify(token)
        return subject is not None and subject == normalize_username(username)

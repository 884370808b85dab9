from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import threading
import time
from collections.abc import Callable
from typing import Any


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


class SessionTokens:
    """Signed, expiring session tokens carrying the caller identity.

    Tokens are issued by the login collaborator and checked here on every
    request. Revoked tokens are remembered in-process until they expire.
    """

    def __init__(self, secret: str, ttl_seconds: int, time_fn: Callable[[], float] = time.time) -> None:
        if len(secret) < 32:
            raise ValueError("Session signing secret must be at least 32 characters long.")
        self._secret = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self._time = time_fn
        self._lock = threading.Lock()
        self._revoked: dict[str, float] = {}

    def _sign(self, encoded: str) -> bytes:
        return hmac.new(self._secret, encoded.encode("ascii"), hashlib.sha256).digest()

    def create_session(self, payload: dict[str, Any]) -> str:
        session_payload = dict(payload)
        session_payload["expiresAt"] = self._time() + self.ttl_seconds
        body = json.dumps(session_payload, ensure_ascii=True, separators=(",", ":")).encode("utf-8")
        encoded = _b64encode(body)
        return f"{encoded}.{_b64encode(self._sign(encoded))}"

    def _decode(self, token: str) -> dict[str, Any] | None:
        try:
            encoded, encoded_sig = token.split(".", 1)
            supplied_sig = _b64decode(encoded_sig)
            if not hmac.compare_digest(self._sign(encoded), supplied_sig):
                return None
            decoded = json.loads(_b64decode(encoded).decode("utf-8"))
        except (ValueError, UnicodeError, binascii.Error):
            return None
        return decoded if isinstance(decoded, dict) else None

    def get_session(self, token: str | None) -> dict[str, Any] | None:
        if not token:
            return None
        decoded = self._decode(token)
        if decoded is None:
            return None

        now = self._time()
        try:
            expires_at = float(decoded.get("expiresAt") or 0.0)
        except (TypeError, ValueError):
            return None
        if now >= expires_at:
            return None

        with self._lock:
            for revoked_token, revoked_exp in list(self._revoked.items()):
                if now >= revoked_exp:
                    self._revoked.pop(revoked_token, None)
            if token in self._revoked:
                return None
        return decoded

    def remove_session(self, token: str | None) -> None:
        if not token:
            return
        decoded = self._decode(token)
        if decoded is None:
            return
        try:
            expires_at = float(decoded.get("expiresAt") or 0.0)
        except (TypeError, ValueError):
            return
        if expires_at <= self._time():
            return
        with self._lock:
            self._revoked[token] = expires_at

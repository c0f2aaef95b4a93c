"""
JWT-style token creation and verification.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256::

    base64(payload) + "." + hex(hmac_sha256(secret, payload))

The payload carries exactly ``user_id``, ``username`` and ``exp``.
Clients send it back as ``Authorization: <scheme> <token>``.
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import json
import time
from base64 import b64decode, b64encode
from dataclasses import dataclass
from typing import Callable, Optional


class AuthError(Exception):
    """Token could not be used to authenticate the caller."""


class TokenMissing(AuthError):
    pass


class TokenInvalid(AuthError):
    pass


class TokenExpired(AuthError):
    pass


@dataclass(frozen=True)
class TokenClaim:
    user_id: str
    username: str
    exp: int


class TokenService:
    """Issues and verifies signed, time-bound bearer tokens."""

    def __init__(
        self,
        secret: str,
        expiry_seconds: int,
        scheme: str = "JWT",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret.encode()
        self._expiry_seconds = expiry_seconds
        self._clock = clock
        self.scheme = scheme

    def _sign(self, raw: bytes) -> str:
        return hmac.new(self._secret, raw, hashlib.sha256).hexdigest()

    def issue(self, user_id: str, username: str) -> str:
        """Create a signed token containing ``user_id``, ``username`` and expiry."""
        payload = {
            "user_id": user_id,
            "username": username,
            "exp": int(self._clock()) + self._expiry_seconds,
        }
        raw = json.dumps(payload).encode()
        return b64encode(raw).decode() + "." + self._sign(raw)

    def verify(self, token: str) -> TokenClaim:
        """
        Verify ``token`` and return its claim.

        Raises ``TokenInvalid`` on a malformed or tampered token and
        ``TokenExpired`` once ``exp`` has passed.
        """
        parts = token.split(".", 1)
        if len(parts) != 2 or not parts[1]:
            raise TokenInvalid("bad format")
        try:
            raw = b64decode(parts[0], validate=True)
        except (binascii.Error, ValueError):
            raise TokenInvalid("bad encoding")

        # bytes compare: str compare_digest rejects non-ASCII input
        signature = parts[1].encode("utf-8", "surrogateescape")
        if not hmac.compare_digest(signature, self._sign(raw).encode()):
            raise TokenInvalid("bad signature")

        try:
            payload = json.loads(raw)
        except ValueError:
            raise TokenInvalid("bad payload")
        if not isinstance(payload, dict):
            raise TokenInvalid("bad payload")

        user_id = payload.get("user_id")
        username = payload.get("username")
        exp = payload.get("exp")
        if (
            not isinstance(user_id, str)
            or not isinstance(username, str)
            or not isinstance(exp, int)
            or isinstance(exp, bool)
        ):
            raise TokenInvalid("bad payload")

        if exp <= self._clock():
            raise TokenExpired("token expired")
        return TokenClaim(user_id=user_id, username=username, exp=exp)

    def extract(self, authorization: Optional[str]) -> str:
        """Pull the token out of an ``Authorization`` header value."""
        if not authorization:
            raise TokenMissing("missing Authorization header")
        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != self.scheme.lower():
            raise TokenInvalid(f"expected '{self.scheme} <token>'")
        return parts[1]

"""
FastAPI dependencies for authentication.

Provides ``get_store``, ``get_token_service`` and ``get_current_user``,
used across all protected routes.

``get_current_user`` resolves the caller in one of two ways, chosen by
``config.auth_strategy``:

* ``lookup`` (default) re-reads the user by id on every request.  Costs
  one extra query, but a user that no longer exists is refused at once.
* ``claim`` trusts the ``user_id``/``username`` embedded in the token.
  No query, but a removed user keeps access until the token expires.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, Request

from auth.jwt import AuthError, TokenService
from config.settings import Settings
from database.errors import UserNotFound
from database.store import UserRecord, UserStore

logger = logging.getLogger(__name__)


class Unauthenticated(Exception):
    """Caller presented no usable token."""

    def __init__(self, reason: str, scheme: str) -> None:
        super().__init__(reason)
        self.reason = reason
        self.scheme = scheme


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> UserStore:
    return request.app.state.store


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    tokens: TokenService = Depends(get_token_service),
    store: UserStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> UserRecord:
    """
    Extract and verify the token from the Authorization header,
    returning the authenticated ``UserRecord``.
    """
    try:
        claim = tokens.verify(tokens.extract(authorization))
    except AuthError as exc:
        logger.debug("Rejected token: %s", exc)
        raise Unauthenticated(str(exc), tokens.scheme) from exc

    if settings.auth_strategy == "claim":
        return UserRecord(user_id=claim.user_id, username=claim.username)

    try:
        return await store.find_by_id(claim.user_id)
    except UserNotFound as exc:
        logger.debug("Token for unknown user %s", claim.user_id)
        raise Unauthenticated("unknown user", tokens.scheme) from exc

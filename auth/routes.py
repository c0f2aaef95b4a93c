"""
Auth API routes — register, login.

Route prefix: /api/user
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from auth.dependencies import get_store, get_token_service
from auth.jwt import TokenService
from database.errors import BadCredentials, InvalidInput
from database.store import UserStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


# ── Request / response schemas ─────────────────────────────────────────


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=128)
    password_confirm: str = Field(..., alias="passwordConfirm")


class LoginRequest(BaseModel):
    username: str
    password: str


class MessageResponse(BaseModel):
    message: str


class LoginResponse(BaseModel):
    message: str
    token: str


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/register", response_model=MessageResponse)
async def register(
    req: RegisterRequest,
    store: UserStore = Depends(get_store),
) -> Dict[str, Any]:
    """Register a new user."""
    if req.password != req.password_confirm:
        raise InvalidInput("Passwords do not match")

    await store.register(req.username, req.password)
    logger.info("Registered user %s", req.username)
    return {"message": f"User {req.username} successfully registered"}


@router.post("/login", response_model=LoginResponse)
async def login(
    req: LoginRequest,
    store: UserStore = Depends(get_store),
    tokens: TokenService = Depends(get_token_service),
) -> Dict[str, Any]:
    """Login with username + password."""
    try:
        user = await store.check_credentials(req.username, req.password)
    except BadCredentials:
        logger.info("Failed login for %s", req.username)
        raise

    token = tokens.issue(user.user_id, user.username)
    logger.info("Login: %s (%s)", user.username, user.user_id)
    return {"message": "login successful", "token": token}

"""
Per-user collection routes — favourites and history.

Every route requires a valid token; responses are the updated list of
item ids.  Adding a present id and removing an absent one both succeed
without changing the list.
"""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends

from auth.dependencies import get_current_user, get_store
from database.store import UserRecord, UserStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["collections"])


# ── Favourites ─────────────────────────────────────────────────────────


@router.get("/favourites", response_model=List[str])
async def list_favourites(
    user: UserRecord = Depends(get_current_user),
    store: UserStore = Depends(get_store),
) -> List[str]:
    return await store.list_favourites(user.user_id)


@router.put("/favourites/{item_id}", response_model=List[str])
async def add_favourite(
    item_id: str,
    user: UserRecord = Depends(get_current_user),
    store: UserStore = Depends(get_store),
) -> List[str]:
    items = await store.add_favourite(user.user_id, item_id)
    logger.debug("Favourite %s added for %s", item_id, user.username)
    return items


@router.delete("/favourites/{item_id}", response_model=List[str])
async def remove_favourite(
    item_id: str,
    user: UserRecord = Depends(get_current_user),
    store: UserStore = Depends(get_store),
) -> List[str]:
    items = await store.remove_favourite(user.user_id, item_id)
    logger.debug("Favourite %s removed for %s", item_id, user.username)
    return items


# ── History ────────────────────────────────────────────────────────────


@router.get("/history", response_model=List[str])
async def list_history(
    user: UserRecord = Depends(get_current_user),
    store: UserStore = Depends(get_store),
) -> List[str]:
    return await store.list_history(user.user_id)


@router.put("/history/{item_id}", response_model=List[str])
async def add_history(
    item_id: str,
    user: UserRecord = Depends(get_current_user),
    store: UserStore = Depends(get_store),
) -> List[str]:
    items = await store.add_history(user.user_id, item_id)
    logger.debug("History %s added for %s", item_id, user.username)
    return items


@router.delete("/history/{item_id}", response_model=List[str])
async def remove_history(
    item_id: str,
    user: UserRecord = Depends(get_current_user),
    store: UserStore = Depends(get_store),
) -> List[str]:
    items = await store.remove_history(user.user_id, item_id)
    logger.debug("History %s removed for %s", item_id, user.username)
    return items

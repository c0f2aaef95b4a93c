"""
Tests for the SQLAlchemy user store.
"""

import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import database.store
from database.errors import (
    BadCredentials,
    DuplicateUsername,
    InvalidInput,
    UpstreamFailure,
    UserNotFound,
)
from database.models import User
from database.store import UserStore


class TestAccounts:
    @pytest.mark.asyncio
    async def test_register_and_check_credentials(self, store):
        await store.register("alice", "p1")
        user = await store.check_credentials("alice", "p1")
        assert user.username == "alice"
        assert uuid.UUID(user.user_id)

    @pytest.mark.asyncio
    async def test_password_stored_hashed(self, store):
        await store.register("alice", "p1")
        async with store._session() as session:
            stored = await session.scalar(select(User.password_hash).where(User.username == "alice"))
        assert stored != "p1"

    @pytest.mark.asyncio
    async def test_duplicate_username_keeps_first(self, store):
        await store.register("alice", "p1")
        with pytest.raises(DuplicateUsername):
            await store.register("alice", "p2")
        await store.check_credentials("alice", "p1")
        with pytest.raises(BadCredentials):
            await store.check_credentials("alice", "p2")

    @pytest.mark.asyncio
    async def test_username_is_case_sensitive(self, store):
        await store.register("alice", "p1")
        await store.register("Alice", "p2")
        assert (await store.check_credentials("Alice", "p2")).username == "Alice"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password", [("", "p1"), ("alice", ""), ("a" * 65, "p1"), ("alice", "x" * 73)])
    async def test_register_invalid_input(self, store, username, password):
        with pytest.raises(InvalidInput):
            await store.register(username, password)

    @pytest.mark.asyncio
    async def test_unknown_user_and_wrong_password_are_indistinguishable(self, store):
        await store.register("alice", "p1")
        with pytest.raises(BadCredentials) as wrong:
            await store.check_credentials("alice", "nope")
        with pytest.raises(BadCredentials) as unknown:
            await store.check_credentials("bob", "p1")
        assert wrong.value.message == unknown.value.message

    @pytest.mark.asyncio
    async def test_find_by_id(self, store):
        await store.register("alice", "p1")
        user = await store.check_credentials("alice", "p1")
        assert await store.find_by_id(user.user_id) == user

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", [str(uuid.uuid4()), "not-a-uuid"])
    async def test_find_by_id_missing(self, store, user_id):
        with pytest.raises(UserNotFound):
            await store.find_by_id(user_id)


class TestCollections:
    async def _user_id(self, store) -> str:
        await store.register("alice", "p1")
        return (await store.check_credentials("alice", "p1")).user_id

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, store):
        uid = await self._user_id(store)
        assert await store.add_favourite(uid, "42") == ["42"]
        assert await store.add_favourite(uid, "42") == ["42"]
        assert await store.list_favourites(uid) == ["42"]

    @pytest.mark.asyncio
    async def test_insertion_order_kept(self, store):
        uid = await self._user_id(store)
        for item in ("b", "a", "c"):
            await store.add_history(uid, item)
        assert await store.list_history(uid) == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_remove_absent_is_noop(self, store):
        uid = await self._user_id(store)
        await store.add_favourite(uid, "1")
        assert await store.remove_favourite(uid, "2") == ["1"]
        assert await store.remove_history(uid, "2") == []

    @pytest.mark.asyncio
    async def test_remove(self, store):
        uid = await self._user_id(store)
        await store.add_history(uid, "1")
        await store.add_history(uid, "2")
        assert await store.remove_history(uid, "1") == ["2"]

    @pytest.mark.asyncio
    async def test_collections_are_separate_per_user_and_kind(self, store):
        uid = await self._user_id(store)
        await store.register("bob", "p2")
        bob = (await store.check_credentials("bob", "p2")).user_id
        await store.add_favourite(uid, "1")
        await store.add_history(bob, "9")
        assert await store.list_favourites(uid) == ["1"]
        assert await store.list_history(uid) == []
        assert await store.list_favourites(bob) == []
        assert await store.list_history(bob) == ["9"]

    @pytest.mark.asyncio
    async def test_unknown_user(self, store):
        with pytest.raises(UserNotFound):
            await store.add_favourite(str(uuid.uuid4()), "1")

    @pytest.mark.asyncio
    async def test_oversized_item_id(self, store):
        uid = await self._user_id(store)
        with pytest.raises(InvalidInput):
            await store.add_favourite(uid, "x" * 256)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_use_before_connect(self):
        store = UserStore("sqlite+aiosqlite://")
        with pytest.raises(UpstreamFailure):
            await store.list_favourites(str(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_connect_failure(self, tmp_path):
        store = UserStore(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/users.db")
        with pytest.raises(UpstreamFailure):
            await store.connect()
        assert not store.connected

    @pytest.mark.asyncio
    async def test_connect_twice_and_disconnect(self, tmp_path):
        store = UserStore(f"sqlite+aiosqlite:///{tmp_path}/users.db", bcrypt_rounds=4)
        await store.connect()
        await store.connect()
        await store.register("alice", "p1")
        await store.disconnect()
        await store.disconnect()
        assert not store.connected

        await store.connect()
        assert (await store.check_credentials("alice", "p1")).username == "alice"
        await store.disconnect()


async def _no_precheck(self, *args, **kwargs):
    # lets a duplicate reach the unique constraint, as a concurrent writer would
    return None


class TestConcurrentWrites:
    @pytest.mark.asyncio
    async def test_register_race_reports_duplicate(self, store, monkeypatch):
        await store.register("alice", "p1")
        monkeypatch.setattr(AsyncSession, "scalar", _no_precheck)
        with pytest.raises(DuplicateUsername):
            await store.register("alice", "p2")
        monkeypatch.undo()
        await store.check_credentials("alice", "p1")

    @pytest.mark.asyncio
    async def test_add_race_keeps_single_entry(self, store, monkeypatch):
        await store.register("alice", "p1")
        uid = (await store.check_credentials("alice", "p1")).user_id
        await store.add_favourite(uid, "42")
        monkeypatch.setattr(AsyncSession, "scalar", _no_precheck)
        assert await store.add_favourite(uid, "42") == ["42"]
        assert await store.add_history(uid, "7") == ["7"]
        assert await store.add_history(uid, "7") == ["7"]


class TestCredentialTiming:
    @pytest.mark.asyncio
    async def test_unknown_user_still_runs_bcrypt(self, store, monkeypatch):
        checked = []

        def _record(password, password_hash):
            checked.append(password_hash)
            return False

        monkeypatch.setattr(database.store, "verify_password", _record)
        with pytest.raises(BadCredentials):
            await store.check_credentials("nobody", "p1")
        assert len(checked) == 1
        assert checked[0].startswith("$2")

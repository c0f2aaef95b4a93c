"""
User store — accounts, credentials, favourites and history.

One ``UserStore`` is created per process, connected once at startup and
shared by every request.  Each call runs in its own session/transaction;
concurrent writers are serialized by the database's unique constraints.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Type, Union

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from auth.password import hash_password, verify_password
from database.errors import (
    BadCredentials,
    DuplicateUsername,
    InvalidInput,
    UpstreamFailure,
    UserNotFound,
)
from database.models import Base, Favourite, HistoryEntry, User
from database.session import create_engine, create_session_factory, session_scope

logger = logging.getLogger(__name__)

_MAX_USERNAME_LENGTH = 64
_MAX_ITEM_ID_LENGTH = 255
# bcrypt only looks at the first 72 bytes
_MAX_PASSWORD_BYTES = 72

ItemModel = Type[Union[Favourite, HistoryEntry]]


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    username: str


def _to_record(user: User) -> UserRecord:
    return UserRecord(user_id=str(user.user_id), username=user.username)


def _parse_user_id(user_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        raise UserNotFound()


def _check_item_id(item_id: str) -> None:
    if not item_id or len(item_id) > _MAX_ITEM_ID_LENGTH:
        raise InvalidInput(f"Item id must be 1-{_MAX_ITEM_ID_LENGTH} characters")


class UserStore:
    def __init__(
        self,
        database_url: str,
        *,
        create_schema: bool = True,
        echo: bool = False,
        bcrypt_rounds: int = 12,
    ) -> None:
        self.database_url = database_url
        self.create_schema = create_schema
        self.echo = echo
        self.bcrypt_rounds = bcrypt_rounds
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._dummy_password_hash: Optional[str] = None

    # ── Lifecycle ──────────────────────────────────────────────────────

    @property
    def connected(self) -> bool:
        return self._engine is not None

    async def connect(self, database_url: Optional[str] = None) -> None:
        """Open the engine and check the database is reachable."""
        if self._engine is not None:
            return
        if database_url:
            self.database_url = database_url

        try:
            engine = create_engine(self.database_url, echo=self.echo)
        except (SQLAlchemyError, ImportError, ValueError) as exc:
            logger.error("Invalid database configuration: %s", exc)
            raise UpstreamFailure() from exc

        try:
            async with engine.begin() as conn:
                if self.create_schema:
                    await conn.run_sync(Base.metadata.create_all)
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            await engine.dispose()
            logger.error("Unable to connect to database: %s", exc)
            raise UpstreamFailure() from exc

        self._engine = engine
        self._session_factory = create_session_factory(engine)
        logger.info("Connected to %s", engine.url.render_as_string(hide_password=True))

    async def disconnect(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database connection closed")

    def _dummy_hash(self) -> str:
        if self._dummy_password_hash is None:
            self._dummy_password_hash = hash_password("not-a-real-password", rounds=self.bcrypt_rounds)
        return self._dummy_password_hash

    def _session(self):
        if self._session_factory is None:
            logger.error("User store used before connect()")
            raise UpstreamFailure()
        return session_scope(self._session_factory)

    # ── Accounts ───────────────────────────────────────────────────────

    async def register(self, username: str, password: str) -> None:
        """Create a user; only the bcrypt hash of ``password`` is stored."""
        if not username or not password:
            raise InvalidInput("User name and password are required")
        if len(username) > _MAX_USERNAME_LENGTH:
            raise InvalidInput(f"User name must be at most {_MAX_USERNAME_LENGTH} characters")
        if len(password.encode()) > _MAX_PASSWORD_BYTES:
            raise InvalidInput(f"Password must be at most {_MAX_PASSWORD_BYTES} bytes")

        async with self._session() as session:
            existing = await session.scalar(
                select(User.user_id).where(User.username == username)
            )
            if existing is not None:
                raise DuplicateUsername()

            session.add(
                User(
                    user_id=uuid.uuid4(),
                    username=username,
                    password_hash=hash_password(password, rounds=self.bcrypt_rounds),
                )
            )
            try:
                await session.flush()
            except IntegrityError as exc:
                # lost a race against a concurrent registration
                raise DuplicateUsername() from exc

    async def check_credentials(self, username: str, password: str) -> UserRecord:
        async with self._session() as session:
            user = await session.scalar(select(User).where(User.username == username))

        if user is None:
            # burn the same bcrypt cost so unknown names are not faster
            verify_password(password, self._dummy_hash())
            raise BadCredentials()
        if not verify_password(password, user.password_hash):
            raise BadCredentials()
        return _to_record(user)

    async def find_by_id(self, user_id: str) -> UserRecord:
        uid = _parse_user_id(user_id)
        async with self._session() as session:
            user = await session.get(User, uid)
        if user is None:
            raise UserNotFound()
        return _to_record(user)

    # ── Collections ────────────────────────────────────────────────────

    async def list_favourites(self, user_id: str) -> List[str]:
        return await self._list(Favourite, user_id)

    async def add_favourite(self, user_id: str, item_id: str) -> List[str]:
        return await self._add(Favourite, user_id, item_id)

    async def remove_favourite(self, user_id: str, item_id: str) -> List[str]:
        return await self._remove(Favourite, user_id, item_id)

    async def list_history(self, user_id: str) -> List[str]:
        return await self._list(HistoryEntry, user_id)

    async def add_history(self, user_id: str, item_id: str) -> List[str]:
        return await self._add(HistoryEntry, user_id, item_id)

    async def remove_history(self, user_id: str, item_id: str) -> List[str]:
        return await self._remove(HistoryEntry, user_id, item_id)

    async def _require_user(self, session: AsyncSession, user_id: str) -> uuid.UUID:
        uid = _parse_user_id(user_id)
        if await session.get(User, uid) is None:
            raise UserNotFound()
        return uid

    @staticmethod
    async def _items(session: AsyncSession, model: ItemModel, uid: uuid.UUID) -> List[str]:
        result = await session.execute(
            select(model.item_id).where(model.user_id == uid).order_by(model.id)
        )
        return list(result.scalars().all())

    async def _list(self, model: ItemModel, user_id: str) -> List[str]:
        async with self._session() as session:
            uid = await self._require_user(session, user_id)
            return await self._items(session, model, uid)

    async def _add(self, model: ItemModel, user_id: str, item_id: str) -> List[str]:
        _check_item_id(item_id)
        async with self._session() as session:
            uid = await self._require_user(session, user_id)
            present = await session.scalar(
                select(model.id).where(model.user_id == uid, model.item_id == item_id)
            )
            if present is None:
                session.add(model(user_id=uid, item_id=item_id))
                try:
                    await session.flush()
                except IntegrityError:
                    # a concurrent request added the same item first
                    await session.rollback()
                    logger.debug("%s %s already present for %s", model.__tablename__, item_id, uid)
            return await self._items(session, model, uid)

    async def _remove(self, model: ItemModel, user_id: str, item_id: str) -> List[str]:
        _check_item_id(item_id)
        async with self._session() as session:
            uid = await self._require_user(session, user_id)
            entry = await session.scalar(
                select(model).where(model.user_id == uid, model.item_id == item_id)
            )
            if entry is not None:
                await session.delete(entry)
                await session.flush()
            return await self._items(session, model, uid)

"""
Shared fixtures: in-memory SQLite store, settings, app and HTTP client.
"""

from typing import Dict

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from config.settings import Settings
from database.store import UserStore

TEST_DB_URL = "sqlite+aiosqlite://"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url=TEST_DB_URL,
        jwt_secret="test-secret",
        jwt_expiry_seconds=3600,
        bcrypt_rounds=4,
    )


@pytest_asyncio.fixture()
async def store():
    s = UserStore(TEST_DB_URL, bcrypt_rounds=4)
    await s.connect()
    yield s
    await s.disconnect()


@pytest.fixture()
def make_client(settings):
    """Build a started client; keyword overrides are applied to the settings."""
    from main import create_app

    clients = []

    def _make(**overrides) -> TestClient:
        app = create_app(settings.model_copy(update=overrides))
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.__exit__(None, None, None)


@pytest.fixture()
def client(make_client) -> TestClient:
    return make_client()


def register(client: TestClient, username: str, password: str, confirm: str | None = None):
    return client.post(
        "/api/user/register",
        json={
            "username": username,
            "password": password,
            "passwordConfirm": password if confirm is None else confirm,
        },
    )


def login(client: TestClient, username: str, password: str):
    return client.post(
        "/api/user/login",
        json={"username": username, "password": password},
    )


def auth_header(token: str, scheme: str = "JWT") -> Dict[str, str]:
    return {"Authorization": f"{scheme} {token}"}


@pytest.fixture()
def alice_token(client) -> str:
    assert register(client, "alice", "p1").status_code == 200
    r = login(client, "alice", "p1")
    assert r.status_code == 200
    return r.json()["token"]

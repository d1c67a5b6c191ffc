import asyncio
import os

# lifegrass.main builds a module-level app on import
os.environ.setdefault("TOKEN_SECRET", "test-secret-for-import")

import httpx
import pytest
from fastapi.testclient import TestClient

from lifegrass.client.api import LifeGrassClient
from lifegrass.database import make_engine, make_session_maker
from lifegrass.main import create_app
from lifegrass.services.storage import SqlBlobStore
from lifegrass.services.user_state import UserStateRepository
from lifegrass.settings.config import Settings

TEST_SECRET = "unit-test-secret"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        TOKEN_SECRET=TEST_SECRET,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'lifegrass.db'}",
        STORAGE_BACKEND="sql",
        AI_PROVIDER="off",
    )


@pytest.fixture
def store(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'objects.db'}")
    return SqlBlobStore(engine, make_session_maker(engine))


@pytest.fixture
def repository(store):
    return UserStateRepository(store)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client):
    def _register(username="alice", password="pass1234", **extra):
        r = client.post("/api/auth/register", json={"username": username, "password": password, **extra})
        assert r.status_code == 200, r.text
        return r.json()["token"]

    return _register


@pytest.fixture
def run_with_api(app):
    """Run ``scenario(api)`` against the app in-process, with storage initialised."""

    def _run(scenario):
        async def main():
            await app.state.repository.store.init()
            transport = httpx.ASGITransport(app=app)
            async with LifeGrassClient("http://testserver", transport=transport) as api:
                return await scenario(api)

        return asyncio.run(main())

    return _run

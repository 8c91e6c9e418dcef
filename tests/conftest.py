import json
import os
import shutil
import tempfile
from pathlib import Path

# Настройки читаются при импорте config.settings - окружение задаём раньше
_TMP_DIR = tempfile.mkdtemp(prefix="cloud-drive-tests-")
os.environ["SQLALCHEMY_DATABASE_URI"] = f"sqlite+aiosqlite:///{_TMP_DIR}/test.db"
os.environ["STORAGE_DIR"] = os.path.join(_TMP_DIR, "uploads")

import pytest
from fastapi_cache import FastAPICache
from fastapi_cache.backends.inmemory import InMemoryBackend
from httpx import ASGITransport, AsyncClient

from config.database import Base, async_session, engine
from config.settings import settings
from main import app
from models.user import User


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    storage = Path(settings.STORAGE_DIR)
    shutil.rmtree(storage, ignore_errors=True)
    storage.mkdir(parents=True)

    FastAPICache.init(InMemoryBackend(), prefix="fastapi-cache")
    yield


@pytest.fixture
def storage_dir() -> Path:
    return Path(settings.STORAGE_DIR)


@pytest.fixture
async def db():
    async with async_session() as session:
        yield session


@pytest.fixture
async def user(db):
    account = User(username="alice", hashed_password="")
    db.add(account)
    await db.commit()
    return account


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def login(client, username: str, password: str = "secret") -> dict:
    response = await client.post("/auth/register", json={"username": username, "password": password})
    assert response.status_code == 201
    response = await client.post("/auth/token", data={"username": username, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
async def auth(client):
    return await login(client, "alice")


@pytest.fixture
async def other_auth(client):
    return await login(client, "bob")


@pytest.fixture
def upload(client):
    """Загрузка одного файла через API, возвращает его метаданные"""
    async def _upload(headers, name, content=b"data", parent_id=None, tags=None):
        data = {}
        if parent_id:
            data["parentId"] = parent_id
        if tags is not None:
            data["tags"] = json.dumps(tags)
        response = await client.post(
            "/files", headers=headers, data=data,
            files={"file": (name, content, "application/octet-stream")},
        )
        assert response.status_code == 200, response.text
        return response.json()["items"][0]
    return _upload


@pytest.fixture
def make_folder(client):
    async def _make_folder(headers, name, parent_id=None, create_if_missing=False):
        response = await client.post(
            "/folders", headers=headers,
            json={"name": name, "parentId": parent_id, "createIfMissing": create_if_missing},
        )
        assert response.status_code == 201, response.text
        return response.json()
    return _make_folder

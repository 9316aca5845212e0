import os
import json
import tempfile

# приложение при импорте создает engine; в тестах это временный SQLite
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(prefix="chathub-"), "app.db"),
)

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chathub.database import create_tables
from chathub.repositories.user_repository import UserRepository
from chathub.websocket_manager import ConnectionManager, manager as global_manager

SEED_USERS = [
    ("alice", "Alice Liddell"),
    ("bob", "Bob Builder"),
    ("carol", "Carol Alvarez"),
    ("dave", "Dave Al"),
    ("malory", None),
    ("x", None),
    ("y", None),
]


class FakeWebSocket:
    """Stands in for starlette's WebSocket: records every frame sent."""

    def __init__(self):
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        self.sent.append(json.loads(text))

    def events(self, name):
        return [frame["data"] for frame in self.sent if frame["type"] == name]

    def types(self):
        return [frame["type"] for frame in self.sent]


class ClosedWebSocket(FakeWebSocket):
    async def send_text(self, text):
        raise RuntimeError("Cannot call send once a close message has been sent")


# 1) Engine on a fresh SQLite file per test
@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


# 2) Session factory for tests that need several independent sessions
@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# 3) Seed users once per test
@pytest_asyncio.fixture
async def users(session_factory):
    async with session_factory() as session:
        repo = UserRepository(session)
        for username, name in SEED_USERS:
            await repo.create(username, name=name)
    return [username for username, _ in SEED_USERS]


@pytest.fixture
def conn_manager():
    return ConnectionManager()


# 4) Transport handlers use the process-wide manager
@pytest.fixture
def ws_manager():
    global_manager.reset()
    yield global_manager
    global_manager.reset()


@pytest.fixture
def connect():
    async def _connect(manager, username=None):
        websocket = FakeWebSocket()
        connection = await manager.connect(websocket, username)
        return connection, websocket
    return _connect


# 5) HTTP client on the same event loop, get_db bound to the test database
@pytest_asyncio.fixture
async def client(session_factory, ws_manager):
    from httpx import ASGITransport, AsyncClient
    from chathub.database import get_db
    from chathub.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()

"""
Shared fixtures: a throwaway SQLite database per test, fake sockets for
the realtime layer, and small factories for staff, tables and dishes.
"""

import os

# Must be set before any qrdine import reads settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV_MODE"] = "development"
os.environ["DEBUG"] = "false"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["FRONTEND_URL"] = "http://guest.test"

from typing import Any, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from qrdine.database import build_engine, get_db, init_db
from qrdine.models import MenuItem, RestaurantTable, User, UserRole
from qrdine.services.auth import create_access_token, hash_password
from qrdine.services.qrcode import MockQRCodeService
from qrdine.services.realtime import Connection, ConnectionManager, EventBroadcaster, RoomKey

TEST_PASSWORD = "secret123"


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'qrdine.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


# =============================================================================
# REALTIME
# =============================================================================

class FakeSocket:
    """Records frames; optionally fails every send like a dead client."""

    def __init__(self, fail: bool = False):
        self.frames: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(data)

    @property
    def events(self) -> list[str]:
        return [frame["event"] for frame in self.frames]


@pytest.fixture
def manager():
    return ConnectionManager()


@pytest.fixture
def broadcaster(manager):
    return EventBroadcaster(manager)


@pytest.fixture
def subscribe(manager):
    """Connect a fake socket and join it to the given rooms."""

    def _subscribe(*rooms: RoomKey, fail: bool = False) -> FakeSocket:
        socket = FakeSocket(fail=fail)
        connection = manager.connect(Connection(socket))
        for room in rooms:
            manager.join(connection, room)
        return socket

    return _subscribe


@pytest.fixture
def qr_service():
    return MockQRCodeService()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(session):
    async def _make_user(
        username: str,
        role: UserRole = UserRole.STAFF,
        is_super_admin: bool = False,
        is_active: bool = True,
        permissions: Optional[dict] = None,
    ) -> User:
        user = User(
            username=username,
            email=f"{username}@qrdine.test",
            password_hash=hash_password(TEST_PASSWORD),
            role=role,
            is_super_admin=is_super_admin,
            is_active=is_active,
            permissions=permissions or {},
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_table(session):
    async def _make_table(number: str, capacity: int = 4, **fields) -> RestaurantTable:
        table = RestaurantTable(table_number=number, capacity=capacity, **fields)
        session.add(table)
        await session.commit()
        await session.refresh(table)
        return table

    return _make_table


@pytest.fixture
def make_item(session):
    async def _make_item(name: str, price: float, available: bool = True, category: str = "Main") -> MenuItem:
        item = MenuItem(name=name, price=price, category=category, is_available=available)
        session.add(item)
        await session.commit()
        await session.refresh(item)
        return item

    return _make_item


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def app():
    from qrdine.main import app

    app.state.connections = ConnectionManager()
    app.state.broadcaster = EventBroadcaster(app.state.connections)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app, session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

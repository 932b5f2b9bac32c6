import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

# Load environment variables from .env file
load_dotenv()

# Tests never talk to Firestore
os.environ["DOCUMENT_STORE_BACKEND"] = "memory"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")

from app.core.redis_client import CacheManager, TableStatusCache  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.database import get_document_store  # noqa: E402
from app.dependencies import get_cache_manager  # noqa: E402
from app.main import app  # noqa: E402
from app.models.locations import LocationDocument  # noqa: E402
from app.schemas.auth import AuthUser  # noqa: E402
from app.schemas.tables import TableCreate  # noqa: E402
from app.services.location_service import DEFAULT_LOCATIONS, LocationService  # noqa: E402
from app.services.table_service import TableService  # noqa: E402
from app.services.user_service import UserService  # noqa: E402
from app.store.memory import MemoryDocumentStore  # noqa: E402


class FakeRedis:
    """Dict-backed stand-in for the Redis commands the caches use."""

    def __init__(self):
        self.data: dict[str, str] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        return True

    def setex(self, key, ttl, value):
        self.data[key] = value
        return True

    def delete(self, *keys):
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    def exists(self, key):
        return int(key in self.data)

    def ping(self):
        return True


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def store() -> MemoryDocumentStore:
    """Fresh in-memory document store."""
    return MemoryDocumentStore()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache_manager(fake_redis: FakeRedis) -> CacheManager:
    return CacheManager(redis_client=fake_redis)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def status_cache(cache_manager: CacheManager, clock: FakeClock) -> TableStatusCache:
    return TableStatusCache(cache_manager, ttl_seconds=10, clock=clock)


@pytest.fixture
def table_service(
    store: MemoryDocumentStore, status_cache: TableStatusCache, clock: FakeClock
) -> TableService:
    return TableService(store, status_cache, clock)


@pytest_asyncio.fixture
async def location(store: MemoryDocumentStore) -> LocationDocument:
    """Seeded location with zones ``alimento`` and ``amfi``."""
    await LocationService(store).seed_locations()
    return DEFAULT_LOCATIONS[0]


async def _create_user(store: MemoryDocumentStore, uid: str, name: str) -> AuthUser:
    await UserService(store).create_user(uid, f"{uid}@example.com", name)
    return AuthUser(uid=uid, display_name=name, email=f"{uid}@example.com")


@pytest_asyncio.fixture
async def creator(store: MemoryDocumentStore) -> AuthUser:
    return await _create_user(store, "creator-uid", "Cora Creator")


@pytest_asyncio.fixture
async def participant(store: MemoryDocumentStore) -> AuthUser:
    return await _create_user(store, "bob-uid", "Bob")


@pytest_asyncio.fixture
async def late_user(store: MemoryDocumentStore) -> AuthUser:
    return await _create_user(store, "dana-uid", "Dana")


def _table_data(**overrides) -> TableCreate:
    """Valid table creation payload for the seeded location."""
    data = {
        "title": "Coffee and code",
        "description": "Talk about side projects",
        "seats": 4,
        "zone": "alimento",
        "position": {"left": 40, "top": 60},
    }
    data.update(overrides)
    return TableCreate(**data)


def _headers_for(user: AuthUser) -> dict:
    """Create authentication headers for a test user."""
    token = create_access_token(
        data={"sub": user.uid, "name": user.display_name, "email": user.email},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(store: MemoryDocumentStore):
    """Factory creating extra users with a profile document."""

    async def _make(uid: str, name: str) -> AuthUser:
        return await _create_user(store, uid, name)

    return _make


@pytest.fixture
def make_table_data():
    return _table_data


@pytest.fixture
def headers_for():
    return _headers_for


@pytest.fixture
def auth_headers(creator: AuthUser) -> dict:
    return _headers_for(creator)


@pytest_asyncio.fixture
async def client(
    store: MemoryDocumentStore, cache_manager: CacheManager
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client bound to the test store and cache."""
    app.dependency_overrides[get_document_store] = lambda: store
    app.dependency_overrides[get_cache_manager] = lambda: cache_manager

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

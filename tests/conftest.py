"""Pytest fixtures for online_store tests."""

import json

import pytest
import pytest_asyncio

from online_store.catalog import SqlCatalogStore
from online_store.database import create_engine, init_schema, session_factory
from online_store.lifecycle import OrderLifecycleEngine
from online_store.models import ProductRequest
from online_store.products import ProductService
from online_store.publisher import EventPublisher
from online_store.users import UserDirectory


class RecordingTransport:
    """In-memory bus that keeps every published message."""

    def __init__(self):
        self.messages: list[tuple[str, dict]] = []

    async def publish(self, topic: str, payload: str) -> None:
        self.messages.append((topic, json.loads(payload)))

    @property
    def topics(self) -> list[str]:
        return [topic for topic, _ in self.messages]

    def payloads(self, topic: str) -> list[dict]:
        return [payload for t, payload in self.messages if t == topic]


class FailingTransport:
    def __init__(self):
        self.attempts = 0

    async def publish(self, topic: str, payload: str) -> None:
        self.attempts += 1
        raise ConnectionError("broker unreachable")


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database file per test."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(db_engine):
    return session_factory(db_engine)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def publisher(transport):
    return EventPublisher(transport, timeout=1.0)


@pytest.fixture
def lifecycle(sessions, publisher):
    return OrderLifecycleEngine(sessions, publisher)


@pytest.fixture
def product_service(sessions, publisher):
    return ProductService(sessions, publisher)


@pytest.fixture
def user_directory(sessions, publisher):
    return UserDirectory(sessions, publisher)


@pytest.fixture
def make_product(sessions):
    """Insert a product directly through the catalog store (no events)."""

    async def _make(price_cents=2999, stock=50, name="Go Programming Book"):
        request = ProductRequest(
            name=name,
            description="Learn Go programming from scratch",
            price_cents=price_cents,
            stock_quantity=stock,
        )
        async with sessions() as session, session.begin():
            return await SqlCatalogStore().create_product(session, request)

    return _make


@pytest.fixture
def read_product(sessions):
    async def _read(product_id):
        async with sessions() as session:
            return await SqlCatalogStore().get_product(session, product_id)

    return _read


@pytest.fixture
def failing_transport():
    return FailingTransport()

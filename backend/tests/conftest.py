"""Shared pytest fixtures for Threadline tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from threadline.config import Settings
from threadline.db.connection import Database
from threadline.events.projector import StateProjector
from threadline.events.store import EventStore
from threadline.main import app, build_services, install_services


@pytest.fixture
async def db():
    """In-memory database for tests."""
    database = await Database.connect(":memory:")
    yield database
    await database.close()


@pytest.fixture
async def event_store(db):
    """EventStore backed by in-memory database."""
    return EventStore(db)


@pytest.fixture
async def projector(db):
    """StateProjector backed by in-memory database."""
    return StateProjector(db)


@pytest.fixture
def settings():
    return Settings(attachment_quota_bytes=4096, retry_after_seconds=1)


@pytest.fixture
async def services(db, settings):
    """All components wired against the in-memory database."""
    wired = build_services(db, settings)
    yield wired
    await wired.views.close()


@pytest.fixture
async def client(services, settings):
    """Async test client with in-memory DB wired into the app."""
    install_services(app, services, settings)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()

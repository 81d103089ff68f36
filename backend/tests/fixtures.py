"""Shared test helpers: event envelopes, seeding, and API shortcuts."""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from httpx import AsyncClient

from threadline.events.projector import StateProjector
from threadline.events.store import EventStore
from threadline.models import (
    EntryCreatedPayload,
    EntryDeletedPayload,
    EventEnvelope,
    TopicCreatedPayload,
)

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


def at(seconds: int) -> datetime:
    """A fixed timestamp `seconds` after BASE_TIME."""
    return BASE_TIME + timedelta(seconds=seconds)


def headers(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


def make_topic_created_envelope(
    topic_id: str | None = None,
    title: str = "Test Topic",
    user_id: str = "instructor",
    **payload_overrides: Any,
) -> EventEnvelope:
    """Create a TopicCreated EventEnvelope for testing."""
    topic_id = topic_id or str(uuid4())
    payload = TopicCreatedPayload(title=title, user_id=user_id, **payload_overrides)
    return EventEnvelope(
        event_id=str(uuid4()),
        topic_id=topic_id,
        timestamp=BASE_TIME,
        user_id=user_id,
        event_type="TopicCreated",
        payload=payload.model_dump(),
    )


def make_entry_created_envelope(
    topic_id: str,
    entry_id: str | None = None,
    parent_id: str | None = None,
    root_entry_id: str | None = None,
    user_id: str = "u1",
    message: str = "Hello",
    timestamp: datetime | None = None,
) -> EventEnvelope:
    """Create an EntryCreated EventEnvelope for testing."""
    entry_id = entry_id or str(uuid4())
    if parent_id is not None and root_entry_id is None:
        root_entry_id = parent_id
    payload = EntryCreatedPayload(
        entry_id=entry_id,
        parent_id=parent_id,
        root_entry_id=root_entry_id,
        user_id=user_id,
        message=message,
    )
    return EventEnvelope(
        event_id=str(uuid4()),
        topic_id=topic_id,
        timestamp=timestamp or datetime.now(UTC),
        user_id=user_id,
        event_type="EntryCreated",
        payload=payload.model_dump(),
    )


def make_entry_deleted_envelope(topic_id: str, entry_id: str) -> EventEnvelope:
    return EventEnvelope(
        event_id=str(uuid4()),
        topic_id=topic_id,
        timestamp=datetime.now(UTC),
        event_type="EntryDeleted",
        payload=EntryDeletedPayload(entry_id=entry_id).model_dump(),
    )


async def record(event_store: EventStore, projector: StateProjector, *events: EventEnvelope) -> None:
    """Append and project events, in order."""
    for event in events:
        await event_store.append(event)
    await projector.project(list(events))


async def seed_topic(
    event_store: EventStore, projector: StateProjector, **kwargs: Any
) -> str:
    event = make_topic_created_envelope(**kwargs)
    await record(event_store, projector, event)
    return event.topic_id


async def seed_scenario(event_store: EventStore, projector: StateProjector) -> dict:
    """Topic with A(root, t=1), B(root, t=2), C(reply to A, t=3).

    Returns {"topic_id": str, "ids": {"A": str, "B": str, "C": str}}
    """
    topic_id = await seed_topic(event_store, projector)
    a = make_entry_created_envelope(topic_id, entry_id="A", user_id="u1", message="a", timestamp=at(1))
    b = make_entry_created_envelope(topic_id, entry_id="B", user_id="u2", message="b", timestamp=at(2))
    c = make_entry_created_envelope(
        topic_id, entry_id="C", parent_id="A", user_id="u2", message="c", timestamp=at(3),
    )
    await record(event_store, projector, a, b, c)
    return {"topic_id": topic_id, "ids": {"A": "A", "B": "B", "C": "C"}}


# -- API-level helpers --


async def create_test_topic(
    client: AsyncClient,
    user_id: str = "instructor",
    title: str = "Test Topic",
    **body: Any,
) -> dict:
    """Create a topic via the API and return the response JSON."""
    resp = await client.post("/api/topics", json={"title": title, **body}, headers=headers(user_id))
    assert resp.status_code == 201
    return resp.json()


async def post_entry(
    client: AsyncClient, topic_id: str, message: str = "Hello", user_id: str = "u1"
) -> dict:
    resp = await client.post(
        f"/api/topics/{topic_id}/entries",
        data={"message": message},
        headers=headers(user_id),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def post_reply(
    client: AsyncClient,
    topic_id: str,
    entry_id: str,
    message: str = "Reply",
    user_id: str = "u1",
) -> dict:
    resp = await client.post(
        f"/api/topics/{topic_id}/entries/{entry_id}/replies",
        data={"message": message},
        headers=headers(user_id),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def get_ready_view(
    client: AsyncClient, topic_id: str, user_id: str = "u1", attempts: int = 100
) -> dict:
    """Poll the view endpoint until it stops answering 503."""
    for _ in range(attempts):
        resp = await client.get(f"/api/topics/{topic_id}/view", headers=headers(user_id))
        if resp.status_code != 503:
            assert resp.status_code == 200, resp.text
            return resp.json()
        await asyncio.sleep(0.01)
    raise AssertionError(f"View for topic {topic_id} never became ready")

"""State projector: projects events into materialized tables.

The read side of the CQRS pattern. Topic and entry rows are only ever
written here; everything else reads them back through the query helpers
at the bottom of the class.
"""

import json
import logging
from collections.abc import Awaitable, Callable

from threadline.db.connection import Database
from threadline.models import (
    EntryAttachmentChangedPayload,
    EntryCreatedPayload,
    EntryDeletedPayload,
    EntryEditedPayload,
    EventEnvelope,
    TopicCreatedPayload,
)
from threadline.utils.time import format_timestamp

logger = logging.getLogger(__name__)


class StateProjector:
    """Projects events into materialized SQL tables (topics, entries)."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._handlers: dict[str, Callable[[EventEnvelope], Awaitable[None]]] = {
            "TopicCreated": self._handle_topic_created,
            "EntryCreated": self._handle_entry_created,
            "EntryEdited": self._handle_entry_edited,
            "EntryDeleted": self._handle_entry_deleted,
            "EntryAttachmentChanged": self._handle_entry_attachment_changed,
        }

    async def project(self, events: list[EventEnvelope]) -> None:
        """Project a batch of events into materialized tables."""
        for event in events:
            handler = self._handlers.get(event.event_type)
            if handler:
                await handler(event)
            else:
                logger.warning("No projection for event type %r", event.event_type)

    # -- Handlers --

    async def _handle_topic_created(self, event: EventEnvelope) -> None:
        payload = TopicCreatedPayload.model_validate(event.payload)
        timestamp = format_timestamp(event.timestamp)
        await self._db.execute(
            """
            INSERT OR REPLACE INTO topics
                (topic_id, title, message, user_id, require_initial_post,
                 group_assignment, parent_topic_id, group_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.topic_id,
                payload.title,
                payload.message,
                payload.user_id,
                int(payload.require_initial_post),
                int(payload.group_assignment),
                payload.parent_topic_id,
                payload.group_id,
                timestamp,
                timestamp,
            ),
        )

    async def _handle_entry_created(self, event: EventEnvelope) -> None:
        payload = EntryCreatedPayload.model_validate(event.payload)
        timestamp = format_timestamp(event.timestamp)
        await self._db.execute(
            """
            INSERT OR REPLACE INTO entries
                (entry_id, topic_id, parent_id, root_entry_id, user_id, message,
                 deleted, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (
                payload.entry_id,
                event.topic_id,
                payload.parent_id,
                payload.root_entry_id,
                payload.user_id,
                payload.message,
                timestamp,
                timestamp,
            ),
        )

    async def _handle_entry_edited(self, event: EventEnvelope) -> None:
        payload = EntryEditedPayload.model_validate(event.payload)
        await self._db.execute(
            "UPDATE entries SET message = ?, editor_id = ?, updated_at = ? WHERE entry_id = ?",
            (payload.new_message, payload.editor_id, format_timestamp(event.timestamp), payload.entry_id),
        )

    async def _handle_entry_deleted(self, event: EventEnvelope) -> None:
        """Soft delete: the row stays so thread shape and ids remain stable."""
        payload = EntryDeletedPayload.model_validate(event.payload)
        await self._db.execute(
            "UPDATE entries SET deleted = 1, updated_at = ? WHERE entry_id = ?",
            (format_timestamp(event.timestamp), payload.entry_id),
        )

    async def _handle_entry_attachment_changed(self, event: EventEnvelope) -> None:
        payload = EntryAttachmentChangedPayload.model_validate(event.payload)
        await self._db.execute(
            "UPDATE entries SET attachment = ?, updated_at = ? WHERE entry_id = ?",
            (
                json.dumps(payload.attachment.model_dump()) if payload.attachment else None,
                format_timestamp(event.timestamp),
                payload.entry_id,
            ),
        )

    # -- Queries --

    async def get_topic(self, topic_id: str) -> dict | None:
        """Read projected topic state. Returns None if not found."""
        row = await self._db.fetchone("SELECT * FROM topics WHERE topic_id = ?", (topic_id,))
        if row is None:
            return None
        return dict(row)

    async def get_child_topics(self, topic_id: str) -> list[dict]:
        """Group-split subtopics of a topic, oldest first."""
        rows = await self._db.fetchall(
            "SELECT * FROM topics WHERE parent_topic_id = ? ORDER BY created_at, topic_id",
            (topic_id,),
        )
        return [dict(row) for row in rows]

    async def get_entry(self, entry_id: str) -> dict | None:
        """Read one entry, deleted or not. Returns None if not found."""
        row = await self._db.fetchone("SELECT * FROM entries WHERE entry_id = ?", (entry_id,))
        if row is None:
            return None
        return dict(row)

    async def get_entries(self, topic_id: str) -> list[dict]:
        """All entries of a topic, deleted ones included, oldest first."""
        rows = await self._db.fetchall(
            "SELECT * FROM entries WHERE topic_id = ? ORDER BY created_at, entry_id",
            (topic_id,),
        )
        return [dict(row) for row in rows]

    async def existing_entry_ids(self, topic_ids: list[str], entry_ids: list[str]) -> set[str]:
        """The subset of entry_ids that exist, deleted or not, in one of topic_ids."""
        if not topic_ids or not entry_ids:
            return set()
        topic_marks = ", ".join("?" for _ in topic_ids)
        entry_marks = ", ".join("?" for _ in entry_ids)
        rows = await self._db.fetchall(
            f"SELECT entry_id FROM entries WHERE topic_id IN ({topic_marks}) "
            f"AND entry_id IN ({entry_marks})",
            (*topic_ids, *entry_ids),
        )
        return {row["entry_id"] for row in rows}

    async def has_posted(self, topic_ids: list[str], user_id: str) -> bool:
        """True if the user authored a live entry in any of the given topics."""
        if not topic_ids:
            return False
        marks = ", ".join("?" for _ in topic_ids)
        row = await self._db.fetchone(
            f"SELECT 1 FROM entries WHERE topic_id IN ({marks}) "
            "AND user_id = ? AND deleted = 0 LIMIT 1",
            (*topic_ids, user_id),
        )
        return row is not None

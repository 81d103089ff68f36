"""Append-only event store backed by SQLite."""

import json

from threadline.db.connection import Database
from threadline.models import EventEnvelope
from threadline.utils.time import format_timestamp


class EventStore:
    """Append-only event store. The write side of the CQRS pattern."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def append(self, envelope: EventEnvelope) -> int:
        """Append an event and return the assigned sequence_num.

        Raises IntegrityError if event_id is not unique.
        """
        cursor = await self._db.execute(
            """
            INSERT INTO events
                (event_id, topic_id, timestamp, user_id, event_type, payload)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                envelope.event_id,
                envelope.topic_id,
                format_timestamp(envelope.timestamp),
                envelope.user_id,
                envelope.event_type,
                json.dumps(envelope.payload),
            ),
        )
        assert cursor.lastrowid is not None
        return cursor.lastrowid

    async def get_events(self, topic_id: str) -> list[EventEnvelope]:
        """Get all events for a topic, ordered by sequence_num."""
        rows = await self._db.fetchall(
            "SELECT * FROM events WHERE topic_id = ? ORDER BY sequence_num",
            (topic_id,),
        )
        return [self._row_to_envelope(row) for row in rows]

    @staticmethod
    def _row_to_envelope(row) -> EventEnvelope:
        """Convert a database row to an EventEnvelope."""
        return EventEnvelope(
            event_id=row["event_id"],
            topic_id=row["topic_id"],
            timestamp=row["timestamp"],
            user_id=row["user_id"],
            event_type=row["event_type"],
            payload=json.loads(row["payload"]),
            sequence_num=row["sequence_num"],
        )

"""Per-user read/unread bookkeeping for entries and topics.

A missing entry_read_states row means unread. Explicit per-entry marks are
stored with forced=1; topic-wide sweeps write forced=0 for every entry that
exists at the moment of the sweep and never touch entries created later.
"""

import logging

from threadline.db.connection import Database
from threadline.errors import EntryNotFoundError, TopicNotFoundError
from threadline.events.projector import StateProjector
from threadline.models import ReadState
from threadline.utils.time import format_timestamp, utc_now

logger = logging.getLogger(__name__)

_READ_STATES = ("read", "unread")

# Stays well under SQLite's bound-parameter limit.
_ID_CHUNK = 500


class ReadStateTracker:
    def __init__(self, db: Database, projector: StateProjector) -> None:
        self._db = db
        self._projector = projector

    async def read_entries(
        self, topic_ids: list[str], user_id: str, entry_ids: list[str]
    ) -> set[str]:
        """Subset of entry_ids with an explicit read record for the user."""
        if not topic_ids or not entry_ids:
            return set()
        topic_marks = ", ".join("?" for _ in topic_ids)
        found: set[str] = set()
        unique_ids = list(dict.fromkeys(entry_ids))
        for start in range(0, len(unique_ids), _ID_CHUNK):
            chunk = unique_ids[start:start + _ID_CHUNK]
            entry_marks = ", ".join("?" for _ in chunk)
            rows = await self._db.fetchall(
                f"SELECT entry_id FROM entry_read_states "
                f"WHERE user_id = ? AND read_state = 'read' "
                f"AND topic_id IN ({topic_marks}) AND entry_id IN ({entry_marks})",
                (user_id, *topic_ids, *chunk),
            )
            found.update(r["entry_id"] for r in rows)
        return found

    async def unread_entries(
        self, topic_ids: list[str], user_id: str, entry_ids: list[str]
    ) -> set[str]:
        """entry_ids minus the ones the user has read. No record means unread."""
        read = await self.read_entries(topic_ids, user_id, entry_ids)
        return set(entry_ids) - read

    async def unread_count(self, topic_ids: list[str], user_id: str) -> int:
        """Live entries across topic_ids that the user has not read."""
        if not topic_ids:
            return 0
        marks = ", ".join("?" for _ in topic_ids)
        row = await self._db.fetchone(
            f"""
            SELECT COUNT(*) AS cnt
            FROM entries e
            LEFT JOIN entry_read_states r
                ON r.entry_id = e.entry_id AND r.user_id = ?
            WHERE e.topic_id IN ({marks}) AND e.deleted = 0
                AND (r.read_state IS NULL OR r.read_state != 'read')
            """,
            (user_id, *topic_ids),
        )
        return row["cnt"] if row is not None else 0

    async def mark_entry(self, entry_id: str, user_id: str, state: ReadState) -> None:
        """Force one entry's read state for the user. Idempotent."""
        _check_state(state)
        entry = await self._projector.get_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        await self._db.execute(
            """
            INSERT INTO entry_read_states
                (user_id, entry_id, topic_id, read_state, forced, updated_at)
            VALUES (?, ?, ?, ?, 1, ?)
            ON CONFLICT(user_id, entry_id) DO UPDATE SET
                read_state = excluded.read_state,
                forced = 1,
                updated_at = excluded.updated_at
            """,
            (user_id, entry_id, entry["topic_id"], state, format_timestamp(utc_now())),
        )

    async def mark_topic_all(self, topic_id: str, user_id: str, state: ReadState) -> None:
        """Set every current entry of the topic, and its initial post, to state.

        One atomic sweep: entries committed after it stay unread until marked.
        """
        _check_state(state)
        topic = await self._projector.get_topic(topic_id)
        if topic is None:
            raise TopicNotFoundError(topic_id)
        now = format_timestamp(utc_now())
        await self._db.execute_atomic([
            (
                """
                INSERT INTO entry_read_states
                    (user_id, entry_id, topic_id, read_state, forced, updated_at)
                SELECT ?, entry_id, topic_id, ?, 0, ?
                FROM entries WHERE topic_id = ?
                ON CONFLICT(user_id, entry_id) DO UPDATE SET
                    read_state = excluded.read_state,
                    forced = 0,
                    updated_at = excluded.updated_at
                """,
                (user_id, state, now, topic_id),
            ),
            _topic_marker_upsert(topic_id, user_id, state, now),
        ])
        logger.debug("Marked all entries of topic %s %s for user %s", topic_id, state, user_id)

    async def mark_topic_initial_post(self, topic_id: str, user_id: str, state: ReadState) -> None:
        """Set only the topic-level marker; entry states are untouched."""
        _check_state(state)
        topic = await self._projector.get_topic(topic_id)
        if topic is None:
            raise TopicNotFoundError(topic_id)
        sql, params = _topic_marker_upsert(topic_id, user_id, state, format_timestamp(utc_now()))
        await self._db.execute(sql, params)

    async def topic_read_state(self, topic_id: str, user_id: str) -> ReadState:
        row = await self._db.fetchone(
            "SELECT read_state FROM topic_read_states WHERE user_id = ? AND topic_id = ?",
            (user_id, topic_id),
        )
        return row["read_state"] if row is not None else "unread"

    async def entry_state(self, entry_id: str, user_id: str) -> tuple[ReadState, bool]:
        """(read_state, forced) for one entry; ("unread", False) when unrecorded."""
        row = await self._db.fetchone(
            "SELECT read_state, forced FROM entry_read_states WHERE user_id = ? AND entry_id = ?",
            (user_id, entry_id),
        )
        if row is None:
            return ("unread", False)
        return (row["read_state"], bool(row["forced"]))


def _topic_marker_upsert(topic_id: str, user_id: str, state: str, now: str) -> tuple[str, tuple]:
    return (
        """
        INSERT INTO topic_read_states (user_id, topic_id, read_state, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(user_id, topic_id) DO UPDATE SET
            read_state = excluded.read_state,
            updated_at = excluded.updated_at
        """,
        (user_id, topic_id, state, now),
    )


def _check_state(state: str) -> None:
    if state not in _READ_STATES:
        raise ValueError(f"read state must be 'read' or 'unread', got {state!r}")
